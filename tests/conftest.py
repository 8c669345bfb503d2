"""Shared fixtures for depcache tests."""

from pathlib import Path

import pytest

from depcache.cache.config import CacheConfig
from depcache.command import CommandError, CommandNotFoundError, CommandResult


class FakeRunner:
    """Command runner double that answers version probes from a dict."""

    def __init__(self, versions=None):
        self.versions = dict(
            versions or {"node": "v8.1.0", "npm": "5.0.3", "yarn": "0.24.6"}
        )
        self.failing = set()
        self.effects = {}
        self.calls = []

    def run(self, directory, program, args=(), env=None, capture=True):
        args = list(args)
        self.calls.append(
            {"directory": directory, "program": program, "args": args, "env": env}
        )

        if args == ["--version"]:
            if program not in self.versions:
                raise CommandNotFoundError(
                    f"Cannot execute {program}",
                    CommandResult(program=program, args=args, returncode=127),
                )
            return CommandResult(
                program=program,
                args=args,
                returncode=0,
                stdout=f"{self.versions[program]}\n",
            )

        subcommand = args[0] if args else ""
        if (program, subcommand) in self.failing:
            raise CommandError(
                f"{program} exited with status 1",
                CommandResult(program=program, args=args, returncode=1),
            )
        effect = self.effects.get((program, subcommand))
        if effect is not None:
            effect(directory)
        return CommandResult(program=program, args=args, returncode=0)


@pytest.fixture
def fake_runner():
    """Create fake command runner with a node/npm/yarn toolchain."""
    return FakeRunner()


@pytest.fixture
def build_dir(tmp_path):
    """Create empty build directory."""
    path = tmp_path / "build"
    path.mkdir()
    return path


@pytest.fixture
def cache_root(tmp_path):
    """Cache root path (not created, as on a first build)."""
    return tmp_path / "cache"


@pytest.fixture
def cache_config(cache_root, build_dir):
    """Create test cache configuration."""
    return CacheConfig(cache_dir=cache_root, build_dir=build_dir, lock_timeout=5)


def _write_tree(root: Path, files: dict) -> None:
    for rel, content in files.items():
        path = root / rel
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content)


@pytest.fixture
def write_tree():
    """Helper writing {relative path: content} under a root directory."""
    return _write_tree
