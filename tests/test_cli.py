"""Tests for CLI commands.

These tests verify:
- restore/save/build drive the cache engine
- status and clear report on the cache root
- Error handling and exit codes
"""

import json
from pathlib import Path

import pytest
from click.testing import CliRunner

from depcache.cache.store import CacheStore
from depcache.cli.main import cli


@pytest.fixture
def invoke(cache_root, build_dir, fake_runner):
    """Return a function invoking the CLI against temp directories."""

    def run(*args, input=None):
        runner = CliRunner()
        return runner.invoke(
            cli,
            ["-c", str(cache_root), "-b", str(build_dir), "--no-lock", *args],
            obj={"runner": fake_runner},
            input=input,
        )

    return run


class TestRestoreSave:
    """Test restore and save commands."""

    def test_restore_first_build(self, invoke):
        result = invoke("restore")

        assert result.exit_code == 0
        assert "Restored 0 directories" in result.output

    def test_save_then_restore(self, invoke, build_dir, cache_root, write_tree):
        (build_dir / "package.json").write_text(
            json.dumps({"cacheDirectories": ["node_modules"]})
        )
        write_tree(build_dir, {"node_modules/m/index.js": "m"})

        result = invoke("save")
        assert result.exit_code == 0
        assert "Saved 1 directories" in result.output
        assert CacheStore(cache_root).has_directory("node_modules")

        write_tree(build_dir, {"node_modules/m/index.js": "changed"})
        result = invoke("restore")
        assert result.exit_code == 0
        assert (build_dir / "node_modules" / "m" / "index.js").read_text() == "m"

    def test_malformed_descriptor_fails(self, invoke, build_dir):
        (build_dir / "package.json").write_text("{oops")

        result = invoke("restore")

        assert result.exit_code == 1
        assert "Error" in result.output

    def test_probe_failure_fails(self, invoke, fake_runner):
        del fake_runner.versions["yarn"]

        result = invoke("save")

        assert result.exit_code == 1
        assert "yarn" in result.output


class TestBuild:
    """Test the full restore/install/save pipeline."""

    def test_build_with_npm(self, invoke, build_dir, fake_runner, cache_root):
        (build_dir / "package.json").write_text(
            json.dumps({"cacheDirectories": [".npm"]})
        )
        (build_dir / ".npm").mkdir()

        result = invoke("build")

        assert result.exit_code == 0
        assert "Built with npm" in result.output
        assert ("npm", "install") in [
            (c["program"], c["args"][0]) for c in fake_runner.calls if c["args"]
        ]
        assert CacheStore(cache_root).load_manifest().directories == [".npm"]

    def test_install_failure_skips_save(self, invoke, build_dir, fake_runner, cache_root):
        (build_dir / "package.json").write_text("{}")
        fake_runner.failing.add(("npm", "install"))

        result = invoke("build")

        assert result.exit_code == 1
        assert CacheStore(cache_root).load_manifest() is None


    def test_second_build_installs_fresh_over_restored_modules(
        self, tmp_path, cache_root, fake_runner
    ):
        """Test restored node_modules does not turn the install into a rebuild."""

        def install(directory):
            (Path(directory) / "node_modules" / "pkg").mkdir(parents=True, exist_ok=True)
            (Path(directory) / "node_modules" / "pkg" / "index.js").write_text("pkg")

        fake_runner.effects[("npm", "install")] = install

        def run_build(name):
            build = tmp_path / name
            build.mkdir()
            (build / "package.json").write_text(
                json.dumps({"cacheDirectories": ["node_modules"]})
            )
            fake_runner.calls.clear()
            result = CliRunner().invoke(
                cli,
                ["-c", str(cache_root), "-b", str(build), "--no-lock", "build"],
                obj={"runner": fake_runner},
            )
            assert result.exit_code == 0
            return [
                c["args"] for c in fake_runner.calls if c["args"] != ["--version"]
            ], build

        first_calls, _ = run_build("first")
        second_calls, second = run_build("second")

        assert [args[0] for args in first_calls] == ["install"]
        assert [args[0] for args in second_calls] == ["install"]
        assert second_calls[0][-2:] == ["--cache", str(second / ".npm")]
        assert (second / "node_modules" / "pkg" / "index.js").read_text() == "pkg"

    def test_warns_without_start_command(self, invoke, build_dir):
        (build_dir / "package.json").write_text("{}")

        result = invoke("build")

        assert result.exit_code == 0
        assert "No Procfile, server.js or start script" in result.output

    def test_no_warning_with_start_script(self, invoke, build_dir):
        (build_dir / "package.json").write_text(
            json.dumps({"scripts": {"start": "node app.js"}})
        )

        result = invoke("build")

        assert result.exit_code == 0
        assert "No Procfile" not in result.output


class TestConfigErrors:
    """Test invalid configuration sources."""

    def test_invalid_env_lock_timeout(self, invoke, monkeypatch):
        monkeypatch.setenv("DEPCACHE_LOCK_TIMEOUT", "abc")

        result = invoke("restore")

        assert result.exit_code == 1
        assert "DEPCACHE_" in result.output


class TestStatusClear:
    """Test status and clear commands."""

    def test_status_empty(self, invoke):
        result = invoke("status")

        assert result.exit_code == 0
        assert "No cache saved yet" in result.output
        assert "bower_components" in result.output

    def test_status_after_save(self, invoke):
        invoke("save")
        result = invoke("status")

        assert result.exit_code == 0
        assert "Toolchain unchanged" in result.output

    def test_clear(self, invoke, cache_root):
        invoke("save")
        result = invoke("clear", "--yes")

        assert result.exit_code == 0
        assert CacheStore(cache_root).load_manifest() is None

    def test_clear_cancelled(self, invoke, cache_root):
        invoke("save")
        result = invoke("clear", input="n\n")

        assert "Cancelled" in result.output
        assert CacheStore(cache_root).load_manifest() is not None
