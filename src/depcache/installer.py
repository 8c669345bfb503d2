"""Package-manager install step run between cache restore and save."""

import logging
import os
from enum import Enum
from pathlib import Path
from typing import List, Optional, Union

from depcache.cache.resolver import ProjectDescriptor
from depcache.command import CommandError, CommandNotFoundError, CommandRunner

logger = logging.getLogger(__name__)

OFFLINE_CACHE_DIRNAME = "npm-packages-offline-cache"


class Tool(Enum):
    """Package manager used for the build."""

    NPM = "npm"
    YARN = "yarn"


def detect_tool(build_dir: Union[str, Path]) -> Tool:
    """Pick yarn when the project ships a yarn.lock, npm otherwise."""
    if (Path(build_dir) / "yarn.lock").exists():
        return Tool.YARN
    return Tool.NPM


class Installer:
    """Installs node modules with npm or yarn.

    The tool is decided once by the caller and passed in; nothing here
    re-checks the build directory to choose it.
    """

    def __init__(
        self,
        build_dir: Union[str, Path],
        runner: CommandRunner,
        tool: Tool,
        descriptor: Optional[ProjectDescriptor] = None,
        node_home: Optional[str] = None,
        rebuild: Optional[bool] = None,
    ):
        """Initialize the installer.

        Args:
            build_dir: Build directory containing package.json
            runner: Command runner
            tool: Package manager to use
            descriptor: Parsed package.json (None if absent)
            node_home: Node installation dir (defaults to $NODE_HOME)
            rebuild: Rebuild existing node_modules instead of a fresh install.
                Must be decided before the cache is restored; defaults to
                whether node_modules exists now.
        """
        self.build_dir = Path(build_dir)
        self.runner = runner
        self.tool = tool
        self.descriptor = descriptor or ProjectDescriptor()
        self.node_home = node_home if node_home is not None else os.getenv("NODE_HOME", "")
        if rebuild is None:
            rebuild = (self.build_dir / "node_modules").exists()
        self.rebuild = rebuild

    def build(self) -> None:
        """Run prebuild script, install dependencies, run postbuild script.

        Raises:
            CommandError: If any command fails
        """
        logger.info("Building dependencies")

        if self.descriptor.prebuild:
            self.run_script(self.descriptor.prebuild)

        if self.tool == Tool.YARN:
            self.yarn_install()
        elif self.rebuild:
            logger.info("Prebuild detected (node_modules already exists)")
            self.npm_rebuild()
        else:
            self.npm_install()

        if self.descriptor.postbuild:
            self.run_script(self.descriptor.postbuild)

    def run_script(self, script: str) -> None:
        args = ["run", script]
        if self.tool == Tool.NPM:
            args.append("--if-present")
        logger.info(f"Running {script} ({self.tool.value})")
        self.runner.run(self.build_dir, self.tool.value, args, capture=False)

    def _npm_source(self) -> Optional[str]:
        if not (self.build_dir / "package.json").exists():
            logger.info("Skipping (no package.json)")
            return None
        if (self.build_dir / "npm-shrinkwrap.json").exists():
            return "package.json + shrinkwrap"
        return "package.json"

    def _npm_install_args(self) -> List[str]:
        return ["install", "--unsafe-perm", "--userconfig", str(self.build_dir / ".npmrc")]

    def npm_install(self) -> None:
        source = self._npm_source()
        if source is None:
            return
        logger.info(f"Installing node modules ({source})")
        args = self._npm_install_args() + ["--cache", str(self.build_dir / ".npm")]
        self.runner.run(self.build_dir, "npm", args, capture=False)

    def npm_rebuild(self) -> None:
        source = self._npm_source()
        if source is None:
            return
        logger.info("Rebuilding any native modules")
        self.runner.run(
            self.build_dir, "npm", ["rebuild", f"--nodedir={self.node_home}"], capture=False
        )
        logger.info(f"Installing any new modules ({source})")
        self.runner.run(self.build_dir, "npm", self._npm_install_args(), capture=False)

    def yarn_install(self) -> None:
        logger.info("Installing node modules (yarn.lock)")

        offline_cache = self.build_dir / OFFLINE_CACHE_DIRNAME
        install_args = [
            "install",
            "--pure-lockfile",
            "--ignore-engines",
            "--cache-folder",
            str(self.build_dir / ".cache" / "yarn"),
        ]
        check_args = ["check"]

        if offline_cache.exists():
            logger.info(f"Found yarn mirror directory {offline_cache}")
            self.runner.run(
                self.build_dir,
                "yarn",
                ["config", "set", "yarn-offline-mirror", str(offline_cache)],
                capture=False,
            )
            logger.info("Running yarn in offline mode")
            install_args.append("--offline")
            check_args.append("--offline")
        else:
            logger.info("Running yarn in online mode")

        nodedir_env = {"npm_config_nodedir": self.node_home}
        self.runner.run(
            self.build_dir,
            "yarn",
            install_args,
            env=nodedir_env,
            capture=False,
        )

        try:
            self.runner.run(self.build_dir, "yarn", check_args, env=nodedir_env)
        except CommandNotFoundError:
            raise
        except CommandError:
            logger.warning("yarn.lock is outdated")
        else:
            logger.info("yarn.lock and package.json match")

    def warn_no_start(self) -> bool:
        """Warn when the app declares no way to start a node process.

        Returns:
            True if the warning was logged
        """
        if (
            (self.build_dir / "Procfile").exists()
            or (self.build_dir / "server.js").exists()
            or self.descriptor.start
        ):
            return False
        logger.warning("This app may not specify any way to start a node process")
        return True
