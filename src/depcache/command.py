"""Command execution port used by the toolchain probe and the installer."""

import logging
import os
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional, Sequence, Union

logger = logging.getLogger(__name__)


class CommandError(Exception):
    """Raised when a command exits with a non-zero status."""

    def __init__(self, message: str, result: "CommandResult"):
        super().__init__(message)
        self.result = result


class CommandNotFoundError(CommandError):
    """Raised when the program to run cannot be found or executed."""

    pass


@dataclass
class CommandResult:
    """Outcome of a single command invocation."""

    program: str
    args: Sequence[str]
    returncode: int
    stdout: str = ""
    stderr: str = ""


class CommandRunner:
    """Runs external programs with an optional per-call environment override.

    The override is merged over ``os.environ`` for the child process only;
    the current process environment is never modified.
    """

    def run(
        self,
        directory: Optional[Union[str, Path]],
        program: str,
        args: Sequence[str] = (),
        env: Optional[Mapping[str, str]] = None,
        capture: bool = True,
    ) -> CommandResult:
        """Run ``program`` with ``args`` inside ``directory``.

        Args:
            directory: Working directory (None = current directory)
            program: Executable name or path
            args: Arguments passed to the program
            env: Extra environment variables for this call only
            capture: Capture stdout/stderr instead of inheriting them

        Returns:
            CommandResult with captured output

        Raises:
            CommandNotFoundError: If the program cannot be executed
            CommandError: If the program exits with a non-zero status
        """
        child_env = None
        if env:
            child_env = dict(os.environ)
            child_env.update(env)

        cwd = str(directory) if directory else None
        logger.debug(f"Running {program} {' '.join(args)} in {cwd or os.getcwd()}")

        try:
            completed = subprocess.run(
                [program, *args],
                cwd=cwd,
                env=child_env,
                stdout=subprocess.PIPE if capture else None,
                stderr=subprocess.PIPE if capture else None,
                text=True,
                check=False,
            )
        except (FileNotFoundError, PermissionError) as e:
            result = CommandResult(program=program, args=list(args), returncode=127)
            raise CommandNotFoundError(f"Cannot execute {program}: {e}", result) from e

        result = CommandResult(
            program=program,
            args=list(args),
            returncode=completed.returncode,
            stdout=completed.stdout or "",
            stderr=completed.stderr or "",
        )
        if completed.returncode != 0:
            raise CommandError(
                f"{program} exited with status {completed.returncode}", result
            )
        return result
