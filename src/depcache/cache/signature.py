"""Toolchain version fingerprinting."""

import logging
from typing import List, Sequence

from depcache.cache.errors import ProbeError
from depcache.command import CommandError, CommandRunner

logger = logging.getLogger(__name__)

DEFAULT_BINARIES = ("node", "npm", "yarn")
SIGNATURE_SEPARATOR = "; "


def find_version(runner: CommandRunner, binary: str) -> str:
    """Return the trimmed ``--version`` output of a binary.

    Args:
        runner: Command runner used to invoke the binary
        binary: Name of the toolchain binary

    Returns:
        Version string as reported by the binary

    Raises:
        ProbeError: If the binary cannot be run or reports nothing
    """
    try:
        result = runner.run(None, binary, ["--version"])
    except CommandError as e:
        raise ProbeError(f"Unable to determine version of {binary}: {e}") from e

    version = result.stdout.strip()
    if not version:
        raise ProbeError(f"{binary} --version produced no output")
    return version


class VersionSignature:
    """Builds a comparable fingerprint of the installed toolchain.

    Each binary contributes ``name=version`` and the entries are joined in a
    fixed order, so a change in any single binary changes the signature.
    """

    def __init__(
        self,
        runner: CommandRunner,
        binaries: Sequence[str] = DEFAULT_BINARIES,
    ):
        if not binaries:
            raise ValueError("At least one binary is required for a signature")
        self.runner = runner
        self.binaries = tuple(binaries)

    def compute(self) -> str:
        """Probe every binary and return the combined signature.

        Raises:
            ProbeError: If any binary cannot be versioned
        """
        parts: List[str] = []
        for binary in self.binaries:
            version = find_version(self.runner, binary)
            logger.debug(f"{binary} version: {version}")
            parts.append(f"{binary}={version}")
        return SIGNATURE_SEPARATOR.join(parts)
