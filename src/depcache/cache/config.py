"""Cache configuration management."""

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Tuple

from depcache.cache.signature import DEFAULT_BINARIES


@dataclass
class CacheConfig:
    """Configuration for a restore/save cycle.

    Attributes:
        cache_dir: Durable cache root, stable across builds of a project
        build_dir: Ephemeral build directory of the current build
        descriptor_name: Project descriptor file inside build_dir
        binaries: Toolchain binaries probed for the signature, in order
        use_lock: Guard restore/save with a lock file in the cache root
        lock_timeout: Seconds to wait for the lock
    """

    cache_dir: Path = Path.home() / ".depcache"
    build_dir: Path = field(default_factory=Path.cwd)
    descriptor_name: str = "package.json"
    binaries: Tuple[str, ...] = DEFAULT_BINARIES
    use_lock: bool = True
    lock_timeout: float = 30.0

    def __post_init__(self):
        """Ensure directories are Path objects and binaries is a tuple."""
        self.cache_dir = Path(self.cache_dir).expanduser()
        self.build_dir = Path(self.build_dir).expanduser()
        self.binaries = tuple(self.binaries)

    @property
    def descriptor_path(self) -> Path:
        return self.build_dir / self.descriptor_name

    @classmethod
    def load(cls, config_path: Optional[Path] = None) -> "CacheConfig":
        """Load configuration from a JSON file.

        Args:
            config_path: Path to config file. If None, uses ~/.depcache/config.json

        Returns:
            CacheConfig instance (defaults if the file does not exist)
        """
        if config_path is None:
            config_path = Path.home() / ".depcache" / "config.json"
        config_path = Path(config_path)

        if not config_path.exists():
            return cls()

        with open(config_path, "r") as f:
            data = json.load(f)

        if "binaries" in data:
            data["binaries"] = tuple(data["binaries"])

        return cls(**data)

    @classmethod
    def from_env(cls, base: Optional["CacheConfig"] = None) -> "CacheConfig":
        """Create configuration from environment variables.

        Environment variables:
            DEPCACHE_CACHE_DIR: Cache root path
            DEPCACHE_BUILD_DIR: Build directory path
            DEPCACHE_BINARIES: Comma-separated binaries to probe
            DEPCACHE_LOCK_TIMEOUT: Lock timeout in seconds
            DEPCACHE_NO_LOCK: Disable locking (true/false)

        Args:
            base: Configuration to start from (defaults if None)

        Returns:
            CacheConfig instance
        """
        config = base or cls()

        if os.getenv("DEPCACHE_CACHE_DIR"):
            config.cache_dir = Path(os.getenv("DEPCACHE_CACHE_DIR")).expanduser()

        if os.getenv("DEPCACHE_BUILD_DIR"):
            config.build_dir = Path(os.getenv("DEPCACHE_BUILD_DIR")).expanduser()

        if os.getenv("DEPCACHE_BINARIES"):
            config.binaries = tuple(
                b.strip() for b in os.getenv("DEPCACHE_BINARIES").split(",") if b.strip()
            )

        if os.getenv("DEPCACHE_LOCK_TIMEOUT"):
            config.lock_timeout = float(os.getenv("DEPCACHE_LOCK_TIMEOUT"))

        if os.getenv("DEPCACHE_NO_LOCK"):
            config.use_lock = os.getenv("DEPCACHE_NO_LOCK", "").lower() != "true"

        return config
