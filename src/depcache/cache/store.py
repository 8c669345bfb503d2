"""Durable storage of cached directories and the cache manifest."""

import json
import logging
import os
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Set, Union

from depcache.cache.errors import CacheIOError
from depcache.cache.sync import is_transient_name, remove_path

logger = logging.getLogger(__name__)

MANIFEST_FILENAME = ".depcache_manifest.json"
DIRECTORIES_DIRNAME = "directories"
LOCK_DIRNAME = ".locks"
SCHEMA_VERSION = "1.0"


@dataclass
class CacheManifest:
    """Record of what was cached and under which toolchain signature.

    Attributes:
        directories: Ordered relative paths saved by the last successful save
        signature: BinarySignature current at save time
        saved_at: ISO timestamp of the save (informational)
    """

    directories: List[str] = field(default_factory=list)
    signature: str = ""
    saved_at: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "schema_version": SCHEMA_VERSION,
            "directories": list(self.directories),
            "signature": self.signature,
            "saved_at": self.saved_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CacheManifest":
        """Build a manifest from its JSON representation.

        Raises:
            ValueError: If required fields are missing or mistyped
        """
        directories = data.get("directories")
        signature = data.get("signature")
        if not isinstance(directories, list) or not all(
            isinstance(d, str) for d in directories
        ):
            raise ValueError("'directories' must be a list of strings")
        if not isinstance(signature, str):
            raise ValueError("'signature' must be a string")
        return cls(
            directories=directories,
            signature=signature,
            saved_at=data.get("saved_at"),
        )


class CacheStore:
    """Maps relative directory paths to stored trees inside the cache root.

    Layout::

        <cache_root>/.depcache_manifest.json
        <cache_root>/directories/<relative path>
        <cache_root>/.locks/
    """

    def __init__(self, cache_root: Union[str, Path]):
        """Initialize the store.

        Args:
            cache_root: Durable cache directory (may not exist yet)
        """
        self.cache_root = Path(cache_root)
        self.manifest_path = self.cache_root / MANIFEST_FILENAME
        self.directories_dir = self.cache_root / DIRECTORIES_DIRNAME
        self.lock_dir = self.cache_root / LOCK_DIRNAME

    def load_manifest(self) -> Optional[CacheManifest]:
        """Load the stored manifest.

        Returns:
            CacheManifest, or None on the first-ever build

        Raises:
            CacheIOError: If the manifest exists but cannot be read
        """
        try:
            with open(self.manifest_path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except FileNotFoundError:
            return None
        except (OSError, json.JSONDecodeError) as e:
            raise CacheIOError(f"Cannot read cache manifest {self.manifest_path}: {e}") from e

        try:
            return CacheManifest.from_dict(data if isinstance(data, dict) else {})
        except ValueError as e:
            raise CacheIOError(f"Invalid cache manifest {self.manifest_path}: {e}") from e

    def store_manifest(self, manifest: CacheManifest) -> None:
        """Atomically overwrite the manifest.

        The manifest is written to a temporary file which is then renamed
        into place, so a crash never leaves a half-written manifest.

        Raises:
            CacheIOError: If the manifest cannot be written
        """
        if manifest.saved_at is None:
            manifest.saved_at = datetime.now(timezone.utc).isoformat()

        temp_path = self.manifest_path.with_suffix(self.manifest_path.suffix + ".tmp")
        try:
            self.cache_root.mkdir(parents=True, exist_ok=True)
            with open(temp_path, "w", encoding="utf-8") as f:
                json.dump(manifest.to_dict(), f, indent=2)
                f.flush()
                os.fsync(f.fileno())
            os.replace(temp_path, self.manifest_path)
        except OSError as e:
            logger.error(f"Error writing cache manifest: {e}")
            if temp_path.exists():
                try:
                    temp_path.unlink()
                except OSError as cleanup_error:
                    logger.warning(f"Failed to clean up temp file {temp_path}: {cleanup_error}")
            raise CacheIOError(f"Cannot write cache manifest: {e}") from e

    def path_for(self, path: str) -> Path:
        """Absolute location of a stored directory inside the cache root."""
        return self.directories_dir / path

    def has_directory(self, path: str) -> bool:
        """Check whether a directory is stored in the cache."""
        stored = self.path_for(path)
        return stored.exists() or stored.is_symlink()

    def remove_directory(self, path: str) -> None:
        """Remove a single stored directory.

        Raises:
            CacheIOError: If removal fails
        """
        try:
            remove_path(self.path_for(path))
        except OSError as e:
            raise CacheIOError(f"Cannot remove cached {path}: {e}") from e

    def prune(self, keep: Iterable[str]) -> List[str]:
        """Remove every stored path not listed in ``keep``.

        Ancestors of nested kept paths (``.cache`` for ``.cache/yarn``) are
        walked into rather than removed. Leftovers of interrupted copies are
        removed as well.

        Args:
            keep: Relative paths to retain

        Returns:
            Relative paths that were removed

        Raises:
            CacheIOError: If removal fails
        """
        if not self.directories_dir.is_dir():
            return []

        removed: List[str] = []
        try:
            self._prune_level(self.directories_dir, "", set(keep), removed)
        except OSError as e:
            logger.error(f"Error pruning cache: {e}")
            raise CacheIOError(f"Cannot prune cache: {e}") from e
        return removed

    def _prune_level(
        self, base: Path, prefix: str, keep: Set[str], removed: List[str]
    ) -> None:
        for entry in sorted(base.iterdir()):
            rel = f"{prefix}{entry.name}"
            if rel in keep:
                continue
            if (
                entry.is_dir()
                and not entry.is_symlink()
                and any(k.startswith(rel + "/") for k in keep)
            ):
                self._prune_level(entry, rel + "/", keep, removed)
                continue
            remove_path(entry)
            if is_transient_name(entry.name):
                logger.debug(f"Removed leftover {rel} from interrupted copy")
                continue
            logger.info(f"Pruning {rel} from cache")
            removed.append(rel)

    def clear(self) -> None:
        """Discard all cache content except the lock directory.

        Raises:
            CacheIOError: If removal fails
        """
        if not self.cache_root.is_dir():
            return
        try:
            for entry in self.cache_root.iterdir():
                if entry.name == LOCK_DIRNAME:
                    continue
                remove_path(entry)
        except OSError as e:
            logger.error(f"Error clearing cache root {self.cache_root}: {e}")
            raise CacheIOError(f"Cannot clear cache: {e}") from e
