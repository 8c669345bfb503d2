"""Restore/save engine tying the cache components together."""

import logging
from contextlib import contextmanager
from enum import Enum
from typing import Any, Dict, Iterator, List, Optional

from filelock import FileLock, Timeout

from depcache.cache.config import CacheConfig
from depcache.cache.errors import CacheIOError, CacheLockError
from depcache.cache.resolver import ResolvedDirectories, resolve_cache_directories
from depcache.cache.signature import VersionSignature
from depcache.cache.store import CacheManifest, CacheStore
from depcache.cache.sync import DirectorySynchronizer
from depcache.command import CommandRunner

logger = logging.getLogger(__name__)

LOCK_FILENAME = "cache.lock"


class EngineState(Enum):
    """Progress of a single build through the cache engine."""

    UNINITIALIZED = "uninitialized"
    CHECKED = "checked"
    RESTORED = "restored"
    SAVED = "saved"


class CacheEngine:
    """Restores cached directories before install and saves them afterwards.

    A cache is only reused when the stored toolchain signature equals the
    current one. The manifest is written last on save, so an interrupted save
    leaves the previous manifest authoritative.
    """

    def __init__(
        self,
        config: CacheConfig,
        runner: Optional[CommandRunner] = None,
        signature: Optional[VersionSignature] = None,
        store: Optional[CacheStore] = None,
        synchronizer: Optional[DirectorySynchronizer] = None,
        directories: Optional[ResolvedDirectories] = None,
    ):
        """Initialize the engine.

        Args:
            config: Cache configuration
            runner: Command runner for toolchain probes (ignored if signature given)
            signature: Toolchain signature probe
            store: Cache store (defaults to one rooted at config.cache_dir)
            synchronizer: Directory synchronizer
            directories: Pre-resolved configured directories
        """
        self.config = config
        self.signature_probe = signature or VersionSignature(
            runner or CommandRunner(), config.binaries
        )
        self.store = store or CacheStore(config.cache_dir)
        self.synchronizer = synchronizer or DirectorySynchronizer()
        self._directories = directories
        self.signature: Optional[str] = None
        self.state = EngineState.UNINITIALIZED

    @property
    def directories(self) -> ResolvedDirectories:
        """Configured directories, resolved once per build."""
        if self._directories is None:
            resolved = resolve_cache_directories(self.config.descriptor_path)
            if not resolved.descriptor_found:
                logger.warning(f"No {self.config.descriptor_name} found")
            origin = "default" if resolved.is_default else self.config.descriptor_name
            logger.info(
                f"Loading {len(resolved.paths)} from cacheDirectories ({origin}):"
            )
            self._directories = resolved
        return self._directories

    @contextmanager
    def _locked(self) -> Iterator[None]:
        if not self.config.use_lock:
            yield
            return

        try:
            self.store.lock_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise CacheIOError(
                f"Cannot create cache lock directory at {self.store.lock_dir}: {e}"
            ) from e

        lock = FileLock(str(self.store.lock_dir / LOCK_FILENAME))
        try:
            lock.acquire(timeout=self.config.lock_timeout)
        except Timeout as e:
            raise CacheLockError(
                f"Timeout acquiring cache lock after {self.config.lock_timeout} seconds"
            ) from e
        try:
            yield
        finally:
            lock.release()

    def check(self) -> str:
        """Compute the current toolchain signature.

        Raises:
            ProbeError: If any toolchain binary cannot be versioned
        """
        self.signature = self.signature_probe.compute()
        if self.state == EngineState.UNINITIALIZED:
            self.state = EngineState.CHECKED
        return self.signature

    def restore(self) -> List[str]:
        """Copy cached directories into the build directory.

        Nothing is copied on the first build or when the toolchain signature
        changed; in the latter case the whole cache is discarded first.

        Returns:
            Relative paths that were restored

        Raises:
            ProbeError: If the toolchain cannot be probed
            ConfigParseError: If the descriptor is malformed
            CacheIOError: If reading or copying cache content fails
            CacheLockError: If the cache lock cannot be acquired
        """
        paths = self.directories.paths
        restored: List[str] = []

        with self._locked():
            self.check()
            manifest = self.store.load_manifest()

            if manifest is None:
                logger.info("No previous cache found, skipping restore")
            elif manifest.signature != self.signature:
                logger.info("Skipping cache restore (binary versions changed)")
                logger.debug(f"Cached: {manifest.signature!r} Current: {self.signature!r}")
                self.store.clear()
            else:
                for path in paths:
                    dst = self.config.build_dir / path
                    if self.synchronizer.sync(self.store.path_for(path), dst):
                        logger.info(f"- {path}")
                        restored.append(path)
                    else:
                        logger.info(f"- {path} (no cache for {path})")

        self.state = EngineState.RESTORED
        return restored

    def save(self) -> List[str]:
        """Copy configured directories from the build directory into the cache.

        Stored directories that are no longer configured are pruned, and the
        manifest is written only after every copy succeeded.

        Returns:
            Relative paths that were saved

        Raises:
            ProbeError: If the toolchain cannot be probed
            ConfigParseError: If the descriptor is malformed
            CacheIOError: If copying, pruning or writing the manifest fails
            CacheLockError: If the cache lock cannot be acquired
        """
        paths = self.directories.paths
        saved: List[str] = []

        with self._locked():
            if self.signature is None:
                self.check()

            previous = self.store.load_manifest()
            if previous is not None and previous.signature != self.signature:
                logger.info("Discarding cache built with different binary versions")
                self.store.clear()

            logger.info("Saving cache")
            for path in paths:
                src = self.config.build_dir / path
                if self.synchronizer.sync(src, self.store.path_for(path)):
                    logger.info(f"- {path}")
                    saved.append(path)
                else:
                    logger.info(f"- {path} (nothing to cache)")
                    if self.store.has_directory(path):
                        self.store.remove_directory(path)

            self.store.prune(paths)
            self.store.store_manifest(
                CacheManifest(directories=list(paths), signature=self.signature)
            )

        self.state = EngineState.SAVED
        return saved

    def clear(self) -> None:
        """Discard all cached content and the manifest."""
        with self._locked():
            self.store.clear()

    def status(self, probe: bool = True) -> Dict[str, Any]:
        """Describe the cache for reporting.

        Args:
            probe: Probe the toolchain to compare signatures

        Returns:
            Status dict with manifest and per-directory information
        """
        manifest = self.store.load_manifest()
        current = self.signature_probe.compute() if probe else self.signature

        stored = manifest.directories if manifest else []
        configured = self.directories.paths
        entries = [
            {
                "path": path,
                "configured": path in configured,
                "cached": self.store.has_directory(path),
            }
            for path in list(configured) + [p for p in stored if p not in configured]
        ]

        return {
            "cache_dir": str(self.store.cache_root),
            "build_dir": str(self.config.build_dir),
            "manifest_found": manifest is not None,
            "saved_at": manifest.saved_at if manifest else None,
            "cached_signature": manifest.signature if manifest else None,
            "current_signature": current,
            "signature_matches": (
                manifest is not None and current is not None and manifest.signature == current
            ),
            "source": self.directories.source,
            "directories": entries,
        }
