"""Build-time dependency cache.

Persists configured directories of an ephemeral build directory in a durable
cache root, gated on the installed toolchain versions.

Key components:
- CacheEngine: restore() before install, save() after
- VersionSignature: toolchain fingerprint gating cache reuse
- resolve_cache_directories: directories to cache from package.json
- CacheStore: manifest and stored trees inside the cache root
- DirectorySynchronizer: atomic tree replacement
"""

from depcache.cache.config import CacheConfig
from depcache.cache.engine import CacheEngine, EngineState
from depcache.cache.errors import (
    CacheError,
    CacheIOError,
    CacheLockError,
    ConfigParseError,
    ProbeError,
)
from depcache.cache.resolver import (
    DEFAULT_CACHE_DIRECTORIES,
    ResolvedDirectories,
    resolve_cache_directories,
)
from depcache.cache.signature import VersionSignature
from depcache.cache.store import CacheManifest, CacheStore
from depcache.cache.sync import DirectorySynchronizer

__all__ = [
    "CacheEngine",
    "EngineState",
    "CacheConfig",
    "CacheManifest",
    "CacheStore",
    "DirectorySynchronizer",
    "VersionSignature",
    "ResolvedDirectories",
    "resolve_cache_directories",
    "DEFAULT_CACHE_DIRECTORIES",
    "CacheError",
    "CacheIOError",
    "CacheLockError",
    "ConfigParseError",
    "ProbeError",
]
