"""depcache: Persist dependency directories across ephemeral builds."""

__version__ = "0.1.0"

from depcache.cache import CacheConfig, CacheEngine

__all__ = ["CacheEngine", "CacheConfig", "__version__"]
