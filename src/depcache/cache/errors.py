"""Exception hierarchy for the build cache."""


class CacheError(Exception):
    """Base exception for cache-related errors."""

    pass


class ProbeError(CacheError):
    """Raised when a toolchain binary cannot be invoked or versioned."""

    pass


class ConfigParseError(CacheError):
    """Raised when the project descriptor exists but cannot be parsed."""

    pass


class CacheIOError(CacheError):
    """Raised when copying, renaming or pruning cache content fails."""

    pass


class CacheLockError(CacheError):
    """Raised when unable to acquire the cache root lock."""

    pass
