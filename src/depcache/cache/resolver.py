"""Resolution of the directories to cache from the project descriptor."""

import json
import posixpath
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from depcache.cache.errors import ConfigParseError

DEFAULT_CACHE_DIRECTORIES = (".npm", ".cache/yarn", "bower_components")

# Priority order; the first key holding a non-empty array wins.
CACHE_DIRECTORY_KEYS = ("cacheDirectories", "cache_directories")

DEFAULT_SOURCE = "default"


@dataclass
class ResolvedDirectories:
    """Configured directories and where they came from.

    Attributes:
        paths: Ordered, deduplicated relative paths
        source: Descriptor key that supplied them, or 'default'
        descriptor_found: Whether the descriptor file exists
    """

    paths: List[str]
    source: str = DEFAULT_SOURCE
    descriptor_found: bool = True

    @property
    def is_default(self) -> bool:
        return self.source == DEFAULT_SOURCE


@dataclass
class ProjectDescriptor:
    """Fields of the project descriptor the build pipeline cares about."""

    cache_directories: Dict[str, List[str]] = field(default_factory=dict)
    prebuild: str = ""
    postbuild: str = ""
    start: str = ""


def normalize_directory(raw: str) -> str:
    """Normalize a configured directory to a clean relative POSIX path.

    Args:
        raw: Path as written in the descriptor

    Returns:
        Normalized relative path, or '' if the entry is empty

    Raises:
        ConfigParseError: If the path is absolute or escapes the build dir

    Examples:
        >>> normalize_directory('./node_modules/')
        'node_modules'
        >>> normalize_directory('.cache//yarn')
        '.cache/yarn'
    """
    value = raw.strip().replace("\\", "/")
    if not value:
        return ""
    if value.startswith("/"):
        raise ConfigParseError(f"Cache directory must be relative: {raw!r}")

    normalized = posixpath.normpath(value)
    if normalized == ".":
        return ""
    if normalized == ".." or normalized.startswith("../"):
        raise ConfigParseError(f"Cache directory escapes the build directory: {raw!r}")
    return normalized


def _read_string_list(data: Dict[str, Any], key: str) -> List[str]:
    value = data.get(key)
    if value is None:
        return []
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        raise ConfigParseError(f"'{key}' must be an array of strings")
    return value


def _read_script(scripts: Dict[str, Any], key: str) -> str:
    value = scripts.get(key, "")
    if not isinstance(value, str):
        raise ConfigParseError(f"scripts.{key} must be a string")
    return value


def read_descriptor(descriptor_path: Union[str, Path]) -> Optional[ProjectDescriptor]:
    """Read the project descriptor.

    Args:
        descriptor_path: Path to package.json

    Returns:
        ProjectDescriptor, or None if the file does not exist

    Raises:
        ConfigParseError: If the file exists but is malformed
    """
    path = Path(descriptor_path)
    try:
        text = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return None
    except OSError as e:
        raise ConfigParseError(f"Cannot read {path}: {e}") from e

    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise ConfigParseError(f"Failed parsing {path.name}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigParseError(f"{path.name} must contain a JSON object")

    descriptor = ProjectDescriptor()
    for key in CACHE_DIRECTORY_KEYS:
        descriptor.cache_directories[key] = _read_string_list(data, key)

    scripts = data.get("scripts") or {}
    if not isinstance(scripts, dict):
        raise ConfigParseError("'scripts' must be an object")
    descriptor.prebuild = _read_script(scripts, "heroku-prebuild")
    descriptor.postbuild = _read_script(scripts, "heroku-postbuild")
    descriptor.start = _read_script(scripts, "start")
    return descriptor


def dedupe_directories(raw_paths: List[str]) -> List[str]:
    """Normalize paths, drop empties, and keep the first of any duplicates."""
    seen = set()
    result = []
    for raw in raw_paths:
        normalized = normalize_directory(raw)
        if normalized and normalized not in seen:
            seen.add(normalized)
            result.append(normalized)
    return result


def resolve_cache_directories(
    descriptor_path: Union[str, Path],
) -> ResolvedDirectories:
    """Determine the ordered set of directories to cache.

    A missing descriptor is not an error: the built-in defaults are returned
    and ``descriptor_found`` is False so the caller can log an advisory.

    Args:
        descriptor_path: Path to package.json

    Returns:
        ResolvedDirectories

    Raises:
        ConfigParseError: If the descriptor exists but is malformed
    """
    descriptor = read_descriptor(descriptor_path)
    if descriptor is None:
        return ResolvedDirectories(
            paths=list(DEFAULT_CACHE_DIRECTORIES),
            source=DEFAULT_SOURCE,
            descriptor_found=False,
        )

    for key in CACHE_DIRECTORY_KEYS:
        paths = dedupe_directories(descriptor.cache_directories.get(key, []))
        if paths:
            return ResolvedDirectories(paths=paths, source=key)

    return ResolvedDirectories(paths=list(DEFAULT_CACHE_DIRECTORIES))
