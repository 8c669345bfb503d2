"""Atomic copying of directory trees between the build dir and the cache root."""

import logging
import os
import shutil
from pathlib import Path
from typing import Union

from depcache.cache.errors import CacheIOError

logger = logging.getLogger(__name__)

STAGING_SUFFIX = ".depcache-staging"
OLD_SUFFIX = ".depcache-old"


def staging_path(dst: Path) -> Path:
    """Sibling path where a copy is assembled before being renamed onto dst."""
    return dst.with_name(f".{dst.name}{STAGING_SUFFIX}")


def old_path(dst: Path) -> Path:
    """Sibling path the replaced tree is moved to before deletion."""
    return dst.with_name(f".{dst.name}{OLD_SUFFIX}")


def is_transient_name(name: str) -> bool:
    """Whether an entry name belongs to an in-flight or interrupted sync."""
    return name.endswith(STAGING_SUFFIX) or name.endswith(OLD_SUFFIX)


def remove_path(path: Path) -> None:
    """Remove a file, symlink or directory tree if it exists.

    Symlinks are unlinked, never followed.
    """
    if path.is_symlink() or (path.exists() and not path.is_dir()):
        path.unlink()
    elif path.is_dir():
        shutil.rmtree(path)


class DirectorySynchronizer:
    """Copies a tree from one root to another, replacing the destination.

    The tree is assembled in a staging sibling of the destination and then
    placed with a single rename, so readers see either the previous tree or
    the complete new one.
    """

    def sync(self, src: Union[str, Path], dst: Union[str, Path]) -> bool:
        """Replace ``dst`` with a copy of ``src``.

        File modes are preserved and symbolic links are copied verbatim.

        Args:
            src: Source tree
            dst: Destination path (fully replaced, never merged)

        Returns:
            True if a tree was copied, False if ``src`` does not exist

        Raises:
            CacheIOError: If copying or placing the tree fails
        """
        src = Path(src)
        dst = Path(dst)

        if not (src.exists() or src.is_symlink()):
            logger.debug(f"Nothing to copy, {src} does not exist")
            return False

        staging = staging_path(dst)
        try:
            self.recover(dst)
            dst.parent.mkdir(parents=True, exist_ok=True)
            self._copy(src, staging)
            self._place(staging, dst)
        except OSError as e:
            logger.error(f"Error copying {src} to {dst}: {e}")
            try:
                remove_path(staging)
            except OSError as cleanup_error:
                logger.warning(f"Failed to clean up staging path {staging}: {cleanup_error}")
            raise CacheIOError(f"Cannot copy {src} to {dst}: {e}") from e

        return True

    def recover(self, dst: Path) -> None:
        """Finish or roll back an interrupted sync onto ``dst``.

        A leftover staging tree is discarded. A leftover old tree is put back
        when the destination is missing (crash between the two renames),
        otherwise it is deleted.
        """
        remove_path(staging_path(dst))

        old = old_path(dst)
        if old.exists() or old.is_symlink():
            if dst.exists() or dst.is_symlink():
                remove_path(old)
            else:
                logger.warning(f"Restoring {dst} from interrupted copy")
                os.rename(old, dst)

    @staticmethod
    def _copy(src: Path, staging: Path) -> None:
        if src.is_symlink():
            os.symlink(os.readlink(src), staging)
        elif src.is_dir():
            shutil.copytree(src, staging, symlinks=True)
        else:
            shutil.copy2(src, staging)

    @staticmethod
    def _place(staging: Path, dst: Path) -> None:
        if not (dst.exists() or dst.is_symlink()):
            os.rename(staging, dst)
            return

        old = old_path(dst)
        os.rename(dst, old)
        os.rename(staging, dst)
        remove_path(old)
