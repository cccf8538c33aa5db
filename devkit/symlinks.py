"""Symlink management utilities."""

import contextlib
import os
import shutil
from pathlib import Path

from devkit.logging import get_logger

logger = get_logger(__name__)

CURRENT_LINK_NAME = 'current'


def supports_symlinks() -> bool:
    """Check if the current system supports symlinks."""
    return hasattr(os, 'symlink')


def replace_symlink(link: Path, source: Path) -> bool:
    """Point link at source, replacing any existing link atomically.

    A temporary link is created next to the final one and renamed over it, so
    there is no moment where link is missing. Returns False when the platform
    has no symlinks and nothing was done.
    """
    if not supports_symlinks():
        logger.warning('symlinks_not_supported', link=str(link))
        return False

    if link.exists() and not link.is_symlink():
        msg = f'Refusing to replace non-symlink: {link}'
        raise FileExistsError(msg)

    link.parent.mkdir(parents=True, exist_ok=True)
    tmp_link = link.with_name(f'.{link.name}.{os.getpid()}.tmp')
    with contextlib.suppress(FileNotFoundError):
        tmp_link.unlink()
    tmp_link.symlink_to(source, target_is_directory=True)
    try:
        os.replace(tmp_link, link)
    except OSError:
        with contextlib.suppress(FileNotFoundError):
            tmp_link.unlink()
        raise
    logger.debug('symlink_replaced', link=str(link), source=str(source))
    return True


def remove_link(link: Path) -> bool:
    """Remove a symlink if present. Never follows it."""
    if not link.is_symlink():
        return False
    link.unlink()
    logger.debug('symlink_removed', link=str(link))
    return True


def read_link(link: Path) -> Path | None:
    """Return the link target, or None if link is not a symlink."""
    if not link.is_symlink():
        return None
    return Path(os.readlink(link))


def sync_current_link(candidate_dir: Path, target: Path | None) -> None:
    """Make candidate_dir/current point at target, or remove it for None."""
    link = candidate_dir / CURRENT_LINK_NAME
    if target is None:
        remove_link(link)
        return
    if read_link(link) == target:
        return
    replace_symlink(link, target)


def remove_tree(target: Path) -> None:
    """Remove a directory tree, or a file, without following symlinks."""
    if target.is_symlink() or target.is_file():
        target.unlink()
    elif target.is_dir():
        shutil.rmtree(target)
