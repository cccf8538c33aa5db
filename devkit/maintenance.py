"""Housekeeping of devkit's caches and scratch space."""

import time
from pathlib import Path
from typing import Literal

from devkit.config import DevkitLayout
from devkit.logging import get_logger
from devkit.symlinks import remove_tree

logger = get_logger(__name__)

FlushTarget = Literal['archives', 'tmp', 'broadcast', 'version']

FLUSH_TARGETS: tuple[FlushTarget, ...] = ('archives', 'tmp', 'broadcast', 'version')

# staging directories younger than this may belong to a running install
TMP_MIN_AGE_SECONDS = 3600


def _clear_directory(directory: Path, *, min_age: float = 0, now: float | None = None) -> int:
    if not directory.is_dir():
        return 0
    now = time.time() if now is None else now
    removed = 0
    for entry in sorted(directory.iterdir()):
        if min_age and now - entry.lstat().st_mtime < min_age:
            logger.debug('flush_skipped_recent', path=str(entry))
            continue
        remove_tree(entry)
        removed += 1
    return removed


def _remove_file(path: Path) -> int:
    if not path.exists():
        return 0
    path.unlink()
    return 1


def flush(
    layout: DevkitLayout,
    target: FlushTarget,
    *,
    include_recent: bool = False,
    now: float | None = None,
) -> int:
    """Remove cached or scratch data. Returns the number of entries removed."""
    if target == 'archives':
        removed = _clear_directory(layout.archives_dir)
    elif target == 'tmp':
        min_age = 0 if include_recent else TMP_MIN_AGE_SECONDS
        removed = _clear_directory(layout.tmp_dir, min_age=min_age, now=now)
    elif target == 'broadcast':
        removed = _remove_file(layout.broadcast_file)
    elif target == 'version':
        removed = _remove_file(layout.version_file)
    else:
        msg = f'unknown flush target: {target}'
        raise ValueError(msg)

    logger.info('flushed', target=target, removed=removed)
    return removed


__all__ = ['FLUSH_TARGETS', 'FlushTarget', 'flush']
