"""Atomic file replacement helpers."""

import contextlib
import os
import tempfile
from pathlib import Path

from pydantic import BaseModel


def atomic_write_text(path: Path, content: str) -> None:
    """Write content to path so readers see either the old or the new file.

    The temporary file lives in the same directory so os.replace stays on one
    filesystem.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=f'.{path.name}.', suffix='.tmp', dir=path.parent)
    tmp_path = Path(tmp_name)
    try:
        with os.fdopen(fd, 'w', encoding='utf-8') as fh:
            fh.write(content)
            fh.flush()
            os.fsync(fh.fileno())
        os.replace(tmp_path, path)
    except BaseException:
        with contextlib.suppress(FileNotFoundError):
            tmp_path.unlink()
        raise


def atomic_write_model(path: Path, model: BaseModel) -> None:
    """Serialize a pydantic model as JSON and replace path atomically."""
    atomic_write_text(path, model.model_dump_json(indent=2) + '\n')
