"""
Atomic file writes for published artifacts.

Each artifact is written to a temporary file in the destination directory
and moved into place with ``os.replace()``. Readers of the artifact
directory see either the previous file or the complete new one, never a
partial write.
"""

from __future__ import annotations

import json
import os
import tempfile
from contextlib import contextmanager
from typing import IO, Any, Iterator

import pandas as pd

__all__ = ['atomic_open', 'atomic_write_json', 'atomic_write_text', 'atomic_write_csv']


@contextmanager
def atomic_open(path: str | os.PathLike, mode: str = "w") -> Iterator[IO]:
    """Open a temp file next to *path*; replace *path* with it on clean exit.

    On any exception the temp file is removed and *path* is untouched.
    """
    path = os.fspath(path)
    dir_path = os.path.dirname(path) or "."
    tmp_path: str | None = None
    try:
        with tempfile.NamedTemporaryFile(
            mode=mode, dir=dir_path, suffix=".tmp", delete=False, newline="" if "b" not in mode else None
        ) as tmp:
            tmp_path = tmp.name
            yield tmp
        os.replace(tmp_path, path)
    except BaseException:
        if tmp_path is not None and os.path.exists(tmp_path):
            os.unlink(tmp_path)
        raise


def atomic_write_json(path: str | os.PathLike, data: Any, *, indent: int = 2) -> None:
    """Write *data* as JSON atomically."""
    with atomic_open(path) as handle:
        json.dump(data, handle, indent=indent)
        handle.write("\n")


def atomic_write_text(path: str | os.PathLike, content: str) -> None:
    """Write *content* as text atomically."""
    with atomic_open(path) as handle:
        handle.write(content)


def atomic_write_csv(path: str | os.PathLike, frame: pd.DataFrame, **kwargs: Any) -> None:
    """Write a DataFrame as CSV atomically; kwargs go to DataFrame.to_csv."""
    with atomic_open(path) as handle:
        frame.to_csv(handle, **kwargs)
