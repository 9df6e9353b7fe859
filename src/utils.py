"""Shared utilities for logref."""

from __future__ import annotations

import contextlib
import os
import shutil
import tempfile
from bisect import bisect_right
from pathlib import Path


class LineIndex:
    """Map character offsets in a text snapshot to 1-based line/column pairs.

    Examples:
        >>> index = LineIndex("ab\\ncd")
        >>> index.position(0)
        (1, 1)
        >>> index.position(4)
        (2, 2)
    """

    def __init__(self, text: str) -> None:
        self._starts = [0]
        for offset, char in enumerate(text):
            if char == "\n":
                self._starts.append(offset + 1)

    def position(self, offset: int) -> tuple[int, int]:
        line = bisect_right(self._starts, offset)
        return line, offset - self._starts[line - 1] + 1


def relative_posix(file_path: str | Path, root: str | Path) -> str:
    """Return ``file_path`` relative to ``root`` as a POSIX string.

    Paths outside ``root`` are returned unchanged (POSIX form) so they remain
    usable as stable keys.

    Examples:
        >>> relative_posix("/repo/src/main.rs", "/repo")
        'src/main.rs'
    """
    path = Path(file_path)
    try:
        return path.relative_to(Path(root)).as_posix()
    except ValueError:
        return path.as_posix()


def atomic_write(path: Path, data: bytes) -> None:
    """Atomically replace ``path`` with ``data``.

    The bytes are written to a temp file in the destination directory,
    flushed and fsynced, then moved into place with ``os.replace``. The
    destination's permission bits are kept when it already exists.
    """
    target = Path(path)
    parent = target.parent.resolve(strict=True)

    fd, temp_name = tempfile.mkstemp(
        prefix=f".{target.name}.",
        suffix=".tmp",
        dir=str(parent),
    )
    temp_path = Path(temp_name)

    try:
        with os.fdopen(fd, "wb") as handle:
            handle.write(data)
            handle.flush()
            os.fsync(handle.fileno())
        if target.exists():
            shutil.copymode(target, temp_path)
        os.replace(temp_path, target)
    except Exception:
        with contextlib.suppress(OSError):
            temp_path.unlink(missing_ok=True)
        raise
