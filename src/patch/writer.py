"""Write patched source text back to disk."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from utils import atomic_write

if TYPE_CHECKING:
    from pathlib import Path

logger = logging.getLogger(__name__)


def read_source(path: Path) -> str:
    """Read ``path`` as UTF-8 without translating line endings."""
    with path.open(encoding="utf-8", newline="") as handle:
        return handle.read()


def write_source(path: Path, text: str) -> None:
    """Atomically replace ``path`` with ``text`` encoded as UTF-8.

    ``text`` is written verbatim, so line endings read with
    :func:`read_source` survive unchanged.
    """
    atomic_write(path, text.encode("utf-8"))
    logger.debug("Rewrote %s", path)


__all__ = ["read_source", "write_source"]
