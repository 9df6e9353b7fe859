"""Reading and writing the logref.lock file."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import orjson
from pydantic import ValidationError

from contract.markers import LOCK_SCHEMA_VERSION
from ledger.models import LockState
from utils import atomic_write

if TYPE_CHECKING:
    from pathlib import Path

logger = logging.getLogger(__name__)


class LockFileError(Exception):
    """Raised when a lock file exists but cannot be used."""


def read_lock(path: Path) -> LockState | None:
    """Load persisted ledger state.

    Returns None when no lock file exists.

    Raises:
        LockFileError: If the file cannot be read, is not valid JSON, or does
            not match the lock schema.
    """
    if not path.exists():
        return None

    try:
        payload = orjson.loads(path.read_bytes())
    except OSError as exc:
        msg = f"Failed to read lock file {path}: {exc}"
        raise LockFileError(msg) from exc
    except orjson.JSONDecodeError as exc:
        msg = f"Invalid JSON in lock file {path}: {exc}"
        raise LockFileError(msg) from exc

    try:
        state = LockState.model_validate(payload)
    except ValidationError as exc:
        msg = f"Invalid lock file {path}: {exc}"
        raise LockFileError(msg) from exc

    if state.version != LOCK_SCHEMA_VERSION:
        msg = f"Unsupported lock file version {state.version} in {path}"
        raise LockFileError(msg)

    return state


def write_lock(path: Path, state: LockState) -> None:
    """Persist ledger state with sorted keys so the file diffs cleanly."""
    opts = orjson.OPT_SORT_KEYS | orjson.OPT_INDENT_2
    atomic_write(path, orjson.dumps(state.model_dump(), option=opts) + b"\n")
    logger.debug("Wrote lock file %s (next_id=%d)", path, state.next_id)


__all__ = ["LockFileError", "read_lock", "write_lock"]
