"""Identifier ledger and its persisted lock file."""

from ledger.ledger import (
    CallSite,
    ConsistencyFault,
    FaultKind,
    IdentifierLedger,
    LedgerExhaustedError,
    load_ledger,
)
from ledger.lockfile import LockFileError, read_lock, write_lock
from ledger.models import FileEntry, Fingerprint, LockState

__all__ = [
    "CallSite",
    "ConsistencyFault",
    "FaultKind",
    "FileEntry",
    "Fingerprint",
    "IdentifierLedger",
    "LedgerExhaustedError",
    "LockFileError",
    "LockState",
    "load_ledger",
    "read_lock",
    "write_lock",
]
