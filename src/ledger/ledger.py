"""Identifier ledger: allocation, uniqueness tracking and the incremental cache."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING

from contract.markers import MAX_REFERENCE_ID, is_valid_reference
from ledger.lockfile import LockFileError, read_lock
from ledger.models import FileEntry, LockState

if TYPE_CHECKING:
    from collections.abc import Iterable
    from pathlib import Path

    from ledger.models import Fingerprint

logger = logging.getLogger(__name__)


class LedgerExhaustedError(Exception):
    """Raised when no identifier is left in the valid range."""


@dataclass(frozen=True, order=True)
class CallSite:
    """A log call site: a file and the candidate's ordinal within it.

    The ordinal counts non-ignored candidates in source order, so it is the
    same whether the file was scanned or served from the cache.
    """

    path: str
    index: int


class FaultKind(str, Enum):
    COUNTER_BEHIND = "counter_behind"
    DUPLICATE = "duplicate"


@dataclass(frozen=True)
class ConsistencyFault:
    """A self-healed inconsistency between persisted state and the source tree."""

    kind: FaultKind
    reference: int
    site: CallSite
    message: str


class IdentifierLedger:
    """Process-wide owner of reference identifiers for one run.

    ``next_id`` is the highest identifier allocated or observed so far, so
    :meth:`allocate` hands out ``next_id + 1``. All mutating operations are
    serialized by a single lock so workers may share one ledger.
    """

    def __init__(
        self,
        next_id: int = 0,
        *,
        trusted: bool = True,
        cache: dict[str, FileEntry] | None = None,
        config_digest: str | None = None,
    ) -> None:
        if not 0 <= next_id <= MAX_REFERENCE_ID:
            msg = f"next_id out of range: {next_id}"
            raise ValueError(msg)
        self._lock = threading.Lock()
        self._next_id = next_id
        self._trusted = trusted
        self._owners: dict[int, CallSite] = {}
        self._cache: dict[str, FileEntry] = dict(cache or {})
        self._config_digest = config_digest
        self._fresh: dict[str, FileEntry] = {}
        self.faults: list[ConsistencyFault] = []

    @classmethod
    def from_state(
        cls,
        state: LockState | None,
        *,
        use_cache: bool,
        config_digest: str | None = None,
    ) -> IdentifierLedger:
        """Build a ledger from persisted state.

        Cached file entries are dropped when caching is off or when they were
        recorded under different extraction settings.
        """
        if state is None:
            return cls(0, trusted=False, config_digest=config_digest)
        cache = state.files if use_cache else None
        if cache and state.config_digest != config_digest:
            logger.info("Extraction settings changed; discarding cached files")
            cache = None
        return cls(
            state.next_id,
            trusted=True,
            cache=cache,
            config_digest=config_digest,
        )

    @property
    def next_id(self) -> int:
        return self._next_id

    def in_use(self, reference: int) -> bool:
        with self._lock:
            return reference in self._owners

    def owner(self, reference: int) -> CallSite | None:
        with self._lock:
            return self._owners.get(reference)

    def conflicts(self, references: Iterable[int], path: str) -> list[int]:
        """Return the references already claimed by a site in another file."""
        with self._lock:
            return [
                ref
                for ref in references
                if ref in self._owners and self._owners[ref].path != path
            ]

    def observe(self, reference: int, site: CallSite) -> bool:
        """Register a pre-existing identifier found at ``site``.

        Returns False when the identifier already belongs to a different
        call site; the caller must then treat ``site`` as missing. An
        identifier above ``next_id`` advances the counter to match.
        """
        if not is_valid_reference(reference):
            msg = f"reference out of range: {reference}"
            raise ValueError(msg)

        with self._lock:
            owner = self._owners.get(reference)
            if owner is not None and owner != site:
                self._fault(
                    FaultKind.DUPLICATE,
                    reference,
                    site,
                    f"reference {reference} at {site.path}#{site.index} "
                    f"duplicates {owner.path}#{owner.index}; treating as missing",
                )
                return False

            self._owners[reference] = site
            if reference > self._next_id:
                if self._trusted:
                    self._fault(
                        FaultKind.COUNTER_BEHIND,
                        reference,
                        site,
                        f"reference {reference} in {site.path} exceeds "
                        f"next_id {self._next_id}; advancing",
                    )
                self._next_id = reference
            return True

    def advance_to(self, reference: int) -> None:
        """Raise ``next_id`` to at least ``reference`` without claiming it."""
        with self._lock:
            if reference > self._next_id:
                self._next_id = min(reference, MAX_REFERENCE_ID)

    def allocate(self, site: CallSite) -> int:
        """Return a new identifier for ``site``, never one already in use."""
        with self._lock:
            candidate = self._next_id + 1
            while candidate in self._owners:
                candidate += 1
            if candidate > MAX_REFERENCE_ID:
                msg = "reference identifier space exhausted"
                raise LedgerExhaustedError(msg)
            self._next_id = candidate
            self._owners[candidate] = site
            return candidate

    # -- incremental cache ---------------------------------------------------

    def cached_entry(self, path: str, fingerprint: Fingerprint) -> FileEntry | None:
        """Return the cache entry for ``path`` if its fingerprint still matches."""
        with self._lock:
            entry = self._cache.get(path)
        if entry is None or not entry.matches(fingerprint):
            return None
        return entry

    def record_file(
        self,
        path: str,
        fingerprint: Fingerprint,
        references: Iterable[int],
        *,
        ignored: int = 0,
    ) -> None:
        """Record the identifiers a fully referenced file now carries."""
        entry = FileEntry(
            sha256=fingerprint.sha256,
            length=fingerprint.length,
            references=list(references),
            ignored=ignored,
        )
        with self._lock:
            self._fresh[path] = entry

    def to_state(self, *, include_cache: bool) -> LockState:
        with self._lock:
            files = dict(sorted(self._fresh.items())) if include_cache else {}
            return LockState(
                next_id=self._next_id,
                config_digest=self._config_digest,
                files=files,
            )

    def _fault(
        self, kind: FaultKind, reference: int, site: CallSite, message: str
    ) -> None:
        self.faults.append(ConsistencyFault(kind, reference, site, message))
        logger.warning(message)


def load_ledger(
    lock_path: Path, *, use_cache: bool, config_digest: str | None = None
) -> IdentifierLedger:
    """Build a ledger from the lock file, falling back to a fresh one.

    A missing or unusable lock file is a cache miss, never an error: the
    counter is then derived from the identifiers observed during the run.
    """
    try:
        state = read_lock(lock_path)
    except LockFileError as exc:
        logger.warning("%s; ignoring cached state", exc)
        state = None

    if state is None:
        logger.info("No usable lock file; next reference id derived from source")
    else:
        logger.info("Loaded lock file %s (next_id=%d)", lock_path, state.next_id)

    return IdentifierLedger.from_state(
        state, use_cache=use_cache, config_digest=config_digest
    )


__all__ = [
    "CallSite",
    "ConsistencyFault",
    "FaultKind",
    "IdentifierLedger",
    "LedgerExhaustedError",
    "load_ledger",
]
