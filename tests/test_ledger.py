from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from typing import TYPE_CHECKING

import pytest

from contract.markers import MAX_REFERENCE_ID
from ledger.ledger import (
    CallSite,
    FaultKind,
    IdentifierLedger,
    LedgerExhaustedError,
    load_ledger,
)
from ledger.lockfile import write_lock
from ledger.models import FileEntry, Fingerprint, LockState

if TYPE_CHECKING:
    from pathlib import Path


def test_allocate_returns_next_id_plus_one() -> None:
    ledger = IdentifierLedger(0)

    assert ledger.allocate(CallSite("a.rs", 0)) == 1
    assert ledger.allocate(CallSite("a.rs", 1)) == 2
    assert ledger.next_id == 2
    assert ledger.in_use(1)
    assert ledger.in_use(2)


def test_observe_advances_counter_and_reports_trusted_fault() -> None:
    ledger = IdentifierLedger(3, trusted=True)

    assert ledger.observe(10, CallSite("a.rs", 0)) is True

    assert ledger.next_id == 10
    assert [fault.kind for fault in ledger.faults] == [FaultKind.COUNTER_BEHIND]
    assert ledger.allocate(CallSite("a.rs", 1)) == 11


def test_observe_on_fresh_ledger_is_silent() -> None:
    ledger = IdentifierLedger(0, trusted=False)

    ledger.observe(10, CallSite("a.rs", 0))

    assert ledger.next_id == 10
    assert ledger.faults == []


def test_observe_below_counter_does_not_move_it() -> None:
    ledger = IdentifierLedger(50)

    ledger.observe(7, CallSite("a.rs", 0))

    assert ledger.next_id == 50
    assert ledger.faults == []


def test_duplicate_claim_is_rejected() -> None:
    ledger = IdentifierLedger(0, trusted=False)
    ledger.observe(4, CallSite("a.rs", 0))

    assert ledger.observe(4, CallSite("a.rs", 0)) is True
    assert ledger.observe(4, CallSite("b.rs", 0)) is False
    assert ledger.owner(4) == CallSite("a.rs", 0)
    assert [fault.kind for fault in ledger.faults] == [FaultKind.DUPLICATE]


def test_conflicts_only_reports_other_files() -> None:
    ledger = IdentifierLedger(0)
    ledger.observe(1, CallSite("a.rs", 0))

    assert ledger.conflicts([1, 2], "a.rs") == []
    assert ledger.conflicts([1, 2], "b.rs") == [1]


def test_observe_rejects_out_of_range_values() -> None:
    ledger = IdentifierLedger(0)

    with pytest.raises(ValueError, match="out of range"):
        ledger.observe(0, CallSite("a.rs", 0))


def test_allocation_past_maximum_fails() -> None:
    ledger = IdentifierLedger(MAX_REFERENCE_ID)

    with pytest.raises(LedgerExhaustedError):
        ledger.allocate(CallSite("a.rs", 0))


def test_advance_to_never_lowers_counter() -> None:
    ledger = IdentifierLedger(20)

    ledger.advance_to(5)
    assert ledger.next_id == 20
    ledger.advance_to(25)
    assert ledger.next_id == 25
    assert not ledger.in_use(25)


def test_concurrent_allocation_is_unique() -> None:
    ledger = IdentifierLedger(0)

    with ThreadPoolExecutor(max_workers=8) as executor:
        results = list(
            executor.map(lambda i: ledger.allocate(CallSite("a.rs", i)), range(500))
        )

    assert sorted(results) == list(range(1, 501))
    assert ledger.next_id == 500


def test_cache_lookup_requires_matching_fingerprint() -> None:
    fingerprint = Fingerprint.of('info!("[ref: 1] x");\n')
    entry = FileEntry(
        sha256=fingerprint.sha256, length=fingerprint.length, references=[1]
    )
    ledger = IdentifierLedger(1, cache={"a.rs": entry})

    assert ledger.cached_entry("a.rs", fingerprint) == entry
    assert ledger.cached_entry("a.rs", Fingerprint.of("changed")) is None
    assert ledger.cached_entry("b.rs", fingerprint) is None


def test_to_state_writes_only_recorded_files() -> None:
    ledger = IdentifierLedger(0)
    fingerprint = Fingerprint.of("text")
    ledger.allocate(CallSite("b.rs", 0))
    ledger.record_file("b.rs", fingerprint, [1], ignored=2)

    with_cache = ledger.to_state(include_cache=True)
    without_cache = ledger.to_state(include_cache=False)

    assert with_cache.next_id == 1
    assert list(with_cache.files) == ["b.rs"]
    assert with_cache.files["b.rs"].references == [1]
    assert with_cache.files["b.rs"].ignored == 2
    assert without_cache.next_id == 1
    assert without_cache.files == {}


def test_load_ledger_from_valid_lock(tmp_path: Path) -> None:
    lock_path = tmp_path / "logref.lock"
    fingerprint = Fingerprint.of("x")
    write_lock(
        lock_path,
        LockState(
            next_id=9,
            files={
                "a.rs": FileEntry(
                    sha256=fingerprint.sha256, length=fingerprint.length, references=[9]
                )
            },
        ),
    )

    cached = load_ledger(lock_path, use_cache=True)
    uncached = load_ledger(lock_path, use_cache=False)

    assert cached.next_id == 9
    entry = cached.cached_entry("a.rs", fingerprint)
    assert entry is not None
    assert entry.references == [9]
    assert uncached.next_id == 9
    assert uncached.cached_entry("a.rs", fingerprint) is None


def test_load_ledger_missing_lock_starts_fresh(tmp_path: Path) -> None:
    ledger = load_ledger(tmp_path / "logref.lock", use_cache=True)

    assert ledger.next_id == 0


def test_load_ledger_corrupt_lock_is_a_cache_miss(
    tmp_path: Path, caplog: pytest.LogCaptureFixture
) -> None:
    lock_path = tmp_path / "logref.lock"
    lock_path.write_text("{not json", encoding="utf-8")

    with caplog.at_level(logging.WARNING, logger="ledger.ledger"):
        ledger = load_ledger(lock_path, use_cache=True)

    assert ledger.next_id == 0
    assert "ignoring cached state" in caplog.text
    ledger.observe(30, CallSite("a.rs", 0))
    assert ledger.faults == []


def test_cache_is_dropped_when_extraction_settings_change(tmp_path: Path) -> None:
    lock_path = tmp_path / "logref.lock"
    fingerprint = Fingerprint.of("x")
    entry = FileEntry(
        sha256=fingerprint.sha256, length=fingerprint.length, references=[3]
    )
    write_lock(
        lock_path, LockState(next_id=3, config_digest="old", files={"a.rs": entry})
    )

    same = load_ledger(lock_path, use_cache=True, config_digest="old")
    changed = load_ledger(lock_path, use_cache=True, config_digest="new")

    assert same.cached_entry("a.rs", fingerprint) == entry
    assert changed.cached_entry("a.rs", fingerprint) is None
    assert changed.next_id == 3
    assert changed.to_state(include_cache=True).config_digest == "new"
