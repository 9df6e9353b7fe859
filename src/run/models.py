"""Result records produced by a run."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from ledger.ledger import ConsistencyFault


class Mode(str, Enum):
    CHECK = "check"
    EDIT = "edit"


@dataclass(frozen=True)
class Finding:
    """A candidate that lacked a usable reference.

    ``reference`` is the identifier assigned in edit mode, or None when the
    finding was only reported.
    """

    path: str
    line: int
    column: int
    reference: int | None = None
    reason: str | None = None

    def location(self) -> str:
        return f"{self.path}, line {self.line}, column {self.column}"


@dataclass(frozen=True)
class FileReport:
    path: str
    candidates: int = 0
    ignored: int = 0
    findings: tuple[Finding, ...] = field(default_factory=tuple)
    unresolved: tuple[Finding, ...] = field(default_factory=tuple)
    cached: bool = False
    skipped: bool = False
    written: bool = False
    parse_error: str | None = None
    read_error: str | None = None
    write_error: str | None = None

    @property
    def missing_count(self) -> int:
        return len(self.findings) + len(self.unresolved)

    @property
    def inserted_count(self) -> int:
        if not self.written:
            return 0
        return sum(1 for finding in self.findings if finding.reference is not None)

    @property
    def fully_resolved(self) -> bool:
        return (
            not self.unresolved
            and self.parse_error is None
            and self.read_error is None
            and self.write_error is None
        )


@dataclass(frozen=True)
class RunResult:
    """Aggregated outcome of a check or edit run."""

    mode: Mode
    files: tuple[FileReport, ...] = field(default_factory=tuple)
    next_id_before: int = 0
    next_id_after: int = 0
    faults: tuple[ConsistencyFault, ...] = field(default_factory=tuple)
    lock_written: bool = False
    lock_error: str | None = None
    interrupted: bool = False

    @property
    def total_missing(self) -> int:
        return sum(report.missing_count for report in self.files)

    @property
    def total_inserted(self) -> int:
        return sum(report.inserted_count for report in self.files)

    @property
    def total_unresolved(self) -> int:
        return sum(len(report.unresolved) for report in self.files)

    @property
    def parse_failures(self) -> tuple[FileReport, ...]:
        return tuple(report for report in self.files if report.parse_error is not None)

    @property
    def read_failures(self) -> tuple[FileReport, ...]:
        return tuple(report for report in self.files if report.read_error is not None)

    @property
    def write_failures(self) -> tuple[FileReport, ...]:
        return tuple(report for report in self.files if report.write_error is not None)

    @property
    def skipped(self) -> tuple[FileReport, ...]:
        return tuple(report for report in self.files if report.skipped)

    @property
    def ok(self) -> bool:
        if self.interrupted or self.read_failures or self.parse_failures:
            return False
        if self.mode is Mode.CHECK:
            return self.total_missing == 0
        return (
            not self.write_failures
            and self.total_unresolved == 0
            and self.lock_error is None
        )


__all__ = ["FileReport", "Finding", "Mode", "RunResult"]
