"""Run controller: drive scan, extraction, allocation and patching over a tree.

A run has three phases:

1. Prepare (parallel): read each file, look up the incremental cache, and
   scan, resolve directives and extract references on a cache miss.
2. Observe (serial, sorted by path): register every present identifier with
   the ledger. The first claimant of an identifier keeps it; later ones are
   demoted to missing, so duplicate resolution does not depend on thread
   scheduling.
3. Resolve (parallel): allocate identifiers for missing candidates, apply
   the edits and write files back (edit mode only).

The lock file is written once, after phase 3, and only in edit mode.

Setting the stop event makes every file not yet started in phase 1 or
phase 3 be skipped. Files already written are kept and recorded in the lock;
the lock is left untouched if the stop came before every file was read.
"""

from __future__ import annotations

import logging
import os
import re
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field, replace
from typing import TYPE_CHECKING

from contract.markers import REF_KVP_KEY, REF_MARKER_PATTERN, is_valid_reference
from ledger.ledger import CallSite, LedgerExhaustedError, load_ledger
from ledger.lockfile import write_lock
from ledger.models import Fingerprint
from parse.directives import resolve_directives
from parse.references import Extraction, Status, extract_reference
from parse.scanner import ScanError, StatementScanner
from patch.planner import apply_edits, plan_edits
from patch.writer import read_source, write_source
from run.models import FileReport, Finding, Mode, RunResult
from scan.files import SourceDirError, find_source_files
from utils import relative_posix

if TYPE_CHECKING:
    from pathlib import Path

    from ledger.ledger import IdentifierLedger
    from settings.config import LogRefConfig

logger = logging.getLogger(__name__)

_KVP_REF_PATTERN = re.compile(rf"\b{REF_KVP_KEY}\s*=\s*([0-9]{{1,10}})\b")


@dataclass
class _FileWork:
    """Per-file state, owned by whichever worker is handling the file."""

    path: Path
    rel: str
    text: str | None = None
    fingerprint: Fingerprint | None = None
    cached: list[int] | None = None
    extractions: list[Extraction] = field(default_factory=list)
    candidates: int = 0
    ignored: int = 0
    scan_error: ScanError | None = None
    read_error: str | None = None
    skipped: bool = False


class RunController:
    """Run the reference pipeline over every configured source file."""

    def __init__(
        self,
        config: LogRefConfig,
        *,
        mode: Mode = Mode.EDIT,
        jobs: int | None = None,
        stop: threading.Event | None = None,
    ) -> None:
        self.config = config
        self.mode = mode
        self.jobs = max(1, jobs or os.cpu_count() or 1)
        self.stop = stop if stop is not None else threading.Event()

    def run(self) -> RunResult:
        """Process the tree and return the aggregated result.

        Raises:
            SourceDirError: If the source root is missing, not a directory, or
                contains no matching files.
        """
        config = self.config
        root = config.resolve_source_dir()
        paths = list(
            find_source_files(
                root,
                extensions=config.extensions,
                exclude_patterns=config.exclude,
                respect_gitignore=config.respect_gitignore,
            )
        )
        if not paths:
            msg = f"No source files found in {root}"
            raise SourceDirError(msg)
        logger.info("Found %d source file(s) under %s", len(paths), root)

        ledger = load_ledger(
            config.lock_path,
            use_cache=config.use_cache,
            config_digest=config.extraction_digest,
        )
        next_id_before = ledger.next_id

        works = [_FileWork(path=path, rel=relative_posix(path, root)) for path in paths]

        with ThreadPoolExecutor(max_workers=self.jobs) as executor:
            list(executor.map(lambda work: self._prepare(work, ledger), works))
            read_all = not any(work.skipped for work in works)

            for work in works:
                self._observe(work, ledger)

            reports = list(executor.map(lambda work: self._resolve(work, ledger), works))

        lock_written = False
        lock_error: str | None = None
        skipped = sum(1 for report in reports if report.skipped)
        interrupted = skipped > 0
        if interrupted:
            logger.warning("Run interrupted; %d file(s) skipped", skipped)
        if self.mode is Mode.EDIT and read_all:
            try:
                write_lock(
                    config.lock_path, ledger.to_state(include_cache=config.use_cache)
                )
                lock_written = True
            except OSError as exc:
                lock_error = str(exc)
                logger.error("Failed to write lock file %s: %s", config.lock_path, exc)

        logger.info("Next reference id: %d", ledger.next_id + 1)
        return RunResult(
            mode=self.mode,
            files=tuple(reports),
            next_id_before=next_id_before,
            next_id_after=ledger.next_id,
            faults=tuple(ledger.faults),
            lock_written=lock_written,
            lock_error=lock_error,
            interrupted=interrupted,
        )

    # -- phase 1 -------------------------------------------------------------

    def _prepare(self, work: _FileWork, ledger: IdentifierLedger) -> None:
        if self.stop.is_set():
            work.skipped = True
            return
        try:
            work.text = read_source(work.path)
        except (OSError, UnicodeDecodeError) as exc:
            work.read_error = str(exc)
            logger.warning("Failed to read %s: %s", work.rel, exc)
            return

        work.fingerprint = Fingerprint.of(work.text)
        if self.config.use_cache:
            entry = ledger.cached_entry(work.rel, work.fingerprint)
            if entry is not None:
                logger.debug("Cache hit for %s", work.rel)
                work.cached = list(entry.references)
                work.ignored = entry.ignored
                return
        self._scan(work)

    def _scan(self, work: _FileWork) -> None:
        text = work.text
        if text is None:
            return
        candidates = []
        try:
            for candidate in StatementScanner(text, self.config.macros):
                candidates.append(candidate)
        except ScanError as exc:
            work.scan_error = exc
            logger.warning("Failed to parse %s: %s", work.rel, exc)

        resolved = resolve_directives(text, candidates)
        work.candidates = len(resolved)
        work.ignored = sum(1 for candidate in resolved if candidate.ignored)
        work.extractions = [
            extract_reference(candidate, text, structured=self.config.structured)
            for candidate in resolved
            if not candidate.ignored
        ]
        work.cached = None
        for extraction in work.extractions:
            if extraction.warning:
                candidate = extraction.candidate
                logger.warning(
                    "%s, line %d, column %d: %s",
                    work.rel,
                    candidate.line,
                    candidate.column,
                    extraction.warning,
                )

    # -- phase 2 -------------------------------------------------------------

    def _observe(self, work: _FileWork, ledger: IdentifierLedger) -> None:
        if work.cached is not None:
            cached = work.cached
            if len(set(cached)) == len(cached) and not ledger.conflicts(cached, work.rel):
                for index, reference in enumerate(cached):
                    ledger.observe(reference, CallSite(work.rel, index))
                return
            logger.info("Cached references of %s are contested; rescanning", work.rel)
            self._scan(work)

        for index, extraction in enumerate(work.extractions):
            if not extraction.present or extraction.reference is None:
                continue
            if not ledger.observe(extraction.reference, CallSite(work.rel, index)):
                work.extractions[index] = extraction.as_duplicate()

        if work.scan_error is not None and work.text is not None:
            # Candidates past the fault were never extracted.
            found = [
                int(match.group(1))
                for pattern in (REF_MARKER_PATTERN, _KVP_REF_PATTERN)
                for match in pattern.finditer(work.text)
                if is_valid_reference(int(match.group(1)))
            ]
            if found:
                ledger.advance_to(max(found))

    # -- phase 3 -------------------------------------------------------------

    def _resolve(self, work: _FileWork, ledger: IdentifierLedger) -> FileReport:
        if work.skipped or self.stop.is_set():
            return FileReport(path=work.rel, skipped=True)
        if work.read_error is not None:
            return FileReport(path=work.rel, read_error=work.read_error)

        if work.cached is not None:
            if work.fingerprint is not None:
                ledger.record_file(
                    work.rel, work.fingerprint, work.cached, ignored=work.ignored
                )
            return FileReport(
                path=work.rel,
                candidates=len(work.cached) + work.ignored,
                ignored=work.ignored,
                cached=True,
            )

        findings: list[Finding] = []
        unresolved: list[Finding] = []
        assignments: list[tuple[Extraction, int]] = []
        references: list[int] = []
        editing = self.mode is Mode.EDIT

        for index, extraction in enumerate(work.extractions):
            if extraction.present and extraction.reference is not None:
                references.append(extraction.reference)
                continue

            candidate = extraction.candidate
            reason = _reason(extraction)
            if extraction.status is Status.UNRESOLVABLE or (
                editing and work.scan_error is not None
            ):
                unresolved.append(
                    Finding(work.rel, candidate.line, candidate.column, reason=reason)
                )
                continue
            if not editing:
                findings.append(
                    Finding(work.rel, candidate.line, candidate.column, reason=reason)
                )
                continue

            try:
                reference = ledger.allocate(CallSite(work.rel, index))
            except LedgerExhaustedError as exc:
                logger.warning("%s: %s", work.rel, exc)
                unresolved.append(
                    Finding(work.rel, candidate.line, candidate.column, reason=str(exc))
                )
                continue
            assignments.append((extraction, reference))
            references.append(reference)
            findings.append(
                Finding(work.rel, candidate.line, candidate.column, reference, reason)
            )

        report = FileReport(
            path=work.rel,
            candidates=work.candidates,
            ignored=work.ignored,
            findings=tuple(findings),
            unresolved=tuple(unresolved),
            parse_error=str(work.scan_error) if work.scan_error else None,
        )

        text = work.text or ""
        if assignments:
            text = apply_edits(text, plan_edits(assignments))
            try:
                write_source(work.path, text)
            except OSError as exc:
                logger.warning("Failed to write %s: %s", work.rel, exc)
                return replace(report, write_error=str(exc))
            report = replace(report, written=True)

        if report.fully_resolved:
            ledger.record_file(
                work.rel, Fingerprint.of(text), references, ignored=work.ignored
            )
        return report


def _reason(extraction: Extraction) -> str | None:
    if extraction.duplicate_of is not None:
        return f"duplicate reference {extraction.duplicate_of}"
    if extraction.status is Status.UNRESOLVABLE:
        return extraction.warning
    return None


def run(
    config: LogRefConfig,
    *,
    mode: Mode = Mode.EDIT,
    jobs: int | None = None,
    stop: threading.Event | None = None,
) -> RunResult:
    """Run logref once over the configured tree."""
    return RunController(config, mode=mode, jobs=jobs, stop=stop).run()


__all__ = ["RunController", "run"]
