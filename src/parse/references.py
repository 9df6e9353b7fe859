"""Reference extraction from classified log-call candidates."""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING

from contract.markers import (
    LEADING_REF_MARKER_PATTERN,
    REF_KVP_KEY,
    is_valid_reference,
)
from parse.scanner import Span

if TYPE_CHECKING:
    from parse.scanner import Candidate, KeyValueEntry


class Placement(str, Enum):
    """Where a candidate's reference lives."""

    MESSAGE = "message"
    STRUCTURED = "structured"


class Status(str, Enum):
    PRESENT = "present"
    MISSING = "missing"
    # Missing, but the existing ``ref`` key blocks insertion.
    UNRESOLVABLE = "unresolvable"


@dataclass(frozen=True)
class Extraction:
    """Outcome of inspecting one non-ignored candidate.

    ``value_span`` locates the digits of an identifier already written in
    the source (the ``N`` of ``[ref: N]`` or of ``ref = N``). A missing
    candidate that has one is repaired by rewriting those digits instead of
    inserting a second marker.
    """

    candidate: Candidate
    placement: Placement
    status: Status
    reference: int | None = None
    warning: str | None = None
    value_span: Span | None = None
    duplicate_of: int | None = None

    @property
    def present(self) -> bool:
        return self.status is Status.PRESENT

    def as_duplicate(self) -> Extraction:
        """Return a missing copy of a present extraction whose id is taken."""
        return dataclasses.replace(
            self,
            status=Status.MISSING,
            reference=None,
            duplicate_of=self.reference,
        )


def placement_for(candidate: Candidate, *, structured: bool) -> Placement:
    """Return the placement rule that applies to ``candidate``."""
    if structured and not candidate.no_kvp:
        return Placement.STRUCTURED
    return Placement.MESSAGE


def extract_message_reference(message: str) -> int | None:
    """Return the reference at the very start of a decoded format string.

    Numeric references take the form ``[ref: 1234]``. Values outside the
    valid identifier range are treated as absent.
    """
    match = LEADING_REF_MARKER_PATTERN.match(message)
    if match is None:
        return None
    value = int(match.group(1))
    return value if is_valid_reference(value) else None


def _message_value_span(candidate: Candidate, text: str) -> Span | None:
    content = candidate.format_string.content_span
    match = LEADING_REF_MARKER_PATTERN.match(content.slice(text))
    if match is None:
        return None
    return Span(content.start + match.start(1), content.start + match.end(1))


def find_reference_entry(
    candidate: Candidate, text: str
) -> tuple[KeyValueEntry | None, int | None]:
    """Return the reserved ``ref`` entry (if any) and its numeric value."""
    for entry in candidate.kvps:
        if entry.key != REF_KVP_KEY:
            continue
        if entry.value_span is None:
            return entry, None
        raw = entry.value_span.slice(text).strip()
        if raw.isascii() and raw.isdigit() and len(raw) <= 10:
            value = int(raw)
            return entry, value if is_valid_reference(value) else None
        return entry, None
    return None, None


def extract_reference(
    candidate: Candidate, text: str, *, structured: bool
) -> Extraction:
    """Classify a non-ignored candidate as carrying a reference or not.

    Args:
        candidate: Candidate with directive flags already resolved
        text: The text snapshot the candidate was scanned from
        structured: The global structured-logging setting

    Raises:
        ValueError: If ``candidate`` is marked ignored.
    """
    if candidate.ignored:
        msg = "ignored candidates are not subject to extraction"
        raise ValueError(msg)

    placement = placement_for(candidate, structured=structured)

    if placement is Placement.MESSAGE:
        reference = extract_message_reference(candidate.format_string.value)
        status = Status.PRESENT if reference is not None else Status.MISSING
        return Extraction(
            candidate,
            placement,
            status,
            reference,
            value_span=_message_value_span(candidate, text),
        )

    warning: str | None = None
    if LEADING_REF_MARKER_PATTERN.match(candidate.format_string.value):
        warning = (
            "message text carries a [ref: N] marker in structured mode; "
            f"only the '{REF_KVP_KEY}' key is used"
        )

    entry, reference = find_reference_entry(candidate, text)
    if entry is None:
        return Extraction(candidate, placement, Status.MISSING, None, warning)
    if reference is not None:
        return Extraction(
            candidate,
            placement,
            Status.PRESENT,
            reference,
            warning,
            value_span=entry.value_span,
        )
    return Extraction(
        candidate,
        placement,
        Status.UNRESOLVABLE,
        None,
        warning or f"'{REF_KVP_KEY}' key present without a usable numeric value",
    )


__all__ = [
    "Extraction",
    "Placement",
    "Status",
    "extract_message_reference",
    "extract_reference",
    "find_reference_entry",
    "placement_for",
]
