"""Patch planning: turn missing references into offset-addressed edits.

Edits never mutate a buffer. :func:`apply_edits` materializes the new text
from the original snapshot in one left-to-right copy-and-splice pass, so an
edit's offset always refers to the unmodified text.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from contract.markers import format_kvp_entry, format_marker
from parse.references import Placement, Status

if TYPE_CHECKING:
    from collections.abc import Iterable

    from parse.references import Extraction


@dataclass(frozen=True, order=True)
class Edit:
    """Replace ``length`` characters at ``offset`` with ``text``.

    Most edits are pure insertions (``length == 0``). A non-zero length is
    used only to rewrite the digits of an unusable or duplicated identifier.
    """

    offset: int
    text: str
    length: int = 0

    @property
    def end(self) -> int:
        return self.offset + self.length


def plan_edit(extraction: Extraction, reference: int) -> Edit:
    """Compute the edit that gives a missing candidate ``reference``.

    Message placement puts the marker at the start of the format string's
    content. Structured placement adds a ``ref`` entry in front of the
    first key-value entry, or opens a new block right before the format
    string when the call has none. An identifier already written in the
    right place is rewritten in place.

    Raises:
        ValueError: If the extraction is not plainly missing.
    """
    if extraction.status is not Status.MISSING:
        msg = f"cannot plan an edit for a {extraction.status.value} candidate"
        raise ValueError(msg)

    if extraction.value_span is not None:
        span = extraction.value_span
        return Edit(span.start, str(reference), span.end - span.start)

    candidate = extraction.candidate
    if extraction.placement is Placement.MESSAGE:
        return Edit(candidate.format_string.content_span.start, format_marker(reference))

    if candidate.kvps:
        return Edit(
            candidate.kvps[0].key_span.start,
            format_kvp_entry(reference, terminator=","),
        )
    return Edit(
        candidate.format_string.span.start,
        format_kvp_entry(reference, terminator=";"),
    )


def plan_edits(assignments: Iterable[tuple[Extraction, int]]) -> list[Edit]:
    """Plan one edit per ``(extraction, reference)`` pair, ordered by offset."""
    return sorted(plan_edit(extraction, reference) for extraction, reference in assignments)


def apply_edits(text: str, edits: Iterable[Edit]) -> str:
    """Return ``text`` with every edit applied.

    Raises:
        ValueError: If an edit lies outside ``text`` or overlaps another.
    """
    ordered = sorted(edits)
    if not ordered:
        return text

    parts: list[str] = []
    cursor = 0
    for edit in ordered:
        if edit.offset < cursor or edit.end > len(text):
            msg = (
                f"edit at offset {edit.offset} overlaps a previous edit or "
                f"lies outside text of length {len(text)}"
            )
            raise ValueError(msg)
        parts.append(text[cursor : edit.offset])
        parts.append(edit.text)
        cursor = edit.end
    parts.append(text[cursor:])
    return "".join(parts)


__all__ = ["Edit", "apply_edits", "plan_edit", "plan_edits"]
