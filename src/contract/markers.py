"""Reference marker contract.

This module defines the stable boundary between logref and downstream log
consumers. The textual marker form and the structured key are matched by
external tooling and must not change.
"""

from __future__ import annotations

import re

# Identifier range (inclusive). Zero is never a valid reference.
MIN_REFERENCE_ID = 1
MAX_REFERENCE_ID = 4294967295

# Canonical message-text marker: "[ref: N]" with N as 1-10 ASCII digits.
REF_MARKER_PATTERN = re.compile(r"\[ref: ([0-9]{1,10})\]")

# Anchored form used for extraction from the start of a format string.
LEADING_REF_MARKER_PATTERN = re.compile(r"^\[ref: ([0-9]{1,10})\]")

# Reserved key used for structured (key-value) placement.
REF_KVP_KEY = "ref"

# Lock file holding persisted ledger state, stored next to the config file.
LOCK_FILENAME = "logref.lock"
LOCK_SCHEMA_VERSION = 1


def is_valid_reference(value: int) -> bool:
    """Return True when ``value`` is inside the reference identifier range."""
    return MIN_REFERENCE_ID <= value <= MAX_REFERENCE_ID


def format_marker(reference_id: int) -> str:
    """Return the message-text marker inserted ahead of a format string.

    The trailing space separates the marker from the original message text.
    """
    return f"[ref: {reference_id}] "


def format_kvp_entry(reference_id: int, *, terminator: str) -> str:
    """Return a structured ``ref = N`` entry followed by ``terminator``.

    ``terminator`` is ``","`` when other entries follow and ``";"`` when the
    entry forms the whole key-value block.
    """
    return f"{REF_KVP_KEY} = {reference_id}{terminator} "


__all__ = [
    "LEADING_REF_MARKER_PATTERN",
    "LOCK_FILENAME",
    "LOCK_SCHEMA_VERSION",
    "MAX_REFERENCE_ID",
    "MIN_REFERENCE_ID",
    "REF_KVP_KEY",
    "REF_MARKER_PATTERN",
    "format_kvp_entry",
    "format_marker",
    "is_valid_reference",
]
