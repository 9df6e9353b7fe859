"""Stable marker contract surface for logref.

This module exposes the minimal, stable Python surface that log consumers
and the rest of logref depend on. Treat these exports as authoritative.
"""

from contract.markers import (
    LEADING_REF_MARKER_PATTERN,
    LOCK_FILENAME,
    LOCK_SCHEMA_VERSION,
    MAX_REFERENCE_ID,
    MIN_REFERENCE_ID,
    REF_KVP_KEY,
    REF_MARKER_PATTERN,
    format_kvp_entry,
    format_marker,
    is_valid_reference,
)

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
