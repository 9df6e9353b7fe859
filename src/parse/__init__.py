"""Scanning, directive resolution and reference extraction for logref."""

from parse.directives import Directive, DirectiveTable, resolve_directives
from parse.references import (
    Extraction,
    Placement,
    Status,
    extract_message_reference,
    extract_reference,
)
from parse.scanner import (
    Candidate,
    FormatString,
    KeyValueEntry,
    ScanError,
    Span,
    StatementScanner,
    find_candidates,
)

__all__ = [
    "Candidate",
    "Directive",
    "DirectiveTable",
    "Extraction",
    "FormatString",
    "KeyValueEntry",
    "Placement",
    "ScanError",
    "Span",
    "StatementScanner",
    "Status",
    "extract_message_reference",
    "extract_reference",
    "find_candidates",
    "resolve_directives",
]
