from __future__ import annotations

import pytest

from parse.directives import Directive, parse_directive_comment, resolve_directives
from parse.scanner import find_candidates
from settings.config import MacroSpec

MACROS = [MacroSpec(module="log", name=name) for name in ("info", "warn", "error")]


@pytest.mark.parametrize(
    ("line", "expected"),
    [
        ("// logref:ignore", {Directive.IGNORE}),
        ("    // logref:no-kvp  ", {Directive.NO_KVP}),
        ("/* LogRef:No-KVP */", {Directive.NO_KVP}),
        ("/// logref:ignore", {Directive.IGNORE}),
        ("// logref:ignore, logref:no-kvp", {Directive.IGNORE, Directive.NO_KVP}),
        ("// logref:ignore logref:ignore", {Directive.IGNORE}),
    ],
)
def test_directive_comments(line: str, expected: set[Directive]) -> None:
    assert parse_directive_comment(line) == frozenset(expected)


@pytest.mark.parametrize(
    "line",
    [
        "// just a comment",
        "// logref:ignore because reasons",
        "// logref:skip",
        "let x = 1; // logref:ignore",
        "//",
        "",
    ],
)
def test_non_directive_lines(line: str) -> None:
    assert parse_directive_comment(line) is None


def test_resolve_directives_association() -> None:
    text = "\n".join(
        [
            "// logref:ignore",
            'info!("a");',
            'info!("b");',
            "",
            "// logref:no-kvp",
            "",
            'warn!("c");',
            "// logref:ignore",
            "// unrelated note",
            'error!("d");',
            "// logref:no-kvp",
            "/* logref:ignore */",
            'info!("e");',
            "",
        ]
    )

    resolved = resolve_directives(text, find_candidates(text, MACROS))
    flags = {
        c.format_string.value: (c.ignored, c.no_kvp) for c in resolved
    }

    assert flags == {
        "a": (True, False),
        "b": (False, False),
        "c": (False, True),
        "d": (False, False),
        "e": (True, True),
    }


def test_directive_is_not_transitive_across_code() -> None:
    text = '// logref:ignore\nlet x = 1;\ninfo!("tracked");\n'

    [candidate] = resolve_directives(text, find_candidates(text, MACROS))

    assert candidate.ignored is False


def test_directive_applies_to_multiline_invocation_start() -> None:
    text = '// logref:ignore\ninfo!(\n    "spread"\n);\n'

    [candidate] = resolve_directives(text, find_candidates(text, MACROS))

    assert candidate.ignored is True
