"""Per-statement override comments.

Directives are ordinary Rust comments placed on the line(s) directly above
a log statement::

    // logref:ignore
    info!("not tracked");

    // logref:no-kvp
    /* logref:ignore */
    warn!("stacked directives");

Association is done in two passes: every line of the file is classified
first, then each candidate walks upward from its own line through blank
lines and directive comments. Any other comment or code line ends the walk.
"""

from __future__ import annotations

import dataclasses
import re
from enum import Enum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Iterable

    from parse.scanner import Candidate

DIRECTIVE_PREFIX = "logref:"

_LINE_COMMENT = re.compile(r"^//[/!]?(?P<body>.*)$")
_BLOCK_COMMENT = re.compile(r"^/\*[*!]?(?P<body>.*?)\*/$")
_TOKEN_SPLIT = re.compile(r"[\s,]+")


class Directive(str, Enum):
    """Recognised override directives."""

    IGNORE = "ignore"
    NO_KVP = "no-kvp"

    @property
    def comment_text(self) -> str:
        return f"{DIRECTIVE_PREFIX}{self.value}"


_DIRECTIVES_BY_TEXT = {directive.comment_text: directive for directive in Directive}


def parse_directive_comment(line: str) -> frozenset[Directive] | None:
    """Return the directives carried by a comment line.

    Returns None when the line is not a comment made up solely of
    directives. Matching is case-insensitive and ignores surrounding
    whitespace.
    """
    stripped = line.strip()
    match = _LINE_COMMENT.match(stripped) or _BLOCK_COMMENT.match(stripped)
    if match is None:
        return None

    tokens = [token for token in _TOKEN_SPLIT.split(match.group("body").lower()) if token]
    if not tokens:
        return None

    found: set[Directive] = set()
    for token in tokens:
        directive = _DIRECTIVES_BY_TEXT.get(token)
        if directive is None:
            return None
        found.add(directive)
    return frozenset(found)


@dataclasses.dataclass(frozen=True)
class DirectiveTable:
    """Pass one: directives found on each line, plus which lines are blank."""

    directives: dict[int, frozenset[Directive]]
    blank_lines: frozenset[int]

    @classmethod
    def from_text(cls, text: str) -> DirectiveTable:
        directives: dict[int, frozenset[Directive]] = {}
        blank: set[int] = set()
        for line_no, line in enumerate(text.split("\n"), start=1):
            if not line.strip():
                blank.add(line_no)
                continue
            found = parse_directive_comment(line)
            if found is not None:
                directives[line_no] = found
        return cls(directives=directives, blank_lines=frozenset(blank))

    def directives_above(self, line: int) -> frozenset[Directive]:
        """Collect directives stacked directly above ``line``."""
        found: set[Directive] = set()
        current = line - 1
        while current >= 1:
            if current in self.blank_lines:
                current -= 1
                continue
            line_directives = self.directives.get(current)
            if line_directives is None:
                break
            found.update(line_directives)
            current -= 1
        return frozenset(found)


def resolve_directives(
    text: str, candidates: Iterable[Candidate]
) -> list[Candidate]:
    """Pass two: return copies of ``candidates`` with directive flags set."""
    table = DirectiveTable.from_text(text)
    resolved: list[Candidate] = []
    for candidate in candidates:
        found = table.directives_above(candidate.line)
        if found:
            candidate = dataclasses.replace(
                candidate,
                ignored=Directive.IGNORE in found,
                no_kvp=Directive.NO_KVP in found,
            )
        resolved.append(candidate)
    return resolved


__all__ = [
    "DIRECTIVE_PREFIX",
    "Directive",
    "DirectiveTable",
    "parse_directive_comment",
    "resolve_directives",
]
