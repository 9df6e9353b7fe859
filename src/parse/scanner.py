"""Tolerant scanner for logging-macro invocations in Rust source text.

The scanner does not parse Rust. It walks the text with a small set of
productions tried in order at each position:

1. trivia: whitespace, ``//`` line comments and (nested) ``/* */`` blocks
2. opaque literals: strings, raw strings and char literals
3. log macro: ``path!(`` [``target: "..."``,] [key-value block ``;``] format string
4. filler: anything else, consumed one unit (a word or a punctuation run)

Filler is an ordinary production rather than an error path, so text the
scanner does not understand is skipped deterministically. Scope and imports
are not tracked: a local item that shares a configured macro's name is
reported as a candidate.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from utils import LineIndex

if TYPE_CHECKING:
    from collections.abc import Iterable, Iterator

    from settings.config import MacroSpec

_WHITESPACE = re.compile(r"\s+")
_WORD = re.compile(r"\w+")
_PUNCTUATION_RUN = re.compile(r"[^\w\s\"'/]+")
_RAW_STRING_START = re.compile(r'b?r(#*)"')
_CHAR_ESCAPE = re.compile(r"'\\(?:[nrt0\\'\"]|x[0-9A-Fa-f]{2}|u\{[0-9A-Fa-f]{1,6}\})'")
_SIMPLE_ESCAPES = {
    "n": "\n",
    "r": "\r",
    "t": "\t",
    "0": "\0",
    "\\": "\\",
    "'": "'",
    '"': '"',
}
_KVP_MODIFIERS = ("?", "%")
_OPENERS = {"(": ")", "[": "]", "{": "}"}
_CLOSERS = frozenset(_OPENERS.values())


class ScanError(Exception):
    """Raised when a string literal or key-value block runs off the end of a file."""

    def __init__(self, message: str, offset: int, line: int, column: int) -> None:
        super().__init__(f"{message} (line {line}, column {column})")
        self.reason = message
        self.offset = offset
        self.line = line
        self.column = column


@dataclass(frozen=True)
class Span:
    """Half-open character range ``[start, end)`` in a text snapshot."""

    start: int
    end: int

    def slice(self, text: str) -> str:
        return text[self.start : self.end]


@dataclass(frozen=True)
class KeyValueEntry:
    """One ``key[:modifier] [= value]`` entry of a structured log call."""

    key: str
    key_span: Span
    modifier: str | None = None
    value_span: Span | None = None


@dataclass(frozen=True)
class FormatString:
    """The format-string literal of a log call."""

    span: Span
    content_span: Span
    value: str
    raw: bool = False


@dataclass(frozen=True)
class Candidate:
    """A located, not-yet-classified invocation of a configured log macro."""

    macro_path: tuple[str, ...]
    span: Span
    format_string: FormatString
    line: int
    column: int
    target_span: Span | None = None
    kvp_block: Span | None = None
    kvps: tuple[KeyValueEntry, ...] = field(default_factory=tuple)
    ignored: bool = False
    no_kvp: bool = False

    @property
    def macro_name(self) -> str:
        return self.macro_path[-1]

    @property
    def has_kvp_block(self) -> bool:
        return self.kvp_block is not None


def _is_ident_start(char: str) -> bool:
    return char == "_" or char.isalpha()


def decode_string_literal(raw: str) -> str:
    """Decode the escape sequences of a Rust string literal body.

    Unknown escapes are kept verbatim; a backslash before a newline swallows
    the newline and any leading whitespace on the next line.
    """
    out: list[str] = []
    i = 0
    length = len(raw)
    while i < length:
        char = raw[i]
        if char != "\\" or i + 1 >= length:
            out.append(char)
            i += 1
            continue

        nxt = raw[i + 1]
        if nxt in _SIMPLE_ESCAPES:
            out.append(_SIMPLE_ESCAPES[nxt])
            i += 2
        elif nxt == "x" and i + 4 <= length:
            try:
                out.append(chr(int(raw[i + 2 : i + 4], 16)))
                i += 4
            except ValueError:
                out.append(char)
                i += 1
        elif nxt == "u" and raw.startswith("{", i + 2):
            close = raw.find("}", i + 3)
            if close == -1:
                out.append(char)
                i += 1
                continue
            try:
                out.append(chr(int(raw[i + 3 : close], 16)))
                i = close + 1
            except ValueError:
                out.append(char)
                i += 1
        elif nxt == "\n":
            i += 2
            while i < length and raw[i] in " \t\r\n":
                i += 1
        else:
            out.append(char)
            i += 1
    return "".join(out)


class StatementScanner:
    """Find invocations of configured log macros in one file's text.

    Iterating the scanner yields :class:`Candidate` objects lazily, in source
    order. Each iteration starts a fresh pass, and :meth:`scan` accepts a
    start offset, so the sequence can be restarted at any point.
    """

    def __init__(self, text: str, macros: Iterable[MacroSpec]) -> None:
        self._text = text
        self._end = len(text)
        self._lines = LineIndex(text)
        self._qualified: set[tuple[str, ...]] = set()
        self._names: set[str] = set()
        for spec in macros:
            self._qualified.add(spec.qualified_path)
            self._names.add(spec.name)

    def __iter__(self) -> Iterator[Candidate]:
        return self.scan()

    def scan(self, start: int = 0) -> Iterator[Candidate]:
        text = self._text
        pos = start
        while pos < self._end:
            nxt = self._trivia(pos)
            if nxt != pos:
                pos = nxt
                continue

            nxt = self._opaque_literal(pos)
            if nxt is not None:
                pos = nxt
                continue

            if _is_ident_start(text[pos]):
                path, path_end = self._path(pos)
                found = self._log_macro(pos, path, path_end)
                if found is not None:
                    candidate, resume = found
                    yield candidate
                    pos = resume
                else:
                    pos = path_end
                continue

            pos = self._filler(pos)

    # -- errors ------------------------------------------------------------

    def _error(self, message: str, offset: int) -> ScanError:
        line, column = self._lines.position(offset)
        return ScanError(message, offset, line, column)

    # -- trivia ------------------------------------------------------------

    def _trivia(self, pos: int) -> int:
        """Skip any run of whitespace and comments starting at ``pos``."""
        text = self._text
        while pos < self._end:
            match = _WHITESPACE.match(text, pos)
            if match:
                pos = match.end()
                continue
            if text.startswith("//", pos):
                newline = text.find("\n", pos)
                pos = self._end if newline == -1 else newline + 1
                continue
            if text.startswith("/*", pos):
                pos = self._block_comment(pos)
                continue
            break
        return pos

    def _block_comment(self, pos: int) -> int:
        text = self._text
        depth = 0
        while pos < self._end:
            if text.startswith("/*", pos):
                depth += 1
                pos += 2
            elif text.startswith("*/", pos):
                depth -= 1
                pos += 2
                if depth == 0:
                    return pos
            else:
                pos += 1
        return self._end

    # -- literals ----------------------------------------------------------

    def _opaque_literal(self, pos: int) -> int | None:
        """Skip a string, raw string or char literal; None if there is none."""
        text = self._text
        char = text[pos]
        if char == '"':
            return self._string_literal(pos)[0]
        if char == "'":
            return self._char_literal(pos)
        if char in "br":
            raw = self._raw_string_literal(pos)
            if raw is not None:
                return raw[0]
        return None

    def _string_literal(self, pos: int) -> tuple[int, Span]:
        """Scan a ``"..."`` literal at ``pos``, honouring backslash escapes.

        Returns the offset after the closing quote and the content span.
        """
        text = self._text
        i = pos + 1
        while i < self._end:
            char = text[i]
            if char == "\\":
                i += 2
                continue
            if char == '"':
                return i + 1, Span(pos + 1, i)
            i += 1
        raise self._error("Unterminated string literal", pos)

    def _raw_string_literal(self, pos: int) -> tuple[int, Span] | None:
        match = _RAW_STRING_START.match(self._text, pos)
        if match is None:
            return None
        terminator = '"' + match.group(1)
        content_start = match.end()
        close = self._text.find(terminator, content_start)
        if close == -1:
            raise self._error("Unterminated raw string literal", pos)
        return close + len(terminator), Span(content_start, close)

    def _char_literal(self, pos: int) -> int:
        """Skip ``'x'`` or an escaped char; a lifetime only consumes the quote."""
        text = self._text
        match = _CHAR_ESCAPE.match(text, pos)
        if match:
            return match.end()
        if pos + 2 < self._end and text[pos + 2] == "'" and text[pos + 1] != "\\":
            return pos + 3
        return pos + 1

    def _format_string(self, pos: int) -> tuple[FormatString, int] | None:
        text = self._text
        if pos >= self._end:
            return None
        if text[pos] == '"':
            end, content = self._string_literal(pos)
            value = decode_string_literal(content.slice(text))
            return FormatString(Span(pos, end), content, value), end
        if text[pos] == "r":
            raw = self._raw_string_literal(pos)
            if raw is not None:
                end, content = raw
                return FormatString(Span(pos, end), content, content.slice(text), raw=True), end
        return None

    # -- log macro -----------------------------------------------------------

    def _path(self, pos: int) -> tuple[tuple[str, ...], int]:
        """Read a ``::``-separated identifier path starting at ``pos``."""
        text = self._text
        segments: list[str] = []
        end = pos
        while True:
            match = _WORD.match(text, end)
            if match is None or not _is_ident_start(text[end]):
                break
            segments.append(match.group())
            end = match.end()
            if not (
                text.startswith("::", end)
                and end + 2 < self._end
                and _is_ident_start(text[end + 2])
            ):
                break
            end += 2
        return tuple(segments), end

    def _is_configured(self, path: tuple[str, ...]) -> bool:
        if len(path) == 1:
            return path[0] in self._names
        return path in self._qualified

    def _log_macro(
        self, start: int, path: tuple[str, ...], path_end: int
    ) -> tuple[Candidate, int] | None:
        if not path or not self._is_configured(path):
            return None

        text = self._text
        pos = self._trivia(path_end)
        if not text.startswith("!", pos):
            return None
        pos = self._trivia(pos + 1)
        if not text.startswith("(", pos):
            return None
        pos = self._trivia(pos + 1)

        target_span: Span | None = None
        target = self._target_argument(pos)
        if target is not None:
            target_span, pos = target
            pos = self._trivia(pos)

        kvp_block: Span | None = None
        kvps: tuple[KeyValueEntry, ...] = ()
        if not self._format_string_starts(pos):
            block = self._kvp_block(pos)
            if block is None:
                return None
            kvps, kvp_block, pos = block
            pos = self._trivia(pos)

        found = self._format_string(pos)
        if found is None:
            return None
        format_string, resume = found

        line, column = self._lines.position(start)
        candidate = Candidate(
            macro_path=path,
            span=Span(start, self._invocation_end(resume)),
            format_string=format_string,
            line=line,
            column=column,
            target_span=target_span,
            kvp_block=kvp_block,
            kvps=kvps,
        )
        return candidate, resume

    def _format_string_starts(self, pos: int) -> bool:
        if pos >= self._end:
            return False
        if self._text[pos] == '"':
            return True
        return _RAW_STRING_START.match(self._text, pos) is not None

    def _target_argument(self, pos: int) -> tuple[Span, int] | None:
        """Match ``target: "<string>",`` and return its span and the next offset."""
        text = self._text
        match = _WORD.match(text, pos)
        if match is None or match.group() != "target":
            return None
        colon = self._trivia(match.end())
        if not text.startswith(":", colon) or text.startswith("::", colon):
            return None
        literal = self._trivia(colon + 1)
        if literal >= self._end or text[literal] != '"':
            return None
        literal_end, _ = self._string_literal(literal)
        separator = self._trivia(literal_end)
        if not text.startswith(",", separator):
            return None
        return Span(pos, literal_end), separator + 1

    def _kvp_block(
        self, pos: int
    ) -> tuple[tuple[KeyValueEntry, ...], Span, int] | None:
        """Match ``key[:modifier] [= value], ... ;`` ahead of the format string.

        Returns None when the text is not a key-value block. Raises ScanError
        when the block is still open at end of file.
        """
        text = self._text
        entries: list[KeyValueEntry] = []
        q = pos
        while True:
            q = self._trivia(q)
            if q >= self._end:
                raise self._error("Unterminated key-value block", pos)
            if text[q] == ";" and entries:
                return tuple(entries), Span(pos, q + 1), q + 1

            key_match = _WORD.match(text, q)
            if key_match is None or not _is_ident_start(text[q]):
                return None
            key = key_match.group()
            key_span = Span(q, key_match.end())
            q = self._trivia(key_match.end())

            modifier: str | None = None
            if q < self._end and text[q] == ":" and not text.startswith("::", q):
                q = self._trivia(q + 1)
                if q >= self._end:
                    raise self._error("Unterminated key-value block", pos)
                if text[q] in _KVP_MODIFIERS:
                    modifier = text[q]
                    q += 1
                else:
                    modifier_match = _WORD.match(text, q)
                    if modifier_match is None:
                        return None
                    modifier = modifier_match.group()
                    q = modifier_match.end()
                q = self._trivia(q)

            value_span: Span | None = None
            if q < self._end and text[q] == "=" and not text.startswith("==", q):
                value_start = self._trivia(q + 1)
                value_end = self._kvp_value_end(value_start, pos)
                if value_end == value_start:
                    return None
                trimmed = value_start + len(text[value_start:value_end].rstrip())
                value_span = Span(value_start, trimmed)
                q = value_end

            entries.append(KeyValueEntry(key, key_span, modifier, value_span))

            q = self._trivia(q)
            if q >= self._end:
                raise self._error("Unterminated key-value block", pos)
            if text[q] == ",":
                q += 1
                continue
            if text[q] == ";":
                return tuple(entries), Span(pos, q + 1), q + 1
            return None

    def _kvp_value_end(self, pos: int, block_start: int) -> int:
        """Return the end of a value expression: a depth-0 ``,``, ``;`` or closer."""
        text = self._text
        stack: list[str] = []
        q = pos
        while q < self._end:
            nxt = self._trivia(q)
            if nxt != q:
                q = nxt
                continue
            skipped = self._opaque_literal(q)
            if skipped is not None:
                q = skipped
                continue
            char = text[q]
            if char in _OPENERS:
                stack.append(_OPENERS[char])
            elif char in _CLOSERS:
                if not stack:
                    return q
                if stack[-1] == char:
                    stack.pop()
            elif char in ",;" and not stack:
                return q
            q += 1
        raise self._error("Unterminated key-value block", block_start)

    def _invocation_end(self, pos: int) -> int:
        """Return the offset after the ``)`` closing an invocation, or EOF."""
        text = self._text
        depth = 0
        q = pos
        while q < self._end:
            nxt = self._trivia(q)
            if nxt != q:
                q = nxt
                continue
            skipped = self._opaque_literal(q)
            if skipped is not None:
                q = skipped
                continue
            char = text[q]
            if char in _OPENERS:
                depth += 1
            elif char in _CLOSERS:
                if depth == 0:
                    return q + 1 if char == ")" else q
                depth -= 1
            q += 1
        return self._end

    # -- filler --------------------------------------------------------------

    def _filler(self, pos: int) -> int:
        """Consume one unit of text that no other production claims."""
        for pattern in (_WORD, _PUNCTUATION_RUN):
            match = pattern.match(self._text, pos)
            if match:
                return match.end()
        return pos + 1


def find_candidates(text: str, macros: Iterable[MacroSpec]) -> list[Candidate]:
    """Scan ``text`` and return every candidate in source order."""
    return list(StatementScanner(text, macros))


__all__ = [
    "Candidate",
    "FormatString",
    "KeyValueEntry",
    "ScanError",
    "Span",
    "StatementScanner",
    "decode_string_literal",
    "find_candidates",
]
