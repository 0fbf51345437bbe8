"""Parser for the restricted path expression language.

Supported forms::

    spec.replicas
    $.spec.template.spec.containers[0].image
    metadata.labels["app.kubernetes.io/name"]
    spec.containers[*].args[-1]
    spec.containers[*].env[?(@.name=="FOO")].value
    spec.containers[*].args[?(@=="--maxmemory")]

A filter holds exactly one equality predicate; there are no boolean
combinators inside a filter.
"""

from __future__ import annotations

import functools
import re
from dataclasses import dataclass
from typing import Any


class PathSyntaxError(ValueError):
    """Raised when a path expression does not follow the grammar."""

    def __init__(self, path: str, position: int, reason: str) -> None:
        self.path = path
        self.position = position
        self.reason = reason
        super().__init__(f"invalid path {path!r} at position {position}: {reason}")


@dataclass(frozen=True)
class Field:
    name: str


@dataclass(frozen=True)
class Index:
    index: int


@dataclass(frozen=True)
class Wildcard:
    pass


@dataclass(frozen=True)
class Filter:
    """``[?(@.a.b == literal)]``; an empty ``fields`` compares the element itself."""

    fields: tuple[str, ...]
    literal: Any


Segment = Field | Index | Wildcard | Filter


@dataclass(frozen=True)
class ParsedPath:
    text: str
    segments: tuple[Segment, ...]

    def __str__(self) -> str:
        return self.text


_IDENT_STOP = frozenset(".[]\"'()=@?! \t\r\n")
_NUMBER_RE = re.compile(r"-?[0-9]+(\.[0-9]+)?([eE][-+]?[0-9]+)?")
_INT_RE = re.compile(r"-?[0-9]+")


@functools.lru_cache(maxsize=2048)
def parse_path(text: str) -> ParsedPath:
    """Parse *text* into a ParsedPath.

    Results are cached: a rule database evaluates the same handful of paths
    against thousands of resources.

    Raises:
        PathSyntaxError: if *text* is not a valid path expression.
    """
    return _Parser(text).parse()


class _Parser:
    def __init__(self, text: str) -> None:
        self.text = text
        self.pos = 0

    def error(self, reason: str) -> PathSyntaxError:
        return PathSyntaxError(self.text, self.pos, reason)

    def peek(self) -> str:
        return self.text[self.pos] if self.pos < len(self.text) else ""

    def expect(self, literal: str) -> None:
        if not self.text.startswith(literal, self.pos):
            raise self.error(f"expected {literal!r}")
        self.pos += len(literal)

    def skip_spaces(self) -> None:
        while self.peek() in (" ", "\t"):
            self.pos += 1

    def parse(self) -> ParsedPath:
        if not self.text.strip():
            raise self.error("empty path")
        if self.text != self.text.strip():
            raise self.error("leading or trailing whitespace")

        segments: list[Segment] = []
        if self.peek() == "$":
            self.pos += 1
            if self.pos == len(self.text):
                return ParsedPath(self.text, ())
            if self.peek() == ".":
                self.pos += 1
                segments.append(Field(self.identifier()))
        elif self.peek() != "[":
            segments.append(Field(self.identifier()))

        while self.pos < len(self.text):
            char = self.peek()
            if char == ".":
                self.pos += 1
                segments.append(Field(self.identifier()))
            elif char == "[":
                segments.append(self.bracket())
            else:
                raise self.error(f"unexpected character {char!r}")
        return ParsedPath(self.text, tuple(segments))

    def identifier(self) -> str:
        start = self.pos
        while self.pos < len(self.text) and self.text[self.pos] not in _IDENT_STOP:
            self.pos += 1
        if self.pos == start:
            raise self.error("expected a field name")
        return self.text[start : self.pos]

    def quoted(self) -> str:
        quote = self.peek()
        if quote not in ("'", '"'):
            raise self.error("expected a quoted string")
        self.pos += 1
        chars: list[str] = []
        while self.pos < len(self.text):
            char = self.text[self.pos]
            if char == "\\" and self.pos + 1 < len(self.text):
                chars.append(self.text[self.pos + 1])
                self.pos += 2
                continue
            if char == quote:
                self.pos += 1
                return "".join(chars)
            chars.append(char)
            self.pos += 1
        raise self.error("unterminated string")

    def bracket(self) -> Segment:
        self.expect("[")
        char = self.peek()
        segment: Segment
        if char == "*":
            self.pos += 1
            segment = Wildcard()
        elif char in ("'", '"'):
            segment = Field(self.quoted())
        elif char == "?":
            segment = self.filter()
        else:
            match = _INT_RE.match(self.text, self.pos)
            if not match:
                raise self.error("expected an index, '*', a quoted key or a filter")
            self.pos = match.end()
            segment = Index(int(match.group()))
        self.expect("]")
        return segment

    def filter(self) -> Filter:
        self.expect("?(")
        self.skip_spaces()
        self.expect("@")
        fields: list[str] = []
        while self.peek() in (".", "["):
            if self.peek() == ".":
                self.pos += 1
                fields.append(self.identifier())
            else:
                self.pos += 1
                fields.append(self.quoted())
                self.expect("]")
        self.skip_spaces()
        if not self.text.startswith("==", self.pos):
            raise self.error("filter supports a single '==' predicate only")
        self.pos += 2
        self.skip_spaces()
        literal = self.literal()
        self.skip_spaces()
        self.expect(")")
        return Filter(tuple(fields), literal)

    def literal(self) -> Any:
        char = self.peek()
        if char in ("'", '"'):
            return self.quoted()
        for word, value in (("true", True), ("false", False), ("null", None)):
            if self.text.startswith(word, self.pos):
                self.pos += len(word)
                return value
        match = _NUMBER_RE.match(self.text, self.pos)
        if match:
            self.pos = match.end()
            number = match.group()
            if match.group(1) or match.group(2):
                return float(number)
            return int(number)
        raise self.error("expected a literal")
