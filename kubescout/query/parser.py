"""Boolean filter language over flattened resource records.

Grammar, lowest precedence first::

    query     := and_expr ( OR and_expr )*
    and_expr  := predicate ( AND predicate )*
    predicate := field ( "=" | "!=" | "~=" ) value
    field     := kind | namespace | name | owner | status | cluster
               | clusterName | apiVersion | drift | labels[<key>]

``=`` and ``!=`` compare case-insensitively; a comma-separated value is an
IN list; ``*`` in a value is a wildcard (``namespace=prod*``). ``~=`` is a
case-sensitive regular expression search. AND/OR are case-insensitive.
There is no parenthetical grouping.
"""

from __future__ import annotations

import functools
import re
import time
from collections.abc import Sequence
from dataclasses import dataclass
from enum import StrEnum
from typing import TYPE_CHECKING

from kubescout.execution import CancellationToken, fan_out
from kubescout.models.analysis import QueryEvaluation, RunMeta
from kubescout.query.records import FIELDS, Record

if TYPE_CHECKING:
    from kubescout.query.saved import SavedQueryStore


class UnparseableQueryError(ValueError):
    """Raised when a query string violates the grammar."""

    def __init__(self, message: str, position: int | None = None) -> None:
        super().__init__(message if position is None else f"{message} (at position {position})")
        self.position = position


class Comparator(StrEnum):
    EQUAL = "="
    NOT_EQUAL = "!="
    REGEX = "~="
    IN = "IN"


_LABEL_FIELD_RE = re.compile(r"^labels\[([^\[\]]+)\]$", re.IGNORECASE)
_WORD_RE = re.compile(r"\S+")


@dataclass(frozen=True)
class Predicate:
    field: str
    comparator: Comparator
    values: tuple[str, ...]
    label_key: str | None = None
    pattern: re.Pattern[str] | None = None

    def matches(self, record: Record) -> bool:
        actual = record.get_field(self.field, self.label_key)
        if self.comparator == Comparator.NOT_EQUAL:
            return actual is None or not _value_matches(actual, self.values[0])
        if actual is None:
            return False
        if self.comparator == Comparator.REGEX:
            return self.pattern is not None and self.pattern.search(actual) is not None
        return any(_value_matches(actual, expected) for expected in self.values)

    def __str__(self) -> str:
        name = f"labels[{self.label_key}]" if self.label_key is not None else self.field
        op = "=" if self.comparator == Comparator.IN else self.comparator.value
        return f"{name}{op}{','.join(self.values)}"


@dataclass(frozen=True)
class And:
    terms: tuple[Predicate, ...]

    def matches(self, record: Record) -> bool:
        return all(term.matches(record) for term in self.terms)

    def __str__(self) -> str:
        return " AND ".join(str(t) for t in self.terms)


@dataclass(frozen=True)
class Or:
    terms: tuple[And, ...]

    def matches(self, record: Record) -> bool:
        return any(term.matches(record) for term in self.terms)

    def __str__(self) -> str:
        return " OR ".join(str(t) for t in self.terms)


@dataclass(frozen=True)
class Query:
    """A parsed, immutable query. Safe to share across threads."""

    text: str
    root: Or | None

    def matches(self, record: Record) -> bool:
        return self.root is None or self.root.matches(record)

    def evaluate(
        self,
        records: Sequence[Record],
        token: CancellationToken | None = None,
        *,
        workers: int = 1,
    ) -> QueryEvaluation:
        """Pass/fail per record, keyed by the record's index in *records*."""
        start = time.monotonic()
        outcome = fan_out(records, self.matches, token=token, workers=workers, component="query")
        return QueryEvaluation(
            matches=dict(outcome.results),
            meta=RunMeta(
                items_total=outcome.total,
                items_completed=outcome.completed,
                duration_ms=(time.monotonic() - start) * 1000,
                partial=outcome.partial,
            ),
        )

    def filter(self, records: Sequence[Record]) -> list[Record]:
        return [r for r in records if self.matches(r)]

    def __str__(self) -> str:
        return "" if self.root is None else str(self.root)


def parse_query(text: str, saved: SavedQueryStore | None = None) -> Query:
    """Parse *text*, expanding saved queries first when a store is given.

    An empty query matches every record.

    Raises:
        UnparseableQueryError: on any grammar violation.
    """
    if saved is not None:
        text = saved.expand(text)

    or_terms: list[And] = []
    current: list[Predicate] = []
    buffer: list[tuple[int, str]] = []
    pending_op: str | None = None

    def flush(position: int, keyword: str) -> None:
        if not buffer:
            raise UnparseableQueryError(f"{keyword} needs a predicate before it", position)
        current.append(_parse_predicate(" ".join(word for _, word in buffer), buffer[0][0]))
        buffer.clear()

    for match in _WORD_RE.finditer(text):
        word, position = match.group(), match.start()
        keyword = word.upper()
        if keyword in ("AND", "OR"):
            flush(position, keyword)
            if keyword == "OR":
                or_terms.append(And(tuple(current)))
                current = []
            pending_op = keyword
        else:
            buffer.append((position, word))

    if not buffer and pending_op is None:
        return Query(text=text, root=None)
    if not buffer:
        raise UnparseableQueryError(f"{pending_op} at end of query needs a predicate after it", len(text))
    flush(len(text), "query")
    or_terms.append(And(tuple(current)))
    return Query(text=text, root=Or(tuple(or_terms)))


def _parse_predicate(text: str, position: int) -> Predicate:
    for symbol, comparator in (("~=", Comparator.REGEX), ("!=", Comparator.NOT_EQUAL), ("=", Comparator.EQUAL)):
        index = text.find(symbol)
        if index > 0:
            break
    else:
        raise UnparseableQueryError(f"invalid predicate {text!r} (expected field=value)", position)

    field_text = text[:index].strip()
    value = text[index + len(symbol) :].strip()
    field, label_key = _parse_field(field_text, position)
    if not value:
        raise UnparseableQueryError(f"predicate {text!r} has no value", position)
    if any(ch.isspace() for ch in value):
        raise UnparseableQueryError(f"unexpected space in {text!r}; join predicates with AND or OR", position)

    if comparator == Comparator.REGEX:
        try:
            pattern = re.compile(value)
        except (re.error, OverflowError) as exc:
            raise UnparseableQueryError(f"invalid regular expression {value!r}: {exc}", position) from None
        return Predicate(field, comparator, (value,), label_key, pattern)

    if comparator == Comparator.EQUAL and "," in value:
        values = tuple(v.strip() for v in value.split(",") if v.strip())
        if not values:
            raise UnparseableQueryError(f"empty IN list in {text!r}", position)
        return Predicate(field, Comparator.IN, values, label_key)

    return Predicate(field, comparator, (value,), label_key)


def _parse_field(text: str, position: int) -> tuple[str, str | None]:
    label = _LABEL_FIELD_RE.match(text)
    if label:
        return "labels", label.group(1).strip()
    canonical = FIELDS.get(text.lower())
    if canonical is None:
        known = ", ".join(sorted(set(FIELDS.values()))) + ", labels[<key>]"
        raise UnparseableQueryError(f"unknown field {text!r} (known: {known})", position)
    return canonical, None


def _value_matches(actual: str, expected: str) -> bool:
    if "*" in expected:
        return _glob(expected).fullmatch(actual) is not None
    return actual.casefold() == expected.casefold()


@functools.lru_cache(maxsize=256)
def _glob(expected: str) -> re.Pattern[str]:
    regex = ".*".join(re.escape(part) for part in expected.split("*"))
    return re.compile(regex, re.IGNORECASE)
