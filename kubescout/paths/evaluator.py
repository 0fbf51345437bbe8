"""Lazy evaluation of path expressions against a nested-value tree.

Evaluation never raises. A missing key, an out-of-range index or a type
mismatch (indexing a mapping, reading a field of a list) contributes no
matches. Explicit ``null`` values are treated as absent.
"""

from __future__ import annotations

from collections.abc import Iterator, Mapping
from typing import Any

from kubescout.paths.operators import scalar_equals
from kubescout.paths.parser import (
    Field,
    Filter,
    Index,
    ParsedPath,
    PathSyntaxError,
    Segment,
    Wildcard,
    parse_path,
)


def evaluate(tree: Any, path: str | ParsedPath) -> Iterator[Any]:
    """Yield every value in *tree* addressed by *path*, in document order."""
    if isinstance(path, str):
        try:
            path = parse_path(path)
        except PathSyntaxError:
            return iter(())
    return _walk(tree, path.segments, 0)


def first(tree: Any, path: str | ParsedPath, default: Any = None) -> Any:
    return next(evaluate(tree, path), default)


def _walk(value: Any, segments: tuple[Segment, ...], depth: int) -> Iterator[Any]:
    if value is None:
        return
    if depth == len(segments):
        yield value
        return

    segment = segments[depth]
    if isinstance(segment, Field):
        if isinstance(value, Mapping) and segment.name in value:
            yield from _walk(value[segment.name], segments, depth + 1)
    elif isinstance(segment, Index):
        if isinstance(value, list) and -len(value) <= segment.index < len(value):
            yield from _walk(value[segment.index], segments, depth + 1)
    elif isinstance(segment, Wildcard):
        if isinstance(value, list):
            items = value
        elif isinstance(value, Mapping):
            items = list(value.values())
        else:
            return
        for item in items:
            yield from _walk(item, segments, depth + 1)
    elif isinstance(segment, Filter):
        if isinstance(value, list):
            for item in value:
                if _filter_holds(item, segment):
                    yield from _walk(item, segments, depth + 1)


def _filter_holds(item: Any, segment: Filter) -> bool:
    current = item
    for name in segment.fields:
        if not isinstance(current, Mapping) or name not in current:
            return False
        current = current[name]
    if current is None:
        return segment.literal is None
    return scalar_equals(current, segment.literal)
