"""Condition operators applied to the match sequence of a path expression.

Operators never raise. Non-numeric operands to ``greater_than`` /
``less_than`` and invalid regular expressions evaluate false.
"""

from __future__ import annotations

import functools
import json
import math
import re
from collections.abc import Iterable, Mapping
from enum import StrEnum
from typing import Any


class Operator(StrEnum):
    EXISTS = "exists"
    NOT_EXISTS = "not_exists"
    EQUALS = "equals"
    NOT_EQUALS = "not_equals"
    CONTAINS = "contains"
    NOT_CONTAINS = "not_contains"
    MATCHES = "matches"
    GREATER_THAN = "greater_than"
    LESS_THAN = "less_than"

    @property
    def requires_value(self) -> bool:
        return self not in (Operator.EXISTS, Operator.NOT_EXISTS)


def apply_operator(operator: Operator, values: Iterable[Any], expected: Any = None) -> bool:
    """Decide *operator* over the values a path yielded.

    ``equals``, ``contains``, ``matches`` and the numeric comparisons hold
    when any value satisfies them. ``not_equals`` holds when every value
    differs (and so holds for an empty sequence). ``not_contains`` holds when
    no value contains *expected*.
    """
    if operator == Operator.EXISTS:
        return any(True for _ in values)
    if operator == Operator.NOT_EXISTS:
        return not any(True for _ in values)
    if operator == Operator.EQUALS:
        return any(scalar_equals(v, expected) for v in values)
    if operator == Operator.NOT_EQUALS:
        return all(not scalar_equals(v, expected) for v in values)
    if operator == Operator.CONTAINS:
        return any(_contains(v, expected) for v in values)
    if operator == Operator.NOT_CONTAINS:
        return not any(_contains(v, expected) for v in values)
    if operator == Operator.MATCHES:
        pattern = compile_pattern(str(expected))
        if pattern is None:
            return False
        return any(pattern.search(stringify(v)) is not None for v in values)
    if operator == Operator.GREATER_THAN:
        return _compare(values, expected, lambda a, b: a > b)
    if operator == Operator.LESS_THAN:
        return _compare(values, expected, lambda a, b: a < b)
    return False


@functools.lru_cache(maxsize=512)
def compile_pattern(pattern: str) -> re.Pattern[str] | None:
    try:
        return re.compile(pattern)
    except re.error:
        return None


def as_number(value: Any) -> float | None:
    """Numeric view of *value*: ints, floats and numeric strings. Booleans are not numbers."""
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            return None
    else:
        return None
    if math.isnan(number):
        return None
    return number


def stringify(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if value is None:
        return "null"
    if isinstance(value, (Mapping, list)):
        return json.dumps(value, sort_keys=True, separators=(",", ":"))
    return str(value)


def scalar_equals(actual: Any, expected: Any) -> bool:
    """Equality used by ``equals`` and filter predicates.

    Compares numerically when either side is an actual number and both have a
    numeric view (so ``1 == "1"`` and ``2 == 2.0``); otherwise compares the
    string forms. Two numeric-looking strings compare as strings, which keeps
    ``"1.10" != "1.1"``.
    """
    if _is_number(actual) or _is_number(expected):
        left, right = as_number(actual), as_number(expected)
        if left is not None and right is not None:
            return left == right
    return stringify(actual) == stringify(expected)


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _contains(value: Any, expected: Any) -> bool:
    if isinstance(value, str):
        return stringify(expected) in value
    if isinstance(value, list):
        return any(scalar_equals(item, expected) for item in value)
    if isinstance(value, Mapping):
        return stringify(expected) in value
    return False


def _compare(values: Iterable[Any], expected: Any, op: Any) -> bool:
    bound = as_number(expected)
    if bound is None:
        return False
    for value in values:
        number = as_number(value)
        if number is not None and op(number, bound):
            return True
    return False
