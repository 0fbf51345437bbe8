"""Kubernetes label selectors.

Covers both the plain ``{key: value}`` map used by Service ``spec.selector``
and the structured LabelSelector (``matchLabels`` + ``matchExpressions``)
used by PodDisruptionBudget, NetworkPolicy and workload selectors.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from enum import StrEnum


class SelectorOperator(StrEnum):
    IN = "In"
    NOT_IN = "NotIn"
    EXISTS = "Exists"
    DOES_NOT_EXIST = "DoesNotExist"


@dataclass(frozen=True)
class Requirement:
    key: str
    operator: SelectorOperator
    values: frozenset[str] = frozenset()

    def matches(self, labels: Mapping[str, str]) -> bool:
        if self.operator == SelectorOperator.EXISTS:
            return self.key in labels
        if self.operator == SelectorOperator.DOES_NOT_EXIST:
            return self.key not in labels
        if self.operator == SelectorOperator.IN:
            return self.key in labels and labels[self.key] in self.values
        # NotIn also matches when the key is absent, as in the API server.
        return self.key not in labels or labels[self.key] not in self.values

    def __str__(self) -> str:
        values = ",".join(sorted(self.values))
        if self.operator == SelectorOperator.EXISTS:
            return self.key
        if self.operator == SelectorOperator.DOES_NOT_EXIST:
            return f"!{self.key}"
        if self.operator == SelectorOperator.IN:
            return f"{self.key} in ({values})"
        return f"{self.key} notin ({values})"


@dataclass(frozen=True)
class LabelSelector:
    """Immutable selector; an empty selector matches every label set."""

    match_labels: tuple[tuple[str, str], ...] = ()
    requirements: tuple[Requirement, ...] = ()

    @classmethod
    def from_map(cls, selector: object) -> LabelSelector:
        """Build from a plain ``{key: value}`` map. Non-maps yield an empty selector."""
        if not isinstance(selector, Mapping):
            return cls()
        return cls(match_labels=tuple(sorted((str(k), str(v)) for k, v in selector.items())))

    @classmethod
    def from_spec(cls, spec: object) -> LabelSelector:
        """Build from a structured LabelSelector.

        Raises:
            ValueError: on an unknown operator or a malformed expression.
        """
        if spec is None:
            return cls()
        if not isinstance(spec, Mapping):
            raise ValueError(f"label selector must be a mapping, got {type(spec).__name__}")
        base = cls.from_map(spec.get("matchLabels"))
        requirements: list[Requirement] = []
        expressions = spec.get("matchExpressions") or []
        if not isinstance(expressions, list):
            raise ValueError("matchExpressions must be a list")
        for expr in expressions:
            if not isinstance(expr, Mapping):
                raise ValueError("matchExpressions entries must be mappings")
            key = str(expr.get("key", ""))
            if not key:
                raise ValueError("matchExpressions entry has no key")
            try:
                op = SelectorOperator(str(expr.get("operator", "")))
            except ValueError:
                raise ValueError(f"unknown selector operator {expr.get('operator')!r}") from None
            values = expr.get("values") or []
            if not isinstance(values, list):
                raise ValueError(f"values for {key!r} must be a list")
            if op in (SelectorOperator.IN, SelectorOperator.NOT_IN) and not values:
                raise ValueError(f"operator {op.value} on {key!r} requires values")
            requirements.append(Requirement(key=key, operator=op, values=frozenset(str(v) for v in values)))
        return cls(match_labels=base.match_labels, requirements=tuple(requirements))

    @property
    def is_empty(self) -> bool:
        return not self.match_labels and not self.requirements

    def matches(self, labels: Mapping[str, str]) -> bool:
        for key, value in self.match_labels:
            if labels.get(key) != value:
                return False
        return all(req.matches(labels) for req in self.requirements)

    def __str__(self) -> str:
        parts = [f"{k}={v}" for k, v in self.match_labels]
        parts.extend(str(r) for r in self.requirements)
        return ",".join(parts)
