"""Drift detection data structures."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any


class DriftStatus(StrEnum):
    """Outcome of comparing live state against recorded desired state.

    NOT_APPLICABLE and NO_DRIFT are distinct outcomes and must never be merged.
    """

    NOT_APPLICABLE = "not-applicable"
    NO_DRIFT = "no-drift"
    DRIFTED = "drifted"


class ChangeKind(StrEnum):
    """Classification of a single leaf difference."""

    MODIFIED = "modified"
    MISSING = "missing"  # declared but absent live
    EXTRA = "extra"  # present live but never declared


@dataclass(frozen=True)
class DriftChange:
    """A single difference, addressed by a dotted/indexed path."""

    path: str
    change_kind: ChangeKind
    desired_value: Any = None
    live_value: Any = None


@dataclass(frozen=True)
class DriftResult:
    """Per-resource drift outcome."""

    status: DriftStatus
    changes: tuple[DriftChange, ...] = ()
    reason: str = ""  # why the result is NOT_APPLICABLE

    @property
    def drifted(self) -> bool:
        return self.status == DriftStatus.DRIFTED


@dataclass
class DriftSummary:
    """Counts by status for one DriftReport."""

    not_applicable: int = 0
    no_drift: int = 0
    drifted: int = 0
    changes_by_kind: dict[str, int] = field(default_factory=dict)
