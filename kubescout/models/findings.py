"""Finding and rule classification enumerations."""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum

from kubescout.models.resources import ResourceKey


class Severity(StrEnum):
    """Finding severity level."""

    CRITICAL = "critical"
    WARNING = "warning"
    INFO = "info"

    @property
    def rank(self) -> int:
        """Ordinal used for sorting and threshold filtering (higher is worse)."""
        return _SEVERITY_RANK[self]

    def at_least(self, threshold: Severity) -> bool:
        return self.rank >= threshold.rank


_SEVERITY_RANK = {Severity.INFO: 0, Severity.WARNING: 1, Severity.CRITICAL: 2}


class Category(StrEnum):
    """Anti-pattern category."""

    SOURCE = "SOURCE"
    RENDER = "RENDER"
    APPLY = "APPLY"
    DRIFT = "DRIFT"
    DEPEND = "DEPEND"
    STATE = "STATE"
    ORPHAN = "ORPHAN"
    CONFIG = "CONFIG"
    SILENT = "SILENT"
    TIMING = "TIMING"
    UNRESOLVED = "UNRESOLVED"


@dataclass(frozen=True)
class Finding:
    """Result of matching one Rule against one resource."""

    rule_id: str
    severity: Severity
    category: Category
    resource_key: ResourceKey
    message: str
    remediation: str = ""
    rule_name: str = ""

    @property
    def sort_key(self) -> tuple[int, str, str]:
        """Severity-descending, then rule id, then resource."""
        return (-self.severity.rank, self.rule_id, str(self.resource_key))
