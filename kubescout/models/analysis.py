"""Run result envelopes shared by every analysis component."""

from __future__ import annotations

from dataclasses import dataclass, field

from kubescout.models.drift import DriftResult, DriftStatus, DriftSummary
from kubescout.models.findings import Category, Finding, Severity
from kubescout.models.ownership import OwnershipResult, OwnerType
from kubescout.models.resources import ResourceKey


@dataclass(frozen=True)
class AnalysisWarning:
    """A contained, component-local failure surfaced to the caller.

    Warnings never fail a run; they are attached to the result envelope.
    """

    component: str
    code: str  # e.g. "malformed_rule", "drift_not_applicable", "duplicate_resource"
    message: str
    subject: str = ""  # rule id or resource key the warning is about


@dataclass
class RunMeta:
    """Bookkeeping returned alongside every component's results."""

    items_total: int = 0
    items_completed: int = 0
    duration_ms: float = 0.0
    partial: bool = False
    warnings: list[AnalysisWarning] = field(default_factory=list)

    @property
    def succeeded_with_warnings(self) -> bool:
        return bool(self.warnings)


@dataclass
class OwnershipReport:
    """Exactly one OwnershipResult per resolved resource."""

    results: dict[ResourceKey, OwnershipResult] = field(default_factory=dict)
    meta: RunMeta = field(default_factory=RunMeta)

    @property
    def partial(self) -> bool:
        return self.meta.partial

    def __getitem__(self, key: ResourceKey) -> OwnershipResult:
        return self.results[key]

    def __len__(self) -> int:
        return len(self.results)

    def get(self, key: ResourceKey) -> OwnershipResult | None:
        return self.results.get(key)

    def count_by_owner(self) -> dict[OwnerType, int]:
        counts: dict[OwnerType, int] = {}
        for result in self.results.values():
            counts[result.owner_type] = counts.get(result.owner_type, 0) + 1
        return counts


@dataclass
class ScanResult:
    """Output of one rule-based scan."""

    findings: list[Finding] = field(default_factory=list)
    rules_evaluated: int = 0
    rules_skipped: int = 0
    meta: RunMeta = field(default_factory=RunMeta)

    @property
    def partial(self) -> bool:
        return self.meta.partial

    @property
    def warnings(self) -> list[AnalysisWarning]:
        return self.meta.warnings

    def sorted_findings(self) -> list[Finding]:
        return sorted(self.findings, key=lambda f: f.sort_key)

    def at_least(self, threshold: Severity) -> list[Finding]:
        return [f for f in self.findings if f.severity.at_least(threshold)]

    def count_by_category(self) -> dict[Category, int]:
        counts: dict[Category, int] = {}
        for finding in self.findings:
            counts[finding.category] = counts.get(finding.category, 0) + 1
        return counts


@dataclass
class DriftReport:
    """Per-resource drift outcomes for one snapshot."""

    results: dict[ResourceKey, DriftResult] = field(default_factory=dict)
    meta: RunMeta = field(default_factory=RunMeta)

    @property
    def partial(self) -> bool:
        return self.meta.partial

    @property
    def warnings(self) -> list[AnalysisWarning]:
        return self.meta.warnings

    def drifted(self) -> dict[ResourceKey, DriftResult]:
        return {k: r for k, r in self.results.items() if r.status == DriftStatus.DRIFTED}

    def summary(self) -> DriftSummary:
        summary = DriftSummary()
        for result in self.results.values():
            if result.status == DriftStatus.NOT_APPLICABLE:
                summary.not_applicable += 1
            elif result.status == DriftStatus.NO_DRIFT:
                summary.no_drift += 1
            else:
                summary.drifted += 1
                for change in result.changes:
                    kind = change.change_kind.value
                    summary.changes_by_kind[kind] = summary.changes_by_kind.get(kind, 0) + 1
        return summary


@dataclass
class QueryEvaluation:
    """Boolean pass/fail per record, aligned with the input order.

    When ``partial`` is set, records past the cancellation point are absent
    from ``matches`` (``None`` placeholders are never emitted).
    """

    matches: dict[int, bool] = field(default_factory=dict)
    meta: RunMeta = field(default_factory=RunMeta)

    @property
    def partial(self) -> bool:
        return self.meta.partial

    def matching_indices(self) -> list[int]:
        return sorted(i for i, ok in self.matches.items() if ok)
