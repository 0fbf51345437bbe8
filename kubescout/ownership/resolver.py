"""Priority-chain ownership resolver.

Detectors run in ascending priority and the first match wins. Registration
order breaks ties. When no detector matches the result is Unknown.
"""

from __future__ import annotations

import time
from dataclasses import dataclass

from kubescout.execution import CancellationToken, fan_out
from kubescout.models.analysis import OwnershipReport, RunMeta
from kubescout.models.ownership import UNKNOWN_OWNERSHIP, OwnershipResult
from kubescout.models.resources import ResourceRecord
from kubescout.observability import metrics
from kubescout.observability.logging import get_logger
from kubescout.ownership.detectors import DEFAULT_DETECTORS, Detector
from kubescout.snapshot import Snapshot

_logger = get_logger("ownership")

UNKNOWN_PRIORITY = 5


@dataclass(frozen=True)
class _Registration:
    priority: int
    sequence: int
    detector: Detector


class OwnershipResolver:
    """Assigns exactly one owner to every resource."""

    def __init__(self, *, defaults: bool = True, workers: int = 1) -> None:
        self._registrations: list[_Registration] = []
        self._ordered: tuple[Detector, ...] = ()
        self._workers = workers
        if defaults:
            for detector, priority in DEFAULT_DETECTORS:
                self.register(detector, priority)

    def register(self, detector: Detector, priority: int) -> None:
        """Add a detector. It runs after every detector with a lower or equal priority."""
        if priority >= UNKNOWN_PRIORITY:
            raise ValueError(f"priority must be below {UNKNOWN_PRIORITY} (the Unknown fallback)")
        self._registrations.append(_Registration(priority, len(self._registrations), detector))
        ordered = sorted(self._registrations, key=lambda r: (r.priority, r.sequence))
        self._ordered = tuple(r.detector for r in ordered)

    @property
    def detectors(self) -> tuple[Detector, ...]:
        return self._ordered

    def resolve(self, record: ResourceRecord) -> OwnershipResult:
        for detector in self._ordered:
            result = detector(record.labels, record.annotations, record.owner_references)
            if result is not None:
                return result
        return UNKNOWN_OWNERSHIP

    def resolve_all(self, snapshot: Snapshot, token: CancellationToken | None = None) -> OwnershipReport:
        start = time.monotonic()
        records = snapshot.records
        outcome = fan_out(records, self.resolve, token=token, workers=self._workers, component="ownership")

        report = OwnershipReport(
            results={records[i].key: result for i, result in outcome.results},
            meta=RunMeta(items_total=outcome.total, items_completed=outcome.completed, partial=outcome.partial),
        )
        duration = time.monotonic() - start
        report.meta.duration_ms = duration * 1000
        metrics.component_duration_seconds.labels(component="ownership").observe(duration)
        if report.partial:
            metrics.partial_runs_total.labels(component="ownership").inc()

        _logger.info(
            "ownership_resolved",
            resources=len(report.results),
            partial=report.partial,
            duration_ms=round(report.meta.duration_ms, 2),
        )
        return report
