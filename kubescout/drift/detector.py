"""Drift detection against the last-applied desired-state annotation."""

from __future__ import annotations

import json
import re
import time
from collections.abc import Mapping
from typing import Any

from kubescout.execution import CancellationToken, fan_out
from kubescout.models.analysis import AnalysisWarning, DriftReport, RunMeta
from kubescout.models.drift import ChangeKind, DriftChange, DriftResult, DriftStatus
from kubescout.models.resources import ResourceRecord
from kubescout.observability import metrics
from kubescout.observability.logging import get_logger
from kubescout.snapshot import Snapshot

_logger = get_logger("drift")

LAST_APPLIED_ANNOTATION = "kubectl.kubernetes.io/last-applied-configuration"

# Key paths controllers routinely mutate; a prefix match skips the subtree.
DEFAULT_IGNORED_PATHS: tuple[tuple[str, ...], ...] = (
    ("status",),
    ("metadata", "resourceVersion"),
    ("metadata", "uid"),
    ("metadata", "generation"),
    ("metadata", "creationTimestamp"),
    ("metadata", "managedFields"),
    ("metadata", "selfLink"),
)

_PLAIN_KEY_RE = re.compile(r"^[A-Za-z0-9_-]+$")

_MISSING = object()


class DriftDetector:
    """Diffs each resource's live body against its recorded desired state.

    Map key order is ignored. Sequence order is significant: sequences of
    equal length are compared element-wise, otherwise the whole sequence is
    reported as one ``modified`` change. A ``null`` on one side and an absent
    key on the other are equal.
    """

    def __init__(
        self,
        annotation: str = LAST_APPLIED_ANNOTATION,
        *,
        report_extra: bool = True,
        ignored_paths: tuple[tuple[str, ...], ...] = DEFAULT_IGNORED_PATHS,
        workers: int = 1,
    ) -> None:
        self._annotation = annotation
        self._report_extra = report_extra
        self._ignored = ignored_paths + (("metadata", "annotations", annotation),)
        self._workers = workers

    def detect(self, record: ResourceRecord) -> DriftResult:
        raw = record.annotations.get(self._annotation)
        if not raw:
            return DriftResult(status=DriftStatus.NOT_APPLICABLE, reason="desired-state annotation absent")
        try:
            desired = json.loads(raw)
        except ValueError as exc:
            return DriftResult(status=DriftStatus.NOT_APPLICABLE, reason=f"annotation is not valid JSON: {exc}")
        if not isinstance(desired, dict):
            return DriftResult(status=DriftStatus.NOT_APPLICABLE, reason="annotation is not a JSON object")

        changes: list[DriftChange] = []
        self._compare((), "", desired, record.body, changes)
        if not changes:
            return DriftResult(status=DriftStatus.NO_DRIFT)
        return DriftResult(status=DriftStatus.DRIFTED, changes=tuple(changes))

    def detect_all(self, snapshot: Snapshot, token: CancellationToken | None = None) -> DriftReport:
        start = time.monotonic()
        records = snapshot.records
        outcome = fan_out(records, self.detect, token=token, workers=self._workers, component="drift")

        report = DriftReport(
            meta=RunMeta(items_total=outcome.total, items_completed=outcome.completed, partial=outcome.partial)
        )
        for index, result in outcome.results:
            record = records[index]
            report.results[record.key] = result
            metrics.drift_results_total.labels(status=result.status.value).inc()
            if result.status == DriftStatus.NOT_APPLICABLE and self._annotation in record.annotations:
                report.meta.warnings.append(
                    AnalysisWarning(
                        component="drift",
                        code="drift_annotation_unparsable",
                        message=result.reason,
                        subject=str(record.key),
                    )
                )
                _logger.warning("drift_annotation_unparsable", resource=str(record.key), reason=result.reason)

        duration = time.monotonic() - start
        report.meta.duration_ms = duration * 1000
        metrics.component_duration_seconds.labels(component="drift").observe(duration)
        if report.partial:
            metrics.partial_runs_total.labels(component="drift").inc()
        summary = report.summary()
        _logger.info(
            "drift_complete",
            drifted=summary.drifted,
            no_drift=summary.no_drift,
            not_applicable=summary.not_applicable,
            partial=report.partial,
            duration_ms=round(report.meta.duration_ms, 2),
        )
        return report

    # ------------------------------------------------------------------
    # Recursive diff
    # ------------------------------------------------------------------

    def _ignored_path(self, keys: tuple[str, ...]) -> bool:
        return any(keys[: len(prefix)] == prefix for prefix in self._ignored)

    def _only_ignored(self, keys: tuple[str, ...], value: Any) -> bool:
        """True when *value* holds nothing but ignored subtrees."""
        if not isinstance(value, Mapping):
            return False
        return all(self._ignored_path(keys + (k,)) or self._only_ignored(keys + (k,), v) for k, v in value.items())

    def _compare(
        self,
        keys: tuple[str, ...],
        path: str,
        desired: Any,
        live: Any,
        changes: list[DriftChange],
    ) -> None:
        if self._ignored_path(keys):
            return
        if live is _MISSING:
            if desired is None:
                return
            changes.append(DriftChange(path, ChangeKind.MISSING, desired_value=desired))
            return

        if isinstance(desired, Mapping) and isinstance(live, Mapping):
            for key in sorted(desired):
                self._compare(
                    keys + (key,),
                    _join_key(path, key),
                    desired[key],
                    live.get(key, _MISSING),
                    changes,
                )
            if self._report_extra:
                for key in sorted(set(live) - set(desired)):
                    child = keys + (key,)
                    if live[key] is None or self._ignored_path(child) or self._only_ignored(child, live[key]):
                        continue
                    changes.append(DriftChange(_join_key(path, key), ChangeKind.EXTRA, live_value=live[key]))
            return

        if isinstance(desired, list) and isinstance(live, list):
            if len(desired) != len(live):
                changes.append(DriftChange(path, ChangeKind.MODIFIED, desired_value=desired, live_value=live))
                return
            for index, (want, got) in enumerate(zip(desired, live, strict=True)):
                self._compare(keys + (str(index),), f"{path}[{index}]", want, got, changes)
            return

        if not values_equal(desired, live):
            changes.append(DriftChange(path, ChangeKind.MODIFIED, desired_value=desired, live_value=live))


def values_equal(desired: Any, live: Any) -> bool:
    """Leaf equality: numbers compare numerically, booleans only equal booleans."""
    if isinstance(desired, bool) or isinstance(live, bool):
        return isinstance(desired, bool) and isinstance(live, bool) and desired == live
    if isinstance(desired, (int, float)) and isinstance(live, (int, float)):
        return float(desired) == float(live)
    if type(desired) is not type(live):
        return False
    return bool(desired == live)


def _join_key(path: str, key: str) -> str:
    if _PLAIN_KEY_RE.match(key):
        return f"{path}.{key}" if path else key
    quoted = json.dumps(key)
    return f"{path}[{quoted}]" if path else f"$[{quoted}]"
