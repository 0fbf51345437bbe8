"""Rule-based anti-pattern scanner.

One work item per rule: candidates come from the snapshot's kind index,
every condition must hold (conjunction), and each matching resource yields
one Finding. Rules run independently so a cancelled scan still returns the
findings of the rules that completed.
"""

from __future__ import annotations

import time
from collections.abc import Callable, Iterable, Sequence
from datetime import UTC, datetime, timedelta
from typing import Any

from kubescout.execution import CancellationToken, fan_out
from kubescout.models.analysis import AnalysisWarning, RunMeta, ScanResult
from kubescout.models.findings import Finding
from kubescout.models.resources import ResourceKey, ResourceRecord
from kubescout.observability import metrics
from kubescout.observability.logging import get_logger
from kubescout.patterns.schema import DEFAULT_STUCK_THRESHOLD, Rule, parse_rules
from kubescout.patterns.stuck import check_stuck, stuck_message, stuck_remediation
from kubescout.snapshot import Snapshot

_logger = get_logger("patterns.scanner")


def _utcnow() -> datetime:
    return datetime.now(tz=UTC)


class Scanner:
    """Evaluates a read-only rule set against one snapshot at a time.

    The rule set is fixed at construction and may be shared by concurrent
    scans.
    """

    def __init__(
        self,
        rules: Sequence[Rule],
        *,
        workers: int = 1,
        now: Callable[[], datetime] = _utcnow,
        parse_warnings: Sequence[AnalysisWarning] = (),
    ) -> None:
        self._rules = tuple(rules)
        self._workers = workers
        self._now = now
        self._parse_warnings = tuple(parse_warnings)

    @classmethod
    def from_documents(
        cls,
        documents: Iterable[Any],
        *,
        stuck_threshold: timedelta = DEFAULT_STUCK_THRESHOLD,
        **kwargs: Any,
    ) -> Scanner:
        """Validate raw rule documents; malformed ones become warnings on every scan."""
        rules, warnings = parse_rules(documents, stuck_threshold=stuck_threshold)
        return cls(rules, parse_warnings=warnings, **kwargs)

    @property
    def rules(self) -> tuple[Rule, ...]:
        return self._rules

    def scan(self, snapshot: Snapshot, token: CancellationToken | None = None) -> ScanResult:
        start = time.monotonic()
        now = self._now()
        outcome = fan_out(
            self._rules,
            lambda rule: self.evaluate_rule(rule, snapshot, now),
            token=token,
            workers=self._workers,
            component="scanner",
        )

        findings = [finding for batch in outcome.values() for finding in batch]
        duration = time.monotonic() - start
        result = ScanResult(
            findings=findings,
            rules_evaluated=outcome.completed,
            rules_skipped=len(self._parse_warnings),
            meta=RunMeta(
                items_total=outcome.total,
                items_completed=outcome.completed,
                duration_ms=duration * 1000,
                partial=outcome.partial,
                warnings=list(self._parse_warnings),
            ),
        )

        for finding in findings:
            metrics.findings_total.labels(category=finding.category.value, severity=finding.severity.value).inc()
        metrics.component_duration_seconds.labels(component="scanner").observe(duration)
        if result.partial:
            metrics.partial_runs_total.labels(component="scanner").inc()
        _logger.info(
            "scan_complete",
            rules=len(self._rules),
            rules_evaluated=result.rules_evaluated,
            rules_skipped=result.rules_skipped,
            findings=len(findings),
            partial=result.partial,
            duration_ms=round(result.meta.duration_ms, 2),
        )
        return result

    def evaluate_rule(self, rule: Rule, snapshot: Snapshot, now: datetime | None = None) -> list[Finding]:
        now = now or self._now()
        findings: list[Finding] = []
        for record in candidates(rule, snapshot):
            if not all(condition.holds(record.body) for condition in rule.conditions):
                continue
            if rule.stuck is not None:
                match = check_stuck(rule.stuck, record, now)
                if match is None:
                    continue
                message = stuck_message(rule, record, match)
                remediation = stuck_remediation(rule, rule.stuck, match)
            else:
                message = rule.render_message(record)
                remediation = rule.remediation
            findings.append(
                Finding(
                    rule_id=rule.id,
                    severity=rule.severity,
                    category=rule.category,
                    resource_key=record.key,
                    message=message,
                    remediation=remediation,
                    rule_name=rule.name,
                )
            )
        return findings


def candidates(rule: Rule, snapshot: Snapshot) -> list[ResourceRecord]:
    """Resources matching any of the rule's selectors, each at most once."""
    seen: set[ResourceKey] = set()
    found: list[ResourceRecord] = []
    for selector in rule.resources:
        for record in snapshot.of_kind(selector.kind, selector.api_version):
            if record.key in seen or not selector.matches_labels(record):
                continue
            seen.add(record.key)
            found.append(record)
    return found
