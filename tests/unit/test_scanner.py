"""Tests for the rule-based scanner."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from typing import Any

import pytest

from kubescout.execution import CancellationToken
from kubescout.models.findings import Category, Severity
from kubescout.models.resources import ResourceKey
from kubescout.patterns import Scanner, builtin_rules, parse_rule, parse_rules
from kubescout.patterns.scanner import candidates
from kubescout.snapshot import Snapshot

NOW = datetime(2026, 3, 1, 12, 0, 0, tzinfo=UTC)

# ---------------------------------------------------------------------------
# Helper factories
# ---------------------------------------------------------------------------


def _deployment(
    name: str,
    namespace: str = "default",
    image: str = "nginx:1.25",
    labels: dict[str, str] | None = None,
    **container: Any,
) -> dict[str, Any]:
    return {
        "apiVersion": "apps/v1",
        "kind": "Deployment",
        "metadata": {"name": name, "namespace": namespace, "labels": labels or {}},
        "spec": {
            "replicas": 1,
            "template": {
                "spec": {
                    "containers": [
                        {"name": name, "image": image, "resources": {"limits": {"cpu": "1"}}, **container}
                    ]
                }
            },
        },
    }


def _rule_doc(rule_id: str, kind: str = "apps/v1/Deployment", **condition: Any) -> dict[str, Any]:
    return {
        "id": rule_id,
        "name": f"rule {rule_id}",
        "severity": "warning",
        "category": "CONFIG",
        "detection": {
            "resources": [kind],
            "conditions": [condition or {"path": "spec.replicas", "operator": "exists"}],
        },
        "message": "{rule} matched {key}",
    }


def _redis_rule() -> Any:
    return next(r for r in builtin_rules() if r.id == "KS-CONFIG-REDIS-MAXMEMORY")


class CountdownToken(CancellationToken):
    """Reports cancelled after *allowed* checks."""

    def __init__(self, allowed: int) -> None:
        super().__init__()
        self._remaining = allowed

    @property
    def cancelled(self) -> bool:
        if self._remaining <= 0:
            return True
        self._remaining -= 1
        return False


# ---------------------------------------------------------------------------
# Redis maxmemory
# ---------------------------------------------------------------------------


class TestRedisMaxmemory:
    def test_redis_without_limit_is_flagged(self) -> None:
        snapshot = Snapshot([_deployment("cache", image="redis:7.2")])
        result = Scanner([_redis_rule()]).scan(snapshot)
        (finding,) = result.findings
        assert finding.rule_id == "KS-CONFIG-REDIS-MAXMEMORY"
        assert finding.resource_key == ResourceKey("Deployment", "default", "cache")
        assert finding.severity == Severity.WARNING
        assert finding.category == Category.CONFIG
        assert finding.remediation == "Set the MAXMEMORY environment variable or pass --maxmemory"

    def test_maxmemory_env_clears_finding(self) -> None:
        deployment = _deployment("cache", image="redis:7.2", env=[{"name": "MAXMEMORY", "value": "256mb"}])
        assert Scanner([_redis_rule()]).scan(Snapshot([deployment])).findings == []

    def test_maxmemory_arg_clears_finding(self) -> None:
        deployment = _deployment("cache", image="redis:7.2", args=["--maxmemory", "256mb"])
        assert Scanner([_redis_rule()]).scan(Snapshot([deployment])).findings == []

    @pytest.mark.parametrize("image", ["docker.io/library/redis:7", "bitnami/redis@sha256:abc", "redis"])
    def test_image_variants(self, image: str) -> None:
        assert len(Scanner([_redis_rule()]).scan(Snapshot([_deployment("c", image=image)])).findings) == 1

    @pytest.mark.parametrize("image", ["nginx:1.25", "oliver006/redis_exporter:v1", "myredis:1"])
    def test_non_redis_images(self, image: str) -> None:
        assert Scanner([_redis_rule()]).scan(Snapshot([_deployment("c", image=image)])).findings == []


# ---------------------------------------------------------------------------
# Malformed rules and cancellation
# ---------------------------------------------------------------------------


class TestScan:
    def test_malformed_rule_does_not_stop_others(self) -> None:
        broken = _rule_doc("X")
        del broken["id"]
        scanner = Scanner.from_documents([_rule_doc("A"), broken, _rule_doc("B")])
        result = scanner.scan(Snapshot([_deployment("web")]))
        assert sorted(f.rule_id for f in result.findings) == ["A", "B"]
        assert result.rules_evaluated == 2
        assert result.rules_skipped == 1
        (warning,) = result.warnings
        assert (warning.code, warning.subject) == ("malformed_rule", "#1")
        assert result.partial is False

    def test_unrenderable_message_is_skipped_at_parse_time(self) -> None:
        padded = _rule_doc("X")
        padded["message"] = "{kind:>{name}} matched"
        scanner = Scanner.from_documents([padded, _rule_doc("A")])
        result = scanner.scan(Snapshot([_deployment("web")]))
        assert [f.rule_id for f in result.findings] == ["A"]
        assert result.rules_skipped == 1
        (warning,) = result.warnings
        assert (warning.code, warning.subject) == ("malformed_rule", "X")

    def test_cancel_after_two_of_three_rules(self) -> None:
        scanner = Scanner.from_documents([_rule_doc("A"), _rule_doc("B"), _rule_doc("C")])
        result = scanner.scan(Snapshot([_deployment("web")]), CountdownToken(allowed=2))
        assert result.partial is True
        assert sorted(f.rule_id for f in result.findings) == ["A", "B"]
        assert result.rules_evaluated == 2
        assert (result.meta.items_total, result.meta.items_completed) == (3, 2)

    def test_precancelled_scan_is_empty(self) -> None:
        token = CancellationToken()
        token.cancel()
        result = Scanner.from_documents([_rule_doc("A"), _rule_doc("B")]).scan(Snapshot([_deployment("web")]), token)
        assert result.findings == []
        assert result.partial is True

    def test_pooled_equals_inline(self) -> None:
        documents = [_rule_doc(f"R{i}") for i in range(12)]
        snapshot = Snapshot([_deployment(f"web-{i}") for i in range(20)])
        inline = Scanner.from_documents(documents).scan(snapshot)
        pooled = Scanner.from_documents(documents, workers=4).scan(snapshot)
        assert inline.findings == pooled.findings
        assert len(inline.findings) == 240

    def test_message_template(self) -> None:
        result = Scanner.from_documents([_rule_doc("A")]).scan(Snapshot([_deployment("web", namespace="prod")]))
        assert result.findings[0].message == "A matched Deployment/prod/web"
        assert result.findings[0].rule_name == "rule A"

    def test_all_conditions_must_hold(self) -> None:
        doc = _rule_doc("A")
        doc["detection"]["conditions"].append({"path": "spec.replicas", "operator": "greater_than", "value": 2})
        assert Scanner.from_documents([doc]).scan(Snapshot([_deployment("web")])).findings == []

    def test_empty_snapshot(self) -> None:
        result = Scanner(builtin_rules()).scan(Snapshot())
        assert result.findings == []
        assert result.rules_evaluated == len(builtin_rules())


class TestScanResult:
    def test_sorting_and_filters(self) -> None:
        rules, _ = parse_rules(
            [
                {**_rule_doc("B-INFO"), "severity": "info"},
                {**_rule_doc("A-CRIT"), "severity": "critical", "category": "TIMING"},
                _rule_doc("C-WARN"),
            ]
        )
        result = Scanner(rules).scan(Snapshot([_deployment("web")]))
        assert [f.rule_id for f in result.sorted_findings()] == ["A-CRIT", "C-WARN", "B-INFO"]
        assert {f.rule_id for f in result.at_least(Severity.WARNING)} == {"A-CRIT", "C-WARN"}
        assert result.count_by_category() == {Category.CONFIG: 2, Category.TIMING: 1}


# ---------------------------------------------------------------------------
# Candidate selection
# ---------------------------------------------------------------------------


class TestCandidates:
    def test_api_version_and_labels(self) -> None:
        doc = _rule_doc("A")
        doc["detection"]["resources"] = [
            {"kind": "Deployment", "apiVersion": "apps/v1", "labelSelector": {"matchLabels": {"tier": "db"}}},
        ]
        rule = parse_rule(doc)
        snapshot = Snapshot(
            [
                _deployment("db", labels={"tier": "db"}),
                _deployment("web", labels={"tier": "web"}),
                {**_deployment("legacy-db", labels={"tier": "db"}), "apiVersion": "extensions/v1beta1"},
            ]
        )
        assert [r.name for r in candidates(rule, snapshot)] == ["db"]

    def test_overlapping_selectors_yield_once(self) -> None:
        doc = _rule_doc("A")
        doc["detection"]["resources"] = ["Deployment", "apps/v1/Deployment"]
        rule = parse_rule(doc)
        assert len(candidates(rule, Snapshot([_deployment("web")]))) == 1


# ---------------------------------------------------------------------------
# Stuck rules through the scanner
# ---------------------------------------------------------------------------


class TestStuckRules:
    def _kustomization(self, minutes: int, reason: str = "BuildFailed") -> dict[str, Any]:
        since = (NOW - timedelta(minutes=minutes)).isoformat()
        return {
            "apiVersion": "kustomize.toolkit.fluxcd.io/v1",
            "kind": "Kustomization",
            "metadata": {"name": "apps", "namespace": "flux-system"},
            "spec": {"interval": "10m", "timeout": "5m", "prune": True},
            "status": {
                "conditions": [
                    {"type": "Ready", "status": "False", "reason": reason, "lastTransitionTime": since}
                ]
            },
        }

    def test_stuck_kustomization(self) -> None:
        scanner = Scanner(builtin_rules(), now=lambda: NOW)
        result = scanner.scan(Snapshot([self._kustomization(minutes=20)]))
        (finding,) = result.findings
        assert finding.rule_id == "CCVE-2025-0012"
        assert finding.message == "Kustomization flux-system/apps stuck: Ready=False (BuildFailed) for 20m"
        assert finding.remediation == "Check kustomization.yaml syntax; verify paths exist in source"

    def test_threshold_from_rule_set(self) -> None:
        snapshot = Snapshot([self._kustomization(minutes=20)])
        scanner = Scanner(builtin_rules(timedelta(hours=1)), now=lambda: NOW)
        assert scanner.scan(snapshot).findings == []
