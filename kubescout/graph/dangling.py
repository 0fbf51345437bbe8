"""Dangling reference finder.

Consumes a GraphResult: unresolved references, selectors that matched
nothing, and PersistentVolumeClaims no workload mounts.
"""

from __future__ import annotations

import time

from kubescout.execution import CancellationToken
from kubescout.graph.extraction import SELECTOR_RULES
from kubescout.graph.models import (
    DanglingReason,
    DanglingReference,
    DanglingReport,
    EdgeType,
    GraphResult,
    UnresolvedReference,
)
from kubescout.models.analysis import RunMeta
from kubescout.models.resources import ResourceKey
from kubescout.observability import metrics
from kubescout.observability.logging import get_logger
from kubescout.snapshot import Snapshot

_logger = get_logger("graph.dangling")

_SUGGESTIONS: dict[DanglingReason, str] = {
    DanglingReason.TARGET_NOT_FOUND: "Create {kind}/{name} or delete this {source_kind}",
    DanglingReason.SERVICE_NOT_FOUND: "Create Service/{name} or update {source_kind} backend",
    DanglingReason.SECRET_NOT_FOUND: "Create Secret/{name} in namespace {namespace} or remove the reference",
    DanglingReason.CONFIGMAP_NOT_FOUND: "Create ConfigMap/{name} in namespace {namespace} or remove the reference",
    DanglingReason.CLAIM_NOT_FOUND: "Create PersistentVolumeClaim/{name} or remove the volume",
    DanglingReason.SERVICEACCOUNT_NOT_FOUND: (
        "Create ServiceAccount/{name} or point serviceAccountName at an existing account"
    ),
    DanglingReason.OWNER_NOT_FOUND: (
        "Owner {kind}/{name} is gone; delete this orphan or remove the stale ownerReference"
    ),
    DanglingReason.NOT_MOUNTED: "Delete if no longer needed (may contain data!)",
}


def suggestion_for(reason: DanglingReason, target: ResourceKey, source: ResourceKey) -> str:
    template = _SUGGESTIONS.get(reason, "")
    return template.format(
        kind=target.kind,
        name=target.name,
        namespace=target.namespace or "(cluster)",
        source_kind=source.kind,
    )


class DanglingFinder:
    """Reports references that cannot be resolved within the snapshot."""

    def find(
        self,
        graph: GraphResult,
        snapshot: Snapshot,
        token: CancellationToken | None = None,
    ) -> DanglingReport:
        start = time.monotonic()
        token = token or CancellationToken()
        report = DanglingReport(meta=RunMeta(items_total=3, partial=graph.partial))
        phases = (
            lambda: [self._from_unresolved(ref) for ref in graph.unresolved],
            lambda: self._empty_selectors(graph),
            lambda: self._unmounted_claims(graph, snapshot),
        )
        for phase in phases:
            if token.cancelled:
                report.meta.partial = True
                break
            report.references.extend(phase())
            report.meta.items_completed += 1

        duration = time.monotonic() - start
        report.meta.duration_ms = duration * 1000
        metrics.component_duration_seconds.labels(component="dangling").observe(duration)
        if report.partial:
            metrics.partial_runs_total.labels(component="dangling").inc()
        for ref in report.references:
            metrics.dangling_references_total.labels(reason=ref.reason.value).inc()
        _logger.info(
            "dangling_found",
            count=len(report.references),
            partial=report.partial,
            duration_ms=round(report.meta.duration_ms, 2),
        )
        return report

    def _from_unresolved(self, ref: UnresolvedReference) -> DanglingReference:
        return DanglingReference(
            source=ref.declared_by,
            target_description=str(ref.target),
            reason=ref.reason,
            suggestion=suggestion_for(ref.reason, ref.target, ref.declared_by),
            edge_type=ref.edge_type,
        )

    def _empty_selectors(self, graph: GraphResult) -> list[DanglingReference]:
        found: list[DanglingReference] = []
        for declaration in graph.selectors:
            if declaration.matched or declaration.headless:
                continue
            found.append(
                DanglingReference(
                    source=declaration.source,
                    target_description=f"{declaration.target_kind} (selector: {declaration.selector})",
                    reason=DanglingReason.NO_MATCHING_PODS,
                    suggestion=_selector_suggestion(declaration.source.kind),
                    edge_type=EdgeType.SELECTS,
                )
            )
        return found

    def _unmounted_claims(self, graph: GraphResult, snapshot: Snapshot) -> list[DanglingReference]:
        # A partial graph may be missing the mounts edge.
        if graph.partial:
            return []
        found: list[DanglingReference] = []
        for claim in snapshot.of_kind("PersistentVolumeClaim"):
            if graph.inbound(claim.key, EdgeType.MOUNTS):
                continue
            found.append(
                DanglingReference(
                    source=claim.key,
                    target_description="Pod (none)",
                    reason=DanglingReason.NOT_MOUNTED,
                    suggestion=_SUGGESTIONS[DanglingReason.NOT_MOUNTED],
                    edge_type=EdgeType.MOUNTS,
                )
            )
        return found


_SELECTOR_SUGGESTIONS = {rule.source_kind: rule.suggestion for rule in SELECTOR_RULES if rule.suggestion}


def _selector_suggestion(source_kind: str) -> str:
    return _SELECTOR_SUGGESTIONS.get(source_kind) or "Check the selector labels against the pods in this namespace"
