"""Relationship graph builder.

One pass over the snapshot: each record is handled independently (fanned
out over the worker pool) and the per-record partitions are merged in input
order, collapsing duplicate edges.
"""

from __future__ import annotations

import time
from collections.abc import Mapping
from dataclasses import dataclass, field

from kubescout.execution import CancellationToken, fan_out
from kubescout.graph.extraction import (
    REFERENCE_RULES,
    SELECTOR_RULES,
    ReferenceRule,
    SelectorRule,
    rules_by_source_kind,
)
from kubescout.graph.models import (
    DanglingReason,
    EdgeType,
    GraphResult,
    RelationshipEdge,
    SelectorDeclaration,
    UnresolvedReference,
)
from kubescout.models.analysis import AnalysisWarning, RunMeta
from kubescout.models.resources import ResourceKey, ResourceRecord
from kubescout.observability import metrics
from kubescout.observability.logging import get_logger
from kubescout.paths import evaluate, first
from kubescout.selectors import LabelSelector
from kubescout.snapshot import Snapshot

_logger = get_logger("graph")


@dataclass
class _Partition:
    edges: list[RelationshipEdge] = field(default_factory=list)
    unresolved: list[UnresolvedReference] = field(default_factory=list)
    selectors: list[SelectorDeclaration] = field(default_factory=list)
    warnings: list[AnalysisWarning] = field(default_factory=list)


class GraphBuilder:
    """Derives typed edges between the resources of one snapshot."""

    def __init__(
        self,
        reference_rules: tuple[ReferenceRule, ...] = REFERENCE_RULES,
        selector_rules: tuple[SelectorRule, ...] = SELECTOR_RULES,
        *,
        workers: int = 1,
    ) -> None:
        self._references = rules_by_source_kind(reference_rules)
        self._selectors: dict[str, list[SelectorRule]] = {}
        for rule in selector_rules:
            self._selectors.setdefault(rule.source_kind, []).append(rule)
        self._workers = workers

    def build(self, snapshot: Snapshot, token: CancellationToken | None = None) -> GraphResult:
        start = time.monotonic()
        records = snapshot.records
        outcome = fan_out(
            records,
            lambda record: self._extract(snapshot, record),
            token=token,
            workers=self._workers,
            component="graph",
        )

        edges: dict[tuple[ResourceKey, ResourceKey, EdgeType], RelationshipEdge] = {}
        unresolved: dict[tuple[ResourceKey, ResourceKey, EdgeType], UnresolvedReference] = {}
        warnings: list[AnalysisWarning] = []
        selectors: list[SelectorDeclaration] = []
        for partition in outcome.values():
            for edge in partition.edges:
                edges.setdefault(edge.identity, edge)
            for ref in partition.unresolved:
                unresolved.setdefault((ref.declared_by, ref.target, ref.edge_type), ref)
            selectors.extend(partition.selectors)
            warnings.extend(partition.warnings)

        duration = time.monotonic() - start
        result = GraphResult(
            edges=list(edges.values()),
            unresolved=list(unresolved.values()),
            selectors=selectors,
            meta=RunMeta(
                items_total=outcome.total,
                items_completed=outcome.completed,
                duration_ms=duration * 1000,
                partial=outcome.partial,
                warnings=warnings,
            ),
        )
        metrics.component_duration_seconds.labels(component="graph").observe(duration)
        if result.partial:
            metrics.partial_runs_total.labels(component="graph").inc()
        _logger.info(
            "graph_built",
            edges=len(result.edges),
            unresolved=len(result.unresolved),
            selectors=len(result.selectors),
            partial=result.partial,
            duration_ms=round(result.meta.duration_ms, 2),
        )
        return result

    # ------------------------------------------------------------------
    # Per-record extraction
    # ------------------------------------------------------------------

    def _extract(self, snapshot: Snapshot, record: ResourceRecord) -> _Partition:
        partition = _Partition()
        self._extract_owners(snapshot, record, partition)
        for rule in self._references.get(record.kind, ()):
            self._extract_references(snapshot, record, rule, partition)
        for selector_rule in self._selectors.get(record.kind, ()):
            self._extract_selector(snapshot, record, selector_rule, partition)
        return partition

    def _extract_owners(self, snapshot: Snapshot, record: ResourceRecord, partition: _Partition) -> None:
        for ref in record.owner_references:
            owner = (
                snapshot.get_by_uid(ref.uid)
                or snapshot.get(ResourceKey(ref.kind, record.namespace, ref.name))
                or snapshot.get(ResourceKey(ref.kind, "", ref.name))
            )
            if owner is not None:
                partition.edges.append(
                    RelationshipEdge(owner.key, record.key, EdgeType.OWNS, "metadata.ownerReferences")
                )
            else:
                partition.unresolved.append(
                    UnresolvedReference(
                        declared_by=record.key,
                        target=ResourceKey(ref.kind, record.namespace, ref.name),
                        edge_type=EdgeType.OWNS,
                        reason=DanglingReason.OWNER_NOT_FOUND,
                        source_field="metadata.ownerReferences",
                    )
                )

    def _extract_references(
        self,
        snapshot: Snapshot,
        record: ResourceRecord,
        rule: ReferenceRule,
        partition: _Partition,
    ) -> None:
        for value in evaluate(record.body, rule.path):
            optional = False
            target_kind = rule.target_kind
            if isinstance(value, Mapping):
                name = value.get(rule.name_field) if rule.name_field else None
                optional = value.get("optional") is True
                if rule.kind_field and value.get(rule.kind_field):
                    target_kind = str(value[rule.kind_field])
            else:
                name = value
            if not isinstance(name, str) or not name:
                continue

            target = ResourceKey(target_kind, record.namespace, name)
            if target in snapshot:
                partition.edges.append(RelationshipEdge(record.key, target, rule.edge_type, rule.path))
            elif not optional and name not in rule.implicit:
                partition.unresolved.append(
                    UnresolvedReference(
                        declared_by=record.key,
                        target=target,
                        edge_type=rule.edge_type,
                        reason=rule.reason_for(target_kind),
                        source_field=rule.path,
                    )
                )

    def _extract_selector(
        self,
        snapshot: Snapshot,
        record: ResourceRecord,
        rule: SelectorRule,
        partition: _Partition,
    ) -> None:
        if record.kind == "Service" and first(record.body, "spec.type") == "ExternalName":
            return
        raw = first(record.body, rule.path)
        if raw is None:
            return
        try:
            selector = LabelSelector.from_spec(raw) if rule.structured else LabelSelector.from_map(raw)
        except ValueError as exc:
            partition.warnings.append(
                AnalysisWarning(component="graph", code="invalid_selector", message=str(exc), subject=str(record.key))
            )
            _logger.warning("graph_invalid_selector", resource=str(record.key), error=str(exc))
            return
        if selector.is_empty and not rule.empty_selects_all:
            return

        namespace = record.namespace or None
        matched = snapshot.select(rule.target_kind, selector, namespace=namespace)
        for target in matched:
            partition.edges.append(RelationshipEdge(record.key, target.key, EdgeType.SELECTS, rule.path))
        partition.selectors.append(
            SelectorDeclaration(
                source=record.key,
                selector=selector,
                target_kind=rule.target_kind,
                matched=len(matched),
                source_field=rule.path,
                headless=record.kind == "Service" and first(record.body, "spec.clusterIP") == "None",
            )
        )
