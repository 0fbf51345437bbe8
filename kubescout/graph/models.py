"""Data structures for the resource relationship graph."""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass, field
from enum import StrEnum

from kubescout.models.analysis import AnalysisWarning, RunMeta
from kubescout.models.resources import ResourceKey
from kubescout.selectors import LabelSelector


class EdgeType(StrEnum):
    """Types of relationships between Kubernetes resources."""

    OWNS = "owns"
    SELECTS = "selects"
    MOUNTS = "mounts"
    REFERENCES = "references"
    SCALE_TARGET = "scale-target"
    BACKEND = "backend"
    TLS_SECRET = "tls-secret"
    IMAGE_PULL_SECRET = "image-pull-secret"


class DanglingReason(StrEnum):
    """Closed set of reasons a reference fails to resolve."""

    TARGET_NOT_FOUND = "target not found"
    SERVICE_NOT_FOUND = "service not found"
    SECRET_NOT_FOUND = "secret not found"
    CONFIGMAP_NOT_FOUND = "configmap not found"
    CLAIM_NOT_FOUND = "claim not found"
    SERVICEACCOUNT_NOT_FOUND = "serviceaccount not found"
    OWNER_NOT_FOUND = "owner not found"
    NO_MATCHING_PODS = "no matching pods"
    NOT_MOUNTED = "not mounted by any pod"


@dataclass(frozen=True)
class RelationshipEdge:
    """A typed, directed edge. Identity is (source, target, edge_type)."""

    source: ResourceKey
    target: ResourceKey
    edge_type: EdgeType
    source_field: str = field(default="", compare=False)  # path that declared the edge

    @property
    def identity(self) -> tuple[ResourceKey, ResourceKey, EdgeType]:
        return (self.source, self.target, self.edge_type)


@dataclass(frozen=True)
class UnresolvedReference:
    """A declared reference whose target is not in the snapshot.

    ``declared_by`` is the resource carrying the reference; for ``owns`` this
    is the owned resource and ``target`` the missing owner.
    """

    declared_by: ResourceKey
    target: ResourceKey
    edge_type: EdgeType
    reason: DanglingReason
    source_field: str = ""


@dataclass(frozen=True)
class SelectorDeclaration:
    """One label selector and how many resources it matched.

    Headless Services (``clusterIP: None``) still select pods for DNS records
    but are never reported for matching none.
    """

    source: ResourceKey
    selector: LabelSelector
    target_kind: str
    matched: int
    source_field: str = ""
    headless: bool = False


@dataclass
class GraphResult:
    """Deduplicated edges plus everything the dangling finder needs."""

    edges: list[RelationshipEdge] = field(default_factory=list)
    unresolved: list[UnresolvedReference] = field(default_factory=list)
    selectors: list[SelectorDeclaration] = field(default_factory=list)
    meta: RunMeta = field(default_factory=RunMeta)
    _outbound: dict[ResourceKey, list[RelationshipEdge]] = field(init=False, repr=False)
    _inbound: dict[ResourceKey, list[RelationshipEdge]] = field(init=False, repr=False)

    def __post_init__(self) -> None:
        self._outbound = defaultdict(list)
        self._inbound = defaultdict(list)
        for edge in self.edges:
            self._outbound[edge.source].append(edge)
            self._inbound[edge.target].append(edge)

    @property
    def partial(self) -> bool:
        return self.meta.partial

    @property
    def warnings(self) -> list[AnalysisWarning]:
        return self.meta.warnings

    def unresolved_edges(self) -> list[UnresolvedReference]:
        return list(self.unresolved)

    def outbound(self, key: ResourceKey, edge_type: EdgeType | None = None) -> list[RelationshipEdge]:
        edges = self._outbound.get(key, [])
        return [e for e in edges if edge_type is None or e.edge_type == edge_type]

    def inbound(self, key: ResourceKey, edge_type: EdgeType | None = None) -> list[RelationshipEdge]:
        edges = self._inbound.get(key, [])
        return [e for e in edges if edge_type is None or e.edge_type == edge_type]

    def count_by_type(self) -> dict[EdgeType, int]:
        counts: dict[EdgeType, int] = {}
        for edge in self.edges:
            counts[edge.edge_type] = counts.get(edge.edge_type, 0) + 1
        return counts


@dataclass(frozen=True)
class DanglingReference:
    source: ResourceKey
    target_description: str
    reason: DanglingReason
    suggestion: str
    edge_type: EdgeType | None = None


@dataclass
class DanglingReport:
    references: list[DanglingReference] = field(default_factory=list)
    meta: RunMeta = field(default_factory=RunMeta)

    @property
    def partial(self) -> bool:
        return self.meta.partial

    def by_reason(self, reason: DanglingReason) -> list[DanglingReference]:
        return [r for r in self.references if r.reason == reason]
