"""Relationship graph and dangling reference detection."""

from kubescout.graph.builder import GraphBuilder
from kubescout.graph.dangling import DanglingFinder
from kubescout.graph.models import (
    DanglingReason,
    DanglingReference,
    DanglingReport,
    EdgeType,
    GraphResult,
    RelationshipEdge,
    SelectorDeclaration,
    UnresolvedReference,
)

__all__ = [
    "DanglingFinder",
    "DanglingReason",
    "DanglingReference",
    "DanglingReport",
    "EdgeType",
    "GraphBuilder",
    "GraphResult",
    "RelationshipEdge",
    "SelectorDeclaration",
    "UnresolvedReference",
]
