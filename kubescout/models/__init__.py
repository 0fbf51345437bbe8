"""Core data structures for kubescout."""

from kubescout.models.analysis import (
    AnalysisWarning,
    DriftReport,
    OwnershipReport,
    QueryEvaluation,
    RunMeta,
    ScanResult,
)
from kubescout.models.config import KubeScoutConfig
from kubescout.models.drift import ChangeKind, DriftChange, DriftResult, DriftStatus
from kubescout.models.findings import Category, Finding, Severity
from kubescout.models.ownership import OwnershipResult, OwnerType
from kubescout.models.resources import OwnerReference, ResourceKey, ResourceRecord

__all__ = [
    "AnalysisWarning",
    "Category",
    "ChangeKind",
    "DriftChange",
    "DriftReport",
    "DriftResult",
    "DriftStatus",
    "Finding",
    "KubeScoutConfig",
    "OwnerReference",
    "OwnerType",
    "OwnershipReport",
    "OwnershipResult",
    "QueryEvaluation",
    "ResourceKey",
    "ResourceRecord",
    "RunMeta",
    "ScanResult",
    "Severity",
]
