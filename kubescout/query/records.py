"""Flattened per-resource rows that queries filter over."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from kubescout.models.analysis import DriftReport, OwnershipReport
from kubescout.models.ownership import OwnerType
from kubescout.models.resources import ResourceRecord
from kubescout.paths import first
from kubescout.snapshot import Snapshot

# Lower-cased query field name -> canonical field name.
FIELDS: dict[str, str] = {
    "kind": "kind",
    "namespace": "namespace",
    "name": "name",
    "owner": "owner",
    "status": "status",
    "cluster": "cluster",
    "clustername": "cluster",
    "apiversion": "apiVersion",
    "drift": "drift",
}

_READY_PHASES = frozenset({"Running", "Succeeded", "Active", "Bound", "Available"})
_FAILED_PHASES = frozenset({"Failed", "Lost"})


@dataclass(frozen=True)
class Record:
    """One resource as seen by the query language."""

    kind: str = ""
    namespace: str = ""
    name: str = ""
    owner: str = ""
    status: str = ""
    cluster: str = ""
    api_version: str = ""
    drift: str | None = None
    labels: dict[str, str] = field(default_factory=dict)

    def get_field(self, name: str, label_key: str | None = None) -> str | None:
        """Value of a canonical field; ``None`` when the field is absent."""
        if name == "labels":
            return self.labels.get(label_key or "")
        if name == "apiVersion":
            return self.api_version
        if name == "drift":
            return self.drift
        value: str = getattr(self, name)
        return value


def derive_status(record: ResourceRecord) -> str:
    """Coarse health from the Ready condition, the phase, or replica counts."""
    status = record.body.get("status")
    if not isinstance(status, dict):
        return "Unknown"

    ready = first(status, 'conditions[?(@.type=="Ready")].status')
    if ready is not None:
        if str(ready) == "True":
            return "Ready"
        if str(ready) == "False":
            return "NotReady"
        return "Unknown"

    phase = status.get("phase")
    if isinstance(phase, str) and phase:
        if phase in _READY_PHASES:
            return "Ready"
        if phase in _FAILED_PHASES:
            return "Failed"
        if phase == "Pending":
            return "Pending"
        return "Unknown"

    if "replicas" in status or "readyReplicas" in status:
        desired = _int(first(record.body, "spec.replicas"), default=1)
        ready_count = _int(status.get("readyReplicas"), default=0)
        return "Ready" if ready_count >= desired else "NotReady"

    return "Unknown"


def flatten(
    snapshot: Snapshot,
    ownership: OwnershipReport,
    drift: DriftReport | None = None,
    cluster: str = "",
) -> list[Record]:
    """One Record per snapshot resource, in snapshot order."""
    rows: list[Record] = []
    for record in snapshot:
        owned = ownership.get(record.key)
        drift_result = drift.results.get(record.key) if drift is not None else None
        rows.append(
            Record(
                kind=record.kind,
                namespace=record.namespace,
                name=record.name,
                owner=(owned.owner_type if owned is not None else OwnerType.UNKNOWN).value,
                status=derive_status(record),
                cluster=cluster,
                api_version=record.api_version,
                drift=drift_result.status.value if drift_result is not None else None,
                labels=dict(record.labels),
            )
        )
    return rows


def _int(value: Any, default: int) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        return default
    return value
