"""Resource record and identity data structures."""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True, order=True)
class ResourceKey:
    """Identity of a resource inside one snapshot.

    ``namespace`` is empty for cluster-scoped resources.
    """

    kind: str
    namespace: str
    name: str

    def __str__(self) -> str:
        if self.namespace:
            return f"{self.kind}/{self.namespace}/{self.name}"
        return f"{self.kind}/{self.name}"

    @classmethod
    def parse(cls, text: str) -> ResourceKey:
        """Parse ``Kind/namespace/name`` or ``Kind/name``."""
        parts = text.split("/")
        if len(parts) == 3 and all(parts):
            return cls(parts[0], parts[1], parts[2])
        if len(parts) == 2 and all(parts):
            return cls(parts[0], "", parts[1])
        raise ValueError(f"Invalid resource key: {text!r}")


@dataclass(frozen=True)
class OwnerReference:
    """A single ``metadata.ownerReferences`` entry."""

    kind: str
    name: str
    uid: str = ""
    api_version: str = ""
    controller: bool = False


@dataclass(frozen=True)
class ResourceRecord:
    """Normalized, immutable representation of one cluster object.

    ``body`` mirrors the full serialized object. It is deep-copied on
    construction and must never be mutated by any component.
    """

    kind: str
    api_version: str
    namespace: str
    name: str
    labels: dict[str, str] = field(default_factory=dict)
    annotations: dict[str, str] = field(default_factory=dict)
    owner_references: tuple[OwnerReference, ...] = ()
    uid: str = ""
    body: dict[str, Any] = field(default_factory=dict, repr=False, compare=False)

    @property
    def key(self) -> ResourceKey:
        return ResourceKey(self.kind, self.namespace, self.name)

    @property
    def is_cluster_scoped(self) -> bool:
        return not self.namespace

    @classmethod
    def from_object(cls, obj: dict[str, Any]) -> ResourceRecord:
        """Build a record from a serialized Kubernetes object."""
        body = copy.deepcopy(obj) if isinstance(obj, dict) else {}
        metadata = body.get("metadata")
        if not isinstance(metadata, dict):
            metadata = {}

        owners: list[OwnerReference] = []
        raw_owners = metadata.get("ownerReferences")
        if isinstance(raw_owners, list):
            for ref in raw_owners:
                if not isinstance(ref, dict):
                    continue
                owners.append(
                    OwnerReference(
                        kind=str(ref.get("kind", "")),
                        name=str(ref.get("name", "")),
                        uid=str(ref.get("uid", "")),
                        api_version=str(ref.get("apiVersion", "")),
                        controller=bool(ref.get("controller", False)),
                    )
                )

        return cls(
            kind=str(body.get("kind", "")),
            api_version=str(body.get("apiVersion", "")),
            namespace=str(metadata.get("namespace", "") or ""),
            name=str(metadata.get("name", "") or ""),
            labels=_string_map(metadata.get("labels")),
            annotations=_string_map(metadata.get("annotations")),
            owner_references=tuple(owners),
            uid=str(metadata.get("uid", "") or ""),
            body=body,
        )


def _string_map(value: object) -> dict[str, str]:
    if not isinstance(value, dict):
        return {}
    return {str(k): "" if v is None else str(v) for k, v in value.items()}
