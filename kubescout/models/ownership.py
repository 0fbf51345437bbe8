"""Ownership data structures."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum


class OwnerType(StrEnum):
    """The mechanism responsible for a resource's desired state."""

    CONFIGHUB = "ConfigHub"
    FLUX = "Flux"
    ARGOCD = "ArgoCD"
    HELM = "Helm"
    TERRAFORM = "Terraform"
    NATIVE = "Native"
    UNKNOWN = "Unknown"


@dataclass(frozen=True)
class OwnershipResult:
    """Exactly one per ResourceRecord.

    ``ref`` is a human-readable source identifier (e.g. ``kustomization/flux-system/apps``).
    ``detail`` holds sub-type, name, namespace and the marker that matched.
    """

    owner_type: OwnerType
    ref: str | None = None
    detail: dict[str, str] = field(default_factory=dict)


UNKNOWN_OWNERSHIP = OwnershipResult(owner_type=OwnerType.UNKNOWN)
