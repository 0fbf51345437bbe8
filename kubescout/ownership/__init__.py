"""Ownership resolution: who manages each resource."""

from kubescout.ownership.detectors import DEFAULT_DETECTORS, Detector
from kubescout.ownership.resolver import OwnershipResolver

__all__ = ["DEFAULT_DETECTORS", "Detector", "OwnershipResolver"]
