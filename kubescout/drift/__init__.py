"""Drift detection between live and desired state."""

from kubescout.drift.detector import LAST_APPLIED_ANNOTATION, DriftDetector, values_equal

__all__ = ["LAST_APPLIED_ANNOTATION", "DriftDetector", "values_equal"]
