"""kubescout: deterministic configuration analysis for Kubernetes snapshots."""

__version__ = "0.3.0"
