"""Configuration data structures."""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass
class EngineConfig:
    """Worker pool and cancellation configuration."""

    workers: int = 8
    timeout_seconds: float = 0.0  # 0 disables the per-invocation deadline


@dataclass
class ScannerConfig:
    """Rule-based scanner configuration."""

    stuck_threshold: str = "5m"


@dataclass
class DriftConfig:
    """Drift detector configuration."""

    annotation: str = "kubectl.kubernetes.io/last-applied-configuration"
    report_extra: bool = True


@dataclass
class LogConfig:
    """Logging configuration."""

    level: str = "info"


@dataclass
class KubeScoutConfig:
    """Top-level kubescout configuration."""

    cluster_name: str = ""
    engine: EngineConfig = field(default_factory=EngineConfig)
    scanner: ScannerConfig = field(default_factory=ScannerConfig)
    drift: DriftConfig = field(default_factory=DriftConfig)
    log: LogConfig = field(default_factory=LogConfig)
