"""Configuration loading from ``KUBESCOUT_*`` environment variables.

Integers are clamped into range rather than rejected; malformed numbers,
durations and log levels raise ValueError naming the variable.
"""

from __future__ import annotations

import os
import re
from datetime import timedelta

from kubescout.models.config import (
    DriftConfig,
    EngineConfig,
    KubeScoutConfig,
    LogConfig,
    ScannerConfig,
)

_PREFIX = "KUBESCOUT_"
_DURATION_RE = re.compile(r"^([0-9]+)(s|m|h|d)$")
_DURATION_UNITS = {"s": "seconds", "m": "minutes", "h": "hours", "d": "days"}
_LOG_LEVELS = ("debug", "info", "warning", "error")


def _env(key: str, default: str = "") -> str:
    return os.environ.get(_PREFIX + key, default).strip()


def _env_bool(key: str, default: bool) -> bool:
    raw = _env(key)
    if not raw:
        return default
    return raw.lower() in ("true", "1", "yes", "on")


def _env_number(key: str, default: float, cast: type[int] | type[float]) -> float:
    raw = _env(key)
    if not raw:
        return default
    try:
        return cast(raw)
    except ValueError:
        raise ValueError(f"{_PREFIX}{key} must be a number, got {raw!r}") from None


def _env_workers(default: int, low: int = 1, high: int = 64) -> int:
    return min(max(int(_env_number("WORKERS", default, int)), low), high)


def _env_duration(key: str, default: str) -> str:
    value = _env(key, default)
    parse_duration(value)
    return value


def _env_log_level(default: str = "info") -> str:
    value = _env("LOG_LEVEL", default).lower()
    if value not in _LOG_LEVELS:
        raise ValueError(f"Invalid log level: {value}. Must be one of {', '.join(_LOG_LEVELS)}")
    return value


def parse_duration(value: str) -> timedelta:
    """Parse a duration such as ``30s``, ``5m``, ``2h`` or ``1d``."""
    match = _DURATION_RE.match(value.strip())
    if not match:
        raise ValueError(f"Invalid duration format: {value!r}")
    amount, unit = match.groups()
    return timedelta(**{_DURATION_UNITS[unit]: int(amount)})


def load_config() -> KubeScoutConfig:
    """Build a KubeScoutConfig from the process environment."""
    return KubeScoutConfig(
        cluster_name=_env("CLUSTER_NAME"),
        engine=EngineConfig(
            workers=_env_workers(8),
            timeout_seconds=max(_env_number("TIMEOUT_SECONDS", 0.0, float), 0.0),
        ),
        scanner=ScannerConfig(stuck_threshold=_env_duration("STUCK_THRESHOLD", "5m")),
        drift=DriftConfig(
            annotation=_env("DRIFT_ANNOTATION") or "kubectl.kubernetes.io/last-applied-configuration",
            report_extra=_env_bool("DRIFT_REPORT_EXTRA", True),
        ),
        log=LogConfig(level=_env_log_level()),
    )
