"""structlog setup for kubescout.

kubescout is embedded in other programs, so nothing is configured at import
time. Hosts that want kubescout's JSON lines call ``setup_logging`` once;
otherwise events flow through whatever structlog configuration the host has.
"""

from __future__ import annotations

import logging
import sys
from typing import TextIO

import structlog

_NAMESPACE = "kubescout"


def setup_logging(level: str = "info", stream: TextIO | None = None) -> None:
    """Render every event as one JSON object per line on *stream* (stderr by default)."""
    log_level = logging.getLevelNamesMapping().get(level.upper(), logging.INFO)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True, key="ts"),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(sort_keys=True),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=stream or sys.stderr),
        cache_logger_on_first_use=True,
    )


def get_logger(component: str) -> structlog.stdlib.BoundLogger:
    """Logger whose events carry ``component="kubescout.<component>"``."""
    return structlog.get_logger(component=f"{_NAMESPACE}.{component}")  # type: ignore[return-value]


def bind_run(run_id: str, cluster: str = "") -> None:
    """Tag every event of the current analysis run (contextvars, so per thread of control)."""
    structlog.contextvars.bind_contextvars(run_id=run_id, cluster=cluster)


def unbind_run() -> None:
    structlog.contextvars.unbind_contextvars("run_id", "cluster")
