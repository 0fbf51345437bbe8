"""Prometheus metrics for the analysis engine.

All metrics live in the default registry and are module-level singletons;
importing this module twice never re-registers them.
"""

from __future__ import annotations

from prometheus_client import Counter, Histogram

findings_total = Counter(
    "kubescout_findings_total",
    "Findings emitted by the rule-based scanner",
    ["category", "severity"],
)

rules_skipped_total = Counter(
    "kubescout_rules_skipped_total",
    "Rule definitions skipped because they failed structural validation",
)

dangling_references_total = Counter(
    "kubescout_dangling_references_total",
    "Dangling references reported, by reason",
    ["reason"],
)

drift_results_total = Counter(
    "kubescout_drift_results_total",
    "Drift detector outcomes, by status",
    ["status"],
)

partial_runs_total = Counter(
    "kubescout_partial_runs_total",
    "Invocations that returned partial results after cancellation or timeout",
    ["component"],
)

component_duration_seconds = Histogram(
    "kubescout_component_duration_seconds",
    "Wall-clock duration of one component invocation",
    ["component"],
    buckets=(0.005, 0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0),
)
