"""Analysis facade for kubescout.

Wires every component in dependency order against one snapshot:
ownership → graph → dangling → drift → scan → flattened query records.

One CancellationToken is shared by the whole run. Once it fires, each
remaining component returns immediately with an empty, partial result, so
the caller always gets everything computed up to that point.
"""

from __future__ import annotations

import time
import uuid
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from typing import Any

from kubescout.config import load_config, parse_duration
from kubescout.drift import DriftDetector
from kubescout.execution import CancellationToken
from kubescout.graph import DanglingFinder, DanglingReport, GraphBuilder, GraphResult
from kubescout.models.analysis import (
    AnalysisWarning,
    DriftReport,
    OwnershipReport,
    QueryEvaluation,
    ScanResult,
)
from kubescout.models.config import KubeScoutConfig
from kubescout.models.resources import ResourceRecord
from kubescout.observability.logging import bind_run, get_logger, setup_logging, unbind_run
from kubescout.ownership import OwnershipResolver
from kubescout.patterns import Rule, Scanner, builtin_rules, parse_rules
from kubescout.query import Query, Record, SavedQueryStore, flatten, parse_query
from kubescout.snapshot import Snapshot

_logger = get_logger("engine")


@dataclass
class AnalysisResult:
    """Everything one analysis run produced.

    ``partial`` is set when any component stopped early.
    """

    run_id: str
    cluster: str
    snapshot: Snapshot
    ownership: OwnershipReport
    graph: GraphResult
    dangling: DanglingReport
    drift: DriftReport
    scan: ScanResult
    records: list[Record] = field(default_factory=list)
    saved_queries: SavedQueryStore = field(default_factory=SavedQueryStore)
    timed_out: bool = False

    @property
    def partial(self) -> bool:
        return any(
            part.meta.partial for part in (self.ownership, self.graph, self.dangling, self.drift, self.scan)
        )

    @property
    def warnings(self) -> list[AnalysisWarning]:
        collected = list(self.snapshot.warnings)
        for part in (self.ownership, self.graph, self.dangling, self.drift, self.scan):
            collected.extend(part.meta.warnings)
        return collected

    @property
    def succeeded_with_warnings(self) -> bool:
        return bool(self.warnings)

    def query(self, text: str) -> Query:
        """Parse *text* against this run's saved queries.

        Raises:
            UnparseableQueryError: when the text violates the grammar.
        """
        return parse_query(text, self.saved_queries)

    def select(self, text: str) -> list[Record]:
        return self.query(text).filter(self.records)

    def evaluate_query(
        self,
        text: str,
        token: CancellationToken | None = None,
        *,
        workers: int = 1,
    ) -> QueryEvaluation:
        return self.query(text).evaluate(self.records, token, workers=workers)


class AnalysisEngine:
    """Owns the configured components; safe to reuse across snapshots.

    Rules, detectors and saved queries are read-only after construction, so
    one engine may serve concurrent ``analyze`` calls.
    """

    def __init__(
        self,
        config: KubeScoutConfig | None = None,
        *,
        rule_documents: Iterable[Any] = (),
        include_builtin_rules: bool = True,
        saved_queries: SavedQueryStore | None = None,
    ) -> None:
        self.config = config or KubeScoutConfig()
        workers = self.config.engine.workers
        threshold = parse_duration(self.config.scanner.stuck_threshold)

        user_rules, rule_warnings = parse_rules(rule_documents, stuck_threshold=threshold)
        rules = _merge_rules(builtin_rules(threshold) if include_builtin_rules else (), user_rules)

        self.resolver = OwnershipResolver(workers=workers)
        self.graph_builder = GraphBuilder(workers=workers)
        self.dangling_finder = DanglingFinder()
        self.drift_detector = DriftDetector(
            self.config.drift.annotation,
            report_extra=self.config.drift.report_extra,
            workers=workers,
        )
        self.scanner = Scanner(rules, workers=workers, parse_warnings=rule_warnings)
        self.saved_queries = saved_queries or SavedQueryStore()

    @classmethod
    def from_env(cls, **kwargs: Any) -> AnalysisEngine:
        """Build an engine from ``KUBESCOUT_*`` variables and configure logging."""
        config = load_config()
        setup_logging(config.log.level)
        return cls(config, **kwargs)

    def new_token(self) -> CancellationToken:
        """A token carrying the configured per-invocation deadline, if any."""
        timeout = self.config.engine.timeout_seconds
        return CancellationToken(timeout=timeout if timeout > 0 else None)

    def analyze(
        self,
        resources: Snapshot | Iterable[ResourceRecord | dict[str, Any]],
        token: CancellationToken | None = None,
    ) -> AnalysisResult:
        """Run every component once against one snapshot."""
        snapshot = resources if isinstance(resources, Snapshot) else Snapshot(resources)
        token = token or self.new_token()
        run_id = uuid.uuid4().hex[:12]
        cluster = self.config.cluster_name

        bind_run(run_id, cluster)
        start = time.monotonic()
        try:
            _logger.info("analysis_started", resources=len(snapshot), rules=len(self.scanner.rules))
            ownership = self.resolver.resolve_all(snapshot, token)
            graph = self.graph_builder.build(snapshot, token)
            dangling = self.dangling_finder.find(graph, snapshot, token)
            drift = self.drift_detector.detect_all(snapshot, token)
            scan = self.scanner.scan(snapshot, token)

            result = AnalysisResult(
                run_id=run_id,
                cluster=cluster,
                snapshot=snapshot,
                ownership=ownership,
                graph=graph,
                dangling=dangling,
                drift=drift,
                scan=scan,
                records=flatten(snapshot, ownership, drift, cluster),
                saved_queries=self.saved_queries,
                timed_out=token.timed_out,
            )
            _logger.info(
                "analysis_complete",
                findings=len(scan.findings),
                edges=len(graph.edges),
                dangling=len(dangling.references),
                drifted=len(drift.drifted()),
                warnings=len(result.warnings),
                partial=result.partial,
                duration_ms=round((time.monotonic() - start) * 1000, 2),
            )
            return result
        finally:
            unbind_run()


def _merge_rules(builtins: Sequence[Rule], user_rules: Sequence[Rule]) -> list[Rule]:
    """User rules replace built-ins with the same id."""
    overridden = {rule.id for rule in user_rules}
    return [rule for rule in builtins if rule.id not in overridden] + list(user_rules)
