"""Rule (pattern) definitions and their structural validation.

A rule document looks like::

    id: KS-CONFIG-001
    name: Redis without maxmemory
    version: "1"
    severity: warning
    category: CONFIG
    description: Redis runs without a memory ceiling
    detection:
      resources:
        - apps/v1/Deployment
        - {kind: StatefulSet, labelSelector: {matchLabels: {app: redis}}}
      conditions:
        - {path: 'spec.template.spec.containers[*].env[?(@.name=="MAXMEMORY")]', operator: not_exists}
        - {path: 'spec.template.spec.containers[*].args[?(@=="--maxmemory")]', operator: not_exists}
    remediation: Set MAXMEMORY or pass --maxmemory
    references: [https://redis.io/docs/latest/develop/reference/eviction/]
    tags: [redis, memory]

Rules are data: one generic evaluator runs every rule, there is no
per-rule code.
"""

from __future__ import annotations

import string
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any

from kubescout.config import parse_duration
from kubescout.models.analysis import AnalysisWarning
from kubescout.models.findings import Category, Severity
from kubescout.models.resources import ResourceRecord
from kubescout.observability import metrics
from kubescout.observability.logging import get_logger
from kubescout.paths import Operator, ParsedPath, PathSyntaxError, apply_operator, evaluate, parse_path
from kubescout.paths.operators import as_number, compile_pattern
from kubescout.selectors import LabelSelector

_logger = get_logger("patterns.schema")

MESSAGE_FIELDS = frozenset({"kind", "namespace", "name", "rule", "key"})

DEFAULT_STUCK_THRESHOLD = timedelta(minutes=5)


class MalformedRuleError(Exception):
    """Raised when a rule document violates the rule schema."""

    def __init__(self, rule_ref: str, violation: str) -> None:
        super().__init__(f"rule {rule_ref}: {violation}")
        self.rule_ref = rule_ref
        self.violation = violation


@dataclass(frozen=True)
class ResourceSelector:
    """Candidate filter: kind, optional apiVersion (or bare group), optional labels."""

    kind: str
    api_version: str | None = None
    label_selector: LabelSelector = field(default_factory=LabelSelector)

    def matches_labels(self, record: ResourceRecord) -> bool:
        return self.label_selector.matches(record.labels)


@dataclass(frozen=True)
class Condition:
    path: ParsedPath
    operator: Operator
    value: Any = None

    def holds(self, body: Any) -> bool:
        return apply_operator(self.operator, evaluate(body, self.path), self.value)


@dataclass(frozen=True)
class StuckCheck:
    """A status value that is not healthy and has not changed for ``threshold``.

    ``status_path`` yields the current value; ``since_path`` the timestamp it
    took that value. Exactly one of ``success`` (healthy values) or
    ``failing`` (unhealthy values) is set.
    """

    label: str
    status_path: ParsedPath
    since_path: ParsedPath
    threshold: timedelta
    success: frozenset[str] = frozenset()
    failing: frozenset[str] = frozenset()
    reason_path: ParsedPath | None = None
    message_path: ParsedPath | None = None
    remediation_by_reason: Mapping[str, str] = field(default_factory=dict)

    def is_unhealthy(self, value: str) -> bool:
        if self.failing:
            return value in self.failing
        return value not in self.success


@dataclass(frozen=True)
class Rule:
    id: str
    name: str
    severity: Severity
    category: Category
    resources: tuple[ResourceSelector, ...]
    conditions: tuple[Condition, ...] = ()
    stuck: StuckCheck | None = None
    version: str = ""
    description: str = ""
    remediation: str = ""
    references: tuple[str, ...] = ()
    tags: tuple[str, ...] = ()
    message: str = ""

    def render_message(self, record: ResourceRecord) -> str:
        if not self.message:
            return f"{self.name}: {record.key}"
        return self.message.format(
            kind=record.kind,
            namespace=record.namespace,
            name=record.name,
            rule=self.id,
            key=str(record.key),
        )


# ----------------------------------------------------------------------
# Parsing
# ----------------------------------------------------------------------


def parse_rules(
    documents: Iterable[Any],
    *,
    stuck_threshold: timedelta = DEFAULT_STUCK_THRESHOLD,
) -> tuple[list[Rule], list[AnalysisWarning]]:
    """Validate a batch of rule documents.

    Invalid documents and duplicate ids are skipped, each producing one
    ``malformed_rule`` warning. The batch is never rejected as a whole.
    *stuck_threshold* applies to stuck checks that do not set their own.
    """
    rules: list[Rule] = []
    warnings: list[AnalysisWarning] = []
    seen: set[str] = set()
    for index, document in enumerate(documents):
        try:
            rule = parse_rule(document, index, stuck_threshold=stuck_threshold)
            if rule.id in seen:
                raise MalformedRuleError(rule.id, "duplicate rule id")
        except MalformedRuleError as exc:
            warnings.append(
                AnalysisWarning(
                    component="patterns",
                    code="malformed_rule",
                    message=exc.violation,
                    subject=exc.rule_ref,
                )
            )
            metrics.rules_skipped_total.inc()
            _logger.warning("rule_skipped_malformed", rule=exc.rule_ref, violation=exc.violation)
            continue
        seen.add(rule.id)
        rules.append(rule)
    _logger.debug("rules_parsed", valid=len(rules), skipped=len(warnings))
    return rules, warnings


def parse_rule(
    document: Any,
    index: int = 0,
    *,
    stuck_threshold: timedelta = DEFAULT_STUCK_THRESHOLD,
) -> Rule:
    """Parse one rule document.

    Raises:
        MalformedRuleError: on any schema violation.
    """
    ref = f"#{index}"
    if not isinstance(document, Mapping):
        raise MalformedRuleError(ref, "rule document must be a mapping")

    rule_id = document.get("id")
    if not isinstance(rule_id, str) or not rule_id.strip():
        raise MalformedRuleError(ref, "missing required field 'id'")
    rule_id = rule_id.strip()
    ref = rule_id

    name = _required_str(document, "name", ref)
    severity = _enum(Severity, str(document.get("severity", "")).lower(), "severity", ref)
    category = _enum(Category, str(document.get("category", "")).upper(), "category", ref)

    detection = document.get("detection")
    if not isinstance(detection, Mapping):
        raise MalformedRuleError(ref, "missing required field 'detection'")
    resources = _parse_resources(detection.get("resources"), ref)
    conditions = _parse_conditions(detection.get("conditions"), ref)
    stuck = _parse_stuck(detection["stuck"], ref, stuck_threshold) if detection.get("stuck") is not None else None
    if not conditions and stuck is None:
        raise MalformedRuleError(ref, "detection needs 'conditions' or 'stuck'")

    message = document.get("message") or ""
    if not isinstance(message, str):
        raise MalformedRuleError(ref, "'message' must be a string")
    _validate_template(message, ref)

    version = document.get("version", "")
    return Rule(
        id=rule_id,
        name=name,
        severity=severity,
        category=category,
        resources=resources,
        conditions=conditions,
        stuck=stuck,
        version="" if version is None else str(version),
        description=str(document.get("description") or ""),
        remediation=_parse_remediation(document.get("remediation"), ref),
        references=_string_list(document.get("references"), "references", ref),
        tags=_string_list(document.get("tags"), "tags", ref),
        message=message,
    )


def _required_str(document: Mapping[str, Any], key: str, ref: str) -> str:
    value = document.get(key)
    if not isinstance(value, str) or not value.strip():
        raise MalformedRuleError(ref, f"missing required field {key!r}")
    return value.strip()


def _enum(enum_type: Any, value: str, key: str, ref: str) -> Any:
    try:
        return enum_type(value)
    except ValueError:
        allowed = ", ".join(member.value for member in enum_type)
        raise MalformedRuleError(ref, f"invalid {key} {value!r} (allowed: {allowed})") from None


def _string_list(value: Any, key: str, ref: str) -> tuple[str, ...]:
    if value is None:
        return ()
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        raise MalformedRuleError(ref, f"{key!r} must be a list of strings")
    return tuple(value)


def _parse_resources(value: Any, ref: str) -> tuple[ResourceSelector, ...]:
    if not isinstance(value, list) or not value:
        raise MalformedRuleError(ref, "detection.resources must be a non-empty list")
    selectors: list[ResourceSelector] = []
    for entry in value:
        if isinstance(entry, str):
            selectors.append(_selector_from_string(entry, ref))
        elif isinstance(entry, Mapping):
            kind = entry.get("kind")
            if not isinstance(kind, str) or not kind:
                raise MalformedRuleError(ref, "resource entry needs a 'kind'")
            api_version = entry.get("apiVersion")
            if api_version is not None and not isinstance(api_version, str):
                raise MalformedRuleError(ref, "resource 'apiVersion' must be a string")
            try:
                labels = LabelSelector.from_spec(entry.get("labelSelector"))
            except ValueError as exc:
                raise MalformedRuleError(ref, f"invalid labelSelector: {exc}") from None
            selectors.append(ResourceSelector(kind=kind, api_version=api_version or None, label_selector=labels))
        else:
            raise MalformedRuleError(ref, "resource entries must be strings or mappings")
    return tuple(selectors)


def _selector_from_string(text: str, ref: str) -> ResourceSelector:
    """``Kind``, ``v1/Kind`` or ``group/version/Kind``."""
    parts = [p for p in text.strip().split("/")]
    if not all(parts) or len(parts) > 3:
        raise MalformedRuleError(ref, f"invalid resource {text!r}")
    kind = parts[-1]
    api_version = "/".join(parts[:-1]) or None
    return ResourceSelector(kind=kind, api_version=api_version)


def _parse_conditions(value: Any, ref: str) -> tuple[Condition, ...]:
    if value is None:
        return ()
    if not isinstance(value, list):
        raise MalformedRuleError(ref, "detection.conditions must be a list")
    conditions: list[Condition] = []
    for position, entry in enumerate(value):
        where = f"condition {position}"
        if not isinstance(entry, Mapping):
            raise MalformedRuleError(ref, f"{where} must be a mapping")
        path = _parse_path_field(entry.get("path"), f"{where} path", ref)
        operator = _enum(Operator, str(entry.get("operator", "")), f"{where} operator", ref)
        expected = entry.get("value")
        if operator.requires_value and "value" not in entry:
            raise MalformedRuleError(ref, f"{where}: operator {operator.value} requires a value")
        if operator == Operator.MATCHES and compile_pattern(str(expected)) is None:
            raise MalformedRuleError(ref, f"{where}: invalid regular expression {expected!r}")
        if operator in (Operator.GREATER_THAN, Operator.LESS_THAN) and as_number(expected) is None:
            raise MalformedRuleError(ref, f"{where}: operator {operator.value} requires a numeric value")
        conditions.append(Condition(path=path, operator=operator, value=expected))
    return tuple(conditions)


def _parse_path_field(value: Any, what: str, ref: str) -> ParsedPath:
    if not isinstance(value, str) or not value:
        raise MalformedRuleError(ref, f"{what} is required")
    try:
        return parse_path(value)
    except PathSyntaxError as exc:
        raise MalformedRuleError(ref, f"{what}: {exc.reason} at position {exc.position}") from None


def _parse_stuck(value: Any, ref: str, default_threshold: timedelta) -> StuckCheck:
    if not isinstance(value, Mapping):
        raise MalformedRuleError(ref, "detection.stuck must be a mapping")

    threshold_text = value.get("threshold")
    threshold = default_threshold
    if threshold_text is not None:
        try:
            threshold = parse_duration(str(threshold_text))
        except ValueError:
            raise MalformedRuleError(ref, f"invalid stuck threshold {threshold_text!r}") from None

    by_reason = value.get("remediation") or {}
    if not isinstance(by_reason, Mapping) or not all(isinstance(v, str) for v in by_reason.values()):
        raise MalformedRuleError(ref, "stuck.remediation must map reasons to strings")

    condition = value.get("condition")
    if condition is not None:
        if not isinstance(condition, str) or not condition or '"' in condition:
            raise MalformedRuleError(ref, "stuck.condition must be a condition type name")
        base = f'status.conditions[?(@.type=="{condition}")]'
        success = value.get("success", "True")
        return StuckCheck(
            label=condition,
            status_path=parse_path(f"{base}.status"),
            since_path=parse_path(f"{base}.lastTransitionTime"),
            threshold=threshold,
            success=frozenset({str(success)}),
            reason_path=parse_path(f"{base}.reason"),
            message_path=parse_path(f"{base}.message"),
            remediation_by_reason=dict(by_reason),
        )

    status_path = _parse_path_field(value.get("path"), "stuck.path", ref)
    since_path = _parse_path_field(value.get("since"), "stuck.since", ref)
    failing = value.get("failing")
    if not isinstance(failing, list) or not failing:
        raise MalformedRuleError(ref, "stuck.failing must be a non-empty list")
    message_path = value.get("messagePath")
    return StuckCheck(
        label=status_path.text,
        status_path=status_path,
        since_path=since_path,
        threshold=threshold,
        failing=frozenset(str(v) for v in failing),
        message_path=_parse_path_field(message_path, "stuck.messagePath", ref) if message_path else None,
        remediation_by_reason=dict(by_reason),
    )


def _parse_remediation(value: Any, ref: str) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value.strip()
    if isinstance(value, Mapping):
        steps = value.get("steps")
        if isinstance(steps, list) and steps and all(isinstance(s, str) for s in steps):
            return "\n".join(f"{n}. {step}" for n, step in enumerate(steps, start=1))
        description = value.get("description")
        if isinstance(description, str):
            return description.strip()
    raise MalformedRuleError(ref, "remediation must be a string or a mapping with 'steps'")


def _validate_template(template: str, ref: str) -> None:
    """Reject templates that could fail in ``Rule.render_message`` at scan time.

    Placeholder values are always strings, so a template that renders once
    with sample strings renders for every resource.
    """
    try:
        fields = [(name, spec) for _, name, spec, _ in string.Formatter().parse(template) if name is not None]
    except ValueError as exc:
        raise MalformedRuleError(ref, f"invalid message template: {exc}") from None
    if any("{" in spec or "}" in spec for _, spec in fields):
        raise MalformedRuleError(ref, "invalid message template: nested placeholders are not supported")
    unknown = {name for name, _ in fields} - MESSAGE_FIELDS
    if unknown:
        raise MalformedRuleError(ref, f"unknown message placeholders: {', '.join(sorted(unknown))}")
    try:
        template.format(**{name: name for name in MESSAGE_FIELDS})
    except (ValueError, TypeError) as exc:
        raise MalformedRuleError(ref, f"invalid message template: {exc}") from None
