"""Stuck reconciliation: a status that stays unhealthy past a threshold."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

from kubescout.models.resources import ResourceRecord
from kubescout.paths import first
from kubescout.patterns.schema import Rule, StuckCheck

_MESSAGE_LIMIT = 100


@dataclass(frozen=True)
class StuckMatch:
    label: str
    value: str
    reason: str
    message: str
    elapsed: timedelta


def check_stuck(check: StuckCheck, record: ResourceRecord, now: datetime) -> StuckMatch | None:
    """Return a match when *record* has been unhealthy for longer than the threshold.

    Suspended resources (``spec.suspend: true``) are never stuck. A missing or
    unparsable timestamp means no match.
    """
    if first(record.body, "spec.suspend") is True:
        return None
    value = first(record.body, check.status_path)
    if value is None or not check.is_unhealthy(str(value)):
        return None
    since = parse_timestamp(first(record.body, check.since_path))
    if since is None:
        return None
    elapsed = now - since
    if elapsed <= check.threshold:
        return None

    if check.reason_path is not None:
        reason = str(first(record.body, check.reason_path, ""))
    else:
        reason = str(value)
    message = str(first(record.body, check.message_path, "")) if check.message_path else ""
    return StuckMatch(label=check.label, value=str(value), reason=reason, message=_truncate(message), elapsed=elapsed)


def stuck_message(rule: Rule, record: ResourceRecord, match: StuckMatch) -> str:
    if rule.message:
        return rule.render_message(record)
    text = f"{record.kind} {record.key.namespace or '-'}/{record.name} stuck: {match.label}={match.value}"
    if match.reason and match.reason != match.value:
        text += f" ({match.reason})"
    text += f" for {format_duration(match.elapsed)}"
    if match.message:
        text += f": {match.message}"
    return text


def stuck_remediation(rule: Rule, check: StuckCheck, match: StuckMatch) -> str:
    return check.remediation_by_reason.get(match.reason) or rule.remediation


def parse_timestamp(value: object) -> datetime | None:
    if not isinstance(value, str) or not value:
        return None
    try:
        parsed = datetime.fromisoformat(value)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


def format_duration(elapsed: timedelta) -> str:
    """``42s``, ``17m``, ``3h`` or ``3h12m``."""
    seconds = int(elapsed.total_seconds())
    if seconds < 60:
        return f"{seconds}s"
    if seconds < 3600:
        return f"{seconds // 60}m"
    hours, minutes = seconds // 3600, (seconds % 3600) // 60
    return f"{hours}h" if minutes == 0 else f"{hours}h{minutes}m"


def _truncate(text: str) -> str:
    if len(text) <= _MESSAGE_LIMIT:
        return text
    return text[: _MESSAGE_LIMIT - 3] + "..."
