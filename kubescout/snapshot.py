"""Immutable snapshot of cluster resources plus the read-only indices over it.

Indices are built once in the constructor and never mutated afterwards, so a
Snapshot can be shared across worker threads without locking.
"""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Iterable, Iterator
from typing import Any

from kubescout.models.analysis import AnalysisWarning
from kubescout.models.resources import ResourceKey, ResourceRecord
from kubescout.observability.logging import get_logger
from kubescout.selectors import LabelSelector

_logger = get_logger("snapshot")


class Snapshot:
    """Point-in-time collection of ResourceRecords.

    Accepts records or raw serialized objects. When two inputs share a
    ResourceKey the last one wins and a ``duplicate_resource`` warning is kept.
    """

    def __init__(self, resources: Iterable[ResourceRecord | dict[str, Any]] = ()) -> None:
        self.warnings: list[AnalysisWarning] = []
        by_key: dict[ResourceKey, ResourceRecord] = {}
        for item in resources:
            record = item if isinstance(item, ResourceRecord) else ResourceRecord.from_object(item)
            if record.key in by_key:
                self.warnings.append(
                    AnalysisWarning(
                        component="snapshot",
                        code="duplicate_resource",
                        message="duplicate resource key, keeping the last occurrence",
                        subject=str(record.key),
                    )
                )
            by_key[record.key] = record

        self._by_key = by_key
        self._records: tuple[ResourceRecord, ...] = tuple(by_key.values())
        self._by_kind: dict[str, list[ResourceRecord]] = defaultdict(list)
        self._by_uid: dict[str, ResourceRecord] = {}
        self._by_kind_namespace: dict[tuple[str, str], list[ResourceRecord]] = defaultdict(list)
        # (kind, namespace, label key, label value) -> records
        self._label_index: dict[tuple[str, str, str, str], list[ResourceRecord]] = defaultdict(list)

        for record in self._records:
            self._by_kind[record.kind].append(record)
            self._by_kind_namespace[(record.kind, record.namespace)].append(record)
            if record.uid:
                self._by_uid[record.uid] = record
            for label_key, label_value in record.labels.items():
                self._label_index[(record.kind, record.namespace, label_key, label_value)].append(record)

        if self.warnings:
            _logger.warning("snapshot_duplicates", count=len(self.warnings))
        _logger.debug("snapshot_indexed", resources=len(self._records), kinds=len(self._by_kind))

    def __len__(self) -> int:
        return len(self._records)

    def __iter__(self) -> Iterator[ResourceRecord]:
        return iter(self._records)

    def __contains__(self, key: object) -> bool:
        return key in self._by_key

    @property
    def records(self) -> tuple[ResourceRecord, ...]:
        return self._records

    def get(self, key: ResourceKey) -> ResourceRecord | None:
        return self._by_key.get(key)

    def get_by_uid(self, uid: str) -> ResourceRecord | None:
        if not uid:
            return None
        return self._by_uid.get(uid)

    def kinds(self) -> list[str]:
        return sorted(self._by_kind)

    def of_kind(self, kind: str, api_version: str | None = None) -> list[ResourceRecord]:
        """Records of *kind*; *api_version* may be a full ``group/version`` or just a group."""
        records = self._by_kind.get(kind, [])
        if not api_version:
            return list(records)
        return [r for r in records if _api_version_matches(r.api_version, api_version)]

    def in_namespace(self, kind: str, namespace: str) -> list[ResourceRecord]:
        return list(self._by_kind_namespace.get((kind, namespace), []))

    def select(
        self,
        kind: str,
        selector: LabelSelector,
        namespace: str | None = None,
    ) -> list[ResourceRecord]:
        """Records of *kind* whose labels satisfy *selector*.

        ``namespace=None`` searches every namespace. An empty selector matches
        every record in scope.
        """
        if namespace is None:
            scopes = [ns for (k, ns) in self._by_kind_namespace if k == kind]
        else:
            scopes = [namespace]

        matched: list[ResourceRecord] = []
        for ns in sorted(scopes):
            candidates = self._candidates(kind, ns, selector)
            matched.extend(r for r in candidates if selector.matches(r.labels))
        return matched

    def _candidates(self, kind: str, namespace: str, selector: LabelSelector) -> list[ResourceRecord]:
        if not selector.match_labels:
            return self._by_kind_namespace.get((kind, namespace), [])
        # Narrow to the smallest posting list; the full selector is re-checked by the caller.
        smallest: list[ResourceRecord] | None = None
        for label_key, label_value in selector.match_labels:
            posting = self._label_index.get((kind, namespace, label_key, label_value), [])
            if not posting:
                return []
            if smallest is None or len(posting) < len(smallest):
                smallest = posting
        return smallest or []


def _api_version_matches(actual: str, wanted: str) -> bool:
    if actual == wanted:
        return True
    if "/" not in wanted:
        # Bare group ("apps") or bare core version ("v1").
        group = actual.split("/", 1)[0] if "/" in actual else ""
        return wanted == group or (not group and wanted == actual)
    return False
