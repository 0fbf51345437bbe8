"""Named queries, expanded as text before parsing."""

from __future__ import annotations

import re
from collections.abc import Iterable
from dataclasses import dataclass

import yaml

from kubescout.observability.logging import get_logger
from kubescout.query.parser import UnparseableQueryError

_logger = get_logger("query.saved")

_NAME_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_.-]*$")
_REFERENCE_RE = re.compile(r"(?<!\S)@([A-Za-z0-9][A-Za-z0-9_.-]*)")


@dataclass(frozen=True)
class SavedQuery:
    name: str
    description: str
    query: str


BUILTIN_QUERIES: tuple[SavedQuery, ...] = (
    SavedQuery("unmanaged", "Resources with no GitOps or package owner", "owner=Native,Unknown"),
    SavedQuery("gitops", "Resources managed by Flux or Argo CD", "owner=Flux OR owner=ArgoCD"),
    SavedQuery("helm-only", "Resources installed by Helm outside GitOps", "owner=Helm"),
    SavedQuery("flux", "Resources managed by Flux", "owner=Flux"),
    SavedQuery("argo", "Resources managed by Argo CD", "owner=ArgoCD"),
    SavedQuery("confighub", "Resources managed by ConfigHub", "owner=ConfigHub"),
    SavedQuery("deployments", "All Deployments", "kind=Deployment"),
    SavedQuery("services", "All Services", "kind=Service"),
    SavedQuery("prod", "Resources in production namespaces", "namespace=prod* OR namespace=production*"),
)


class SavedQueryStore:
    """Name -> query text. Later entries replace earlier ones with the same name."""

    def __init__(self, queries: Iterable[SavedQuery] = (), *, builtins: bool = True) -> None:
        self._queries: dict[str, SavedQuery] = {}
        if builtins:
            for query in BUILTIN_QUERIES:
                self.add(query)
        for query in queries:
            self.add(query)

    def add(self, query: SavedQuery) -> None:
        if not _NAME_RE.match(query.name):
            raise ValueError(f"Invalid saved query name: {query.name!r}")
        self._queries[query.name] = query

    def get(self, name: str) -> SavedQuery | None:
        return self._queries.get(name)

    def names(self) -> list[str]:
        return sorted(self._queries)

    def __contains__(self, name: object) -> bool:
        return name in self._queries

    def __len__(self) -> int:
        return len(self._queries)

    def load_yaml(self, text: str) -> int:
        """Add the entries of a ``queries: [{name, description, query}]`` document.

        Returns the number of queries added.

        Raises:
            ValueError: if the document is not valid YAML or an entry is malformed.
        """
        try:
            document = yaml.safe_load(text)
        except yaml.YAMLError as exc:
            raise ValueError(f"Invalid saved query document: {exc}") from exc
        if document is None:
            return 0
        if not isinstance(document, dict) or not isinstance(document.get("queries", []), list):
            raise ValueError("Saved query document must be a mapping with a 'queries' list")

        loaded: list[SavedQuery] = []
        for index, entry in enumerate(document.get("queries") or []):
            if not isinstance(entry, dict):
                raise ValueError(f"Saved query #{index} must be a mapping")
            name, query = entry.get("name"), entry.get("query")
            if not isinstance(name, str) or not isinstance(query, str):
                raise ValueError(f"Saved query #{index} needs string 'name' and 'query'")
            loaded.append(SavedQuery(name=name, description=str(entry.get("description") or ""), query=query))

        for query in loaded:
            self.add(query)
        _logger.debug("saved_queries_loaded", count=len(loaded))
        return len(loaded)

    def expand(self, text: str) -> str:
        """Resolve a bare saved name or word-initial ``@name`` references, recursively.

        Expansion is textual: ``kind=Service AND @gitops`` becomes
        ``kind=Service AND owner=Flux OR owner=ArgoCD``, which binds as
        ``(kind=Service AND owner=Flux) OR owner=ArgoCD``.

        Raises:
            UnparseableQueryError: on an unknown ``@name`` or a reference cycle.
        """
        return self._expand(text, ())

    def _expand(self, text: str, chain: tuple[str, ...]) -> str:
        bare = text.strip()
        if bare in self._queries:
            return self._expand_name(bare, chain)

        def replace(match: re.Match[str]) -> str:
            name = match.group(1)
            if name not in self._queries:
                raise UnparseableQueryError(f"unknown saved query '@{name}'", match.start())
            return self._expand_name(name, chain)

        return _REFERENCE_RE.sub(replace, text)

    def _expand_name(self, name: str, chain: tuple[str, ...]) -> str:
        if name in chain:
            cycle = " -> ".join((*chain, name))
            raise UnparseableQueryError(f"saved query cycle: {cycle}")
        return self._expand(self._queries[name].query, (*chain, name))
