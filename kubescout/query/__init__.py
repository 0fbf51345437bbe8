"""Ad hoc and saved boolean filters over flattened resource records."""

from kubescout.query.parser import (
    And,
    Comparator,
    Or,
    Predicate,
    Query,
    UnparseableQueryError,
    parse_query,
)
from kubescout.query.records import FIELDS, Record, derive_status, flatten
from kubescout.query.saved import BUILTIN_QUERIES, SavedQuery, SavedQueryStore

__all__ = [
    "BUILTIN_QUERIES",
    "FIELDS",
    "And",
    "Comparator",
    "Or",
    "Predicate",
    "Query",
    "Record",
    "SavedQuery",
    "SavedQueryStore",
    "UnparseableQueryError",
    "derive_status",
    "flatten",
    "parse_query",
]
