"""Backend-native payloads, one strongly typed shape per backend kind."""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Sequence, Union
import json

from grid_connector.exceptions.errors import BackendQueryError


class BackendKind(str, Enum):
    RELATIONAL = "relational"
    SEARCH_INDEX = "search_index"
    OBJECT_STORE_FILE = "object_store_file"
    SQL_OVER_FILES = "sql_over_files"


@dataclass
class RelationalPayload:
    columns: List[str]
    rows: List[Sequence[Any]]
    error: Optional[str] = None

    kind = BackendKind.RELATIONAL


@dataclass
class SearchHitsPayload:
    """One page of search hits (``_source`` documents)."""

    hits: List[Mapping[str, Any]]
    scroll_id: Optional[str] = None
    total: Optional[int] = None
    error: Optional[str] = None
    error_details: Dict[str, Any] = field(default_factory=dict)
    # document ids aligned with hits, when the backend reports them
    hit_ids: List[str] = field(default_factory=list)

    kind = BackendKind.SEARCH_INDEX


@dataclass
class SearchAggregationPayload:
    request_aggs: Mapping[str, Any]
    response_aggs: Mapping[str, Any]
    error: Optional[str] = None
    error_details: Dict[str, Any] = field(default_factory=dict)

    kind = BackendKind.SEARCH_INDEX


@dataclass
class DelimitedFilePayload:
    """Rows of a delimited file; the first row is the header."""

    rows: List[List[Any]]
    key: str = ""
    error: Optional[str] = None

    kind = BackendKind.OBJECT_STORE_FILE


@dataclass
class SqlOverFilesPayload:
    """Result of a SQL engine fronting object-store files.

    ``records`` are either mappings keyed by column name (Drill) or positional
    sequences aligned with ``columns`` (Athena).
    """

    columns: List[str]
    records: List[Union[Mapping[str, Any], Sequence[Any]]]
    error: Optional[str] = None

    kind = BackendKind.SQL_OVER_FILES


RawPayload = Union[
    RelationalPayload,
    SearchHitsPayload,
    SearchAggregationPayload,
    DelimitedFilePayload,
    SqlOverFilesPayload,
]


@dataclass(frozen=True)
class SearchQuery:
    """A search-index query: ``{"body": {...}, "index": ..., "type": ..., "size": ...}``."""

    index: str
    body: Mapping[str, Any]
    doc_type: Optional[str] = None
    size: int = 10

    @property
    def aggregations(self) -> Optional[Mapping[str, Any]]:
        return self.body.get("aggs") or self.body.get("aggregations")

    @property
    def is_aggregated(self) -> bool:
        return bool(self.aggregations)

    @classmethod
    def parse(cls, query: Union[str, Mapping[str, Any]], default_size: int = 10) -> "SearchQuery":
        if isinstance(query, (str, bytes)):
            try:
                query = json.loads(query)
            except ValueError as e:
                raise BackendQueryError(f"Search query is not valid JSON: {e}") from e
        if not isinstance(query, Mapping):
            raise BackendQueryError("Search query must be a JSON object")

        body = query.get("body") or {}
        if not isinstance(body, Mapping):
            raise BackendQueryError("Search query 'body' must be a JSON object")
        index = query.get("index")
        if not index:
            raise BackendQueryError("Search query requires an 'index'")

        # size may sit in the body (as the search DSL has it) or next to it, often as a string
        raw_size = body.get("size", query.get("size", default_size))
        try:
            size = int(raw_size)
        except (TypeError, ValueError) as e:
            raise BackendQueryError(f"Invalid search size: {raw_size!r}") from e
        if size < 0:
            raise BackendQueryError(f"Search size must not be negative: {size}")

        return cls(index=str(index), body=dict(body), doc_type=query.get("type") or None, size=size)


def check_backend_error(payload: RawPayload) -> None:
    """A payload the backend marked as failed is never reshaped."""
    if payload.error:
        details = dict(getattr(payload, "error_details", {}) or {})
        details.setdefault("backend", payload.kind.value)
        raise BackendQueryError(payload.error, details=details)
