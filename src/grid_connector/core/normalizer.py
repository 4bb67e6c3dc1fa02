from __future__ import annotations

from typing import Any, List, Mapping, Optional, Sequence

from grid_connector.core.aggregation import AggregationFlattener
from grid_connector.core.assembler import GridAssembler
from grid_connector.core.grid import Grid, dedupe_names
from grid_connector.core.payloads import (
    BackendKind,
    DelimitedFilePayload,
    RawPayload,
    RelationalPayload,
    SearchAggregationPayload,
    SearchHitsPayload,
    SearchQuery,
    SqlOverFilesPayload,
    check_backend_error,
)
from grid_connector.core.scroll import ScrollCoordinator
from grid_connector.exceptions.errors import ShapeViolation
from grid_connector.logging.logger import get_logger

log = get_logger("core.normalizer")


class ResultNormalizer:
    """Turn any backend payload into the canonical grid.

    Dispatch happens once, on the payload's :class:`BackendKind`; the
    reshaping code below never guesses which backend it is looking at.
    """

    def __init__(
        self,
        assembler: Optional[GridAssembler] = None,
        flattener: Optional[AggregationFlattener] = None,
    ):
        self.assembler = assembler or GridAssembler()
        self.flattener = flattener or AggregationFlattener()

    def normalize(self, payload: RawPayload) -> Grid:
        check_backend_error(payload)

        if payload.kind is BackendKind.RELATIONAL:
            grid = self._relational(payload)
        elif payload.kind is BackendKind.SEARCH_INDEX:
            grid = self._search(payload)
        elif payload.kind is BackendKind.OBJECT_STORE_FILE:
            grid = self._delimited(payload)
        elif payload.kind is BackendKind.SQL_OVER_FILES:
            grid = self._sql_over_files(payload)
        else:
            raise ShapeViolation(f"Unknown backend kind: {payload.kind!r}")

        log.info(
            "Normalized result",
            extra={"backend": payload.kind.value, "rows": len(grid.rows), "columns": len(grid.columnnames)},
        )
        return grid

    async def normalize_search(self, coordinator: ScrollCoordinator, query: SearchQuery) -> Grid:
        """Run a search query through the coordinator (or one aggregation request) and normalize it."""
        if query.is_aggregated:
            payload = await coordinator.adapter.search(query.index, query.doc_type, dict(query.body))
        else:
            payload = await coordinator.fetch(query)
        return self.normalize(payload)

    def _relational(self, payload: RelationalPayload) -> Grid:
        return Grid.from_rows(dedupe_names(payload.columns), payload.rows)

    def _search(self, payload: Any) -> Grid:
        if isinstance(payload, SearchAggregationPayload):
            return self.flattener.flatten_response(payload.request_aggs, payload.response_aggs)
        if isinstance(payload, SearchHitsPayload):
            return self.assembler.assemble(payload.hits)
        raise ShapeViolation(f"Unexpected search payload: {type(payload).__name__}")

    def _delimited(self, payload: DelimitedFilePayload) -> Grid:
        if not payload.rows:
            return Grid(columnnames=[], rows=[])
        header, body = payload.rows[0], payload.rows[1:]
        return Grid.from_rows(dedupe_names(header), body)

    def _sql_over_files(self, payload: SqlOverFilesPayload) -> Grid:
        columns: List[str] = list(payload.columns)
        rows: List[Sequence[Any]] = []
        for record in payload.records:
            if isinstance(record, Mapping):
                rows.append([record.get(c) for c in columns])
            else:
                rows.append(record)
        return Grid.from_rows(dedupe_names(columns), rows)
