from __future__ import annotations

from typing import Any, Dict, Iterable, List, Mapping, Sequence

from grid_connector.core.grid import Cell, Grid, as_geo_point, flatten_document, to_cell
from grid_connector.exceptions.errors import ShapeViolation
from grid_connector.logging.logger import get_logger

log = get_logger("core.assembler")


def first_seen_columns(documents: Iterable[Mapping[str, Any]]) -> List[str]:
    """Union of field names across documents, in first-seen order."""
    seen: Dict[str, None] = {}
    for doc in documents:
        for name in doc.keys():
            if name not in seen:
                seen[name] = None
    return list(seen.keys())


def transpose(columns: Sequence[Sequence[Any]]) -> List[List[Any]]:
    """Turn column-major values into row-major rows: ``rows[i][j] = columns[j][i]``.

    Columns of unequal length are a defect upstream and are rejected rather
    than truncated.
    """
    if not columns:
        return []
    lengths = {len(c) for c in columns}
    if len(lengths) != 1:
        raise ShapeViolation(
            "Column-major input has columns of different lengths",
            details={"lengths": [len(c) for c in columns]},
        )
    height = lengths.pop()
    return [[col[i] for col in columns] for i in range(height)]


def to_column_major(grid: Grid) -> List[List[Cell]]:
    width = len(grid.columnnames)
    return [[row[j] for row in grid.rows] for j in range(width)]


def grid_from_columns(columnnames: Sequence[str], columns: Sequence[Sequence[Any]]) -> Grid:
    if len(columnnames) != len(columns):
        raise ShapeViolation(
            f"{len(columns)} value columns for {len(columnnames)} column names",
            details={"columnnames": list(columnnames)},
        )
    return Grid.from_rows(columnnames, transpose(columns))


def _is_geo_column(docs: Sequence[Mapping[str, Any]], name: str) -> bool:
    """A column holds geo-points only if every non-null value in it is one."""
    values = [d[name] for d in docs if d.get(name) is not None]
    return bool(values) and all(as_geo_point(v) is not None for v in values)


class GridAssembler:
    """Build a Grid from documents that may each carry a different set of fields."""

    def __init__(self, flatten: bool = True, detect_geo: bool = True):
        self.flatten = flatten
        self.detect_geo = detect_geo

    def assemble(self, documents: Iterable[Mapping[str, Any]]) -> Grid:
        docs = [flatten_document(d) if self.flatten else dict(d) for d in documents]
        columns = first_seen_columns(docs)
        geo = {c: self.detect_geo and _is_geo_column(docs, c) for c in columns}
        rows: List[List[Cell]] = []
        for d in docs:
            rows.append([to_cell(d.get(c), detect_geo=geo[c]) if c in d else None for c in columns])
        log.debug("Assembled grid", extra={"rows": len(rows), "columns": len(columns)})
        return Grid(columnnames=columns, rows=rows).validate()
