"""Canonical grid model.

Every backend result is reshaped into a :class:`Grid`: an ordered list of
unique column names and a list of rows, each row exactly as long as the
column list. Missing values are ``None`` cells, never shorter rows.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, time
from decimal import Decimal
from numbers import Number
from typing import Any, Dict, Iterable, List, Mapping, NamedTuple, Optional, Sequence, Union
import json

import pandas as pd

from grid_connector.exceptions.errors import ShapeViolation


class GeoPoint(NamedTuple):
    """A geo-point cell, always ordered ``(lon, lat)``.

    Being a tuple it serializes to JSON as ``[lon, lat]``, the GeoJSON and
    Elasticsearch array order.
    """

    lon: float
    lat: float


Cell = Union[str, int, float, bool, GeoPoint, None]


def _is_number(v: Any) -> bool:
    return isinstance(v, Number) and not isinstance(v, bool)


def as_geo_point(value: Any) -> Optional[GeoPoint]:
    """Return a GeoPoint for the geo shapes a search document may carry, else None.

    Recognized: ``{"lat": .., "lon": ..}`` objects and two-element numeric
    arrays, which Elasticsearch defines as ``[lon, lat]``. ``"lat,lon"`` strings
    and geohashes are left as text.
    """
    if isinstance(value, Mapping):
        if set(value.keys()) == {"lat", "lon"} and _is_number(value["lat"]) and _is_number(value["lon"]):
            return GeoPoint(lon=value["lon"], lat=value["lat"])
        return None
    if isinstance(value, (list, tuple)) and len(value) == 2 and all(_is_number(v) for v in value):
        return GeoPoint(lon=value[0], lat=value[1])
    return None


def to_cell(value: Any, detect_geo: bool = False) -> Cell:
    if value is None or isinstance(value, (str, bool, GeoPoint)):
        return value
    if isinstance(value, (int, float)):
        return value
    if isinstance(value, Decimal):
        # Keep full precision; numeric columns from SQL drivers arrive as text.
        return str(value)
    if isinstance(value, (datetime, date, time)):
        return value.isoformat()
    if isinstance(value, (bytes, bytearray, memoryview)):
        return bytes(value).decode("utf-8", errors="replace")
    if detect_geo:
        geo = as_geo_point(value)
        if geo is not None:
            return geo
    if isinstance(value, (list, tuple, dict)):
        return json.dumps(value, default=str)
    if _is_number(value):
        # numpy scalars and friends
        return value.item() if hasattr(value, "item") else float(value)
    return str(value)


def flatten_document(doc: Mapping[str, Any], prefix: str = "") -> Dict[str, Any]:
    """Flatten nested objects into dotted field names, in document order.

    Geo-point objects are kept whole so they become a single cell.
    """
    out: Dict[str, Any] = {}
    for k, v in doc.items():
        name = f"{prefix}{k}"
        if isinstance(v, Mapping) and v and as_geo_point(v) is None:
            out.update(flatten_document(v, prefix=f"{name}."))
        else:
            out[name] = v
    return out


def dedupe_names(names: Iterable[str]) -> List[str]:
    """Make column names unique by suffixing repeats: ``x``, ``x_2``, ``x_3``."""
    seen: Dict[str, int] = {}
    taken = set()
    out: List[str] = []
    for raw in names:
        name = str(raw)
        if name not in taken:
            seen.setdefault(name, 1)
            taken.add(name)
            out.append(name)
            continue
        n = seen.get(name, 1)
        candidate = f"{name}_{n + 1}"
        while candidate in taken:
            n += 1
            candidate = f"{name}_{n + 1}"
        seen[name] = n + 1
        taken.add(candidate)
        out.append(candidate)
    return out


@dataclass
class Grid:
    columnnames: List[str]
    rows: List[List[Cell]] = field(default_factory=list)

    def validate(self) -> "Grid":
        if len(set(self.columnnames)) != len(self.columnnames):
            raise ShapeViolation("Column names must be unique", details={"columnnames": list(self.columnnames)})
        width = len(self.columnnames)
        for i, row in enumerate(self.rows):
            if len(row) != width:
                raise ShapeViolation(
                    f"Row {i} has {len(row)} cells but there are {width} columns",
                    details={"row": i, "cells": len(row), "columns": width},
                )
        return self

    @property
    def shape(self) -> tuple:
        return len(self.rows), len(self.columnnames)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "columnnames": list(self.columnnames),
            "rows": [[list(c) if isinstance(c, GeoPoint) else c for c in row] for row in self.rows],
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict())

    def to_dataframe(self) -> pd.DataFrame:
        return pd.DataFrame([list(r) for r in self.rows], columns=list(self.columnnames))

    @classmethod
    def from_rows(cls, columnnames: Sequence[str], rows: Iterable[Sequence[Any]], detect_geo: bool = False) -> "Grid":
        grid = cls(
            columnnames=[str(c) for c in columnnames],
            rows=[[to_cell(v, detect_geo=detect_geo) for v in row] for row in rows],
        )
        return grid.validate()
