"""Nested aggregation trees and their flattening into grids.

An Elasticsearch aggregation response is tree shaped but only readable with
the request next to it: the response says which buckets came back, the request
says which aggregation is a grouping and which is a metric. The two are joined
once into explicit :class:`BucketAggregation` / :class:`MetricAggregation`
nodes, and everything downstream walks those nodes instead of probing keys.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterator, List, Mapping, Optional, Sequence, Tuple, Union

from grid_connector.core.grid import Cell, Grid, dedupe_names, to_cell
from grid_connector.exceptions.errors import ShapeViolation
from grid_connector.logging.logger import get_logger

log = get_logger("core.aggregation")


class AggregationKind(str, Enum):
    BUCKET = "bucket"
    METRIC = "metric"


BUCKET_OPERATIONS = {
    "terms",
    "histogram",
    "date_histogram",
    "auto_date_histogram",
    "range",
    "date_range",
    "ip_range",
    "significant_terms",
    "geohash_grid",
}

METRIC_OPERATIONS = {
    "sum",
    "avg",
    "min",
    "max",
    "value_count",
    "cardinality",
    "median_absolute_deviation",
}

_SUB_AGGREGATION_KEYS = ("aggs", "aggregations")
_NON_OPERATION_KEYS = set(_SUB_AGGREGATION_KEYS) | {"meta"}


@dataclass(frozen=True)
class AggregationSpec:
    """One aggregation as declared in the request DSL."""

    name: str
    kind: AggregationKind
    operation: str
    field: str
    children: Tuple["AggregationSpec", ...] = ()

    @property
    def column_name(self) -> str:
        if self.kind is AggregationKind.METRIC:
            return f"{self.operation} of {self.field}"
        return self.field


@dataclass
class MetricAggregation:
    spec: AggregationSpec
    value: Cell = None

    @property
    def kind(self) -> AggregationKind:
        return AggregationKind.METRIC

    @property
    def name(self) -> str:
        return self.spec.name


@dataclass
class Bucket:
    key: Cell
    children: List["AggregationNode"] = field(default_factory=list)
    doc_count: Optional[int] = None

    @property
    def is_empty(self) -> bool:
        return self.doc_count == 0


@dataclass
class BucketAggregation:
    spec: AggregationSpec
    buckets: List[Bucket] = field(default_factory=list)

    @property
    def kind(self) -> AggregationKind:
        return AggregationKind.BUCKET

    @property
    def name(self) -> str:
        return self.spec.name


AggregationNode = Union[BucketAggregation, MetricAggregation]


def parse_aggregation_request(aggs: Mapping[str, Any]) -> List[AggregationSpec]:
    """Read the ``aggs`` section of a search body into specs, keeping declaration order."""
    specs: List[AggregationSpec] = []
    for name, body in (aggs or {}).items():
        if not isinstance(body, Mapping):
            raise ShapeViolation(f"Aggregation '{name}' is not an object")
        operations = [k for k in body.keys() if k not in _NON_OPERATION_KEYS]
        if len(operations) != 1:
            raise ShapeViolation(
                f"Aggregation '{name}' must declare exactly one operation",
                details={"operations": operations},
            )
        op = operations[0]
        if op in BUCKET_OPERATIONS:
            kind = AggregationKind.BUCKET
        elif op in METRIC_OPERATIONS:
            kind = AggregationKind.METRIC
        else:
            raise ShapeViolation(f"Unsupported aggregation type '{op}' in '{name}'")

        params = body[op] if isinstance(body[op], Mapping) else {}
        sub: Mapping[str, Any] = {}
        for key in _SUB_AGGREGATION_KEYS:
            if key in body:
                sub = body[key]
                break
        if kind is AggregationKind.METRIC and sub:
            raise ShapeViolation(f"Metric aggregation '{name}' cannot have sub-aggregations")

        specs.append(
            AggregationSpec(
                name=str(name),
                kind=kind,
                operation=op,
                field=str(params.get("field") or name),
                children=tuple(parse_aggregation_request(sub)),
            )
        )
    return specs


def _bucket_key(spec: AggregationSpec, raw: Mapping[str, Any], keyed_name: Optional[str]) -> Cell:
    if spec.operation in ("date_histogram", "auto_date_histogram") and "key_as_string" in raw:
        return raw["key_as_string"]
    if "key" in raw:
        return to_cell(raw["key"])
    return keyed_name


def build_aggregation_tree(specs: Sequence[AggregationSpec], response: Mapping[str, Any]) -> List[AggregationNode]:
    """Join request specs with the response ``aggregations`` (or one bucket of it)."""
    nodes: List[AggregationNode] = []
    for spec in specs:
        if spec.name not in response:
            raise ShapeViolation(f"Aggregation '{spec.name}' missing from response")
        raw = response[spec.name]
        if spec.kind is AggregationKind.METRIC:
            nodes.append(MetricAggregation(spec=spec, value=to_cell(raw.get("value"))))
            continue

        raw_buckets = raw.get("buckets")
        if raw_buckets is None:
            raise ShapeViolation(f"Bucket aggregation '{spec.name}' has no buckets in response")
        # keyed responses come back as an object of name -> bucket
        if isinstance(raw_buckets, Mapping):
            items = [(str(k), v) for k, v in raw_buckets.items()]
        else:
            items = [(None, b) for b in raw_buckets]

        buckets = [
            Bucket(
                key=_bucket_key(spec, b, keyed_name),
                children=build_aggregation_tree(spec.children, b),
                doc_count=b.get("doc_count"),
            )
            for keyed_name, b in items
        ]
        nodes.append(BucketAggregation(spec=spec, buckets=buckets))
    return nodes


def _split(specs: Sequence[AggregationSpec]) -> Tuple[List[AggregationSpec], Optional[AggregationSpec]]:
    metrics = [s for s in specs if s.kind is AggregationKind.METRIC]
    groups = [s for s in specs if s.kind is AggregationKind.BUCKET]
    if len(groups) > 1:
        raise ShapeViolation(
            "Sibling bucket aggregations cannot be flattened into one grid",
            details={"aggregations": [g.name for g in groups]},
        )
    return metrics, (groups[0] if groups else None)


class AggregationFlattener:
    """Flatten an aggregation tree into one row per leaf combination.

    Columns are the group-by levels outermost first (named by field), then the
    metrics in declaration order (``"<operation> of <field>"``), outer levels
    before inner ones. The column list is derived from the specs alone so it
    stays the same however many buckets came back.
    """

    def columns(self, specs: Sequence[AggregationSpec]) -> List[str]:
        group_cols: List[str] = []
        metric_cols: List[str] = []
        level: Sequence[AggregationSpec] = specs
        while level:
            metrics, group = _split(level)
            metric_cols.extend(m.column_name for m in metrics)
            if group is None:
                break
            group_cols.append(group.column_name)
            level = group.children
        return dedupe_names(group_cols + metric_cols)

    def _rows(self, nodes: Sequence[AggregationNode], keys: List[Cell], metrics: List[Cell]) -> Iterator[List[Cell]]:
        metric_values = metrics + [n.value for n in nodes if isinstance(n, MetricAggregation)]
        groups = [n for n in nodes if isinstance(n, BucketAggregation)]
        if not groups:
            yield keys + metric_values
            return
        for bucket in groups[0].buckets:
            if bucket.is_empty:
                continue
            yield from self._rows(bucket.children, keys + [bucket.key], metric_values)

    def flatten(self, specs: Sequence[AggregationSpec], nodes: Sequence[AggregationNode]) -> Grid:
        columnnames = self.columns(specs)
        rows = list(self._rows(nodes, [], [])) if nodes else []
        log.debug("Flattened aggregation", extra={"rows": len(rows), "columns": len(columnnames)})
        return Grid(columnnames=columnnames, rows=rows).validate()

    def flatten_response(self, request_aggs: Mapping[str, Any], response_aggs: Mapping[str, Any]) -> Grid:
        specs = parse_aggregation_request(request_aggs)
        return self.flatten(specs, build_aggregation_tree(specs, response_aggs or {}))
