"""
Tests for building grids out of documents with varying fields.
"""
import pytest

from grid_connector.core.assembler import (
    GridAssembler,
    first_seen_columns,
    grid_from_columns,
    to_column_major,
    transpose,
)
from grid_connector.core.grid import GeoPoint, Grid
from grid_connector.exceptions.errors import ShapeViolation


@pytest.fixture
def assembler() -> GridAssembler:
    return GridAssembler()


class TestGridAssembler:
    def test_documents_with_different_fields(self, assembler):
        docs = [{"a": 1, "b": 2}, {"a": 3, "c": 4}, {"b": 5}]
        grid = assembler.assemble(docs)
        assert grid.columnnames == ["a", "b", "c"]
        assert grid.rows == [[1, 2, None], [3, None, 4], [None, 5, None]]

    def test_columns_follow_first_appearance(self, assembler):
        docs = [{"z": 1}, {"y": 2, "z": 3}, {"x": 4, "y": 5}]
        assert assembler.assemble(docs).columnnames == ["z", "y", "x"]

    def test_every_row_is_full_width(self, assembler):
        docs = [{"a": 1}, {"b": 2}, {"c": 3}, {}]
        grid = assembler.assemble(docs)
        assert all(len(row) == len(grid.columnnames) for row in grid.rows)
        assert len(grid.rows) == 4

    def test_explicit_null_and_absent_field_look_the_same(self, assembler):
        grid = assembler.assemble([{"a": None, "b": 1}, {"b": 2}])
        assert grid.rows == [[None, 1], [None, 2]]

    def test_no_documents(self, assembler):
        grid = assembler.assemble([])
        assert grid.columnnames == []
        assert grid.rows == []

    def test_nested_fields_and_geo_points(self, assembler):
        docs = [
            {"user": {"name": "ann"}, "location": {"lat": 41.1, "lon": -71.3}},
            {"user": {"name": "bob", "age": 30}, "location": [-70.0, 40.0]},
        ]
        grid = assembler.assemble(docs)
        assert grid.columnnames == ["user.name", "location", "user.age"]
        assert grid.rows[0] == ["ann", GeoPoint(lon=-71.3, lat=41.1), None]
        assert grid.rows[1] == ["bob", GeoPoint(lon=-70.0, lat=40.0), 30]

    def test_geo_detection_is_decided_per_column(self, assembler):
        docs = [
            {"scores": [1, 2], "location": [-70.0, 40.0]},
            {"scores": [1, 2, 3], "location": None},
        ]
        grid = assembler.assemble(docs)
        assert grid.rows[0] == ["[1, 2]", GeoPoint(lon=-70.0, lat=40.0)]
        assert grid.rows[1] == ["[1, 2, 3]", None]

    def test_reordering_fields_after_the_first_document_keeps_columns(self, assembler):
        first = {"a": 1, "b": 2, "c": 3}
        last = {"d": 4, "a": 5}
        in_order = assembler.assemble([first, {"a": 6, "b": 7, "c": 8}, last])
        shuffled = assembler.assemble([first, {"c": 8, "a": 6, "b": 7}, last])

        assert in_order.columnnames == ["a", "b", "c", "d"]
        assert shuffled.columnnames == in_order.columnnames
        assert shuffled.rows == in_order.rows

    def test_without_flattening_objects_are_json_text(self):
        grid = GridAssembler(flatten=False, detect_geo=False).assemble([{"user": {"name": "ann"}}])
        assert grid.columnnames == ["user"]
        assert grid.rows == [['{"name": "ann"}']]


class TestTranspose:
    def test_rows_from_columns(self):
        assert transpose([[1, 2, 3], ["a", "b", "c"]]) == [[1, "a"], [2, "b"], [3, "c"]]

    def test_transpose_twice_is_identity(self):
        rows = [[1, "a", None], [2, "b", True]]
        assert transpose(transpose(rows)) == rows

    def test_empty(self):
        assert transpose([]) == []
        assert transpose([[], []]) == []

    def test_unequal_columns_rejected(self):
        with pytest.raises(ShapeViolation):
            transpose([[1, 2, 3], [1, 2]])

    def test_first_seen_columns(self):
        assert first_seen_columns([{"b": 1, "a": 2}, {"c": 3, "a": 4}]) == ["b", "a", "c"]


class TestColumnMajor:
    def test_grid_from_columns(self):
        grid = grid_from_columns(["id", "name"], [[1, 2], ["x", "y"]])
        assert grid.rows == [[1, "x"], [2, "y"]]

    def test_names_and_columns_must_agree(self):
        with pytest.raises(ShapeViolation):
            grid_from_columns(["id"], [[1], [2]])

    def test_round_trip_through_column_major(self):
        grid = Grid.from_rows(["a", "b"], [[1, 2], [3, 4], [5, None]])
        assert grid_from_columns(grid.columnnames, to_column_major(grid)).rows == grid.rows
