"""
Tests for the Apache Drill REST adapter.
"""
import json
from unittest.mock import MagicMock, patch

import httpx
import pytest

from grid_connector.connections import DrillConnection
from grid_connector.core.normalizer import ResultNormalizer
from grid_connector.db.drill import DrillAdapter
from grid_connector.exceptions.errors import BackendQueryError, ShapeViolation, TransportError

CONNECTION = DrillConnection(host="drill.local", bucket="ebola-data", region="us-east-1")


def _adapter(handler, settings, connection=CONNECTION):
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return DrillAdapter(connection, settings, client=client)


class TestIssue:
    @pytest.mark.asyncio
    async def test_query_and_result(self, settings):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(
                200,
                json={
                    "queryId": "1",
                    "columns": ["country", "deaths"],
                    "rows": [{"country": "Guinea", "deaths": "10"}, {"deaths": "3", "country": "Liberia"}],
                    "queryState": "COMPLETED",
                },
            )

        payload = await _adapter(handler, settings).issue("SELECT * FROM s3.`ebola.csv`")
        assert str(seen[0].url) == "http://drill.local:8047/query.json"
        assert json.loads(seen[0].content) == {"queryType": "SQL", "query": "SELECT * FROM s3.`ebola.csv`"}

        grid = ResultNormalizer().normalize(payload)
        assert grid.columnnames == ["country", "deaths"]
        assert grid.rows == [["Guinea", "10"], ["Liberia", "3"]]

    @pytest.mark.asyncio
    async def test_error_message(self, settings):
        def handler(request):
            return httpx.Response(500, json={"errorMessage": "VALIDATION ERROR: Table 'x' not found"})

        payload = await _adapter(handler, settings).issue("SELECT * FROM x")
        assert payload.error == "VALIDATION ERROR: Table 'x' not found"

    @pytest.mark.asyncio
    async def test_http_error_without_json(self, settings):
        def handler(request):
            return httpx.Response(502, text="Bad Gateway")

        payload = await _adapter(handler, settings).issue("SELECT 1")
        assert payload.error == "Bad Gateway"

    @pytest.mark.asyncio
    async def test_non_json_success_is_a_shape_violation(self, settings):
        def handler(request):
            return httpx.Response(200, text="<html></html>")

        with pytest.raises(ShapeViolation):
            await _adapter(handler, settings).issue("SELECT 1")

    @pytest.mark.asyncio
    async def test_timeout(self, settings):
        def handler(request):
            raise httpx.ReadTimeout("timed out", request=request)

        with pytest.raises(TransportError):
            await _adapter(handler, settings).issue("SELECT 1")


class TestConnectAndFiles:
    @pytest.mark.asyncio
    async def test_connect(self, settings):
        def handler(request):
            assert request.url.path == "/status"
            return httpx.Response(200, text="Running!")

        await _adapter(handler, settings).connect()

    @pytest.mark.asyncio
    async def test_connect_server_error(self, settings):
        with pytest.raises(BackendQueryError):
            await _adapter(lambda r: httpx.Response(503, text="down"), settings).connect()

    @pytest.mark.asyncio
    async def test_files_come_from_the_bucket(self, settings):
        s3 = MagicMock()
        s3.get_paginator.return_value.paginate.return_value = [
            {"Contents": [{"Key": "ebola.csv", "Size": 10}]},
            {"Contents": [{"Key": "ebola.tsv", "Size": 20}]},
        ]
        with patch("grid_connector.db.s3.aws_client", return_value=s3) as make_client:
            files = await _adapter(lambda r: httpx.Response(200), settings).files()
        assert [f["Key"] for f in files] == ["ebola.csv", "ebola.tsv"]
        assert make_client.call_args.args[0] == "s3"
        s3.get_paginator.return_value.paginate.assert_called_once_with(Bucket="ebola-data")

    @pytest.mark.asyncio
    async def test_files_need_a_bucket(self, settings):
        adapter = _adapter(lambda r: httpx.Response(200), settings, DrillConnection(host="drill.local"))
        with pytest.raises(BackendQueryError):
            await adapter.files()
