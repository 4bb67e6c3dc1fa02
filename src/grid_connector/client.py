from __future__ import annotations

import asyncio
import uuid
from typing import Any, Dict, List, Mapping, Optional, Union

import httpx

from grid_connector.config.settings import Settings
from grid_connector.connections import (
    AthenaConnection,
    Connection,
    DrillConnection,
    ElasticsearchConnection,
    RedshiftConnection,
    S3Connection,
    SqlConnection,
    connection_from_dict,
)
from grid_connector.core.grid import Grid
from grid_connector.core.normalizer import ResultNormalizer
from grid_connector.core.payloads import SearchQuery
from grid_connector.core.scroll import ScrollCoordinator
from grid_connector.db.athena import AthenaAdapter
from grid_connector.db.base import BackendAdapter
from grid_connector.db.drill import DrillAdapter
from grid_connector.db.elasticsearch import ElasticsearchAdapter
from grid_connector.db.postgres import PostgresAdapter
from grid_connector.db.redshift import RedshiftAdapter
from grid_connector.db.s3 import S3FileAdapter
from grid_connector.exceptions.errors import BackendQueryError, ConfigurationError, GridConnectorError, TransportError
from grid_connector.logging.logger import bind, get_logger

log = get_logger("client")

ConnectionLike = Union[Connection, Mapping[str, Any]]


class DatastoreClient:
    """Run a query against any supported backend and get the canonical grid back.

    Queries are independent: each call builds its own adapter, scroll state and
    aggregation tree and closes the adapter before returning. A shared
    ``http_client`` (for connection pooling) is used but never closed here.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        normalizer: Optional[ResultNormalizer] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.settings = settings or Settings()
        self.settings.validate()
        self.normalizer = normalizer or ResultNormalizer()
        self.http_client = http_client

    @staticmethod
    def resolve(connection: ConnectionLike) -> Connection:
        if isinstance(connection, Mapping):
            return connection_from_dict(connection)
        return connection

    def adapter_for(self, connection: ConnectionLike) -> BackendAdapter:
        c = self.resolve(connection)
        s = self.settings
        if isinstance(c, SqlConnection):
            return PostgresAdapter(connection=c, settings=s)
        if isinstance(c, RedshiftConnection):
            return RedshiftAdapter(connection=c, settings=s)
        if isinstance(c, ElasticsearchConnection):
            return ElasticsearchAdapter(c, s, client=self.http_client)
        if isinstance(c, S3Connection):
            return S3FileAdapter(connection=c, settings=s)
        if isinstance(c, DrillConnection):
            return DrillAdapter(c, s, client=self.http_client)
        if isinstance(c, AthenaConnection):
            return AthenaAdapter(connection=c, settings=s)
        raise ConfigurationError(f"Unsupported connection: {type(c).__name__}")

    async def _run(self, adapter: BackendAdapter, query: Any) -> Grid:
        if isinstance(adapter, ElasticsearchAdapter):
            s = self.settings
            search = SearchQuery.parse(query, default_size=s.search_default_size)
            coordinator = ScrollCoordinator(
                adapter,
                page_cap=s.search_page_cap,
                keepalive=s.search_scroll_keepalive,
                max_result_size=s.max_result_size,
            )
            return await self.normalizer.normalize_search(coordinator, search)
        return self.normalizer.normalize(await adapter.issue(query))

    async def query(self, query: Any, connection: ConnectionLike, timeout: Optional[float] = None) -> Grid:
        """Run ``query`` and return a complete grid, or raise; never a partial grid.

        ``timeout`` is a wall-clock deadline for the whole operation, every
        page included.
        """
        c = self.resolve(connection)
        qlog = bind(log, query_id=uuid.uuid4().hex[:12], dialect=c.dialect)
        adapter = self.adapter_for(c)
        qlog.info("Query started")
        try:
            if timeout is not None:
                grid = await asyncio.wait_for(self._run(adapter, query), timeout)
            else:
                grid = await self._run(adapter, query)
        except asyncio.TimeoutError as e:
            qlog.warning("Query deadline exceeded", extra={"timeout": timeout})
            raise TransportError(f"Query exceeded its {timeout}s deadline", details={"timeout": timeout}) from e
        except GridConnectorError as e:
            qlog.warning("Query failed", extra={"error_type": type(e).__name__, "error": e.message})
            raise
        finally:
            await adapter.aclose()

        qlog.info("Query finished", extra={"rows": len(grid.rows), "columns": len(grid.columnnames)})
        return grid

    async def connect(self, connection: ConnectionLike) -> Any:
        adapter = self.adapter_for(connection)
        try:
            return await adapter.connect()
        finally:
            await adapter.aclose()

    async def files(self, connection: ConnectionLike, prefix: str = "") -> List[Dict[str, Any]]:
        adapter = self.adapter_for(connection)
        try:
            if not isinstance(adapter, (S3FileAdapter, DrillAdapter)):
                raise BackendQueryError(f"Listing files is not supported for {self.resolve(connection).dialect}")
            return await adapter.files(prefix)
        finally:
            await adapter.aclose()
