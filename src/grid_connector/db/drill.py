from __future__ import annotations

from typing import Any, Dict, List, Optional

import httpx

from grid_connector.config.settings import Settings
from grid_connector.connections import DrillConnection, S3Connection
from grid_connector.core.payloads import BackendKind, SqlOverFilesPayload
from grid_connector.db.base import BackendAdapter
from grid_connector.db.s3 import S3FileAdapter
from grid_connector.exceptions.errors import BackendQueryError, ShapeViolation, TransportError
from grid_connector.logging.logger import get_logger

log = get_logger("db.drill")


class DrillAdapter(BackendAdapter):
    """Apache Drill REST API: ``POST /query.json`` with ``{"queryType": "SQL"}``."""

    kind = BackendKind.SQL_OVER_FILES

    def __init__(self, connection: DrillConnection, settings: Settings, client: Optional[httpx.AsyncClient] = None):
        self.connection = connection
        self.settings = settings
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            timeout=httpx.Timeout(settings.http_timeout_seconds),
            headers={"Accept": "application/json"},
        )

    async def issue(self, query: str) -> SqlOverFilesPayload:
        log.info("Drill query", extra={"sql_head": (query or "")[:300]})
        try:
            resp = await self._client.post(f"{self.connection.base_url}/query.json", json={"queryType": "SQL", "query": query})
        except httpx.TimeoutException as e:
            raise TransportError("Drill query timed out") from e
        except httpx.TransportError as e:
            raise TransportError(f"Could not reach Drill at {self.connection.base_url}: {e}") from e

        try:
            data = resp.json()
        except ValueError as e:
            if resp.is_error:
                return SqlOverFilesPayload(columns=[], records=[], error=resp.text or f"HTTP {resp.status_code}")
            raise ShapeViolation("Drill returned a non-JSON body") from e

        error = data.get("errorMessage")
        if not error and resp.is_error:
            error = f"Drill responded with HTTP {resp.status_code}"
        if error:
            return SqlOverFilesPayload(columns=[], records=[], error=error)
        return SqlOverFilesPayload(columns=list(data.get("columns") or []), records=list(data.get("rows") or []))

    async def connect(self) -> None:
        try:
            resp = await self._client.get(f"{self.connection.base_url}/status")
        except httpx.HTTPError as e:
            raise TransportError(f"Could not reach Drill at {self.connection.base_url}: {e}") from e
        if resp.status_code >= 500:
            raise BackendQueryError(f"Drill responded with HTTP {resp.status_code}")

    async def files(self, prefix: str = "") -> List[Dict[str, Any]]:
        """Files in the bucket behind Drill's S3 storage plugin."""
        if not self.connection.bucket:
            raise BackendQueryError("This Drill connection has no S3 bucket configured")
        s3 = S3FileAdapter(
            connection=S3Connection(
                bucket=self.connection.bucket,
                access_key_id=self.connection.access_key_id,
                secret_access_key=self.connection.secret_access_key,
                region=self.connection.region,
            ),
            settings=self.settings,
        )
        return await s3.files(prefix)

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()
