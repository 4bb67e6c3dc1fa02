from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import psycopg2

from grid_connector.config.settings import Settings
from grid_connector.connections import SqlConnection
from grid_connector.core.payloads import BackendKind, RelationalPayload
from grid_connector.db.base import BackendAdapter, run_blocking
from grid_connector.exceptions.errors import BackendQueryError, TransportError
from grid_connector.logging.logger import get_logger

log = get_logger("db.postgres")


def pg_connect(connection: SqlConnection):
    return psycopg2.connect(
        host=connection.host,
        port=connection.port,
        dbname=connection.database,
        user=connection.username or None,
        password=connection.password or None,
        connect_timeout=connection.connect_timeout,
    )


def _execute(connection: SqlConnection, sql: str) -> Dict[str, Any]:
    try:
        conn = pg_connect(connection)
    except psycopg2.OperationalError as e:
        raise TransportError(f"Could not connect to {connection.host}:{connection.port}: {e}".strip()) from e

    try:
        with conn.cursor() as cur:
            try:
                cur.execute(sql)
            except psycopg2.Error as e:
                conn.rollback()
                return {"columns": [], "rows": [], "error": (e.pgerror or str(e)).strip()}
            columns: List[str] = []
            rows: List[List[Any]] = []
            # Statements without a result set leave description empty
            if cur.description is not None:
                columns = [d[0] for d in cur.description]
                rows = [list(r) for r in cur.fetchall()]
        conn.commit()
        return {"columns": columns, "rows": rows, "error": None}
    finally:
        conn.close()


@dataclass
class PostgresAdapter(BackendAdapter):
    connection: SqlConnection
    settings: Optional[Settings] = None

    kind = BackendKind.RELATIONAL

    async def issue(self, query: str) -> RelationalPayload:
        log.info(
            "Postgres execute",
            extra={"host": self.connection.host, "database": self.connection.database, "sql_head": (query or "")[:300]},
        )
        result = await run_blocking(_execute, self.connection, query)
        return RelationalPayload(columns=result["columns"], rows=result["rows"], error=result["error"])

    async def connect(self) -> None:
        payload = await self.issue("SELECT 1")
        if payload.error:
            raise BackendQueryError(payload.error, details={"host": self.connection.host})
