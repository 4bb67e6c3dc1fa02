from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from botocore.exceptions import BotoCoreError, ClientError

from grid_connector.config.settings import Settings
from grid_connector.connections import RedshiftConnection
from grid_connector.core.payloads import BackendKind, RelationalPayload
from grid_connector.db.base import BackendAdapter, run_blocking
from grid_connector.db.utils import aws_client, classify_aws_error, client_error_message
from grid_connector.exceptions.errors import BackendQueryError, ConfigurationError, TransportError
from grid_connector.logging.logger import get_logger


log = get_logger("db.redshift")


def _field_to_py(v: Dict[str, Any]) -> Any:
    if not v:
        return None
    if v.get("isNull") is True:
        return None
    for k in ("stringValue", "longValue", "doubleValue", "booleanValue", "blobValue"):
        if k in v:
            return v[k]
    return None


def _fetch_all(client: Any, statement_id: str) -> Dict[str, Any]:
    cols: List[str] = []
    rows: List[List[Any]] = []

    next_token: Optional[str] = None
    first = True
    while True:
        page_args = {"Id": statement_id}
        if next_token:
            page_args["NextToken"] = next_token
        r = client.get_statement_result(**page_args)

        if first:
            cols = [c.get("name", "") for c in r.get("ColumnMetadata", [])]
            first = False

        for rec in r.get("Records", []):
            rows.append([_field_to_py(x) for x in rec])

        next_token = r.get("NextToken")
        if not next_token:
            break
    return {"columns": cols, "rows": rows}


@dataclass
class RedshiftAdapter(BackendAdapter):
    connection: RedshiftConnection
    settings: Settings
    client: Optional[Any] = None

    kind = BackendKind.RELATIONAL

    def _data_api(self):
        if self.client is None:
            self.client = aws_client("redshift-data", self.connection, self.settings.aws_region)
        return self.client

    def _validate(self) -> None:
        c = self.connection
        if not c.database:
            raise ConfigurationError("Redshift connection requires a database")
        if not (c.cluster_id or c.workgroup_name):
            raise ConfigurationError("Redshift connection requires cluster_id (provisioned) or workgroup_name (serverless)")
        if not (c.secret_arn or c.db_user):
            raise ConfigurationError("Redshift connection requires secret_arn (preferred) or db_user")

    async def issue(self, query: str) -> RelationalPayload:
        """Execute SQL through the Redshift Data API and collect every result page."""
        self._validate()
        c = self.connection
        exec_args: Dict[str, Any] = {"Sql": query, "Database": c.database}
        if c.cluster_id:
            exec_args["ClusterIdentifier"] = c.cluster_id
        else:
            exec_args["WorkgroupName"] = c.workgroup_name
        if c.secret_arn:
            exec_args["SecretArn"] = c.secret_arn
        else:
            exec_args["DbUser"] = c.db_user

        log.info(
            "Redshift execute_statement",
            extra={
                "database": c.database,
                "cluster_id": c.cluster_id,
                "workgroup": c.workgroup_name,
                "sql_head": (query or "")[:300],
            },
        )

        client = self._data_api()
        try:
            statement_id = (await run_blocking(client.execute_statement, **exec_args))["Id"]

            status = "STARTED"
            err = ""
            for _ in range(self.settings.max_polls):
                d = await run_blocking(client.describe_statement, Id=statement_id)
                status = d.get("Status", "")
                if status in {"FINISHED", "FAILED", "ABORTED"}:
                    err = d.get("Error", "") or ""
                    break
                await asyncio.sleep(self.settings.poll_interval)
            else:
                raise TransportError(f"Redshift statement still {status} after polling", details={"id": statement_id})

            if status != "FINISHED":
                return RelationalPayload(columns=[], rows=[], error=f"Redshift query {status}: {err}")

            # Statements without a result set (DDL/DML) have nothing to page through
            if not d.get("HasResultSet", True):
                return RelationalPayload(columns=[], rows=[])
            result = await run_blocking(_fetch_all, client, statement_id)
        except ClientError as e:
            return RelationalPayload(columns=[], rows=[], error=client_error_message(e))
        except BotoCoreError as e:
            raise classify_aws_error(e, "redshift-data") from e

        return RelationalPayload(columns=result["columns"], rows=result["rows"])

    async def connect(self) -> None:
        payload = await self.issue("SELECT 1")
        if payload.error:
            raise BackendQueryError(payload.error, details={"service": "redshift-data"})
