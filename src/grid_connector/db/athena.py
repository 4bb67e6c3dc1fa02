from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from botocore.exceptions import BotoCoreError, ClientError

from grid_connector.config.settings import Settings
from grid_connector.connections import AthenaConnection
from grid_connector.core.payloads import BackendKind, SqlOverFilesPayload
from grid_connector.db.base import BackendAdapter, run_blocking
from grid_connector.db.utils import aws_client, classify_aws_error, client_error_message
from grid_connector.exceptions.errors import ConfigurationError, TransportError
from grid_connector.logging.logger import get_logger


log = get_logger("db.athena")


def _read_pages(ath: Any, qid: str) -> Dict[str, Any]:
    """All result pages of a finished query; paging via the boto3 paginator."""
    columns: List[str] = []
    rows: List[List[Optional[str]]] = []
    first = True
    for page in ath.get_paginator("get_query_results").paginate(QueryExecutionId=qid):
        result_set = page.get("ResultSet", {})
        if first:
            info = result_set.get("ResultSetMetadata", {}).get("ColumnInfo", [])
            columns = [c.get("Name", "") for c in info]
        for i, rec in enumerate(result_set.get("Rows", [])):
            values = [d.get("VarCharValue") for d in rec.get("Data", [])]
            # SELECT results repeat the header as the first row of the first page
            if first and i == 0 and values == columns:
                continue
            rows.append(values)
        first = False
    return {"columns": columns, "rows": rows}


@dataclass
class AthenaAdapter(BackendAdapter):
    connection: AthenaConnection
    settings: Settings
    client: Optional[Any] = None

    kind = BackendKind.SQL_OVER_FILES

    def _athena(self):
        if self.client is None:
            self.client = aws_client("athena", self.connection, self.settings.aws_region)
        return self.client

    async def issue(self, query: str) -> SqlOverFilesPayload:
        """Run SQL in Athena, poll to completion and return every result row.

        Required on the connection:
          - database
          - output_location (s3://...)
        """
        c = self.connection
        if not c.database:
            raise ConfigurationError("Athena connection requires a database")
        if not c.output_location:
            raise ConfigurationError("Athena connection requires an output_location")

        ath = self._athena()
        start_args: Dict[str, Any] = {
            "QueryString": query,
            "QueryExecutionContext": {"Database": c.database, "Catalog": c.catalog or "AwsDataCatalog"},
            "ResultConfiguration": {"OutputLocation": c.output_location},
        }
        if c.workgroup:
            start_args["WorkGroup"] = c.workgroup

        log.info(
            "Athena start_query_execution",
            extra={"database": c.database, "workgroup": c.workgroup, "sql_head": (query or "")[:300]},
        )

        try:
            qid = (await run_blocking(ath.start_query_execution, **start_args))["QueryExecutionId"]
            state, reason = await self._wait(ath, qid)
            if state != "SUCCEEDED":
                return SqlOverFilesPayload(columns=[], records=[], error=f"Athena query {state}: {reason}")
            result = await run_blocking(_read_pages, ath, qid)
        except ClientError as e:
            return SqlOverFilesPayload(columns=[], records=[], error=client_error_message(e))
        except BotoCoreError as e:
            raise classify_aws_error(e, "athena") from e

        return SqlOverFilesPayload(columns=result["columns"], records=result["rows"])

    async def _wait(self, ath: Any, qid: str) -> tuple:
        state = "QUEUED"
        reason = ""
        for _ in range(self.settings.max_polls):
            resp = await run_blocking(ath.get_query_execution, QueryExecutionId=qid)
            status = resp.get("QueryExecution", {}).get("Status", {})
            state = status.get("State", "")
            reason = status.get("StateChangeReason", "") or ""
            if state in {"SUCCEEDED", "FAILED", "CANCELLED"}:
                return state, reason
            await asyncio.sleep(self.settings.poll_interval)

        log.warning("Athena query did not finish; stopping it", extra={"query_execution_id": qid, "state": state})
        try:
            await run_blocking(ath.stop_query_execution, QueryExecutionId=qid)
        except (BotoCoreError, ClientError) as e:
            log.warning("Failed to stop Athena query", extra={"query_execution_id": qid, "error": str(e)})
        raise TransportError(
            f"Athena query still {state} after {self.settings.max_polls} polls",
            details={"query_execution_id": qid},
        )

    async def connect(self) -> None:
        try:
            await run_blocking(self._athena().get_work_group, WorkGroup=self.connection.workgroup or "primary")
        except (BotoCoreError, ClientError) as e:
            raise classify_aws_error(e, "athena") from e
