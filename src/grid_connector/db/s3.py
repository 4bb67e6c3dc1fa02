from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from botocore.exceptions import BotoCoreError, ClientError

from grid_connector.config.settings import Settings
from grid_connector.connections import S3Connection
from grid_connector.core.payloads import BackendKind, DelimitedFilePayload
from grid_connector.db.base import BackendAdapter, run_blocking
from grid_connector.db.utils import aws_client, classify_aws_error, client_error_message, parse_s3_uri
from grid_connector.exceptions.errors import BackendQueryError
from grid_connector.ingestion.reader import delimiter_for, read_delimited
from grid_connector.logging.logger import get_logger

log = get_logger("db.s3")


def list_files(s3: Any, bucket: str, prefix: str = "") -> List[Dict[str, Any]]:
    """Every object under a bucket/prefix; paging is left to the boto3 paginator."""
    out: List[Dict[str, Any]] = []
    args = {"Bucket": bucket}
    if prefix:
        args["Prefix"] = prefix
    for page in s3.get_paginator("list_objects_v2").paginate(**args):
        out.extend(page.get("Contents", []))
    return out


@dataclass
class S3FileAdapter(BackendAdapter):
    """Reads one delimited file per query; the query is an object key or s3:// URI."""

    connection: S3Connection
    settings: Settings
    client: Optional[Any] = None

    kind = BackendKind.OBJECT_STORE_FILE

    def _s3(self):
        if self.client is None:
            self.client = aws_client("s3", self.connection, self.settings.aws_region)
        return self.client

    def _locate(self, query: str) -> tuple:
        q = (query or "").strip()
        if q.startswith("s3://"):
            try:
                return parse_s3_uri(q)
            except ValueError as e:
                raise BackendQueryError(str(e), details={"query": q}) from e
        key = q.lstrip("/")
        if not key:
            raise BackendQueryError("S3 query requires an object key")
        return self.connection.bucket, key

    async def issue(self, query: str) -> DelimitedFilePayload:
        bucket, key = self._locate(query)
        log.info("S3 get_object", extra={"bucket": bucket, "key": key})
        try:
            obj = await run_blocking(self._s3().get_object, Bucket=bucket, Key=key)
            body = await run_blocking(obj["Body"].read)
        except ClientError as e:
            return DelimitedFilePayload(rows=[], key=key, error=client_error_message(e))
        except BotoCoreError as e:
            raise classify_aws_error(e, "s3") from e

        decoded = read_delimited(
            body,
            source=key,
            delimiter=delimiter_for(key, self.settings.delimiter),
            fallback_encodings=self.settings.fallback_encodings,
        )
        rows = decoded.to_rows() if len(decoded.df.columns) else []
        return DelimitedFilePayload(rows=rows, key=key)

    async def connect(self) -> None:
        try:
            await run_blocking(self._s3().head_bucket, Bucket=self.connection.bucket)
        except (BotoCoreError, ClientError) as e:
            raise classify_aws_error(e, "s3") from e

    async def files(self, prefix: str = "") -> List[Dict[str, Any]]:
        try:
            return await run_blocking(list_files, self._s3(), self.connection.bucket, prefix)
        except (BotoCoreError, ClientError) as e:
            raise classify_aws_error(e, "s3") from e
