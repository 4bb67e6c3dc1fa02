from __future__ import annotations

from typing import Any, Optional, Tuple
import re

import boto3
from botocore.exceptions import (
    BotoCoreError,
    ClientError,
    ConnectionError as BotoConnectionError,
    HTTPClientError,
    NoCredentialsError,
)

from grid_connector.exceptions.errors import (
    BackendQueryError,
    ConfigurationError,
    GridConnectorError,
    TransportError,
)


def parse_s3_uri(uri: str) -> Tuple[str, str]:
    """Parse s3://bucket/key -> (bucket, key)."""
    m = re.match(r"^s3://([^/]+)/(.+)$", (uri or "").strip())
    if not m:
        raise ValueError(f"Invalid S3 URI: {uri}")
    return m.group(1), m.group(2)


def aws_client(service: str, connection: Any, default_region: Optional[str] = None):
    """boto3 client for a connection; explicit keys win, else the default credential chain."""
    kwargs = {"region_name": getattr(connection, "region", "") or default_region or None}
    key_id = getattr(connection, "access_key_id", "")
    secret = getattr(connection, "secret_access_key", "")
    if key_id and secret:
        kwargs["aws_access_key_id"] = key_id
        kwargs["aws_secret_access_key"] = secret
    return boto3.client(service, **kwargs)


def client_error_message(e: ClientError) -> str:
    err = (e.response or {}).get("Error", {}) or {}
    code = err.get("Code", "")
    message = err.get("Message", "") or str(e)
    return f"{code}: {message}" if code else message


def classify_aws_error(e: Exception, service: str) -> GridConnectorError:
    """Map a boto3/botocore failure onto the package error model."""
    if isinstance(e, ClientError):
        return BackendQueryError(client_error_message(e), details={"service": service})
    if isinstance(e, NoCredentialsError):
        return ConfigurationError(f"No AWS credentials available for {service}")
    if isinstance(e, (BotoConnectionError, HTTPClientError)):
        return TransportError(f"Could not reach {service}: {e}", details={"service": service})
    if isinstance(e, BotoCoreError):
        return TransportError(f"{service} request failed: {e}", details={"service": service})
    return TransportError(str(e), details={"service": service})
