"""Connection descriptions, one dataclass per dialect.

Credentials are supplied by the caller as-is; nothing here stores or resolves
secrets.
"""
from __future__ import annotations

from dataclasses import dataclass, fields
from typing import Any, Dict, Mapping, Union
import re

from grid_connector.exceptions.errors import ConfigurationError


@dataclass(frozen=True)
class SqlConnection:
    host: str
    database: str
    username: str = ""
    password: str = ""
    port: int = 5432
    connect_timeout: int = 10
    dialect: str = "postgres"


@dataclass(frozen=True)
class RedshiftConnection:
    database: str
    cluster_id: str = ""
    workgroup_name: str = ""
    secret_arn: str = ""
    db_user: str = ""
    region: str = ""
    dialect: str = "redshift"


@dataclass(frozen=True)
class ElasticsearchConnection:
    host: str
    port: int = 9200
    username: str = ""
    password: str = ""
    dialect: str = "elasticsearch"

    @property
    def base_url(self) -> str:
        host = self.host.rstrip("/")
        if not re.match(r"^https?://", host):
            host = f"http://{host}"
        return f"{host}:{self.port}"


@dataclass(frozen=True)
class S3Connection:
    bucket: str
    access_key_id: str = ""
    secret_access_key: str = ""
    region: str = ""
    dialect: str = "s3"


@dataclass(frozen=True)
class DrillConnection:
    host: str
    port: int = 8047
    # Drill's S3 storage plugin bucket, used for listing files
    bucket: str = ""
    access_key_id: str = ""
    secret_access_key: str = ""
    region: str = ""
    dialect: str = "apache drill"

    @property
    def base_url(self) -> str:
        host = self.host.rstrip("/")
        if not re.match(r"^https?://", host):
            host = f"http://{host}"
        return f"{host}:{self.port}"


@dataclass(frozen=True)
class AthenaConnection:
    database: str
    output_location: str
    workgroup: str = ""
    catalog: str = "AwsDataCatalog"
    access_key_id: str = ""
    secret_access_key: str = ""
    region: str = ""
    dialect: str = "athena"


Connection = Union[
    SqlConnection,
    RedshiftConnection,
    ElasticsearchConnection,
    S3Connection,
    DrillConnection,
    AthenaConnection,
]

_BY_DIALECT = {
    "postgres": SqlConnection,
    "postgresql": SqlConnection,
    "redshift": RedshiftConnection,
    "elasticsearch": ElasticsearchConnection,
    "s3": S3Connection,
    "apache drill": DrillConnection,
    "drill": DrillConnection,
    "athena": AthenaConnection,
}

# camelCase keys (accessKeyId) are snake-cased first; these cover the remaining spellings
_ALIASES = {
    "user": "username",
    "dbname": "database",
    "cluster_identifier": "cluster_id",
}


def _snake(name: str) -> str:
    return re.sub(r"(?<!^)(?=[A-Z])", "_", name).lower()


def connection_from_dict(raw: Mapping[str, Any]) -> Connection:
    dialect = str(raw.get("dialect") or "").strip().lower()
    cls = _BY_DIALECT.get(dialect)
    if cls is None:
        raise ConfigurationError(f"Unknown connection dialect: {dialect or '<missing>'}")

    allowed = {f.name for f in fields(cls)}
    kwargs: Dict[str, Any] = {}
    for key, value in raw.items():
        name = _snake(str(key))
        name = _ALIASES.get(name, name)
        if name == "dialect" or name not in allowed or value is None:
            continue
        kwargs[name] = value

    if "port" in kwargs:
        try:
            kwargs["port"] = int(kwargs["port"])
        except (TypeError, ValueError) as e:
            raise ConfigurationError(f"Invalid port: {kwargs['port']!r}") from e

    try:
        return cls(**kwargs)
    except TypeError as e:
        raise ConfigurationError(f"Incomplete {dialect} connection: {e}") from e
