"""
Tests for connection objects built from caller supplied dictionaries.
"""
import pytest

from grid_connector.connections import (
    AthenaConnection,
    DrillConnection,
    ElasticsearchConnection,
    RedshiftConnection,
    S3Connection,
    SqlConnection,
    connection_from_dict,
)
from grid_connector.exceptions.errors import ConfigurationError


class TestConnectionFromDict:
    def test_postgres(self):
        c = connection_from_dict(
            {"dialect": "postgres", "host": "db", "port": "5433", "database": "ebola", "user": "u", "password": "p"}
        )
        assert c == SqlConnection(host="db", database="ebola", username="u", password="p", port=5433)

    def test_camel_case_keys(self):
        c = connection_from_dict(
            {"dialect": "s3", "bucket": "b", "accessKeyId": "AK", "secretAccessKey": "SK", "region": "eu-west-1"}
        )
        assert c == S3Connection(bucket="b", access_key_id="AK", secret_access_key="SK", region="eu-west-1")

    def test_dialect_is_case_insensitive(self):
        c = connection_from_dict({"dialect": "Apache Drill", "host": "drill", "port": 8047})
        assert isinstance(c, DrillConnection)
        assert c.base_url == "http://drill:8047"

    def test_elasticsearch_base_url_keeps_scheme(self):
        c = connection_from_dict({"dialect": "elasticsearch", "host": "https://es.local/", "port": 9243})
        assert isinstance(c, ElasticsearchConnection)
        assert c.base_url == "https://es.local:9243"

    def test_redshift_aliases(self):
        c = connection_from_dict({"dialect": "redshift", "dbname": "dev", "clusterIdentifier": "c1", "dbUser": "admin"})
        assert c == RedshiftConnection(database="dev", cluster_id="c1", db_user="admin")

    def test_athena(self):
        c = connection_from_dict({"dialect": "athena", "database": "d", "outputLocation": "s3://out/"})
        assert isinstance(c, AthenaConnection)
        assert c.catalog == "AwsDataCatalog"

    def test_unknown_keys_ignored(self):
        c = connection_from_dict({"dialect": "s3", "bucket": "b", "name": "my files", "id": 3})
        assert c == S3Connection(bucket="b")

    def test_unknown_dialect(self):
        with pytest.raises(ConfigurationError):
            connection_from_dict({"dialect": "mysql", "host": "h"})

    def test_missing_dialect(self):
        with pytest.raises(ConfigurationError):
            connection_from_dict({"host": "h"})

    def test_missing_required_field(self):
        with pytest.raises(ConfigurationError):
            connection_from_dict({"dialect": "postgres", "host": "h"})

    def test_bad_port(self):
        with pytest.raises(ConfigurationError):
            connection_from_dict({"dialect": "elasticsearch", "host": "h", "port": "ninety"})
