"""Backend adapters.

Each adapter issues the raw request for one kind of source and hands back a
backend-native payload; reshaping into the canonical grid happens in
``grid_connector.core``.

Backends supported:
  - Postgres      : relational, via psycopg2
  - Redshift      : relational, via the Redshift Data API
  - Elasticsearch : search index, over HTTP (httpx)
  - S3            : delimited files in an object store
  - Apache Drill  : SQL over object-store files, over HTTP (httpx)
  - Athena        : SQL over object-store files (Glue catalog)
"""
