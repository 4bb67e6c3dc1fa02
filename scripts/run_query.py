"""Run one query from the command line and print the canonical grid as JSON.

    python scripts/run_query.py --connection conn.json "SELECT * FROM ebola_2014 LIMIT 2"
"""
from __future__ import annotations
import argparse
import asyncio
import json
import sys
from pathlib import Path

from grid_connector.client import DatastoreClient
from grid_connector.config.settings import load_settings
from grid_connector.exceptions.errors import GridConnectorError
from grid_connector.logging.logger import init_logging


def main() -> int:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument("query", help="SQL, an object key, or a search query JSON document")
    parser.add_argument("--connection", required=True, help="path to a JSON connection object")
    parser.add_argument("--timeout", type=float, default=None, help="deadline in seconds for the whole query")
    args = parser.parse_args()

    settings = load_settings()
    init_logging(settings.log_level, settings.log_file)
    connection = json.loads(Path(args.connection).read_text(encoding="utf-8"))

    try:
        grid = asyncio.run(DatastoreClient(settings).query(args.query, connection, timeout=args.timeout))
    except GridConnectorError as e:
        print(json.dumps({"error": e.to_dict()}), file=sys.stderr)
        return 1
    print(grid.to_json())
    return 0


if __name__ == "__main__":
    sys.exit(main())
