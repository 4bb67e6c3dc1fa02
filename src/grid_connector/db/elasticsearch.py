from __future__ import annotations

from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

import httpx

from grid_connector.config.settings import Settings
from grid_connector.connections import ElasticsearchConnection
from grid_connector.core.payloads import (
    BackendKind,
    SearchAggregationPayload,
    SearchHitsPayload,
    SearchQuery,
)
from grid_connector.db.base import BackendAdapter
from grid_connector.exceptions.errors import BackendQueryError, ShapeViolation, TransportError
from grid_connector.logging.logger import get_logger

log = get_logger("db.elasticsearch")

SearchPayload = Union[SearchHitsPayload, SearchAggregationPayload]


def _error_message(data: Any, status: int) -> Tuple[Optional[str], Dict[str, Any]]:
    """Pull the reason out of an Elasticsearch error body."""
    err = data.get("error") if isinstance(data, Mapping) else None
    if isinstance(err, Mapping):
        root = (err.get("root_cause") or [{}])[0] or {}
        reason = root.get("reason") or err.get("reason") or err.get("type") or "Elasticsearch error"
        return str(reason), {"status": status, "type": root.get("type") or err.get("type")}
    if err:
        return str(err), {"status": status}
    if status >= 400:
        return f"Elasticsearch responded with HTTP {status}", {"status": status}
    return None, {}


def _total(hits: Mapping[str, Any]) -> Optional[int]:
    total = hits.get("total")
    # 7.x reports {"value": n, "relation": "eq"}
    if isinstance(total, Mapping):
        if total.get("relation", "eq") != "eq":
            return None
        total = total.get("value")
    return int(total) if total is not None else None


class ElasticsearchAdapter(BackendAdapter):
    kind = BackendKind.SEARCH_INDEX

    def __init__(
        self,
        connection: ElasticsearchConnection,
        settings: Settings,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.connection = connection
        self.settings = settings
        self._owns_client = client is None
        self._auth = (connection.username, connection.password) if connection.username else None
        if client is None:
            client = httpx.AsyncClient(
                timeout=httpx.Timeout(settings.http_timeout_seconds),
                headers={"Accept": "application/json"},
            )
        self._client = client

    async def _request(self, method: str, path: str, **kwargs: Any) -> Tuple[int, Any]:
        if self._auth:
            kwargs.setdefault("auth", self._auth)
        try:
            resp = await self._client.request(method, f"{self.connection.base_url}{path}", **kwargs)
        except httpx.TimeoutException as e:
            raise TransportError(f"Elasticsearch request timed out: {method} {path}") from e
        except httpx.TransportError as e:
            raise TransportError(f"Could not reach Elasticsearch at {self.connection.base_url}: {e}") from e

        try:
            data = resp.json()
        except ValueError as e:
            if resp.is_error:
                return resp.status_code, {"error": resp.text or resp.reason_phrase}
            raise ShapeViolation(f"Elasticsearch returned a non-JSON body for {method} {path}") from e
        return resp.status_code, data

    @staticmethod
    def _search_path(index: str, doc_type: Optional[str]) -> str:
        return f"/{index}/{doc_type}/_search" if doc_type else f"/{index}/_search"

    def _hits_payload(self, status: int, data: Any) -> SearchHitsPayload:
        error, details = _error_message(data, status)
        if error:
            return SearchHitsPayload(hits=[], error=error, error_details=details)
        hits = data.get("hits") or {}
        raw = hits.get("hits", [])
        docs = [h.get("_source") or {} for h in raw]
        ids = [str(h["_id"]) for h in raw if "_id" in h]
        return SearchHitsPayload(
            hits=docs,
            scroll_id=data.get("_scroll_id"),
            total=_total(hits),
            hit_ids=ids if len(ids) == len(docs) else [],
        )

    async def search(
        self,
        index: str,
        doc_type: Optional[str],
        body: Mapping[str, Any],
        scroll: Optional[str] = None,
    ) -> SearchPayload:
        path = self._search_path(index, doc_type)
        params = {"scroll": scroll} if scroll else None
        log.info("Elasticsearch search", extra={"index": index, "type": doc_type, "size": body.get("size"), "scroll": scroll})
        status, data = await self._request("POST", path, json=dict(body), params=params)

        aggs = body.get("aggs") or body.get("aggregations")
        if aggs:
            error, details = _error_message(data, status)
            return SearchAggregationPayload(
                request_aggs=aggs,
                response_aggs=(data.get("aggregations") or {}) if not error else {},
                error=error,
                error_details=details,
            )
        return self._hits_payload(status, data)

    async def scroll_page(self, scroll_id: str, keepalive: str) -> SearchHitsPayload:
        status, data = await self._request("POST", "/_search/scroll", json={"scroll": keepalive, "scroll_id": scroll_id})
        return self._hits_payload(status, data)

    async def clear_scroll(self, scroll_id: str) -> None:
        status, data = await self._request("DELETE", "/_search/scroll", json={"scroll_id": [scroll_id]})
        # 404: the cursor already expired, which is what we wanted
        if status >= 400 and status != 404:
            error, details = _error_message(data, status)
            raise BackendQueryError(error or "Failed to clear scroll", details=details)

    async def issue(self, query: Union[str, Mapping[str, Any]]) -> SearchPayload:
        """One search request for the query as written (no scrolling)."""
        q = SearchQuery.parse(query, default_size=self.settings.search_default_size)
        body = dict(q.body)
        body["size"] = q.size
        return await self.search(q.index, q.doc_type, body)

    async def connect(self) -> List[Dict[str, Any]]:
        status, data = await self._request("GET", "/_cat/indices", params={"format": "json"})
        error, details = _error_message(data, status)
        if error:
            raise BackendQueryError(error, details=details)
        return data

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()
