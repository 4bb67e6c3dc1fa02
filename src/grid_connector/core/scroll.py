"""Multi-page retrieval against a search index with a per-request result cap.

Elasticsearch refuses a single search larger than ``index.max_result_window``
(10,000 by default). Larger requests are served with the scroll API: one
initial search opens a server-side cursor, successive pages are pulled with the
cursor token, and the cursor is cleared when we are done.

The adapter passed to :class:`ScrollCoordinator` must provide::

    await adapter.search(index, doc_type, body, scroll=None) -> SearchHitsPayload
    await adapter.scroll_page(scroll_id, keepalive) -> SearchHitsPayload
    await adapter.clear_scroll(scroll_id) -> None
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Tuple

from grid_connector.core.payloads import SearchHitsPayload, SearchQuery, check_backend_error
from grid_connector.exceptions.errors import GridConnectorError, ResourceExhaustion
from grid_connector.logging.logger import get_logger

log = get_logger("core.scroll")


@dataclass
class ScrollState:
    target_size: int
    page_size: int
    cursor_token: Optional[str] = None
    total_retrieved: int = 0
    total_available: Optional[int] = None
    pages_fetched: int = 0
    exhausted: bool = False

    def record_page(self, page: SearchHitsPayload) -> None:
        self.pages_fetched += 1
        self.total_retrieved += len(page.hits)
        if page.total is not None:
            self.total_available = page.total
        if page.scroll_id:
            self.cursor_token = page.scroll_id
        if not page.hits or not self.cursor_token:
            self.exhausted = True
        elif self.total_available is not None and self.total_retrieved >= self.total_available:
            self.exhausted = True

    @property
    def satisfied(self) -> bool:
        return self.total_retrieved >= self.target_size


class ScrollCursor:
    """Scoped ownership of a server-side scroll cursor.

    Whatever token was seen last is cleared on exit, whether the block
    finished, raised or was cancelled. Clearing is best-effort: a failure is
    logged and never masks the block's own outcome.
    """

    def __init__(self, adapter: Any):
        self._adapter = adapter
        self.token: Optional[str] = None

    def track(self, token: Optional[str]) -> None:
        if token:
            self.token = token

    async def __aenter__(self) -> "ScrollCursor":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> bool:
        if self.token:
            token, self.token = self.token, None
            try:
                await self._adapter.clear_scroll(token)
                log.debug("Released scroll cursor")
            except GridConnectorError as e:
                log.warning("Failed to release scroll cursor", extra={"error": e.message})
        return False


def _page_signature(page: SearchHitsPayload) -> Optional[Tuple[str, ...]]:
    """Identity of a page by its document ids; None when the backend sent no ids.

    Document bodies are not an identity: an index may hold many identical
    documents, so two distinct pages can look the same.
    """
    if not page.hit_ids:
        return None
    return tuple(page.hit_ids)


class ScrollCoordinator:
    def __init__(self, adapter: Any, page_cap: int = 10000, keepalive: str = "1m", max_result_size: int = 1000000):
        self.adapter = adapter
        self.page_cap = page_cap
        self.keepalive = keepalive
        self.max_result_size = max_result_size

    async def fetch(self, query: SearchQuery) -> SearchHitsPayload:
        """Collect exactly ``min(query.size, available)`` hits.

        Sizes within the cap are a single plain search. Larger sizes open a
        scroll cursor and pull pages sequentially, each page depending on the
        previous page's token. A failed page discards everything collected.
        """
        size = query.size
        if size > self.max_result_size:
            raise ResourceExhaustion(
                f"Requested size {size} exceeds the limit of {self.max_result_size} rows",
                details={"requested": size, "limit": self.max_result_size},
            )

        state = ScrollState(target_size=size, page_size=min(size, self.page_cap))
        scrolling = size > self.page_cap
        body: Dict[str, Any] = dict(query.body)
        body["size"] = state.page_size

        hits: List[Mapping[str, Any]] = []
        async with ScrollCursor(self.adapter) as cursor:
            page = await self.adapter.search(
                query.index, query.doc_type, body, scroll=self.keepalive if scrolling else None
            )
            check_backend_error(page)
            cursor.track(page.scroll_id)
            state.record_page(page)
            hits.extend(page.hits)
            previous = _page_signature(page)

            while scrolling and not state.satisfied and not state.exhausted:
                token = state.cursor_token
                page = await self.adapter.scroll_page(token, self.keepalive)
                check_backend_error(page)
                cursor.track(page.scroll_id)

                signature = _page_signature(page)
                if signature is not None and (page.scroll_id or token) == token and signature == previous:
                    raise ResourceExhaustion(
                        "Scroll cursor is not advancing",
                        details={"pages_fetched": state.pages_fetched + 1},
                    )
                state.record_page(page)
                hits.extend(page.hits)
                previous = signature
                log.debug(
                    "Fetched scroll page",
                    extra={"page": state.pages_fetched, "retrieved": state.total_retrieved, "target": size},
                )

        log.info(
            "Search retrieval finished",
            extra={
                "index": query.index,
                "pages": state.pages_fetched,
                "retrieved": state.total_retrieved,
                "target": size,
            },
        )
        return SearchHitsPayload(hits=hits[:size], total=state.total_available)
