"""Shared fixtures: small settings and an in-memory search backend."""
from __future__ import annotations

import asyncio
from typing import Any, Dict, List, Mapping, Optional

import pytest

from grid_connector.config.settings import Settings
from grid_connector.core.payloads import SearchHitsPayload


class FakeSearchBackend:
    """Serves a fixed list of documents through search / scroll_page / clear_scroll."""

    def __init__(self, docs: List[Mapping[str, Any]], report_total: bool = True):
        self.docs = docs
        self.report_total = report_total
        self.search_calls: List[Dict[str, Any]] = []
        self.scroll_calls: List[str] = []
        self.cleared: List[str] = []
        self._offset = 0
        self._page_size = 0

    @property
    def fetches(self) -> int:
        return len(self.search_calls) + len(self.scroll_calls)

    def _page(self, scroll_id: Optional[str]) -> SearchHitsPayload:
        start = self._offset
        page = self.docs[start:start + self._page_size]
        self._offset += len(page)
        return SearchHitsPayload(
            hits=page,
            scroll_id=scroll_id,
            total=len(self.docs) if self.report_total else None,
            hit_ids=[f"doc-{i}" for i in range(start, start + len(page))],
        )

    async def search(self, index: str, doc_type: Optional[str], body: Mapping[str, Any], scroll: Optional[str] = None):
        self.search_calls.append({"index": index, "type": doc_type, "body": dict(body), "scroll": scroll})
        self._offset = 0
        self._page_size = body["size"]
        return self._page("cursor-1" if scroll else None)

    async def scroll_page(self, scroll_id: str, keepalive: str) -> SearchHitsPayload:
        self.scroll_calls.append(scroll_id)
        return self._page(scroll_id)

    async def clear_scroll(self, scroll_id: str) -> None:
        self.cleared.append(scroll_id)


class StuckSearchBackend(FakeSearchBackend):
    """Keeps answering with the first page and the same cursor."""

    async def scroll_page(self, scroll_id: str, keepalive: str) -> SearchHitsPayload:
        self.scroll_calls.append(scroll_id)
        page = self.docs[:self._page_size]
        return SearchHitsPayload(hits=page, scroll_id=scroll_id, hit_ids=[f"doc-{i}" for i in range(len(page))])


class FailingScrollBackend(FakeSearchBackend):
    async def scroll_page(self, scroll_id: str, keepalive: str) -> SearchHitsPayload:
        self.scroll_calls.append(scroll_id)
        return SearchHitsPayload(hits=[], error="search_context_missing_exception")


class SlowScrollBackend(FakeSearchBackend):
    async def scroll_page(self, scroll_id: str, keepalive: str) -> SearchHitsPayload:
        self.scroll_calls.append(scroll_id)
        await asyncio.sleep(10)
        return await super().scroll_page(scroll_id, keepalive)


def make_docs(n: int) -> List[Dict[str, Any]]:
    return [{"id": i, "name": f"doc-{i}"} for i in range(n)]


@pytest.fixture
def settings() -> Settings:
    return Settings(
        log_file="logs/test_grid_connector.log",
        search_page_cap=10,
        poll_interval=0,
        max_polls=3,
    )
