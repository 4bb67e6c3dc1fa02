"""
Tests for capped, multi-page search retrieval.
"""
import asyncio

import pytest

from conftest import (
    FailingScrollBackend,
    FakeSearchBackend,
    SlowScrollBackend,
    StuckSearchBackend,
    make_docs,
)
from grid_connector.core.payloads import SearchHitsPayload, SearchQuery
from grid_connector.core.scroll import ScrollCoordinator, ScrollState
from grid_connector.exceptions.errors import BackendQueryError, ResourceExhaustion


def _query(size: int) -> SearchQuery:
    return SearchQuery(index="ebola", body={"query": {"match_all": {}}}, size=size)


class TestScrollCoordinator:
    @pytest.mark.asyncio
    async def test_one_over_the_cap_takes_two_fetches(self):
        backend = FakeSearchBackend(make_docs(10001))
        coordinator = ScrollCoordinator(backend, page_cap=10000)

        result = await coordinator.fetch(_query(10001))

        assert len(result.hits) == 10001
        assert backend.fetches == 2
        assert backend.search_calls[0]["scroll"] == "1m"
        assert backend.search_calls[0]["body"]["size"] == 10000
        assert backend.cleared == ["cursor-1"]

    @pytest.mark.asyncio
    async def test_within_cap_is_a_plain_search(self):
        backend = FakeSearchBackend(make_docs(50))
        result = await ScrollCoordinator(backend, page_cap=10).fetch(_query(10))

        assert [d["id"] for d in result.hits] == list(range(10))
        assert backend.fetches == 1
        assert backend.search_calls[0]["scroll"] is None
        assert backend.cleared == []

    @pytest.mark.asyncio
    async def test_exact_count_across_pages(self):
        backend = FakeSearchBackend(make_docs(100))
        result = await ScrollCoordinator(backend, page_cap=10).fetch(_query(35))

        assert [d["id"] for d in result.hits] == list(range(35))
        assert backend.fetches == 4

    @pytest.mark.asyncio
    async def test_size_larger_than_available(self):
        backend = FakeSearchBackend(make_docs(15))
        result = await ScrollCoordinator(backend, page_cap=10).fetch(_query(100))

        assert len(result.hits) == 15
        assert result.total == 15
        assert backend.fetches == 2

    @pytest.mark.asyncio
    async def test_stops_on_empty_page_without_total(self):
        backend = FakeSearchBackend(make_docs(15), report_total=False)
        result = await ScrollCoordinator(backend, page_cap=10).fetch(_query(100))

        assert len(result.hits) == 15
        assert backend.fetches == 3

    @pytest.mark.asyncio
    async def test_size_zero(self):
        backend = FakeSearchBackend(make_docs(5))
        result = await ScrollCoordinator(backend, page_cap=10).fetch(_query(0))

        assert result.hits == []
        assert backend.fetches == 1

    @pytest.mark.asyncio
    async def test_over_result_ceiling_is_refused_before_any_fetch(self):
        backend = FakeSearchBackend(make_docs(5))
        with pytest.raises(ResourceExhaustion):
            await ScrollCoordinator(backend, page_cap=10, max_result_size=100).fetch(_query(101))
        assert backend.fetches == 0

    @pytest.mark.asyncio
    async def test_cursor_that_does_not_advance(self):
        backend = StuckSearchBackend(make_docs(100))
        with pytest.raises(ResourceExhaustion):
            await ScrollCoordinator(backend, page_cap=10).fetch(_query(50))
        assert backend.fetches == 2
        assert backend.cleared == ["cursor-1"]

    @pytest.mark.asyncio
    async def test_failed_page_discards_results_and_releases_cursor(self):
        backend = FailingScrollBackend(make_docs(100))
        with pytest.raises(BackendQueryError) as exc:
            await ScrollCoordinator(backend, page_cap=10).fetch(_query(50))
        assert "search_context_missing_exception" in exc.value.message
        assert backend.cleared == ["cursor-1"]

    @pytest.mark.asyncio
    async def test_cancellation_releases_cursor(self):
        backend = SlowScrollBackend(make_docs(100))
        with pytest.raises(asyncio.TimeoutError):
            await asyncio.wait_for(ScrollCoordinator(backend, page_cap=10).fetch(_query(50)), 0.05)
        assert backend.cleared == ["cursor-1"]

    @pytest.mark.asyncio
    async def test_failed_release_does_not_mask_result(self):
        backend = FakeSearchBackend(make_docs(30))

        async def refuse(scroll_id):
            raise BackendQueryError("cannot clear")

        backend.clear_scroll = refuse
        result = await ScrollCoordinator(backend, page_cap=10).fetch(_query(25))
        assert len(result.hits) == 25

    @pytest.mark.asyncio
    async def test_identical_documents_on_every_page(self):
        backend = FakeSearchBackend([{"status": "ok"}] * 25)
        result = await ScrollCoordinator(backend, page_cap=10).fetch(_query(25))

        assert result.hits == [{"status": "ok"}] * 25
        assert backend.fetches == 3

    @pytest.mark.asyncio
    async def test_identical_documents_without_ids(self):
        backend = FakeSearchBackend([{"status": "ok"}] * 25)
        real_page = backend._page

        def page_without_ids(scroll_id):
            page = real_page(scroll_id)
            page.hit_ids = []
            return page

        backend._page = page_without_ids
        result = await ScrollCoordinator(backend, page_cap=10).fetch(_query(40))

        assert len(result.hits) == 25


class TestScrollState:
    def test_exhausted_when_total_reached(self):
        state = ScrollState(target_size=100, page_size=10)
        state.record_page(SearchHitsPayload(hits=[{}] * 10, scroll_id="c", total=10))
        assert state.exhausted
        assert not state.satisfied

    def test_exhausted_without_cursor(self):
        state = ScrollState(target_size=100, page_size=10)
        state.record_page(SearchHitsPayload(hits=[{}] * 10))
        assert state.exhausted

    def test_satisfied(self):
        state = ScrollState(target_size=10, page_size=10)
        state.record_page(SearchHitsPayload(hits=[{}] * 10, scroll_id="c", total=50))
        assert state.satisfied
        assert state.cursor_token == "c"
