"""Tests for fetch orchestration and in-flight deduplication."""

import asyncio

import pytest

from smarttable.exceptions import ExportLimitError, FetchError
from smarttable.orchestrator import (
    InFlightRegistry,
    RefreshCounter,
    TableDataOrchestrator,
    dedupe,
    fetch_all_pages,
    query_signature,
)
from smarttable.query_state import TableQuery
from smarttable.types import ListResult


class SpyFetcher:
    """Fetcher that counts calls and can be held open with an event."""

    def __init__(self, rows=None, fail=None):
        self.calls = []
        self.rows = rows if rows is not None else [{"id": 1}, {"id": 2}]
        self.fail = fail
        self.gate = None

    async def __call__(self, query):
        self.calls.append(query)
        if self.gate is not None:
            await self.gate.wait()
        if self.fail is not None:
            raise self.fail
        return ListResult(list=list(self.rows), total=len(self.rows))


@pytest.mark.asyncio
class TestDedupe:
    """Test in-flight deduplication."""

    async def test_concurrent_calls_share_one_fetch(self):
        """Two calls for the same key while pending should fetch once."""
        calls = []
        gate = asyncio.Event()

        async def fetch_user(username):
            calls.append(username)
            await gate.wait()
            return ["row-a", "row-b"]

        fetch = dedupe(fetch_user)
        first = asyncio.ensure_future(fetch("u1"))
        second = asyncio.ensure_future(fetch("u1"))
        await asyncio.sleep(0)
        gate.set()
        a, b = await asyncio.gather(first, second)

        assert calls == ["u1"]
        assert a is b

    async def test_entry_evicted_after_settle(self):
        """A call after the first one settled should fetch again."""
        calls = []

        async def fetch_user(username):
            calls.append(username)
            return username

        fetch = dedupe(fetch_user)
        await fetch("u1")
        await fetch("u1")

        assert calls == ["u1", "u1"]
        assert len(fetch.registry) == 0

    async def test_wrappers_share_an_empty_registry(self):
        """Separate wrappers given one registry should share pending fetches."""
        calls = []
        gate = asyncio.Event()

        async def fetch_user(username):
            calls.append(username)
            await gate.wait()
            return username

        registry = InFlightRegistry()
        first_wrapper = dedupe(fetch_user, registry=registry)
        second_wrapper = dedupe(fetch_user, registry=registry)

        assert first_wrapper.registry is registry
        first = asyncio.ensure_future(first_wrapper("u1"))
        second = asyncio.ensure_future(second_wrapper("u1"))
        await asyncio.sleep(0)
        gate.set()
        await asyncio.gather(first, second)

        assert calls == ["u1"]

    async def test_failure_evicted(self):
        """A failed fetch should not stay cached."""
        attempts = []

        async def flaky(username):
            attempts.append(username)
            if len(attempts) == 1:
                raise RuntimeError("boom")
            return "ok"

        fetch = dedupe(flaky)
        with pytest.raises(RuntimeError):
            await fetch("u1")

        assert await fetch("u1") == "ok"

    async def test_distinct_keys_fetch_separately(self):
        """Different keys should not be merged."""
        spy = SpyFetcher()
        fetch = dedupe(spy)

        await asyncio.gather(fetch(TableQuery(page=1)), fetch(TableQuery(page=2)))

        assert len(spy.calls) == 2

    async def test_cancelled_joiner_does_not_cancel_owner(self):
        """Cancelling one waiter should leave the shared fetch running."""
        registry = InFlightRegistry()
        gate = asyncio.Event()

        async def slow():
            await gate.wait()
            return 42

        owner = asyncio.ensure_future(registry.run("k", slow))
        joiner = asyncio.ensure_future(registry.run("k", slow))
        await asyncio.sleep(0)
        joiner.cancel()
        gate.set()

        assert await owner == 42


@pytest.mark.asyncio
class TestTableDataOrchestrator:
    """Test the fetch lifecycle."""

    async def test_mount_loads(self):
        """Mount should fetch and expose list and total."""
        spy = SpyFetcher()
        orchestrator = TableDataOrchestrator(spy)

        await orchestrator.mount(TableQuery())

        assert orchestrator.list == [{"id": 1}, {"id": 2}]
        assert orchestrator.total == 2
        assert orchestrator.loading is False
        assert orchestrator.error is None

    async def test_unchanged_query_not_refetched(self):
        """An equal query value should not trigger a fetch."""
        spy = SpyFetcher()
        orchestrator = TableDataOrchestrator(spy)
        await orchestrator.mount(TableQuery(keyword="a"))

        fetched = await orchestrator.update(TableQuery(keyword="a"))

        assert fetched is False
        assert len(spy.calls) == 1

    async def test_query_mode_refetches_on_change(self):
        """Query mode should fetch when the query changes."""
        spy = SpyFetcher()
        orchestrator = TableDataOrchestrator(spy, auto_deps="query")
        await orchestrator.mount(TableQuery())

        assert await orchestrator.update(TableQuery(page=2)) is True
        assert len(spy.calls) == 2

    async def test_reload_mode_ignores_query_changes(self):
        """Reload mode should only fetch on mount and reload."""
        spy = SpyFetcher()
        orchestrator = TableDataOrchestrator(spy, auto_deps="reload")
        await orchestrator.mount(TableQuery())

        assert await orchestrator.update(TableQuery(page=2)) is False
        await orchestrator.reload()

        assert len(spy.calls) == 2

    async def test_refresh_bump_refetches_same_query(self):
        """Bumping the refresh counter should fetch an unchanged query."""
        spy = SpyFetcher()
        refresh = RefreshCounter()
        orchestrator = TableDataOrchestrator(spy, refresh=refresh)
        query = TableQuery()
        await orchestrator.mount(query)

        refresh.bump()
        assert await orchestrator.update(query) is True
        assert len(spy.calls) == 2

    async def test_refresh_not_in_signature(self):
        """The refresh counter should not change the fetch signature."""
        query = TableQuery(keyword="x")
        before = query_signature(query)
        RefreshCounter().bump()

        assert query_signature(query) == before
        assert "refresh" not in before

    async def test_error_kept_with_previous_list(self):
        """A failed fetch should set error and keep the last list."""
        spy = SpyFetcher()
        orchestrator = TableDataOrchestrator(spy)
        await orchestrator.mount(TableQuery())

        spy.fail = RuntimeError("upstream down")
        await orchestrator.reload()

        assert isinstance(orchestrator.error, FetchError)
        assert "upstream down" in orchestrator.error.message
        assert isinstance(orchestrator.error.__cause__, RuntimeError)
        assert orchestrator.list == [{"id": 1}, {"id": 2}]
        assert orchestrator.loading is False

    async def test_stale_response_discarded(self):
        """A response for an outdated query should not be applied."""
        slow = SpyFetcher(rows=[{"id": "old"}])
        slow.gate = asyncio.Event()
        fast_rows = [{"id": "new"}]

        async def fetcher(query):
            if query.page == 1:
                return await slow(query)
            return ListResult(list=fast_rows, total=1)

        orchestrator = TableDataOrchestrator(fetcher)
        first = asyncio.ensure_future(orchestrator.mount(TableQuery(page=1)))
        await asyncio.sleep(0)
        await orchestrator.update(TableQuery(page=2))
        slow.gate.set()
        await first

        assert orchestrator.list == fast_rows

    async def test_unmount_discards_response(self):
        """A response arriving after unmount should be dropped."""
        spy = SpyFetcher()
        spy.gate = asyncio.Event()
        orchestrator = TableDataOrchestrator(spy)

        pending = asyncio.ensure_future(orchestrator.mount(TableQuery()))
        await asyncio.sleep(0)
        orchestrator.unmount()
        spy.gate.set()
        await pending

        assert orchestrator.list == []

    async def test_invalid_mode_rejected(self):
        """Unknown auto_deps values should raise."""
        with pytest.raises(ValueError):
            TableDataOrchestrator(SpyFetcher(), auto_deps="always")


@pytest.mark.asyncio
class TestFetchAllPages:
    """Test full-dataset pulls for export."""

    async def test_pages_until_total(self):
        """Paging should stop once the total is reached."""
        data = list(range(23))

        async def fetcher(query):
            start = (query.page - 1) * query.page_size
            return ListResult(list=data[start:start + query.page_size], total=len(data))

        rows = await fetch_all_pages(fetcher, TableQuery(keyword="k"), page_size=10)

        assert rows == data

    async def test_inherits_query_but_restarts_paging(self):
        """Keyword and filters should carry over; paging restarts at 1."""
        seen = []

        async def fetcher(query):
            seen.append(query)
            return ListResult(list=[], total=0)

        await fetch_all_pages(fetcher, TableQuery(page=4, keyword="k", filters={"a": 1}), page_size=7)

        assert seen[0].page == 1
        assert seen[0].page_size == 7
        assert seen[0].keyword == "k"
        assert dict(seen[0].filters) == {"a": 1}

    async def test_page_guard(self):
        """Exceeding the page guard should raise."""

        async def endless(query):
            return ListResult(list=[1] * query.page_size, total=-1)

        with pytest.raises(ExportLimitError):
            await fetch_all_pages(endless, TableQuery(), page_size=5, max_pages=3, max_rows=10_000)

    async def test_cancel_stops_paging(self):
        """should_cancel should stop the loop."""
        spy = SpyFetcher(rows=[1] * 5)

        rows = await fetch_all_pages(spy, TableQuery(), page_size=5, should_cancel=lambda: True)

        assert rows == []
        assert spy.calls == []
