"""
Fetch orchestration for table data.

Wraps a caller-supplied async fetcher with:
- in-flight deduplication (at most one concurrent fetch per signature)
- a forced-refresh counter that re-fetches an unchanged query
- soft cancellation of stale responses
- error capture into state instead of raising
"""

import asyncio
import json
import logging
from typing import (
    Any,
    Awaitable,
    Callable,
    Dict,
    Generic,
    List,
    Optional,
    Tuple,
    TypeVar,
)

from smarttable.constants import (
    EXPORT_FETCH_PAGE_SIZE,
    EXPORT_MAX_PAGES,
    EXPORT_MAX_ROWS,
)
from smarttable.exceptions import ExportLimitError, FetchError
from smarttable.query_state import TableQuery
from smarttable.types import ListResult

logger = logging.getLogger("smarttable.orchestrator")

T = TypeVar("T")
R = TypeVar("R")

Fetcher = Callable[[TableQuery], Awaitable[ListResult[T]]]

AUTO_DEPS_MODES = ("query", "reload")


def query_signature(query: TableQuery) -> str:
    """Canonical JSON of the query fields that are sent to the fetcher."""
    return json.dumps(query.to_dict(), sort_keys=True, default=str, ensure_ascii=False)


class RefreshCounter:
    """Monotonically increasing counter used to force a re-fetch."""

    def __init__(self, value: int = 0):
        self.value = value

    def bump(self) -> int:
        self.value += 1
        return self.value


class InFlightRegistry:
    """
    Map of signature -> pending fetch task.

    The first caller for a signature starts the task; later callers await
    the same task. The entry is evicted as soon as the task settles, so
    the next call after that always fetches again.
    """

    def __init__(self):
        self._pending: Dict[str, asyncio.Task] = {}

    def __contains__(self, signature: str) -> bool:
        return signature in self._pending

    def __len__(self) -> int:
        return len(self._pending)

    async def run(
        self, signature: str, factory: Callable[[], Awaitable[R]]
    ) -> R:
        """
        Run `factory()` unless a fetch with `signature` is already pending.

        Args:
            signature: Deduplication key
            factory: Zero-argument callable returning the awaitable to run

        Returns:
            The (shared) result of the pending fetch
        """
        task = self._pending.get(signature)
        if task is None:
            task = asyncio.ensure_future(factory())
            self._pending[signature] = task
            task.add_done_callback(lambda t, s=signature: self._evict(s, t))
        else:
            logger.debug(f"Joining in-flight fetch {signature}")

        # A cancelled caller must not cancel the fetch other callers await
        return await asyncio.shield(task)

    def _evict(self, signature: str, task: asyncio.Task) -> None:
        if self._pending.get(signature) is task:
            del self._pending[signature]
        if not task.cancelled() and task.exception() is not None:
            # Retrieved here so an unawaited failure is not reported as lost
            logger.debug(f"In-flight fetch {signature} failed: {task.exception()}")


def _default_dedupe_key(*args: Any, **kwargs: Any) -> str:
    if not args:
        return json.dumps(kwargs, sort_keys=True, default=str)
    first = args[0]
    if isinstance(first, TableQuery):
        return query_signature(first)
    return str(first)


class DedupedFetcher(Generic[R]):
    """Fetcher whose concurrent calls with the same key share one call."""

    def __init__(
        self,
        fetcher: Callable[..., Awaitable[R]],
        key: Optional[Callable[..., str]] = None,
        registry: Optional[InFlightRegistry] = None,
    ):
        self.fetcher = fetcher
        self.key = key or _default_dedupe_key
        self.registry = registry if registry is not None else InFlightRegistry()

    async def __call__(self, *args: Any, **kwargs: Any) -> R:
        signature = self.key(*args, **kwargs)
        return await self.registry.run(signature, lambda: self.fetcher(*args, **kwargs))


def dedupe(
    fetcher: Callable[..., Awaitable[R]],
    key: Optional[Callable[..., str]] = None,
    registry: Optional[InFlightRegistry] = None,
) -> DedupedFetcher[R]:
    """
    Wrap `fetcher` so concurrent calls with the same key share one call.

    `key` derives the signature from the call arguments; by default the
    first positional argument is used (a TableQuery or a business id such
    as a username).
    """
    return DedupedFetcher(fetcher, key=key, registry=registry)


class TableDataOrchestrator(Generic[T]):
    """
    Async fetch lifecycle for one table session.

    auto_deps:
        "query"  - fetch whenever the tracked query (or the refresh counter)
                   changes
        "reload" - fetch only on mount and reload; later query changes are
                   processed locally by the caller

    State exposed: list, total, loading, error.
    """

    def __init__(
        self,
        fetcher: Fetcher,
        auto_deps: str = "query",
        signature: Optional[Callable[[TableQuery], str]] = None,
        registry: Optional[InFlightRegistry] = None,
        refresh: Optional[RefreshCounter] = None,
    ):
        if auto_deps not in AUTO_DEPS_MODES:
            raise ValueError(
                f"auto_deps must be one of {AUTO_DEPS_MODES}, got {auto_deps!r}"
            )
        self.fetcher = fetcher
        self.auto_deps = auto_deps
        self.signature = signature or query_signature
        self.registry = registry if registry is not None else InFlightRegistry()
        self.refresh = refresh or RefreshCounter()

        self.list: List[T] = []
        self.total = 0
        self.loading = False
        self.error: Optional[FetchError] = None
        self.query: Optional[TableQuery] = None

        self._deps: Optional[Tuple[str, int]] = None
        self._seq = 0
        self._mounted = False

    @property
    def mounted(self) -> bool:
        return self._mounted

    def _current_deps(self, query: TableQuery) -> Tuple[str, int]:
        # The refresh counter takes part in change detection only
        return (self.signature(query), self.refresh.value)

    async def mount(self, query: TableQuery) -> None:
        """Start the session and run the initial fetch."""
        self._mounted = True
        self.query = query
        await self._load(query)

    async def update(self, query: TableQuery) -> bool:
        """
        Track a new query value.

        Returns:
            True if a fetch was issued
        """
        self.query = query
        if not self._mounted:
            return False

        deps = self._current_deps(query)
        if deps == self._deps:
            return False
        if self.auto_deps == "reload" and self._deps is not None and deps[1] == self._deps[1]:
            # Only an external refresh bump counts in reload mode
            return False

        await self._load(query)
        return True

    async def reload(self) -> None:
        """Fetch again even if the query is unchanged."""
        self.refresh.bump()
        if not self._mounted or self.query is None:
            return
        await self._load(self.query)

    def unmount(self) -> None:
        """End the session; responses still in flight are discarded."""
        self._mounted = False
        self.loading = False

    def clear(self) -> None:
        self.list = []
        self.total = 0
        self.error = None

    async def _load(self, query: TableQuery) -> None:
        self._deps = self._current_deps(query)
        self._seq += 1
        seq = self._seq
        signature = self.signature(query)

        self.loading = True
        self.error = None
        try:
            result = await self.registry.run(signature, lambda: self.fetcher(query))
        except Exception as e:
            if self._is_stale(seq):
                logger.debug(f"Discarded stale failure for {signature}: {e}")
                return
            logger.warning(f"Fetch failed for {signature}: {e}")
            error = FetchError(str(e) or e.__class__.__name__, signature=signature)
            error.__cause__ = e
            self.error = error
            self.loading = False
            return

        if self._is_stale(seq):
            logger.debug(f"Discarded stale response for {signature}")
            return

        rows = list(result.list or [])
        self.list = rows
        self.total = result.total if isinstance(result.total, int) else len(rows)
        self.loading = False

    def _is_stale(self, seq: int) -> bool:
        return not self._mounted or seq != self._seq


async def fetch_all_pages(
    fetcher: Fetcher,
    query: TableQuery,
    page_size: int = EXPORT_FETCH_PAGE_SIZE,
    max_rows: int = EXPORT_MAX_ROWS,
    max_pages: int = EXPORT_MAX_PAGES,
    keep_paging: bool = False,
    should_cancel: Optional[Callable[[], bool]] = None,
) -> List[T]:
    """
    Pull every page from a server-paginated fetcher.

    Keyword, filters and sorter are inherited from `query`; paging starts at
    page 1 with `page_size` unless `keep_paging` is set. Stops when the
    reported total is reached, a page comes back empty, or a page is short.

    Raises:
        ExportLimitError: more than `max_pages` pages or `max_rows` rows
    """
    if keep_paging:
        page, size = query.page, query.page_size
    else:
        page, size = 1, page_size

    rows: List[T] = []
    start_page = page
    while True:
        if should_cancel is not None and should_cancel():
            logger.info(f"Full fetch cancelled after {len(rows)} rows")
            break
        if page - start_page + 1 > max_pages:
            raise ExportLimitError(f"Export exceeded {max_pages} pages, aborted")
        if len(rows) >= max_rows:
            raise ExportLimitError(f"Export exceeded {max_rows} rows, aborted")

        result = await fetcher(TableQuery(
            page=page,
            page_size=size,
            keyword=query.keyword,
            filters=query.filters,
            sorter=query.sorter,
        ))
        chunk = list(result.list or [])
        rows.extend(chunk)

        if isinstance(result.total, int) and result.total >= 0 and len(rows) >= result.total:
            break
        if not chunk or len(chunk) < size:
            break
        page += 1

    return rows[:max_rows]
