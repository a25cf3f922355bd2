"""
Local query composition over an in-memory dataset.

The upstream API returns full lists, so paging, keyword search, filtering
and sorting all run here. Stage order is fixed:

    search -> filter -> sort -> paginate

How a row is searched, filtered and sorted is decided per table by a
LocalQueryOptions strategy; the engine itself knows no field names.
"""

import logging
import math
from dataclasses import dataclass
from typing import (
    Any,
    Callable,
    Generic,
    List,
    Mapping,
    Optional,
    Sequence,
    Tuple,
    TypeVar,
)

from smarttable.exceptions import CompositionError
from smarttable.query_state import Sorter, TableQuery, is_empty_filter_value

logger = logging.getLogger("smarttable.local_query")

T = TypeVar("T")

# Failures a strategy may raise for a field it does not understand
STRATEGY_ERRORS = (CompositionError, LookupError, TypeError, ValueError, AttributeError)


def read_field(row: Any, name: str) -> Any:
    """Read `name` from a mapping row or an attribute-style row."""
    if isinstance(row, Mapping):
        return row.get(name)
    return getattr(row, name, None)


def _row_values(row: Any) -> List[Any]:
    if isinstance(row, Mapping):
        return list(row.values())
    return list(vars(row).values()) if hasattr(row, "__dict__") else []


def default_search_texts(row: Any) -> List[Any]:
    """Search every primitive value of the row."""
    return [
        value
        for value in _row_values(row)
        if isinstance(value, (str, int, float)) and not isinstance(value, bool)
    ]


def default_match_filters(row: Any, filters: Mapping[str, Any]) -> bool:
    """
    Conservative filter matching.

    - empty filter value: pass
    - list filter value: row value must be one of them
    - list row value: must contain the filter value
    - otherwise: equality
    """
    for key, expected in filters.items():
        if is_empty_filter_value(expected):
            continue
        actual = read_field(row, key)
        if isinstance(expected, (list, tuple, set, frozenset)):
            if actual not in expected:
                return False
            continue
        if isinstance(actual, (list, tuple, set, frozenset)):
            if expected not in actual:
                return False
            continue
        if actual != expected:
            return False
    return True


def default_sort_value(row: Any, sorter: Sorter) -> Any:
    return read_field(row, sorter.field)


@dataclass(frozen=True)
class LocalQueryOptions(Generic[T]):
    """
    Per-table strategy for local queries.

    Passed by the caller for each table domain; any member left as None
    falls back to the conservative default above.
    """

    get_search_texts: Optional[Callable[[T], Sequence[Any]]] = None
    match_filters: Optional[Callable[[T, Mapping[str, Any]], bool]] = None
    get_sort_value: Optional[Callable[[T, Sorter], Any]] = None


@dataclass(frozen=True)
class LocalQueryResult(Generic[T]):
    """Current page, the full matched set, and its size."""

    list: List[T]
    filtered: List[T]
    total: int


def sort_key(value: Any) -> Tuple[int, Any]:
    """
    Total ordering key for mixed sort values.

    None (and NaN) first, then numbers compared numerically, then
    everything else compared as text.
    """
    if value is None:
        return (0, 0)
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        if isinstance(value, float) and math.isnan(value):
            return (0, 0)
        return (1, value)
    if isinstance(value, bool):
        return (1, int(value))
    return (2, str(value))


def _apply_keyword(
    rows: List[T],
    keyword: Optional[str],
    get_search_texts: Callable[[T], Sequence[Any]],
) -> List[T]:
    needle = (keyword or "").strip().casefold()
    if not needle:
        return rows

    matched = []
    for row in rows:
        try:
            texts = get_search_texts(row)
        except STRATEGY_ERRORS as e:
            logger.warning(f"Search strategy failed, row excluded: {e}")
            continue
        for text in texts or ():
            if text is None:
                continue
            if needle in str(text).casefold():
                matched.append(row)
                break
    return matched


def _apply_filters(
    rows: List[T],
    filters: Mapping[str, Any],
    match_filters: Callable[[T, Mapping[str, Any]], bool],
) -> List[T]:
    if not filters:
        return rows

    matched = []
    failed = False
    for row in rows:
        try:
            keep = match_filters(row, filters)
        except STRATEGY_ERRORS as e:
            # Unknown filter key: treat as no constraint
            if not failed:
                logger.warning(f"Filter strategy failed, passing rows: {e}")
                failed = True
            keep = True
        if keep:
            matched.append(row)
    return matched


def _apply_sorter(
    rows: List[T],
    sorter: Optional[Sorter],
    get_sort_value: Callable[[T, Sorter], Any],
) -> List[T]:
    if sorter is None or not sorter.field:
        return rows

    try:
        keys = [sort_key(get_sort_value(row, sorter)) for row in rows]
    except STRATEGY_ERRORS as e:
        # Unknown sort field: keep arrival order
        logger.warning(f"Sort strategy failed for {sorter.field!r}, order kept: {e}")
        return rows

    # sorted() is stable for reverse=True too
    order = sorted(
        range(len(rows)), key=keys.__getitem__, reverse=sorter.descending
    )
    return [rows[i] for i in order]


def _apply_paging(rows: List[T], page: int, page_size: int) -> List[T]:
    page = page if page >= 1 else 1
    if page_size < 1:
        return list(rows)
    start = (page - 1) * page_size
    return rows[start:start + page_size]


def apply_local_query(
    dataset: Sequence[T],
    query: TableQuery,
    options: Optional[LocalQueryOptions[T]] = None,
) -> LocalQueryResult[T]:
    """
    Run search, filter, sort and paginate over `dataset`.

    Args:
        dataset: Full row set; never mutated
        query: Paging, keyword, filters and sorter to apply
        options: Per-table strategy (defaults used for missing members)

    Returns:
        LocalQueryResult with the current page in `list`, the pre-paging
        matches in `filtered` and `total == len(filtered)`
    """
    options = options or LocalQueryOptions()
    rows = list(dataset or [])

    searched = _apply_keyword(
        rows, query.keyword, options.get_search_texts or default_search_texts
    )
    matched = _apply_filters(
        searched, query.filters, options.match_filters or default_match_filters
    )
    ordered = _apply_sorter(
        matched, query.sorter, options.get_sort_value or default_sort_value
    )
    filtered = list(ordered)
    page = _apply_paging(filtered, query.page, query.page_size)

    return LocalQueryResult(list=page, filtered=filtered, total=len(filtered))
