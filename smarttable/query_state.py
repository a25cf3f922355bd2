"""Table query value objects and the per-session query state."""

import logging
import math
from dataclasses import dataclass, field, replace
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional, Union

from smarttable.constants import TABLE_DEFAULT_PAGE_SIZE

logger = logging.getLogger("smarttable.query")

# Aliases accepted from table widgets that report "ascend"/"descend"
_ORDER_ALIASES = {
    "asc": "asc",
    "ascend": "asc",
    "desc": "desc",
    "descend": "desc",
}


def is_empty_filter_value(value: Any) -> bool:
    """Return True when a filter value places no constraint on its field."""
    if value is None:
        return True
    if isinstance(value, str):
        return value == ""
    if isinstance(value, (list, tuple, set, frozenset)):
        return len(value) == 0
    return False


def _clean_filters(filters: Optional[Mapping[str, Any]]) -> Mapping[str, Any]:
    cleaned = {
        key: value
        for key, value in (filters or {}).items()
        if not is_empty_filter_value(value)
    }
    return MappingProxyType(cleaned)


def _positive_int(value: Any) -> Optional[int]:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    if not math.isfinite(value) or value < 1:
        return None
    return int(value)


@dataclass(frozen=True)
class Sorter:
    """Sort instruction: a field name and a direction."""

    field: str
    order: str = "asc"

    def __post_init__(self):
        order = _ORDER_ALIASES.get(str(self.order).lower())
        if order is None:
            raise ValueError(f"Invalid sort order: {self.order!r}")
        object.__setattr__(self, "order", order)

    @property
    def descending(self) -> bool:
        return self.order == "desc"

    @classmethod
    def parse(
        cls, value: Union["Sorter", Mapping[str, Any], None]
    ) -> Optional["Sorter"]:
        """Build a sorter from a mapping; a missing field or order means no sorter."""
        if value is None or isinstance(value, Sorter):
            return value
        sort_field = value.get("field")
        order = value.get("order")
        if not sort_field or not order:
            return None
        return cls(field=str(sort_field), order=order)

    def to_dict(self) -> Dict[str, str]:
        return {"field": self.field, "order": self.order}


@dataclass(frozen=True)
class TableQuery:
    """
    Immutable table query.

    Every mutation produces a new instance. `filters` is a read-only
    mapping without empty values.
    """

    page: int = 1
    page_size: int = TABLE_DEFAULT_PAGE_SIZE
    keyword: Optional[str] = None
    filters: Mapping[str, Any] = field(default_factory=dict)
    sorter: Optional[Sorter] = None

    def __post_init__(self):
        page = _positive_int(self.page)
        page_size = _positive_int(self.page_size)
        if page is None:
            raise ValueError(f"page must be a positive integer, got {self.page!r}")
        if page_size is None:
            raise ValueError(
                f"page_size must be a positive integer, got {self.page_size!r}"
            )
        object.__setattr__(self, "page", page)
        object.__setattr__(self, "page_size", page_size)
        object.__setattr__(self, "filters", _clean_filters(self.filters))
        object.__setattr__(self, "sorter", Sorter.parse(self.sorter))

    def to_dict(self) -> Dict[str, Any]:
        """Plain representation, also used to build fetch signatures."""
        return {
            "page": self.page,
            "pageSize": self.page_size,
            "keyword": self.keyword,
            "filters": dict(self.filters),
            "sorter": self.sorter.to_dict() if self.sorter else None,
        }


class QueryState:
    """
    Query state for one table session.

    Mutators merge against the previous query and swap in a new value;
    nothing else is touched. `reset()` goes back to the initial query the
    caller supplied.
    """

    def __init__(self, initial: Optional[TableQuery] = None):
        self.initial = initial or TableQuery()
        self.query = self.initial

    def set_page(self, page: Any, page_size: Any = None) -> TableQuery:
        """Move to `page`; rejected (no change) for non-positive or non-finite values."""
        next_page = _positive_int(page)
        if next_page is None:
            logger.debug(f"Rejected page {page!r}")
            return self.query

        next_size = self.query.page_size
        if page_size is not None:
            next_size = _positive_int(page_size)
            if next_size is None:
                logger.debug(f"Rejected page size {page_size!r}")
                return self.query

        self.query = replace(self.query, page=next_page, page_size=next_size)
        return self.query

    def set_sorter(
        self, sorter: Union[Sorter, Mapping[str, Any], None]
    ) -> TableQuery:
        self.query = replace(self.query, sorter=Sorter.parse(sorter), page=1)
        return self.query

    def set_filters(self, partial: Optional[Mapping[str, Any]]) -> TableQuery:
        """Merge `partial` into the filters; empty values drop their key, None clears all."""
        if partial is None:
            merged: Dict[str, Any] = {}
        else:
            merged = dict(self.query.filters)
            for key, value in partial.items():
                if is_empty_filter_value(value):
                    merged.pop(key, None)
                else:
                    merged[key] = value
        self.query = replace(self.query, filters=merged, page=1)
        return self.query

    def set_keyword(self, keyword: Optional[str]) -> TableQuery:
        self.query = replace(self.query, keyword=keyword or None, page=1)
        return self.query

    def reset(self) -> TableQuery:
        self.query = self.initial
        return self.query

    def apply_change(self, **change: Any) -> TableQuery:
        """
        Apply a partial change event coming from a table widget.

        Recognised keys: page, page_size, sorter, filters, keyword. Paging is
        applied first, then sorter, filters and keyword (each of which goes
        back to page 1).
        """
        if "page" in change and change["page"] is not None:
            self.set_page(change["page"], change.get("page_size"))
        elif change.get("page_size") is not None:
            self.set_page(self.query.page, change["page_size"])

        if "sorter" in change:
            self.set_sorter(change["sorter"])
        if "filters" in change:
            self.set_filters(change["filters"])
        if "keyword" in change:
            self.set_keyword(change["keyword"])
        return self.query
