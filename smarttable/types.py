"""Shared table types: list results and column presets."""

from dataclasses import dataclass, field, replace
from typing import Any, Callable, Generic, List, Optional, TypeVar

T = TypeVar("T")


@dataclass
class ListResult(Generic[T]):
    """
    Result of one fetcher call.

    `total` is the authoritative count for the view the fetcher produced,
    which is the full list length when the upstream returns everything.
    """

    list: List[T]
    total: int

    @classmethod
    def empty(cls) -> "ListResult[T]":
        return cls(list=[], total=0)


@dataclass(frozen=True)
class ColumnPreset:
    """
    Default layout entry for one data column.

    An ordered list of presets is both the default layout of a table and
    the header source for exports. Action columns are not presets.
    """

    key: str
    title: str
    width: Optional[int] = None
    hidden: bool = False
    # Row field to export when it differs from `key`
    export_name: Optional[str] = None
    # Overrides field reading entirely for export
    accessor: Optional[Callable[[Any], Any]] = field(
        default=None, compare=False, repr=False
    )

    @property
    def field_name(self) -> str:
        return self.export_name or self.key

    def with_width(self, width: Optional[int]) -> "ColumnPreset":
        return replace(self, width=width)
