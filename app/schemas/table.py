"""Table schemas for queries, pages and column layouts."""

from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from smarttable.constants import TABLE_DEFAULT_PAGE_SIZE
from smarttable.query_state import TableQuery


class SorterIn(BaseModel):
    """Sort instruction schema."""

    field: str
    order: Literal["asc", "desc", "ascend", "descend"] = "asc"


class TableQueryIn(BaseModel):
    """Table query request schema."""

    model_config = ConfigDict(populate_by_name=True)

    page: int = Field(default=1, ge=1)
    page_size: int = Field(default=TABLE_DEFAULT_PAGE_SIZE, ge=1, alias="pageSize")
    keyword: Optional[str] = None
    filters: Dict[str, Any] = Field(default_factory=dict)
    sorter: Optional[SorterIn] = None
    # Upstream parameters, e.g. {"username": "..."}
    params: Dict[str, Any] = Field(default_factory=dict)
    filename: Optional[str] = None

    def to_query(self) -> TableQuery:
        return TableQuery(
            page=self.page,
            page_size=self.page_size,
            keyword=self.keyword,
            filters=self.filters,
            sorter=self.sorter.model_dump() if self.sorter else None,
        )


class ColumnOut(BaseModel):
    """Effective column schema."""

    key: str
    title: str
    width: Optional[int] = None
    hidden: bool = False
    order: int


class TableSummary(BaseModel):
    """Registered table schema."""

    biz_key: str
    title: str


class TablePage(BaseModel):
    """One page of a table query."""

    list: List[Dict[str, Any]]
    total: int
    columns: List[ColumnOut]


class ColumnLayoutOut(BaseModel):
    """Effective column layout of a table."""

    biz_key: str
    columns: List[ColumnOut]
    visible_keys: List[str]
    updated_at: Optional[int] = None


class KeysUpdate(BaseModel):
    """Column keys for visibility or order updates."""

    keys: List[str]


class WidthUpdate(BaseModel):
    """Column width update schema."""

    width: float = Field(gt=0, allow_inf_nan=False)
