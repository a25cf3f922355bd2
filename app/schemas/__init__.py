"""Pydantic schemas for request/response validation."""

from app.schemas.table import (
    ColumnLayoutOut,
    ColumnOut,
    KeysUpdate,
    SorterIn,
    TablePage,
    TableQueryIn,
    TableSummary,
    WidthUpdate,
)

__all__ = [
    "ColumnLayoutOut",
    "ColumnOut",
    "KeysUpdate",
    "SorterIn",
    "TablePage",
    "TableQueryIn",
    "TableSummary",
    "WidthUpdate",
]
