"""SQLAlchemy ORM models."""

from app.models.base import Base
from app.models.column_layout import ColumnLayout

__all__ = ["Base", "ColumnLayout"]
