"""Column layout storage backed by the service database."""

from typing import Callable, Optional

from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.models.column_layout import ColumnLayout
from smarttable.column_persist import ColumnStorage
from smarttable.exceptions import PersistenceError


class SqlColumnStorage(ColumnStorage):
    """
    Key-value layout storage on the column_layouts table.

    Each call runs in its own short session; writes are last-write-wins.
    """

    def __init__(self, session_factory: Callable[[], Session]):
        self.session_factory = session_factory

    def get(self, key: str) -> Optional[str]:
        try:
            with self.session_factory() as db:
                return db.execute(
                    select(ColumnLayout.payload).where(ColumnLayout.key == key)
                ).scalar_one_or_none()
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to read {key}: {e}", key=key) from e

    def set(self, key: str, value: str) -> None:
        try:
            with self.session_factory() as db:
                layout = db.get(ColumnLayout, key)
                if layout is None:
                    db.add(ColumnLayout(key=key, payload=value))
                else:
                    layout.payload = value
                db.commit()
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to write {key}: {e}", key=key) from e

    def remove(self, key: str) -> None:
        try:
            with self.session_factory() as db:
                db.execute(delete(ColumnLayout).where(ColumnLayout.key == key))
                db.commit()
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to remove {key}: {e}", key=key) from e
