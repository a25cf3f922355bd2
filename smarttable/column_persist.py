"""
Column layout persistence.

Holds the versioned layout record of a table (hidden / width / order per
column) and the key-value backends it is stored in. Only storage and the
record shape live here; merging with presets is column_prefs' job.
"""

import json
import logging
import math
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

from smarttable.constants import COLUMN_STATE_VERSION, TABLE_COLUMN_PERSIST_PREFIX
from smarttable.exceptions import PersistenceError

logger = logging.getLogger("smarttable.column_persist")

_COLUMN_FIELDS = ("key", "hidden", "width", "order")
_STATE_FIELDS = ("version", "updatedAt", "columns")


def _finite_number(value: Any) -> bool:
    return (
        isinstance(value, (int, float))
        and not isinstance(value, bool)
        and math.isfinite(value)
    )


def now_ms() -> int:
    return int(time.time() * 1000)


def column_persist_key(biz_key: str, prefix: str = TABLE_COLUMN_PERSIST_PREFIX) -> str:
    """Storage key of a table layout, e.g. ``table-columns:profile.myActivities``."""
    return f"{prefix}:{biz_key}"


@dataclass
class PersistedColumn:
    """Persisted overrides for one column."""

    key: str
    hidden: Optional[bool] = None
    width: Optional[int] = None
    order: Optional[int] = None
    # Fields written by other schema versions, kept as-is
    extra: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> Optional["PersistedColumn"]:
        key = data.get("key")
        if not isinstance(key, str) or not key:
            return None

        hidden = data.get("hidden")
        width = data.get("width")
        order = data.get("order")
        return cls(
            key=key,
            hidden=hidden if isinstance(hidden, bool) else None,
            width=int(width) if _finite_number(width) and width > 0 else None,
            order=int(order) if _finite_number(order) else None,
            extra={k: v for k, v in data.items() if k not in _COLUMN_FIELDS},
        )

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = dict(self.extra)
        data["key"] = self.key
        if self.hidden is not None:
            data["hidden"] = self.hidden
        if self.width is not None:
            data["width"] = self.width
        if self.order is not None:
            data["order"] = self.order
        return data


@dataclass
class PersistedColumnState:
    """Versioned layout record of one table."""

    version: int = COLUMN_STATE_VERSION
    updated_at: int = field(default_factory=now_ms)
    columns: List[PersistedColumn] = field(default_factory=list)
    extra: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Any) -> "PersistedColumnState":
        """
        Parse a stored record.

        Raises:
            PersistenceError: the payload is not a layout record
        """
        if not isinstance(data, dict) or not isinstance(data.get("columns"), list):
            raise PersistenceError("Column state is not a layout record")

        version = data.get("version")
        updated_at = data.get("updatedAt")
        columns = [
            column
            for column in (
                PersistedColumn.from_dict(item)
                for item in data["columns"]
                if isinstance(item, dict)
            )
            if column is not None
        ]
        return cls(
            version=version if isinstance(version, int) and not isinstance(version, bool) else 0,
            updated_at=updated_at if isinstance(updated_at, int) else 0,
            columns=columns,
            extra={k: v for k, v in data.items() if k not in _STATE_FIELDS},
        )

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = dict(self.extra)
        data["version"] = self.version
        data["updatedAt"] = self.updated_at
        data["columns"] = [column.to_dict() for column in self.columns]
        return data

    def by_key(self) -> Dict[str, PersistedColumn]:
        return {column.key: column for column in self.columns}

    def width_map(self) -> Dict[str, int]:
        return {c.key: c.width for c in self.columns if c.width is not None}

    def hidden_keys(self) -> List[str]:
        return [c.key for c in self.columns if c.hidden]

    def order_map(self) -> Dict[str, int]:
        return {c.key: c.order for c in self.columns if c.order is not None}


class ColumnStorage(ABC):
    """
    Key-value storage for layout records (string JSON values).

    Implementations raise PersistenceError on any failure.
    """

    @abstractmethod
    def get(self, key: str) -> Optional[str]:
        pass

    @abstractmethod
    def set(self, key: str, value: str) -> None:
        pass

    @abstractmethod
    def remove(self, key: str) -> None:
        pass


class MemoryColumnStorage(ColumnStorage):
    """Process-local storage, used by tests and single-process tools."""

    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self.data: Dict[str, str] = dict(initial or {})

    def get(self, key: str) -> Optional[str]:
        return self.data.get(key)

    def set(self, key: str, value: str) -> None:
        self.data[key] = value

    def remove(self, key: str) -> None:
        self.data.pop(key, None)


class FileColumnStorage(ColumnStorage):
    """One JSON file per key under a root directory."""

    def __init__(self, root: Path):
        self.root = Path(root).resolve()
        self.root.mkdir(parents=True, exist_ok=True)

    def _resolve(self, key: str) -> Path:
        name = key.replace(":", "__") + ".json"
        full_path = (self.root / name).resolve()
        # Prevent path traversal through crafted keys
        if full_path.parent != self.root:
            raise PersistenceError(f"Access denied: {key}", key=key)
        return full_path

    def get(self, key: str) -> Optional[str]:
        path = self._resolve(key)
        try:
            return path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except (OSError, UnicodeDecodeError) as e:
            raise PersistenceError(f"Failed to read {key}: {e}", key=key) from e

    def set(self, key: str, value: str) -> None:
        path = self._resolve(key)
        tmp = path.with_suffix(".json.tmp")
        try:
            tmp.write_text(value, encoding="utf-8")
            tmp.replace(path)
        except OSError as e:
            raise PersistenceError(f"Failed to write {key}: {e}", key=key) from e

    def remove(self, key: str) -> None:
        try:
            self._resolve(key).unlink(missing_ok=True)
        except OSError as e:
            raise PersistenceError(f"Failed to remove {key}: {e}", key=key) from e


def load_column_state(
    storage: ColumnStorage, biz_key: str, prefix: str = TABLE_COLUMN_PERSIST_PREFIX
) -> Optional[PersistedColumnState]:
    """
    Read the layout record of `biz_key`.

    Returns:
        The parsed record, or None if nothing usable is stored

    Raises:
        PersistenceError: storage failed or the payload is corrupt
    """
    key = column_persist_key(biz_key, prefix)
    raw = storage.get(key)
    if not raw:
        return None
    try:
        data = json.loads(raw)
    except ValueError as e:
        raise PersistenceError(f"Corrupt column state for {biz_key}: {e}", key=key) from e
    try:
        return PersistedColumnState.from_dict(data)
    except (TypeError, ValueError, OverflowError) as e:
        raise PersistenceError(f"Malformed column state for {biz_key}: {e}", key=key) from e


def save_column_state(
    storage: ColumnStorage,
    biz_key: str,
    state: PersistedColumnState,
    prefix: str = TABLE_COLUMN_PERSIST_PREFIX,
) -> None:
    key = column_persist_key(biz_key, prefix)
    storage.set(key, json.dumps(state.to_dict(), ensure_ascii=False))


def remove_column_state(
    storage: ColumnStorage, biz_key: str, prefix: str = TABLE_COLUMN_PERSIST_PREFIX
) -> None:
    storage.remove(column_persist_key(biz_key, prefix))
