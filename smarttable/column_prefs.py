"""
Column preferences: presets merged with the persisted layout.

Persisted overrides win over preset defaults. Every mutation is written
back immediately; there is no separate save step. Storage problems never
break a table: reads fail open to the presets, writes are logged and
dropped.
"""

import logging
import math
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Sequence

from smarttable.column_persist import (
    ColumnStorage,
    PersistedColumn,
    PersistedColumnState,
    load_column_state,
    now_ms,
    remove_column_state,
    save_column_state,
)
from smarttable.constants import (
    COLUMN_STATE_VERSION,
    MIN_COL_WIDTH,
    TABLE_COLUMN_PERSIST_PREFIX,
)
from smarttable.exceptions import PersistenceError
from smarttable.types import ColumnPreset

logger = logging.getLogger("smarttable.column_prefs")


@dataclass(frozen=True)
class EffectiveColumn:
    """A preset after persisted overrides have been applied."""

    preset: ColumnPreset
    width: Optional[int]
    hidden: bool
    order: int

    @property
    def key(self) -> str:
        return self.preset.key

    @property
    def title(self) -> str:
        return self.preset.title

    def to_dict(self) -> Dict[str, object]:
        return {
            "key": self.key,
            "title": self.title,
            "width": self.width,
            "hidden": self.hidden,
            "order": self.order,
        }


class ColumnPreferenceStore:
    """
    Effective column layout of one logical table.

    Args:
        biz_key: Unique name of the table layout in storage
        presets: Ordered default columns
        storage: Key-value backend
        version: Layout schema version; records with another version are
            discarded
        clock: Epoch-milliseconds source for `updatedAt`
    """

    def __init__(
        self,
        biz_key: str,
        presets: Sequence[ColumnPreset],
        storage: ColumnStorage,
        version: int = COLUMN_STATE_VERSION,
        prefix: str = TABLE_COLUMN_PERSIST_PREFIX,
        clock: Optional[Callable[[], int]] = None,
        min_width: int = MIN_COL_WIDTH,
    ):
        keys = [preset.key for preset in presets]
        if len(set(keys)) != len(keys):
            raise ValueError(f"Duplicate column keys in presets for {biz_key}")

        self.biz_key = biz_key
        self.presets = list(presets)
        self.storage = storage
        self.version = version
        self.prefix = prefix
        self.clock = clock or now_ms
        self.min_width = min_width

        self._preset_index = {key: index for index, key in enumerate(keys)}
        self._state = self._read()

    # ------------------------------------------------------------------
    # Reading
    # ------------------------------------------------------------------

    def _read(self) -> Optional[PersistedColumnState]:
        try:
            state = load_column_state(self.storage, self.biz_key, self.prefix)
        except PersistenceError as e:
            logger.warning(f"Ignoring unreadable column state for {self.biz_key}: {e}")
            return None

        if state is not None and state.version != self.version:
            logger.info(
                f"Discarding column state for {self.biz_key}: "
                f"version {state.version} != {self.version}"
            )
            return None
        return state

    def reload(self) -> None:
        """Re-read the persisted layout."""
        self._state = self._read()

    @property
    def persisted(self) -> Optional[PersistedColumnState]:
        return self._state

    def _overrides(self) -> Dict[str, PersistedColumn]:
        if self._state is None:
            return {}
        # Entries for keys no longer in the presets are dropped here
        return {
            key: column
            for key, column in self._state.by_key().items()
            if key in self._preset_index
        }

    def _clamp(self, width: Optional[float]) -> Optional[int]:
        if width is None:
            return None
        return max(self.min_width, int(width))

    @property
    def columns(self) -> List[EffectiveColumn]:
        """All preset columns with overrides applied, in display order."""
        overrides = self._overrides()

        def position(preset: ColumnPreset):
            index = self._preset_index[preset.key]
            override = overrides.get(preset.key)
            if override is not None and override.order is not None:
                return (override.order, index)
            return (index, index)

        ordered = sorted(self.presets, key=position)
        result = []
        for order, preset in enumerate(ordered):
            override = overrides.get(preset.key)
            width = preset.width
            hidden = preset.hidden
            if override is not None:
                if override.width is not None:
                    width = override.width
                if override.hidden is not None:
                    hidden = override.hidden
            result.append(EffectiveColumn(
                preset=preset,
                width=self._clamp(width),
                hidden=hidden,
                order=order,
            ))
        return result

    @property
    def ordered_keys(self) -> List[str]:
        return [column.key for column in self.columns]

    @property
    def visible_keys(self) -> List[str]:
        return [column.key for column in self.columns if not column.hidden]

    @property
    def visible_columns(self) -> List[ColumnPreset]:
        """Visible presets in display order, carrying their effective width."""
        return [
            column.preset.with_width(column.width)
            for column in self.columns
            if not column.hidden
        ]

    def width_of(self, key: str) -> Optional[int]:
        for column in self.columns:
            if column.key == key:
                return column.width
        return None

    def persisted_width(self, key: str) -> Optional[int]:
        override = self._overrides().get(key)
        if override is None:
            return None
        return self._clamp(override.width)

    def is_visible(self, key: str) -> bool:
        return key in self.visible_keys

    def has_column(self, key: str) -> bool:
        return key in self._preset_index

    # ------------------------------------------------------------------
    # Mutations (each one is persisted immediately)
    # ------------------------------------------------------------------

    def set_visible_keys(self, keys: Sequence[str]) -> List[str]:
        """Show exactly `keys` (unknown keys ignored); returns the visible keys."""
        visible = {key for key in keys if key in self._preset_index}
        self._write(hidden={key: key not in visible for key in self._preset_index})
        return self.visible_keys

    def set_ordered_keys(self, keys: Sequence[str]) -> List[str]:
        """
        Reorder columns.

        Known keys come first in the given order; columns not mentioned
        keep their current relative order after them.
        """
        seen = []
        for key in keys:
            if key in self._preset_index and key not in seen:
                seen.append(key)
        rest = [key for key in self.ordered_keys if key not in seen]
        ordered = seen + rest
        self._write(order={key: index for index, key in enumerate(ordered)})
        return self.ordered_keys

    def set_width(self, key: str, width: float) -> Optional[int]:
        """
        Persist a column width, floored and clamped to the minimum width.

        Returns:
            The stored width, or None if `key` is not a preset column
        """
        if key not in self._preset_index:
            logger.debug(f"Ignoring width for unknown column {key!r} in {self.biz_key}")
            return None
        if (
            isinstance(width, bool)
            or not isinstance(width, (int, float))
            or not math.isfinite(width)
        ):
            raise ValueError(f"Invalid column width: {width!r}")

        stored = self._clamp(width)
        self._write(width={key: stored})
        return stored

    def reset_to_default(self) -> None:
        """Drop every persisted override; presets apply again."""
        self._state = None
        try:
            remove_column_state(self.storage, self.biz_key, self.prefix)
        except PersistenceError as e:
            logger.warning(f"Failed to clear column state for {self.biz_key}: {e}")

    def _write(
        self,
        hidden: Optional[Dict[str, bool]] = None,
        order: Optional[Dict[str, int]] = None,
        width: Optional[Dict[str, int]] = None,
    ) -> None:
        previous = self._state
        overrides = self._overrides()
        current = {column.key: column for column in self.columns}

        columns = []
        for key in self._preset_index:
            override = overrides.get(key)
            effective = current[key]
            column = PersistedColumn(
                key=key,
                hidden=effective.hidden,
                width=override.width if override is not None else None,
                order=effective.order,
                extra=dict(override.extra) if override is not None else {},
            )
            if hidden and key in hidden:
                column.hidden = hidden[key]
            if order and key in order:
                column.order = order[key]
            if width and key in width:
                column.width = width[key]
            columns.append(column)

        updated_at = self.clock()
        if previous is not None and updated_at <= previous.updated_at:
            updated_at = previous.updated_at + 1

        self._state = PersistedColumnState(
            version=self.version,
            updated_at=updated_at,
            columns=columns,
            extra=dict(previous.extra) if previous is not None else {},
        )
        try:
            save_column_state(self.storage, self.biz_key, self._state, self.prefix)
        except PersistenceError as e:
            logger.warning(f"Failed to persist column state for {self.biz_key}: {e}")
