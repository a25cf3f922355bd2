"""
Pointer-driven column resizing.

Works on plain pointer events (down / move / up with a clientX) so any
rendering layer can feed it. During a drag only an in-memory overlay is
updated; the width is persisted once, on pointer-up.
"""

import logging
import math
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Mapping, Optional, Protocol

from smarttable.column_prefs import ColumnPreferenceStore
from smarttable.constants import MIN_COL_WIDTH

logger = logging.getLogger("smarttable.resize")


@dataclass(frozen=True)
class PointerEvent:
    client_x: float
    pointer_id: int = 1


class PointerCaptureTarget(Protocol):
    """Element that can capture a pointer (a header resize handle)."""

    def set_pointer_capture(self, pointer_id: int) -> None:
        ...

    def release_pointer_capture(self, pointer_id: int) -> None:
        ...


@dataclass
class _Drag:
    key: str
    pointer_id: int
    start_x: float
    start_width: float
    target: Optional[PointerCaptureTarget]


class ResizableColumnController:
    """
    One-drag-at-a-time column resizer bound to a ColumnPreferenceStore.

    The committed width is never below `min_width`, however far left the
    pointer moved.
    """

    def __init__(self, store: ColumnPreferenceStore, min_width: int = MIN_COL_WIDTH):
        self.store = store
        self.min_width = min_width
        self.overlay: Dict[str, int] = {}
        self._drag: Optional[_Drag] = None

    @property
    def dragging(self) -> bool:
        return self._drag is not None

    @property
    def active_key(self) -> Optional[str]:
        return self._drag.key if self._drag else None

    def _candidate(self, client_x: float) -> int:
        drag = self._drag
        delta = client_x - drag.start_x
        raw = drag.start_width + delta
        if not math.isfinite(raw):
            raw = drag.start_width
        return max(self.min_width, math.floor(raw))

    def pointer_down(
        self,
        key: str,
        event: PointerEvent,
        rendered_width: Optional[float] = None,
        target: Optional[PointerCaptureTarget] = None,
    ) -> bool:
        """
        Start a drag on the resize handle of column `key`.

        The start width is the persisted override, else the rendered width,
        else the effective preset width.

        Returns:
            True if the drag started
        """
        if self._drag is not None:
            logger.debug(f"Drag on {self._drag.key!r} in progress, ignoring {key!r}")
            return False
        if not self.store.has_column(key):
            return False

        start_width = self.store.persisted_width(key)
        if start_width is None:
            start_width = rendered_width
        if start_width is None:
            start_width = self.store.width_of(key)
        if start_width is None:
            start_width = self.min_width

        if target is not None:
            target.set_pointer_capture(event.pointer_id)

        self._drag = _Drag(
            key=key,
            pointer_id=event.pointer_id,
            start_x=event.client_x,
            start_width=start_width,
            target=target,
        )
        return True

    def pointer_move(self, event: PointerEvent) -> Optional[int]:
        """Update the overlay width of the dragged column (no storage write)."""
        if self._drag is None or event.pointer_id != self._drag.pointer_id:
            return None
        width = self._candidate(event.client_x)
        self.overlay[self._drag.key] = width
        return width

    def pointer_up(self, event: PointerEvent) -> Optional[int]:
        """Finish the drag and commit the final width once."""
        if self._drag is None or event.pointer_id != self._drag.pointer_id:
            return None

        drag = self._drag
        width = self._candidate(event.client_x)
        self._release()

        stored = self.store.set_width(drag.key, width)
        self.overlay.pop(drag.key, None)
        logger.debug(f"Column {drag.key!r} resized to {stored}")
        return stored

    def pointer_cancel(self, event: Optional[PointerEvent] = None) -> None:
        """Abort the drag without persisting anything."""
        if self._drag is None:
            return
        if event is not None and event.pointer_id != self._drag.pointer_id:
            return
        key = self._drag.key
        self._release()
        self.overlay.pop(key, None)

    def _release(self) -> None:
        drag = self._drag
        self._drag = None
        if drag.target is not None:
            drag.target.release_pointer_capture(drag.pointer_id)

    def width_of(self, key: str) -> Optional[int]:
        """Width to render now: drag overlay first, then the store."""
        if key in self.overlay:
            return self.overlay[key]
        return self.store.width_of(key)

    def header_props(
        self, key: str, base: Optional[Mapping[str, Any]] = None
    ) -> Dict[str, Any]:
        """
        Header cell attributes for `key`.

        Only the width inside `style` is set; every other attribute and
        style entry (position, left/right offsets of fixed columns) is
        passed through.
        """
        props = dict(base or {})
        style = dict(props.get("style") or {})
        width = self.width_of(key)
        if width is not None:
            style["width"] = width
        props["style"] = style
        props["data-col-key"] = key
        return props

    def apply_widths(self, columns: Iterable[Mapping[str, Any]]) -> List[Dict[str, Any]]:
        """Copy column definitions with current widths; nothing else changes."""
        result = []
        for column in columns:
            copy = dict(column)
            key = copy.get("key") or copy.get("dataIndex")
            if isinstance(key, str) and self.store.has_column(key):
                width = self.width_of(key)
                if width is not None:
                    copy["width"] = width
            result.append(copy)
        return result
