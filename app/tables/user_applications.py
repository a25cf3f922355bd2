"""Applications of one user (user detail view, RBAC admin)."""

from typing import Any, Dict, List, Mapping

from app.tables.common import known_filters, parse_time_ms, to_bool
from smarttable.exceptions import CompositionError
from smarttable.local_query import LocalQueryOptions
from smarttable.query_state import Sorter
from smarttable.types import ColumnPreset

BIZ_KEY = "rbac.user.applications"

APPLICATION_STATE_LABELS = {
    0: "Registered",
    1: "Waitlisted",
    2: "Waitlist accepted",
    3: "Waitlist rejected",
    4: "Under review",
    5: "Review rejected",
}

PRESETS: List[ColumnPreset] = [
    ColumnPreset(key="activityName", title="Activity", width=220),
    ColumnPreset(key="type", title="Type", width=100),
    ColumnPreset(key="state", title="Application state", width=120),
    ColumnPreset(key="time", title="Applied at", width=170),
    ColumnPreset(key="score", title="Score / count", width=100),
    ColumnPreset(key="checkIn", title="Checked in", width=90),
    ColumnPreset(key="checkOut", title="Checked out", width=90),
    ColumnPreset(key="getScore", title="Score granted", width=100),
    ColumnPreset(key="id", title="Record ID", width=90, hidden=True),
    ColumnPreset(key="activityId", title="Activity ID", width=90, hidden=True),
    ColumnPreset(key="attachment", title="Attachment", width=160, hidden=True),
    ColumnPreset(key="username", title="Student ID", width=130, hidden=True),
]

NUMBER_LIST_FILTERS = ("type", "state")
BOOL_LIST_FILTERS = ("checkIn", "checkOut", "getScore")
KNOWN_FILTERS = {*NUMBER_LIST_FILTERS, *BOOL_LIST_FILTERS}


def get_search_texts(row: Mapping[str, Any]) -> List[str]:
    """Keyword search covers the activity name only."""
    name = str(row.get("activityName") or "").strip()
    return [name] if name else []


def match_filters(row: Mapping[str, Any], filters: Mapping[str, Any]) -> bool:
    filters = known_filters(BIZ_KEY, filters, KNOWN_FILTERS)
    for name in NUMBER_LIST_FILTERS:
        allowed = filters.get(name)
        if isinstance(allowed, (list, tuple)) and allowed:
            if int(row.get(name) or 0) not in [int(v) for v in allowed]:
                return False

    for name in BOOL_LIST_FILTERS:
        allowed = filters.get(name)
        if isinstance(allowed, (list, tuple)) and allowed:
            if bool(row.get(name)) not in [to_bool(v) for v in allowed]:
                return False
    return True


def get_sort_value(row: Mapping[str, Any], sorter: Sorter) -> Any:
    field = sorter.field
    if field == "activityName":
        return str(row.get("activityName") or "")
    if field in ("type", "state", "score", "activityId"):
        return float(row.get(field) or 0)
    if field == "time":
        return parse_time_ms(row.get("time")) or 0
    raise CompositionError(f"Unknown application sort field: {field}", field=field)


def export_row(row: Mapping[str, Any], index: int) -> Dict[str, Any]:
    yes_no = {True: "Yes", False: "No"}
    return {
        **row,
        "type": {0: "Activity", 1: "Lecture"}.get(row.get("type"), row.get("type")),
        "state": APPLICATION_STATE_LABELS.get(row.get("state"), row.get("state")),
        "checkIn": yes_no.get(bool(row.get("checkIn"))),
        "checkOut": yes_no.get(bool(row.get("checkOut"))),
        "getScore": yes_no.get(bool(row.get("getScore"))),
    }


OPTIONS = LocalQueryOptions(
    get_search_texts=get_search_texts,
    match_filters=match_filters,
    get_sort_value=get_sort_value,
)
