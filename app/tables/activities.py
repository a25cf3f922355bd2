"""
Activity / lecture registration list.

Rows are upstream ActivityItem records (field names kept as sent by the
upstream), optionally carrying the caller's derived `applyState`.
"""

from typing import Any, Dict, List, Mapping, Optional

from app.tables.common import in_range, known_filters, match_value, parse_time_ms
from smarttable.exceptions import CompositionError
from smarttable.local_query import LocalQueryOptions
from smarttable.query_state import Sorter
from smarttable.types import ColumnPreset

BIZ_KEY = "activity.enroll"

ACTIVITY_TYPE_LABELS = {0: "Activity", 1: "Lecture"}

ACTIVITY_STATE_LABELS = {
    0: "Not started",
    1: "Registration open",
    2: "Registration closed",
    3: "In progress",
    4: "Finished",
}

APPLY_STATE_LABELS = {
    "NOT_APPLIED": "Not applied",
    "APPLIED": "Registered",
    "CANDIDATE": "Waitlisted",
    "CANDIDATE_SUCC": "Waitlist accepted",
    "CANDIDATE_FAIL": "Waitlist rejected",
    "REVIEWING": "Under review",
    "REVIEW_FAIL": "Review rejected",
}

# Sort rank of the derived apply state
APPLY_STATE_ORDER = [
    "NOT_APPLIED",
    "REVIEWING",
    "REVIEW_FAIL",
    "CANDIDATE",
    "CANDIDATE_FAIL",
    "CANDIDATE_SUCC",
    "APPLIED",
]

# Application state code -> derived apply state
APPLICATION_STATE_TO_APPLY_STATE = {
    0: "APPLIED",
    1: "CANDIDATE",
    2: "CANDIDATE_SUCC",
    3: "CANDIDATE_FAIL",
    4: "REVIEWING",
    5: "REVIEW_FAIL",
}

PRESETS: List[ColumnPreset] = [
    ColumnPreset(key="id", title="ID", width=90, hidden=True),
    ColumnPreset(key="name", title="Name", width=240),
    ColumnPreset(key="department", title="Department", width=160),
    ColumnPreset(key="type", title="Type", width=100),
    ColumnPreset(key="state", title="Activity state", width=120),
    ColumnPreset(key="signStartTime", title="Registration opens", width=180),
    ColumnPreset(key="signEndTime", title="Registration closes", width=180),
    ColumnPreset(key="activityStime", title="Starts", width=180),
    ColumnPreset(key="activityEtime", title="Ends", width=180),
    ColumnPreset(key="location", title="Location", width=160),
    ColumnPreset(key="score", title="Score / count", width=120),
    ColumnPreset(key="fullNum", title="Capacity", width=100),
    ColumnPreset(
        key="successApplyNum",
        title="Accepted",
        width=120,
        accessor=lambda row: success_apply_num(row),
    ),
    ColumnPreset(key="candidateNum", title="Waitlisted", width=100),
    ColumnPreset(key="applyState", title="My registration", width=140),
]

# Time fields and the range filter that applies to each
TIME_RANGE_FILTERS = {
    "signStartRange": "signStartTime",
    "signEndRange": "signEndTime",
    "activityStartRange": "activityStime",
    "activityEndRange": "activityEtime",
}

KNOWN_FILTERS = {"department", "type", "state", "applyState", *TIME_RANGE_FILTERS}

NUMERIC_SORT_FIELDS = {
    "id",
    "type",
    "score",
    "state",
    "fullNum",
    "registeredNum",
    "candidateNum",
}
TEXT_SORT_FIELDS = {"name", "department", "location"}


def success_apply_num(row: Mapping[str, Any]) -> int:
    """Accepted applicants: direct registrations plus accepted waitlist entries."""
    return int(row.get("registeredNum") or 0) + int(row.get("candidateSuccNum") or 0)


def derive_apply_state(application: Optional[Mapping[str, Any]] = None) -> str:
    if not application:
        return "NOT_APPLIED"
    return APPLICATION_STATE_TO_APPLY_STATE.get(application.get("state"), "NOT_APPLIED")


def merge_enroll_rows(
    activities: List[Mapping[str, Any]], my_applications: List[Mapping[str, Any]]
) -> List[Dict[str, Any]]:
    """Attach the caller's own application and derived apply state to each activity."""
    by_activity = {app.get("activityId"): app for app in my_applications}
    rows = []
    for activity in activities:
        mine = by_activity.get(activity.get("id"))
        rows.append({
            **activity,
            "myApplication": mine,
            "applyState": derive_apply_state(mine),
        })
    return rows


def get_search_texts(row: Mapping[str, Any]) -> List[str]:
    return [v for v in (row.get("name"), row.get("department"), row.get("location")) if v]


def match_filters(row: Mapping[str, Any], filters: Mapping[str, Any]) -> bool:
    filters = known_filters(BIZ_KEY, filters, KNOWN_FILTERS)
    for name in ("department", "type", "state", "applyState"):
        if not match_value(row.get(name), filters.get(name)):
            return False

    for filter_name, time_field in TIME_RANGE_FILTERS.items():
        if not in_range(parse_time_ms(row.get(time_field)), filters.get(filter_name)):
            return False
    return True


def get_sort_value(row: Mapping[str, Any], sorter: Sorter) -> Any:
    field = sorter.field
    if field in NUMERIC_SORT_FIELDS:
        return row.get(field) or 0
    if field in TEXT_SORT_FIELDS:
        return row.get(field) or ""
    if field in TIME_RANGE_FILTERS.values():
        return parse_time_ms(row.get(field)) or 0
    if field == "successApplyNum":
        return success_apply_num(row)
    if field == "applyState":
        state = row.get("applyState") or "NOT_APPLIED"
        return APPLY_STATE_ORDER.index(state) if state in APPLY_STATE_ORDER else -1
    raise CompositionError(f"Unknown activity sort field: {field}", field=field)


def export_row(row: Mapping[str, Any], index: int) -> Dict[str, Any]:
    """Replace codes with labels for export."""
    return {
        **row,
        "type": ACTIVITY_TYPE_LABELS.get(row.get("type"), row.get("type")),
        "state": ACTIVITY_STATE_LABELS.get(row.get("state"), row.get("state")),
        "applyState": APPLY_STATE_LABELS.get(row.get("applyState"), row.get("applyState")),
    }


OPTIONS = LocalQueryOptions(
    get_search_texts=get_search_texts,
    match_filters=match_filters,
    get_sort_value=get_sort_value,
)
