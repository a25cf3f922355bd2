"""Shared helpers for table domain strategies."""

import logging
from datetime import datetime, timezone
from typing import AbstractSet, Any, Dict, Mapping, Optional, Sequence, Set

logger = logging.getLogger(__name__)

# (table, filter key) pairs already reported as unknown
_reported_filters: Set[tuple] = set()


def parse_time_ms(value: Optional[str]) -> Optional[int]:
    """
    Parse an upstream "YYYY-MM-DD HH:mm:ss" time to epoch milliseconds.

    Naive times are read as UTC. Returns None when the value is missing
    or unparseable.
    """
    if not value or not isinstance(value, str):
        return None
    try:
        moment = datetime.fromisoformat(value.strip().replace(" ", "T", 1))
    except ValueError:
        return None
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return int(moment.timestamp() * 1000)


def match_value(actual: Any, expected: Any) -> bool:
    """Scalar-or-list filter match; an empty filter always passes."""
    if expected is None:
        return True
    if isinstance(expected, (list, tuple, set)):
        return not expected or actual in expected
    return actual == expected


def in_range(target_ms: Optional[int], bounds: Optional[Sequence[Any]]) -> bool:
    """True if `target_ms` lies in the inclusive [start, end] range (or no range)."""
    if not bounds:
        return True
    if len(bounds) != 2:
        raise ValueError(f"Range filter needs [start, end], got {bounds!r}")
    if target_ms is None:
        return False
    start, end = bounds
    if start is not None and target_ms < start:
        return False
    if end is not None and target_ms > end:
        return False
    return True


def to_bool(value: Any) -> bool:
    return value is True or value == "true"


def known_filters(
    table: str, filters: Mapping[str, Any], known: AbstractSet[str]
) -> Dict[str, Any]:
    """
    Keep only the filters a table understands.

    Unknown keys put no constraint on rows; each is logged once per table.
    """
    kept = {}
    for name, value in filters.items():
        if name in known:
            kept[name] = value
        elif (table, name) not in _reported_filters:
            _reported_filters.add((table, name))
            logger.warning(f"Ignoring unknown filter {name!r} for {table}")
    return kept
