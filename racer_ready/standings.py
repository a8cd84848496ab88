"""Points aggregation and recency ordering for logbook entries."""

from __future__ import annotations

import time
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional

DATETIME_INPUT_FORMAT = "%Y-%m-%dT%H:%M"


def now_ms() -> int:
    return int(time.time() * 1000)


def parse_points(value: Any) -> int:
    """Whole points earned; blank, unparseable or negative input counts as 0."""
    if value is None:
        return 0
    try:
        points = int(str(value).strip())
    except ValueError:
        return 0
    return max(points, 0)


def _created(doc: Dict[str, Any]) -> int:
    try:
        return int(doc.get("createdAt") or 0)
    except (TypeError, ValueError):
        return 0


def sort_recent_first(docs: Iterable[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Newest ``createdAt`` first; ties keep the order the store returned."""
    return sorted(docs, key=_created, reverse=True)


def sort_oldest_first(docs: Iterable[Dict[str, Any]]) -> List[Dict[str, Any]]:
    return sorted(docs, key=_created)


def latest(docs: Iterable[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    ordered = sort_recent_first(docs)
    return ordered[0] if ordered else None


def compute_points_standings(days: Iterable[Dict[str, Any]]) -> Dict[str, Any]:
    """Sum points over the days that earned any.

    Days with zero or missing points are left out of both the total and the
    returned list, which is ordered newest first.
    """
    scoring = [d for d in days if parse_points(d.get("pointsEarned")) > 0]
    total = sum(parse_points(d.get("pointsEarned")) for d in scoring)
    return {"total": total, "days": sort_recent_first(scoring)}


def format_datetime_input(ms: Optional[int]) -> str:
    """Render epoch milliseconds for a ``datetime-local`` form field (UTC)."""
    if not ms:
        return ""
    moment = datetime.fromtimestamp(int(ms) / 1000, tz=timezone.utc)
    return moment.strftime(DATETIME_INPUT_FORMAT)


def parse_datetime_input(value: Optional[str]) -> Optional[int]:
    if not value:
        return None
    try:
        moment = datetime.strptime(value.strip(), DATETIME_INPUT_FORMAT)
    except ValueError:
        return None
    return int(moment.replace(tzinfo=timezone.utc).timestamp() * 1000)


def format_timestamp(ms: Optional[int]) -> str:
    if not ms:
        return ""
    moment = datetime.fromtimestamp(int(ms) / 1000, tz=timezone.utc)
    return moment.strftime("%Y-%m-%d %H:%M")
