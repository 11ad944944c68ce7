"""Timezone helpers (all timestamps are compared in UTC)."""
from datetime import datetime, timezone
from typing import Any, Optional


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: Any) -> Optional[datetime]:
    """
    Coerce a datetime or ISO-8601 string to an aware UTC datetime.

    Naive values are assumed to already be UTC (SQLite hands them back
    without tzinfo). Anything unparsable gives None.
    """
    if isinstance(value, str):
        try:
            value = datetime.fromisoformat(value.strip().replace('Z', '+00:00'))
        except ValueError:
            return None
    if not isinstance(value, datetime):
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)
