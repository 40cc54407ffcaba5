"""
Timezone utilities.

Timestamps are stored in UTC. Assignment bookkeeping (start, end and
effective dates) uses calendar dates in UTC.
"""

from datetime import date, datetime, timezone

UTC = timezone.utc


def utc_now() -> datetime:
    """
    Get current time in UTC (timezone-aware).

    Always use this instead of datetime.utcnow() which returns
    a naive datetime.
    """
    return datetime.now(UTC)


def utc_today() -> date:
    """Get the current calendar date in UTC."""
    return utc_now().date()
