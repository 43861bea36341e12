"""UTC-everywhere time handling. Eliminates timezone bugs at the source."""

from datetime import datetime, timezone


def now_utc() -> datetime:
    """
    Current time in UTC.

    Use this instead of datetime.now() everywhere.
    """
    return datetime.now(timezone.utc)


def epoch_millis(dt: datetime | None = None) -> int:
    """
    Milliseconds since the epoch for dt (defaults to now).

    Raises ValueError if datetime is naive (no timezone).
    """
    if dt is None:
        dt = now_utc()
    elif dt.tzinfo is None:
        raise ValueError(
            "Cannot convert naive datetime to epoch millis. Datetime must be timezone-aware."
        )
    return int(dt.timestamp() * 1000)
