from __future__ import annotations

from datetime import datetime, timedelta, timezone


def to_utc(dt: datetime) -> datetime:
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def floor_to_hour(dt: datetime) -> datetime:
    """Return the start of the UTC hour containing `dt`."""

    return to_utc(dt).replace(minute=0, second=0, microsecond=0)


def epoch_hour(dt: datetime) -> int:
    return int(to_utc(dt).timestamp() // 3600)


def isoformat_z(dt: datetime) -> str:
    return to_utc(dt).replace(microsecond=0).isoformat().replace("+00:00", "Z")


def hours_ago(now: datetime, hours: int) -> datetime:
    return to_utc(now) - timedelta(hours=hours)
