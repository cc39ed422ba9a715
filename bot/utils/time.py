from __future__ import annotations

from datetime import UTC, datetime, timedelta


def utc_now() -> datetime:
    return datetime.now(UTC)


def to_iso(dt: datetime | None) -> str | None:
    if dt is None:
        return None
    # Fixed precision keeps lexical order equal to chronological order in the store.
    return dt.astimezone(UTC).isoformat(timespec="microseconds")


def parse_iso(value: str | datetime | None) -> datetime | None:
    if value is None:
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=UTC)
    return parsed.astimezone(UTC)


def is_within_working_hours(start: int, end: int, hour: int) -> bool:
    if start <= end:
        return start <= hour < end
    # Overnight window such as 22 -> 6.
    return hour >= start or hour < end


def format_response_time(delta: timedelta) -> str:
    minutes = int(delta.total_seconds() // 60)
    if minutes < 60:
        return f"{minutes} minutes"
    hours, rest = divmod(minutes, 60)
    return f"{hours}h {rest}m"
