from __future__ import annotations

_MINUTE_MS = 60 * 1000


def format_hours_minutes(duration_ms: int | None) -> str:
    """'HH:MM' with hours unbounded; empty string for missing or zero durations."""
    if not duration_ms:
        return ""
    minutes = int(duration_ms) // _MINUTE_MS
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


def format_duration(duration_ms: int | None) -> str:
    """'Xd HH:MM' using 24-hour days; the day part is omitted when zero."""
    if not duration_ms:
        return ""
    minutes = int(duration_ms) // _MINUTE_MS
    hours = minutes // 60
    days, rem_hours = divmod(hours, 24)
    hhmm = f"{rem_hours:02d}:{minutes % 60:02d}"
    return f"{days}d {hhmm}" if days > 0 else hhmm
