"""Working-time arithmetic over UTC calendar days.

Two distinct duration modes live here and produce different numbers for the
same span:

- ``working_time_ms``: only the configured daily window on working weekdays
  counts, and each day contributes at most ``daily_cap_minutes``. This feeds
  the "time in progress" figure.
- ``weekend_adjusted_elapsed_ms``: raw elapsed time minus 24h for every
  non-working weekday touched. No daily window, no cap. This feeds the
  lighter-weight "total time" figure.
"""
from __future__ import annotations

from datetime import date, datetime, time, timedelta, timezone

from issue_metrics.tracking.domain.models import Interval, WorkingTimeConfig

_DAY_MS = 24 * 60 * 60 * 1000


def _day_bounds(day: date, config: WorkingTimeConfig) -> tuple[datetime, datetime]:
    midnight = datetime.combine(day, time(0), tzinfo=timezone.utc)
    return (
        midnight + timedelta(hours=config.work_start_hour),
        midnight + timedelta(hours=config.work_end_hour),
    )


def working_minutes_by_day(
    interval: Interval,
    config: WorkingTimeConfig,
    now: datetime,
) -> dict[date, int]:
    """Capped working minutes per UTC calendar day touched by ``interval``."""
    start = interval.start.astimezone(timezone.utc)
    end = interval.effective_end(now).astimezone(timezone.utc)
    minutes: dict[date, int] = {}
    if end <= start:
        return minutes

    day = start.date()
    last_day = end.date()
    while day <= last_day:
        if day.weekday() in config.non_working_weekdays:
            minutes[day] = 0
        else:
            window_start, window_end = _day_bounds(day, config)
            seg_start = max(start, window_start)
            seg_end = min(end, window_end)
            overlap_s = (seg_end - seg_start).total_seconds()
            day_minutes = int(overlap_s // 60) if overlap_s > 0 else 0
            minutes[day] = min(day_minutes, config.daily_cap_minutes)
        day += timedelta(days=1)
    return minutes


def working_time_ms(interval: Interval, config: WorkingTimeConfig, now: datetime) -> int:
    return sum(working_minutes_by_day(interval, config, now).values()) * 60 * 1000


def count_non_working_days(start: datetime, end: datetime, config: WorkingTimeConfig) -> int:
    """Count non-working weekdays hit when stepping one day at a time from start to end."""
    count = 0
    cursor = start.astimezone(timezone.utc)
    end = end.astimezone(timezone.utc)
    while cursor <= end:
        if cursor.weekday() in config.non_working_weekdays:
            count += 1
        cursor += timedelta(days=1)
    return count


def weekend_adjusted_elapsed_ms(start: datetime, end: datetime, config: WorkingTimeConfig) -> int:
    raw_ms = int((end - start).total_seconds() * 1000)
    if raw_ms <= 0:
        return 0
    adjusted = raw_ms - count_non_working_days(start, end, config) * _DAY_MS
    return max(0, adjusted)
