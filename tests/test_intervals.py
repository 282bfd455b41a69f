from __future__ import annotations

from datetime import datetime, timedelta, timezone

from issue_metrics.tracking.domain.events import Event, EventKind
from issue_metrics.tracking.domain.models import Interval
from issue_metrics.tracking.intervals import extract_intervals, merge_intervals

NOW = datetime(2024, 1, 10, 12, 0, tzinfo=timezone.utc)


def _ts(day: int, hour: int, minute: int = 0) -> datetime:
    return datetime(2024, 1, day, hour, minute, tzinfo=timezone.utc)


def _label(eid: int, ts: datetime, label: str, added: bool = True) -> Event:
    return Event(
        event_id=f"label:{eid}",
        timestamp=ts,
        kind=EventKind.LABEL_ADDED if added else EventKind.LABEL_REMOVED,
        label=label,
    )


def test_extract_sorts_unordered_events() -> None:
    events = [
        _label(2, _ts(1, 12), "in-progress", added=False),
        _label(1, _ts(1, 9), "in-progress"),
    ]
    assert extract_intervals(events, "in-progress") == [Interval(_ts(1, 9), _ts(1, 12))]


def test_extract_ignores_inconsistent_history() -> None:
    events = [
        _label(1, _ts(1, 8), "in-progress", added=False),  # remove while closed
        _label(2, _ts(1, 9), "in-progress"),
        _label(3, _ts(1, 10), "in-progress"),  # add while open
        _label(4, _ts(1, 11), "in-progress", added=False),
        _label(5, _ts(1, 12), "in-progress", added=False),
    ]
    assert extract_intervals(events, "in-progress") == [Interval(_ts(1, 9), _ts(1, 11))]


def test_extract_open_interval_and_other_labels() -> None:
    events = [
        _label(1, _ts(2, 9), "bug"),
        _label(2, _ts(2, 10), "in-progress"),
        _label(3, _ts(2, 11), "bug", added=False),
    ]
    assert extract_intervals(events, "in-progress") == [Interval(_ts(2, 10), None)]


def test_pause_label_closes_interval() -> None:
    events = [
        _label(1, _ts(3, 9), "in-progress"),
        _label(2, _ts(3, 11), "paused"),
        _label(3, _ts(3, 13), "in-progress", added=False),
        _label(4, _ts(3, 14), "in-progress"),
    ]
    assert extract_intervals(events, "in-progress", pause_labels=("paused",)) == [
        Interval(_ts(3, 9), _ts(3, 11)),
        Interval(_ts(3, 14), None),
    ]


def test_pause_while_not_in_progress_is_ignored() -> None:
    events = [_label(1, _ts(3, 9), "paused")]
    assert extract_intervals(events, "in-progress") == []


def test_merge_overlapping_and_touching() -> None:
    intervals = [
        Interval(_ts(1, 13), _ts(1, 15)),
        Interval(_ts(1, 9), _ts(1, 11)),
        Interval(_ts(1, 11), _ts(1, 12)),  # touches the previous one
        Interval(_ts(1, 10), _ts(1, 10, 30)),  # contained
    ]
    assert merge_intervals(intervals, NOW) == [
        Interval(_ts(1, 9), _ts(1, 12)),
        Interval(_ts(1, 13), _ts(1, 15)),
    ]


def test_merge_open_interval_dominates_only_when_later() -> None:
    merged = merge_intervals([Interval(_ts(2, 9), _ts(2, 12)), Interval(_ts(2, 10), None)], NOW)
    assert merged == [Interval(_ts(2, 9), None)]

    # An open interval ends at "now"; a closed one reaching past it keeps its bound.
    future_close = NOW + timedelta(hours=5)
    merged = merge_intervals(
        [Interval(NOW - timedelta(hours=1), None), Interval(NOW - timedelta(minutes=30), future_close)],
        NOW,
    )
    assert merged == [Interval(NOW - timedelta(hours=1), future_close)]


def test_merge_is_idempotent_and_disjoint() -> None:
    intervals = [
        Interval(_ts(1, 9), _ts(1, 10)),
        Interval(_ts(1, 9, 30), _ts(1, 12)),
        Interval(_ts(1, 12), _ts(1, 13)),
        Interval(_ts(2, 9), None),
        Interval(_ts(2, 8), _ts(2, 9, 30)),
        Interval(_ts(4, 9), _ts(4, 10)),
    ]
    once = merge_intervals(intervals, NOW)
    assert merge_intervals(once, NOW) == once
    for a, b in zip(once, once[1:]):
        assert a.effective_end(NOW) < b.start


def test_merge_empty() -> None:
    assert merge_intervals([], NOW) == []
