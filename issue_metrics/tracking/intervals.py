from __future__ import annotations

from datetime import datetime
from typing import Iterable, Sequence

from issue_metrics.tracking.domain.events import Event, EventKind, sort_events
from issue_metrics.tracking.domain.models import Interval


def extract_intervals(
    events: Iterable[Event],
    label: str,
    pause_labels: Sequence[str] = ("paused",),
) -> list[Interval]:
    """Fold a label history into the spans during which ``label`` was applied.

    Events may arrive in any order. Adding the label while it is already
    active, or removing it while inactive, is ignored. Adding one of
    ``pause_labels`` while active closes the span at that moment.
    A span still active after the last event is returned with ``end=None``.
    """
    pauses = frozenset(pause_labels)
    intervals: list[Interval] = []
    open_start: datetime | None = None

    for event in sort_events(events):
        if event.label is None:
            continue
        if event.kind is EventKind.LABEL_ADDED:
            if event.label == label and open_start is None:
                open_start = event.timestamp
            elif event.label in pauses and open_start is not None:
                intervals.append(Interval(start=open_start, end=event.timestamp))
                open_start = None
        elif event.kind is EventKind.LABEL_REMOVED:
            if event.label == label and open_start is not None:
                intervals.append(Interval(start=open_start, end=event.timestamp))
                open_start = None

    if open_start is not None:
        intervals.append(Interval(start=open_start, end=None))
    return intervals


def merge_intervals(intervals: Iterable[Interval], now: datetime) -> list[Interval]:
    """Collapse overlapping or touching intervals into a sorted disjoint list.

    Open intervals are compared as if they ended at ``now``. The merged span
    stays open only when the later of the two bounds comes from an open
    interval.
    """
    ordered = sorted(intervals, key=lambda iv: (iv.start, iv.effective_end(now)))
    if not ordered:
        return []

    merged: list[Interval] = [ordered[0]]
    for nxt in ordered[1:]:
        cur = merged[-1]
        cur_end = cur.effective_end(now)
        if nxt.start > cur_end:
            merged.append(nxt)
            continue

        nxt_end = nxt.effective_end(now)
        if nxt_end > cur_end:
            end = nxt.end
        elif nxt_end < cur_end:
            end = cur.end
        else:
            # Same effective bound: open wins.
            end = None if (cur.is_open or nxt.is_open) else cur.end
        merged[-1] = Interval(start=cur.start, end=end)

    return merged
