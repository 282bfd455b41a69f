from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Sequence

from issue_metrics.tracking.attention import (
    latest_label_adds,
    overall_signal,
    title_references_issue,
)
from issue_metrics.tracking.domain.events import Event, EventKind, sort_events
from issue_metrics.tracking.domain.models import (
    ChangeRequestSignal,
    IssueAggregate,
    IssueStats,
    StartReference,
    WorkingTimeConfig,
)
from issue_metrics.tracking.intervals import extract_intervals, merge_intervals
from issue_metrics.tracking.working_time import weekend_adjusted_elapsed_ms, working_time_ms

logger = logging.getLogger(__name__)

DEFAULT_ATTENTION_LABELS: tuple[str, ...] = (
    "action-required",
    "action-required2",
    "action-required3",
)


@dataclass(frozen=True)
class TrackedLabels:
    in_progress: str = "in-progress"
    pause: tuple[str, ...] = ("paused",)
    attention: tuple[str, ...] = DEFAULT_ATTENTION_LABELS


@dataclass(frozen=True)
class RelatedChangeRequest:
    """A merge request linked to an issue, with its label history.

    ``events`` is None when the history could not be fetched because the
    merge request no longer exists.
    """

    id: int
    iid: int
    title: str
    is_open: bool
    events: tuple[Event, ...] | None
    labels: tuple[str, ...] | None = None
    source_branch: str | None = None


def effective_start(events: Sequence[Event], reference: StartReference) -> datetime:
    """Latest assignment to the current assignee, else the creation time."""
    if reference.assignee is None:
        return reference.created_at
    latest: datetime | None = None
    for event in events:
        if event.kind is not EventKind.ASSIGNEE_CHANGED:
            continue
        if reference.assignee.same_user(event.assignee):
            if latest is None or event.timestamp > latest:
                latest = event.timestamp
    return latest if latest is not None else reference.created_at


def change_request_signal(
    issue_iid: int,
    cr: RelatedChangeRequest,
    attention_labels: Sequence[str],
) -> ChangeRequestSignal:
    correlated = title_references_issue(issue_iid, cr.title, cr.source_branch)
    if not correlated:
        logger.info("MR !%s does not reference issue #%s by name", cr.iid, issue_iid)
    if cr.labels is not None:
        labels = [lbl for lbl in attention_labels if lbl in cr.labels]
    else:
        labels = list(attention_labels)
    signals = latest_label_adds(cr.events or (), labels) if labels else {}
    return ChangeRequestSignal(mr_iid=cr.iid, correlated=correlated, signals=signals)


def aggregate(
    issue_id: int,
    issue_iid: int,
    issue_events: Sequence[Event],
    related_change_requests: Sequence[RelatedChangeRequest],
    start_reference: StartReference,
    is_closed: bool,
    closed_at: datetime | None,
    *,
    now: datetime,
    config: WorkingTimeConfig | None = None,
    labels: TrackedLabels | None = None,
) -> IssueAggregate:
    """Combine an issue's history and its merge requests into one statistics record.

    ``now`` is captured once by the caller and used for every open bound.
    """
    config = config or WorkingTimeConfig()
    labels = labels or TrackedLabels()

    ordered = sort_events(issue_events)
    start = effective_start(ordered, start_reference)
    current = [e for e in ordered if e.timestamp >= start]

    intervals = merge_intervals(
        extract_intervals(current, labels.in_progress, labels.pause),
        now=now,
    )
    active_ms = sum(working_time_ms(iv, config, now) for iv in intervals)

    end = closed_at if (is_closed and closed_at is not None) else now
    total_ms = max(0, int((end - start).total_seconds() * 1000))

    stats = IssueStats(
        issue_id=issue_id,
        active_duration_ms=active_ms,
        total_duration_ms=total_ms,
        intervals=tuple(intervals),
        effective_start=start,
        total_excluding_weekends_ms=weekend_adjusted_elapsed_ms(start, end, config),
    )

    cr_signals: list[ChangeRequestSignal] = []
    for cr in related_change_requests:
        if not cr.is_open:
            continue
        if cr.events is None:
            logger.warning("Skipping MR !%s for issue #%s: history unavailable", cr.iid, issue_iid)
            continue
        cr_signals.append(change_request_signal(issue_iid, cr, labels.attention))

    return IssueAggregate(
        stats=stats,
        attention=overall_signal(cr_signals),
        change_requests=tuple(cr_signals),
    )
