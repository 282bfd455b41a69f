from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Mapping

from issue_metrics.common.time_utils import to_epoch_ms
from issue_metrics.tracking.domain.events import UserRef


@dataclass(frozen=True)
class Interval:
    start: datetime
    end: datetime | None = None  # None: still open at evaluation time

    def __post_init__(self) -> None:
        if self.end is not None and self.end < self.start:
            raise ValueError(f"Interval end {self.end} precedes start {self.start}")

    @property
    def is_open(self) -> bool:
        return self.end is None

    def effective_end(self, now: datetime) -> datetime:
        return self.end if self.end is not None else now

    def raw_elapsed_ms(self, now: datetime) -> int:
        delta = self.effective_end(now) - self.start
        return max(0, int(delta.total_seconds() * 1000))


@dataclass(frozen=True)
class WorkingTimeConfig:
    """Working-time policy. Hours are UTC; weekdays use 0=Mon ... 6=Sun."""

    work_start_hour: int = 8
    work_end_hour: int = 17
    non_working_weekdays: frozenset[int] = frozenset({5, 6})
    daily_cap_minutes: int = 480

    def __post_init__(self) -> None:
        if not 0 <= self.work_start_hour < self.work_end_hour <= 24:
            raise ValueError(
                f"Invalid working window {self.work_start_hour}-{self.work_end_hour}"
            )
        if any(d < 0 or d > 6 for d in self.non_working_weekdays):
            raise ValueError(f"Weekdays must be in 0..6: {sorted(self.non_working_weekdays)}")
        if self.daily_cap_minutes <= 0:
            raise ValueError("daily_cap_minutes must be positive")


@dataclass(frozen=True)
class StartReference:
    created_at: datetime
    assignee: UserRef | None = None


@dataclass(frozen=True)
class IssueStats:
    issue_id: int
    active_duration_ms: int
    total_duration_ms: int
    intervals: tuple[Interval, ...]
    effective_start: datetime
    total_excluding_weekends_ms: int = 0


@dataclass(frozen=True)
class AttentionSignal:
    label: str
    last_added_at: datetime


@dataclass(frozen=True)
class ChangeRequestSignal:
    mr_iid: int
    correlated: bool
    signals: Mapping[str, datetime] = field(default_factory=dict)

    @property
    def latest(self) -> AttentionSignal | None:
        if not self.signals:
            return None
        label, at = max(self.signals.items(), key=lambda kv: kv[1])
        return AttentionSignal(label=label, last_added_at=at)


@dataclass(frozen=True)
class IssueAggregate:
    stats: IssueStats
    attention: AttentionSignal | None
    change_requests: tuple[ChangeRequestSignal, ...] = ()


# --- Outbound records -------------------------------------------------------


@dataclass(frozen=True)
class MergeRequestRecord:
    id: int
    iid: int
    title: str
    labels: tuple[str, ...]
    url: str
    correlated: bool = True
    attention_signal_at: datetime | None = None

    def to_payload(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "id": self.id,
            "iid": self.iid,
            "labels": list(self.labels),
            "url": self.url,
            "title": self.title,
            "correlated": self.correlated,
        }
        if self.attention_signal_at is not None:
            out["attentionSignalAt"] = to_epoch_ms(self.attention_signal_at)
        return out


@dataclass(frozen=True)
class IssueStatisticsRecord:
    id: int
    iid: int
    title: str
    assignee: UserRef | None
    labels: tuple[str, ...]
    time_in_progress_ms: int
    total_time_from_start_ms: int
    total_time_excluding_weekends_ms: int
    merge_requests: tuple[MergeRequestRecord, ...]
    url: str
    attention_signal_at: datetime | None = None

    def to_payload(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "id": self.id,
            "iid": self.iid,
            "title": self.title,
            "assignee": (
                {"id": self.assignee.id, "username": self.assignee.username}
                if self.assignee is not None
                else None
            ),
            "labels": list(self.labels),
            "timeInProgress": self.time_in_progress_ms,
            "totalTimeFromStart": self.total_time_from_start_ms,
            "totalTimeExcludingWeekends": self.total_time_excluding_weekends_ms,
            "mergeRequests": [mr.to_payload() for mr in self.merge_requests],
            "url": self.url,
        }
        if self.attention_signal_at is not None:
            out["attentionSignalAt"] = to_epoch_ms(self.attention_signal_at)
        return out
