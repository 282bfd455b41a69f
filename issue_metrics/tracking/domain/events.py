from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum


class MalformedEvent(ValueError):
    """Raised when an upstream event record lacks a required field."""


class EventKind(str, Enum):
    LABEL_ADDED = "label_added"
    LABEL_REMOVED = "label_removed"
    STATE_CHANGED = "state_changed"
    ASSIGNEE_CHANGED = "assignee_changed"


@dataclass(frozen=True)
class UserRef:
    id: int | None
    username: str

    def same_user(self, other: "UserRef | None") -> bool:
        if other is None:
            return False
        if self.id is not None and other.id is not None:
            return self.id == other.id
        return self.username == other.username


@dataclass(frozen=True)
class EntityRef:
    project_id: int
    iid: int
    kind: str = "issue"  # "issue" | "merge_request"

    @property
    def api_segment(self) -> str:
        return "issues" if self.kind == "issue" else "merge_requests"


@dataclass(frozen=True)
class Event:
    """A single append-only fact from an entity's history."""

    event_id: str
    timestamp: datetime
    kind: EventKind
    actor_id: int | None = None
    label: str | None = None
    assignee: UserRef | None = None
    state: str | None = None


def sort_events(events) -> list[Event]:
    """Chronological order; ties broken by event id so folds are deterministic."""
    return sorted(events, key=lambda e: (e.timestamp, e.event_id))
