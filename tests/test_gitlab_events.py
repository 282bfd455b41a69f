from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

import pytest

from issue_metrics.adapters.gitlab.gitlab_client import NotFound
from issue_metrics.adapters.gitlab.gitlab_events import (
    assignment_event,
    fetch_events,
    fetch_project_members,
    label_event,
    resolve_user_ids,
)
from issue_metrics.tracking.domain.events import EntityRef, EventKind, MalformedEvent, UserRef


class _FakeClient:
    def __init__(self, routes: dict[str, list[dict[str, Any]]]) -> None:
        self.routes = routes
        self.calls: list[str] = []

    def paginate(self, path: str, params: dict[str, Any] | None = None, **_: Any):
        self.calls.append(path)
        if path not in self.routes:
            raise NotFound(path)
        yield from self.routes[path]


def _label_raw(eid: int, when: str, name: str, action: str = "add") -> dict[str, Any]:
    return {
        "id": eid,
        "user": {"id": 3, "username": "carol"},
        "created_at": when,
        "action": action,
        "label": {"id": 99, "name": name},
    }


def test_label_event_parses_gitlab_timestamp() -> None:
    event = label_event(_label_raw(5, "2024-01-02T09:30:00.000Z", "in-progress", "remove"))
    assert event.kind is EventKind.LABEL_REMOVED
    assert event.timestamp == datetime(2024, 1, 2, 9, 30, tzinfo=timezone.utc)
    assert event.actor_id == 3
    assert event.event_id == "label:5"


def test_label_event_without_label_is_malformed() -> None:
    with pytest.raises(MalformedEvent):
        label_event({"id": 1, "created_at": "2024-01-02T09:30:00Z", "action": "add"})


def test_assignment_event_from_system_note() -> None:
    raw = {
        "id": 11,
        "system": True,
        "body": "assigned to @alice.b and unassigned @bob",
        "author": {"id": 1, "username": "root"},
        "created_at": "2024-01-03T08:00:00Z",
    }
    event = assignment_event(raw, {"alice.b": 42})
    assert event is not None
    assert event.kind is EventKind.ASSIGNEE_CHANGED
    assert event.assignee == UserRef(id=42, username="alice.b")

    assert assignment_event({**raw, "system": False}) is None
    assert assignment_event({**raw, "body": "changed the description"}) is None


def test_fetch_issue_events_dedupes_and_skips_malformed() -> None:
    base = "/projects/1/issues/12"
    client = _FakeClient(
        {
            f"{base}/resource_label_events": [
                _label_raw(1, "2024-01-02T09:00:00Z", "in-progress"),
                _label_raw(1, "2024-01-02T09:00:00Z", "in-progress"),  # repeated across pages
                {"id": 2, "action": "add", "label": {"name": "bug"}},  # no created_at
            ],
            f"{base}/resource_state_events": [
                {"id": 7, "state": "reopened", "created_at": "2024-01-02T10:00:00Z"},
            ],
            f"{base}/notes": [
                {"id": 3, "system": True, "body": "assigned to @alice", "created_at": "2024-01-01T08:00:00Z"},
                {"id": 4, "system": False, "body": "looks good", "created_at": "2024-01-01T09:00:00Z"},
            ],
        }
    )
    events = fetch_events(client, EntityRef(project_id=1, iid=12), {"alice": 42})

    assert sorted(e.event_id for e in events) == ["label:1", "note:3", "state:7"]
    note = next(e for e in events if e.event_id == "note:3")
    assert note.assignee == UserRef(id=42, username="alice")


def test_fetch_merge_request_events_skips_notes() -> None:
    base = "/projects/1/merge_requests/5"
    client = _FakeClient(
        {
            f"{base}/resource_label_events": [_label_raw(1, "2024-01-02T09:00:00Z", "action-required")],
            f"{base}/resource_state_events": [],
        }
    )
    events = fetch_events(client, EntityRef(project_id=1, iid=5, kind="merge_request"))
    assert [e.label for e in events] == ["action-required"]
    assert f"{base}/notes" not in client.calls


def test_fetch_events_propagates_not_found() -> None:
    with pytest.raises(NotFound):
        fetch_events(_FakeClient({}), EntityRef(project_id=1, iid=404, kind="merge_request"))


def test_members_resolve_usernames_to_ids() -> None:
    client = _FakeClient(
        {"/projects/1/members/all": [{"id": 42, "username": "alice"}, {"id": 43, "username": "bob"}]}
    )
    members = fetch_project_members(client, 1)
    assert members == {"alice": 42, "bob": 43}
    assert resolve_user_ids(["bob", "ghost", "alice"], [42, 99], members) == [43, 42, 99]


def test_non_numeric_user_id_skips_only_that_event() -> None:
    base = "/projects/1/merge_requests/5"
    bad = _label_raw(2, "2024-01-02T10:00:00Z", "action-required")
    bad["user"] = {"id": "not-a-number", "username": "mallory"}
    client = _FakeClient(
        {
            f"{base}/resource_label_events": [_label_raw(1, "2024-01-02T09:00:00Z", "action-required"), bad],
            f"{base}/resource_state_events": [],
        }
    )
    events = fetch_events(client, EntityRef(project_id=1, iid=5, kind="merge_request"))
    assert [e.event_id for e in events] == ["label:1"]

    with pytest.raises(MalformedEvent):
        label_event(bad)
