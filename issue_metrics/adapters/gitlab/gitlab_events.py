from __future__ import annotations

import logging
import re
from typing import Any, Iterable, Mapping

from issue_metrics.adapters.gitlab.gitlab_client import GitLabClient
from issue_metrics.common.time_utils import parse_iso8601
from issue_metrics.tracking.domain.events import (
    EntityRef,
    Event,
    EventKind,
    MalformedEvent,
    UserRef,
)

logger = logging.getLogger(__name__)

_ASSIGNED_RE = re.compile(r"\bassigned to @([\w.\-]+)")


def _timestamp(raw: Mapping[str, Any]):
    created_at = raw.get("created_at")
    if not created_at:
        raise MalformedEvent(f"event {raw.get('id')!r} has no created_at")
    try:
        return parse_iso8601(str(created_at))
    except ValueError as exc:
        raise MalformedEvent(f"event {raw.get('id')!r} has bad created_at: {created_at!r}") from exc


def _int_id(value: Any) -> int | None:
    if value is None:
        return None
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise MalformedEvent(f"user id {value!r} is not an integer") from exc


def _actor_id(raw: Mapping[str, Any]) -> int | None:
    user = raw.get("user") or raw.get("author") or {}
    return _int_id(user.get("id")) if isinstance(user, dict) else None


def user_ref(raw: Mapping[str, Any] | None) -> UserRef | None:
    if not raw or not raw.get("username"):
        return None
    return UserRef(id=_int_id(raw.get("id")), username=str(raw["username"]))


def label_event(raw: Mapping[str, Any]) -> Event:
    label = (raw.get("label") or {}).get("name")
    action = raw.get("action")
    if raw.get("id") is None or not label or action not in ("add", "remove"):
        raise MalformedEvent(f"label event {raw.get('id')!r} missing id, label or action")
    return Event(
        event_id=f"label:{raw['id']}",
        timestamp=_timestamp(raw),
        kind=EventKind.LABEL_ADDED if action == "add" else EventKind.LABEL_REMOVED,
        actor_id=_actor_id(raw),
        label=str(label),
    )


def state_event(raw: Mapping[str, Any]) -> Event:
    state = raw.get("state")
    if raw.get("id") is None or not state:
        raise MalformedEvent(f"state event {raw.get('id')!r} missing id or state")
    return Event(
        event_id=f"state:{raw['id']}",
        timestamp=_timestamp(raw),
        kind=EventKind.STATE_CHANGED,
        actor_id=_actor_id(raw),
        state=str(state),
    )


def assignment_event(raw: Mapping[str, Any], members: Mapping[str, int] | None = None) -> Event | None:
    """Turn a system note like 'assigned to @alice' into an assignee event.

    Returns None for notes that are not assignments.
    """
    if not raw.get("system"):
        return None
    match = _ASSIGNED_RE.search(str(raw.get("body") or ""))
    if match is None:
        return None
    if raw.get("id") is None:
        raise MalformedEvent("assignment note without id")
    username = match.group(1).rstrip(".")
    uid = (members or {}).get(username)
    return Event(
        event_id=f"note:{raw['id']}",
        timestamp=_timestamp(raw),
        kind=EventKind.ASSIGNEE_CHANGED,
        actor_id=_actor_id(raw),
        assignee=UserRef(id=uid, username=username),
    )


def _collect(
    raws: Iterable[Mapping[str, Any]],
    convert,
    seen: set[str],
    out: list[Event],
    source: str,
) -> None:
    for raw in raws:
        try:
            event = convert(raw)
        except MalformedEvent as exc:
            logger.warning("Skipping malformed %s event: %s", source, exc)
            continue
        if event is None or event.event_id in seen:
            continue
        seen.add(event.event_id)
        out.append(event)


def fetch_events(
    client: GitLabClient,
    entity: EntityRef,
    members: Mapping[str, int] | None = None,
) -> list[Event]:
    """All label/state events (and, for issues, assignment notes) of one entity.

    Raises NotFound when the entity no longer exists.
    """
    base = f"/projects/{entity.project_id}/{entity.api_segment}/{entity.iid}"
    seen: set[str] = set()
    events: list[Event] = []

    _collect(client.paginate(f"{base}/resource_label_events"), label_event, seen, events, "label")
    _collect(client.paginate(f"{base}/resource_state_events"), state_event, seen, events, "state")
    if entity.kind == "issue":
        _collect(
            client.paginate(f"{base}/notes", params={"sort": "asc"}),
            lambda raw: assignment_event(raw, members),
            seen,
            events,
            "note",
        )

    logger.debug("Fetched %s events for %s !%s", len(events), entity.kind, entity.iid)
    return events


def list_assigned_issues(client: GitLabClient, project_id: int, assignee_id: int) -> list[dict[str, Any]]:
    return [
        issue
        for issue in client.paginate(
            f"/projects/{project_id}/issues",
            params={"assignee_id": assignee_id, "state": "opened"},
        )
        if isinstance(issue, dict) and isinstance(issue.get("iid"), int)
    ]


def list_related_merge_requests(client: GitLabClient, project_id: int, issue_iid: int) -> list[dict[str, Any]]:
    return list(client.paginate(f"/projects/{project_id}/issues/{issue_iid}/related_merge_requests"))


def fetch_project_members(client: GitLabClient, project_id: int) -> dict[str, int]:
    members: dict[str, int] = {}
    for member in client.paginate(f"/projects/{project_id}/members/all"):
        username = member.get("username")
        uid = member.get("id")
        if username and uid is not None:
            members[str(username)] = int(uid)
    return members


def resolve_user_ids(
    usernames: Iterable[str],
    user_ids: Iterable[int],
    members: Mapping[str, int],
) -> list[int]:
    """Stable numeric ids for the requested users, in request order, without duplicates."""
    out: list[int] = []
    for username in usernames:
        uid = members.get(username)
        if uid is None:
            logger.warning("Unknown project member %r; skipping", username)
            continue
        if uid not in out:
            out.append(uid)
    for uid in user_ids:
        if uid not in out:
            out.append(int(uid))
    return out
