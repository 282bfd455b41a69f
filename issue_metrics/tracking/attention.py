from __future__ import annotations

import re
from datetime import datetime
from typing import Iterable, Sequence

from issue_metrics.tracking.domain.events import Event, EventKind
from issue_metrics.tracking.domain.models import AttentionSignal, ChangeRequestSignal


def latest_label_adds(events: Iterable[Event], labels: Sequence[str]) -> dict[str, datetime]:
    """Most recent add timestamp per label in ``labels``."""
    wanted = frozenset(labels)
    latest: dict[str, datetime] = {}
    for event in events:
        if event.kind is not EventKind.LABEL_ADDED or event.label not in wanted:
            continue
        prev = latest.get(event.label)
        if prev is None or event.timestamp > prev:
            latest[event.label] = event.timestamp
    return latest


def title_references_issue(issue_iid: int, title: str, source_branch: str | None = None) -> bool:
    """Naming convention: '#<iid>' or a bare '<iid>' token in the title, or a '<iid>-' branch."""
    if re.search(rf"(?<![\w#])#?{issue_iid}(?!\d)", title or ""):
        return True
    if source_branch and re.match(rf"^(?:\w+/)?{issue_iid}(?:[-_]|$)", source_branch):
        return True
    return False


def overall_signal(signals: Iterable[ChangeRequestSignal]) -> AttentionSignal | None:
    best: AttentionSignal | None = None
    for cr in signals:
        latest = cr.latest
        if latest is None:
            continue
        if best is None or latest.last_added_at > best.last_added_at:
            best = latest
    return best
