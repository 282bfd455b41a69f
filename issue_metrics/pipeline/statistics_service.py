from __future__ import annotations

import logging
import os
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Sequence

from issue_metrics.adapters.gitlab.gitlab_client import GitLabApiError, GitLabClient, NotFound
from issue_metrics.adapters.gitlab.gitlab_events import (
    fetch_events,
    fetch_project_members,
    list_assigned_issues,
    list_related_merge_requests,
    resolve_user_ids,
    user_ref,
)
from issue_metrics.common.time_utils import parse_iso8601, utc_now
from issue_metrics.pipeline.batch import BatchResult, aggregate_all
from issue_metrics.pipeline.config import MetricsConfig
from issue_metrics.tracking.domain.events import EntityRef
from issue_metrics.tracking.domain.models import (
    IssueStatisticsRecord,
    MergeRequestRecord,
    StartReference,
)
from issue_metrics.tracking.issue_stats import RelatedChangeRequest, aggregate

logger = logging.getLogger(__name__)


def client_from_config(cfg: MetricsConfig) -> GitLabClient:
    gl = cfg.gitlab
    token = os.environ.get(gl.token_env_var, "")
    if not token:
        raise RuntimeError(f"Missing GitLab token in env var: {gl.token_env_var}")
    return GitLabClient(
        token=token,
        api_base_url=gl.base_url,
        timeout_s=gl.timeout_s,
        max_retries=gl.max_retries,
        backoff_s=gl.backoff_s,
        per_page=gl.per_page,
    )


def error_row(result: BatchResult[Any]) -> dict[str, Any]:
    return {
        "iid": result.key,
        "error": str(result.error),
        "errorType": type(result.error).__name__,
    }


@dataclass
class IssueStatisticsService:
    """Collects per-issue statistics for a set of tracked developers."""

    client: GitLabClient
    config: MetricsConfig = field(default_factory=MetricsConfig)
    clock: Callable[[], datetime] = utc_now

    def _web_url(self, project_path: str, segment: str, iid: int) -> str:
        base = self.config.gitlab.base_url.rstrip("/")
        return f"{base}/{project_path}/-/{segment}/{iid}"

    def _load_related(
        self, project_id: int, issue_iid: int, members: dict[str, int]
    ) -> list[tuple[dict[str, Any], RelatedChangeRequest]]:
        try:
            raw_mrs = list_related_merge_requests(self.client, project_id, issue_iid)
        except NotFound:
            logger.warning("Related MRs of issue #%s not found; treating as none", issue_iid)
            return []
        except GitLabApiError as exc:
            logger.warning("Could not list related MRs of issue #%s: %s", issue_iid, exc)
            return []

        def _load(raw: dict[str, Any]) -> tuple[dict[str, Any], RelatedChangeRequest]:
            is_open = raw.get("state") == "opened"
            events = None
            if is_open:
                mr_project = int(raw.get("project_id") or project_id)
                try:
                    events = tuple(
                        fetch_events(
                            self.client,
                            EntityRef(project_id=mr_project, iid=int(raw["iid"]), kind="merge_request"),
                            members,
                        )
                    )
                except NotFound:
                    logger.warning("MR !%s vanished while loading issue #%s", raw.get("iid"), issue_iid)
                except GitLabApiError as exc:
                    logger.warning(
                        "History of MR !%s unavailable for issue #%s: %s", raw.get("iid"), issue_iid, exc
                    )
            return raw, RelatedChangeRequest(
                id=int(raw.get("id") or 0),
                iid=int(raw["iid"]),
                title=str(raw.get("title") or ""),
                is_open=is_open,
                events=events,
                labels=tuple(raw.get("labels") or ()),
                source_branch=raw.get("source_branch"),
            )

        if not raw_mrs:
            return []
        workers = min(len(raw_mrs), self.config.batch.related_concurrency)
        with ThreadPoolExecutor(max_workers=workers) as ex:
            return list(ex.map(_load, raw_mrs))

    def issue_statistics(
        self,
        issue: dict[str, Any],
        *,
        project_id: int,
        project_path: str,
        members: dict[str, int],
        now: datetime,
    ) -> IssueStatisticsRecord:
        iid = int(issue["iid"])
        events = fetch_events(self.client, EntityRef(project_id=project_id, iid=iid), members)
        related = self._load_related(project_id, iid, members)

        closed_at = issue.get("closed_at")
        result = aggregate(
            issue_id=int(issue["id"]),
            issue_iid=iid,
            issue_events=events,
            related_change_requests=[cr for _, cr in related],
            start_reference=StartReference(
                created_at=parse_iso8601(issue["created_at"]),
                assignee=user_ref(issue.get("assignee")),
            ),
            is_closed=issue.get("state") == "closed",
            closed_at=parse_iso8601(closed_at) if closed_at else None,
            now=now,
            config=self.config.working_hours.to_policy(),
            labels=self.config.labels.to_tracked(),
        )

        signals = {s.mr_iid: s for s in result.change_requests}
        mr_records = []
        for raw, cr in related:
            if not cr.is_open:
                continue
            signal = signals.get(cr.iid)
            latest = signal.latest if signal is not None else None
            mr_records.append(
                MergeRequestRecord(
                    id=cr.id,
                    iid=cr.iid,
                    title=cr.title,
                    labels=cr.labels or (),
                    url=raw.get("web_url") or self._web_url(project_path, "merge_requests", cr.iid),
                    correlated=signal.correlated if signal is not None else True,
                    attention_signal_at=latest.last_added_at if latest is not None else None,
                )
            )

        return IssueStatisticsRecord(
            id=int(issue["id"]),
            iid=iid,
            title=str(issue.get("title") or ""),
            assignee=user_ref(issue.get("assignee")),
            labels=tuple(issue.get("labels") or ()),
            time_in_progress_ms=result.stats.active_duration_ms,
            total_time_from_start_ms=result.stats.total_duration_ms,
            total_time_excluding_weekends_ms=result.stats.total_excluding_weekends_ms,
            merge_requests=tuple(mr_records),
            url=issue.get("web_url") or self._web_url(project_path, "issues", iid),
            attention_signal_at=(
                result.attention.last_added_at if result.attention is not None else None
            ),
        )

    def collect(
        self,
        *,
        usernames: Sequence[str] = (),
        user_ids: Sequence[int] = (),
        project_id: int | None = None,
        project_path: str | None = None,
        stop_event: threading.Event | None = None,
        on_result: Callable[[BatchResult[IssueStatisticsRecord]], None] | None = None,
        now: datetime | None = None,
    ) -> list[BatchResult[IssueStatisticsRecord]]:
        project_id = project_id if project_id is not None else self.config.gitlab.project_id
        if project_id is None:
            raise ValueError("gitlab.project_id is required")
        project_path = project_path or self.config.gitlab.project_path

        members = fetch_project_members(self.client, project_id)
        assignee_ids = resolve_user_ids(usernames, user_ids, members)
        if not assignee_ids:
            return []

        issues: dict[int, dict[str, Any]] = {}
        for assignee_id in assignee_ids:
            for issue in list_assigned_issues(self.client, project_id, assignee_id):
                issues.setdefault(int(issue["iid"]), issue)
        logger.info("Aggregating %s issues for %s developers", len(issues), len(assignee_ids))

        now = now or self.clock()
        results = aggregate_all(
            list(issues.values()),
            lambda issue: self.issue_statistics(
                issue,
                project_id=project_id,
                project_path=project_path,
                members=members,
                now=now,
            ),
            key=lambda issue: int(issue["iid"]),
            concurrency_limit=self.config.batch.concurrency_limit,
            batch_pause_s=self.config.batch.pause_s,
            stop_event=stop_event,
            on_result=on_result,
        )
        return [results[iid] for iid in issues]

    def collect_payload(self, **kwargs: Any) -> list[dict[str, Any]]:
        rows: list[dict[str, Any]] = []
        for res in self.collect(**kwargs):
            if res.ok and res.value is not None:
                rows.append(res.value.to_payload())
            else:
                rows.append(error_row(res))
        return rows
