from __future__ import annotations

from typing import Any, Callable

from fastapi import FastAPI, HTTPException, Query

from issue_metrics.pipeline.statistics_service import IssueStatisticsService


def _split(raw: str | None) -> list[str]:
    if not raw:
        return []
    return [part.strip() for part in raw.split(",") if part.strip()]


def create_app(service_factory: Callable[[], IssueStatisticsService]) -> FastAPI:
    """Expose aggregated statistics; one service per request keeps runs independent."""
    app = FastAPI(title="Issue Metrics")

    @app.get("/statistics")
    def statistics(
        usernames: str | None = Query(None, description="Comma-separated usernames"),
        userIds: str | None = Query(None, description="Comma-separated numeric user ids"),
        projectId: int | None = Query(None),
        projectPath: str | None = Query(None),
    ) -> list[dict[str, Any]]:
        try:
            ids = [int(v) for v in _split(userIds)]
        except ValueError:
            raise HTTPException(status_code=400, detail="userIds must be integers")

        service = service_factory()
        try:
            return service.collect_payload(
                usernames=_split(usernames),
                user_ids=ids,
                project_id=projectId,
                project_path=projectPath,
            )
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc))

    return app
