from __future__ import annotations

from typing import Any

from fastapi.testclient import TestClient

from issue_metrics.api.app import create_app


class _StubService:
    def __init__(self) -> None:
        self.calls: list[dict[str, Any]] = []

    def collect_payload(self, **kwargs: Any) -> list[dict[str, Any]]:
        self.calls.append(kwargs)
        return [{"iid": 1, "timeInProgress": 0}, {"iid": 2, "error": "gone", "errorType": "NotFound"}]


def test_statistics_route_passes_parsed_query() -> None:
    stub = _StubService()
    client = TestClient(create_app(lambda: stub))

    resp = client.get("/statistics", params={"usernames": "alice, bob", "userIds": "3,4", "projectId": 9})

    assert resp.status_code == 200
    assert resp.json()[1]["errorType"] == "NotFound"
    assert stub.calls == [
        {"usernames": ["alice", "bob"], "user_ids": [3, 4], "project_id": 9, "project_path": None}
    ]


def test_statistics_route_rejects_bad_ids() -> None:
    client = TestClient(create_app(_StubService))
    assert client.get("/statistics", params={"userIds": "x"}).status_code == 400
