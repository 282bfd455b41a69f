from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Iterator

import requests

logger = logging.getLogger(__name__)


class GitLabApiError(RuntimeError):
    pass


class UpstreamUnavailable(GitLabApiError):
    """Network failure, timeout or 5xx after the retry budget is spent."""


class RateLimited(GitLabApiError):
    """The service kept throttling us after the retry budget is spent."""


class NotFound(GitLabApiError):
    """The entity was deleted or is not visible with this token."""


@dataclass
class GitLabClient:
    token: str
    api_base_url: str = "https://gitlab.com"
    user_agent: str = "issue-metrics"
    timeout_s: float = 30.0
    max_retries: int = 3
    backoff_s: float = 1.0
    per_page: int = 100
    sleep: Callable[[float], None] = field(default=time.sleep, repr=False)

    def _headers(self) -> dict[str, str]:
        headers = {
            "Accept": "application/json",
            "User-Agent": self.user_agent,
        }
        if self.token:
            headers["PRIVATE-TOKEN"] = self.token
        return headers

    def _url(self, path: str) -> str:
        return self.api_base_url.rstrip("/") + "/api/v4" + path

    def _backoff(self, attempt: int) -> float:
        return self.backoff_s * (2**attempt)

    def _rate_limit_wait(self, resp: requests.Response, attempt: int) -> float:
        retry_after = resp.headers.get("Retry-After")
        if retry_after and retry_after.isdigit():
            return max(1.0, float(retry_after))
        reset = resp.headers.get("RateLimit-Reset")
        if reset and reset.isdigit():
            return max(1.0, float(int(reset) - int(time.time()) + 1))
        return self._backoff(attempt)

    def get(self, path: str, params: dict[str, Any] | None = None) -> Any:
        url = self._url(path)
        attempts = max(1, self.max_retries)
        last_error: GitLabApiError | None = None

        for attempt in range(attempts):
            try:
                resp = requests.get(
                    url, headers=self._headers(), params=params, timeout=self.timeout_s
                )
            except (requests.ConnectionError, requests.Timeout) as exc:
                last_error = UpstreamUnavailable(f"GET {path} failed: {exc}")
                wait_s = self._backoff(attempt)
                logger.warning(
                    "GitLab request error on %s (attempt %s/%s): %s",
                    path, attempt + 1, attempts, exc,
                )
            else:
                status = resp.status_code
                if status == 404:
                    raise NotFound(f"GET {path} failed: 404")
                if status == 429 or (status == 403 and "rate limit" in resp.text.lower()):
                    last_error = RateLimited(f"GET {path} throttled: {status}")
                    wait_s = self._rate_limit_wait(resp, attempt)
                    logger.warning("GitLab rate limit hit on %s. Sleeping %ss", path, wait_s)
                elif status >= 500:
                    last_error = UpstreamUnavailable(f"GET {path} failed: {status} {resp.text}")
                    wait_s = self._backoff(attempt)
                    logger.warning(
                        "GitLab %s on %s (attempt %s/%s)", status, path, attempt + 1, attempts
                    )
                elif status >= 400:
                    raise GitLabApiError(f"GET {path} failed: {status} {resp.text}")
                else:
                    return resp.json()

            if attempt + 1 < attempts:
                self.sleep(wait_s)

        assert last_error is not None
        raise last_error

    def paginate(
        self,
        path: str,
        params: dict[str, Any] | None = None,
        *,
        per_page: int | None = None,
        max_pages: int = 100,
    ) -> Iterator[Any]:
        per_page = per_page or self.per_page
        params = dict(params or {})
        params["per_page"] = per_page
        page = 1
        while page <= max_pages:
            params["page"] = page
            data = self.get(path, params=params)
            if not isinstance(data, list):
                return
            if not data:
                return
            for item in data:
                yield item
            if len(data) < per_page:
                return
            page += 1
