from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, field_validator, model_validator

from issue_metrics.tracking.domain.models import WorkingTimeConfig
from issue_metrics.tracking.issue_stats import DEFAULT_ATTENTION_LABELS, TrackedLabels


def _read_toml(path: Path) -> dict[str, Any]:
    """Read TOML into a dict, supporting Python 3.10+.

    Uses tomllib when available, falls back to tomli.
    """
    data = path.read_bytes()
    try:
        import tomllib  # type: ignore[attr-defined]

        return tomllib.loads(data.decode("utf-8"))
    except ModuleNotFoundError:
        import tomli  # type: ignore[import-not-found]

        return tomli.loads(data.decode("utf-8"))


class GitLabConfig(BaseModel):
    base_url: str = Field(default="https://gitlab.com")
    token_env_var: str = Field(default="GITLAB_TOKEN")
    project_id: int | None = Field(default=None)
    project_path: str = Field(default="", description="e.g. 'group/project', used for web URLs.")
    per_page: int = Field(default=100, ge=1, le=100, description="GitLab caps pages at 100.")
    timeout_s: float = Field(default=30.0, gt=0)
    max_retries: int = Field(default=3, ge=1)
    backoff_s: float = Field(default=1.0, ge=0)


class WorkingHoursConfig(BaseModel):
    """Daily working window in UTC hours."""

    start_hour: int = Field(default=8, ge=0, le=23)
    end_hour: int = Field(default=17, ge=1, le=24)
    non_working_weekdays: tuple[int, ...] = Field(
        default=(5, 6),
        description="0=Mon ... 6=Sun",
    )
    daily_cap_minutes: int = Field(default=480, gt=0)

    @field_validator("non_working_weekdays")
    @classmethod
    def _weekdays_in_range(cls, v: tuple[int, ...]) -> tuple[int, ...]:
        bad = [d for d in v if d < 0 or d > 6]
        if bad:
            raise ValueError(f"weekdays must be in 0..6, got {bad}")
        return v

    @model_validator(mode="after")
    def _window_is_ordered(self) -> "WorkingHoursConfig":
        if self.start_hour >= self.end_hour:
            raise ValueError("start_hour must be before end_hour")
        return self

    def to_policy(self) -> WorkingTimeConfig:
        return WorkingTimeConfig(
            work_start_hour=self.start_hour,
            work_end_hour=self.end_hour,
            non_working_weekdays=frozenset(self.non_working_weekdays),
            daily_cap_minutes=self.daily_cap_minutes,
        )


class LabelsConfig(BaseModel):
    in_progress: str = Field(default="in-progress")
    pause: list[str] = Field(default_factory=lambda: ["paused"])
    attention: list[str] = Field(default_factory=lambda: list(DEFAULT_ATTENTION_LABELS))

    def to_tracked(self) -> TrackedLabels:
        return TrackedLabels(
            in_progress=self.in_progress,
            pause=tuple(self.pause),
            attention=tuple(self.attention),
        )


class BatchConfig(BaseModel):
    concurrency_limit: int = Field(default=5, ge=1)
    pause_s: float = Field(default=0.5, ge=0)
    related_concurrency: int = Field(default=4, ge=1)


class LoggingConfig(BaseModel):
    level: str = Field(default="INFO")
    log_dir: str | None = Field(default=None)

    def level_value(self) -> int:
        value = logging.getLevelName(self.level.upper())
        return value if isinstance(value, int) else logging.INFO


class MetricsConfig(BaseModel):
    gitlab: GitLabConfig = Field(default_factory=GitLabConfig)
    working_hours: WorkingHoursConfig = Field(default_factory=WorkingHoursConfig)
    labels: LabelsConfig = Field(default_factory=LabelsConfig)
    batch: BatchConfig = Field(default_factory=BatchConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @classmethod
    def load(cls, path: Path) -> "MetricsConfig":
        raw = _read_toml(path)
        return cls.model_validate(raw)
