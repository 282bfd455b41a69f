from __future__ import annotations

import json
from datetime import datetime
from pathlib import Path
from typing import List, Optional

import typer
from rich.console import Console
from rich.table import Table

from issue_metrics.common.logging_config import configure_logging
from issue_metrics.common.time_utils import to_epoch_ms
from issue_metrics.pipeline.batch import BatchResult
from issue_metrics.pipeline.config import MetricsConfig
from issue_metrics.pipeline.progress_ui import progress_ui
from issue_metrics.pipeline.statistics_service import (
    IssueStatisticsService,
    client_from_config,
    error_row,
)
from issue_metrics.tracking.formatting import format_duration, format_hours_minutes


app = typer.Typer(add_completion=False)

EXAMPLE_CONFIG = Path(__file__).resolve().parents[1] / "metrics_config.example.toml"


def _load_config(config: str) -> MetricsConfig:
    path = Path(config).expanduser()
    if not path.exists():
        typer.echo(f"No config at {path}; using defaults", err=True)
        return MetricsConfig()
    return MetricsConfig.load(path)


def _render_table(console: Console, results: list[BatchResult], now: datetime) -> None:
    now_ms = to_epoch_ms(now)
    table = Table(title="Issue statistics")
    table.add_column("Issue", justify="right")
    table.add_column("Title")
    table.add_column("Assignee")
    table.add_column("In progress", justify="right")
    table.add_column("Total", justify="right")
    table.add_column("Attention for", justify="right")
    table.add_column("MRs", justify="right")

    for res in results:
        if not res.ok or res.value is None:
            table.add_row(f"#{res.key}", f"[red]{res.error}[/red]", "", "", "", "", "")
            continue
        rec = res.value
        attention = ""
        if rec.attention_signal_at is not None:
            attention = format_duration(now_ms - to_epoch_ms(rec.attention_signal_at))
        table.add_row(
            f"#{rec.iid}",
            rec.title,
            rec.assignee.username if rec.assignee else "",
            format_hours_minutes(rec.time_in_progress_ms),
            format_duration(rec.total_time_excluding_weekends_ms),
            attention,
            str(len(rec.merge_requests)),
        )
    console.print(table)


@app.command()
def stats(
    config: str = typer.Option("metrics_config.toml", help="Path to metrics_config.toml"),
    username: List[str] = typer.Option([], "--username", "-u", help="Developer username (repeatable)"),
    user_id: List[int] = typer.Option([], "--user-id", help="Developer numeric id (repeatable)"),
    project_id: Optional[int] = typer.Option(None, help="Overrides gitlab.project_id"),
    as_json: bool = typer.Option(False, "--json", help="Print the raw statistics array"),
) -> None:
    """Compute in-progress and total time for the developers' open issues."""
    cfg = _load_config(config)
    configure_logging(cfg.logging.level_value(), log_dir=cfg.logging.log_dir)
    if not username and not user_id:
        raise typer.BadParameter("Pass at least one --username or --user-id")

    service = IssueStatisticsService(client=client_from_config(cfg), config=cfg)
    now = service.clock()
    with progress_ui("Aggregating issues") as ui:
        results = service.collect(
            usernames=username,
            user_ids=user_id,
            project_id=project_id,
            on_result=ui.record,
            now=now,
        )
        ui.report_failures()

    if as_json:
        rows = [r.value.to_payload() if r.ok and r.value else error_row(r) for r in results]
        typer.echo(json.dumps(rows, indent=2))
        return
    _render_table(Console(), results, now)


@app.command()
def init_config(
    path: str = typer.Argument(
        "metrics_config.toml",
        help="Where to write the configuration TOML",
    ),
) -> None:
    """Write an example metrics_config.toml."""
    if not EXAMPLE_CONFIG.exists():
        raise RuntimeError(f"Missing template file: {EXAMPLE_CONFIG}")

    out = Path(path).expanduser()
    if out.exists():
        raise typer.BadParameter(f"Refusing to overwrite existing file: {out}")

    out.write_text(EXAMPLE_CONFIG.read_text())
    typer.echo(f"Wrote {out} (edit it, then run: issue-metrics stats --config {out} -u <username>)")


if __name__ == "__main__":
    app()
