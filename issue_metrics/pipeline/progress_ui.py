from __future__ import annotations

from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Iterator

from rich.console import Console
from rich.progress import (
    BarColumn,
    MofNCompleteColumn,
    Progress,
    SpinnerColumn,
    TaskID,
    TextColumn,
    TimeElapsedColumn,
)

from issue_metrics.pipeline.batch import BatchResult


@dataclass
class Ui:
    """Live progress for one batch run; failed entities are printed above the bar."""

    console: Console
    progress: Progress
    task: TaskID
    done: int = 0
    failed: int = 0

    def log(self, message: str) -> None:
        self.console.print(message)

    def record(self, result: BatchResult[Any]) -> None:
        self.done += 1
        if not result.ok:
            self.failed += 1
            self.log(f"[red]#{result.key}[/red] failed: {result.error}")
        self.progress.advance(self.task)

    def report_failures(self) -> None:
        if self.failed:
            self.log(f"{self.failed} of {self.done} issues failed")


@contextmanager
def progress_ui(description: str, console: Console | None = None) -> Iterator[Ui]:
    console = console or Console(stderr=True)
    progress = Progress(
        SpinnerColumn(),
        TextColumn("[bold]{task.description}"),
        BarColumn(),
        MofNCompleteColumn(),
        TimeElapsedColumn(),
        console=console,
        transient=True,
    )
    with progress:
        task = progress.add_task(description, total=None)
        yield Ui(console=console, progress=progress, task=task)
