from __future__ import annotations

import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from typing import Callable, Generic, Hashable, Sequence, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")


class BatchCancelled(RuntimeError):
    """The entity was never started because the batch was stopped."""


@dataclass(frozen=True)
class BatchResult(Generic[R]):
    key: Hashable
    value: R | None = None
    error: BaseException | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


def aggregate_all(
    entities: Sequence[T],
    worker: Callable[[T], R],
    *,
    key: Callable[[T], Hashable],
    concurrency_limit: int = 5,
    batch_pause_s: float = 0.5,
    stop_event: threading.Event | None = None,
    on_result: Callable[[BatchResult[R]], None] | None = None,
    sleep: Callable[[float], None] = time.sleep,
) -> dict[Hashable, BatchResult[R]]:
    """Run ``worker`` over ``entities`` in groups of ``concurrency_limit``.

    Each group runs concurrently and is fully awaited before the next one
    starts; ``batch_pause_s`` separates groups to stay under upstream rate
    limits. A failing entity yields an error result and never fails the
    batch. Setting ``stop_event`` prevents further groups from starting;
    entities that never ran get a ``BatchCancelled`` error.

    Results are keyed by ``key(entity)``.
    """
    size = max(1, int(concurrency_limit))
    results: dict[Hashable, BatchResult[R]] = {}

    def _record(res: BatchResult[R]) -> None:
        results[res.key] = res
        if on_result is not None:
            on_result(res)

    groups = [entities[i : i + size] for i in range(0, len(entities), size)]
    for index, group in enumerate(groups):
        if stop_event is not None and stop_event.is_set():
            logger.info("Batch stopped; %s groups not started", len(groups) - index)
            for entity in (e for g in groups[index:] for e in g):
                _record(BatchResult(key=key(entity), error=BatchCancelled("batch stopped")))
            break

        if index > 0 and batch_pause_s > 0:
            sleep(batch_pause_s)

        with ThreadPoolExecutor(max_workers=len(group)) as ex:
            futures = {ex.submit(worker, entity): key(entity) for entity in group}
            for fut in as_completed(futures):
                k = futures[fut]
                try:
                    _record(BatchResult(key=k, value=fut.result()))
                except Exception as exc:
                    logger.warning("Entity %s failed: %s", k, exc)
                    _record(BatchResult(key=k, error=exc))

    return results
