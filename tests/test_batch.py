from __future__ import annotations

import threading
import time

from issue_metrics.pipeline.batch import BatchCancelled, BatchResult, aggregate_all


def test_one_failure_does_not_fail_the_batch() -> None:
    def worker(n: int) -> int:
        if n == 3:
            raise RuntimeError("upstream exploded")
        return n * 10

    results = aggregate_all(list(range(1, 6)), worker, key=lambda n: n, concurrency_limit=2, batch_pause_s=0)

    assert len(results) == 5
    assert sum(1 for r in results.values() if r.ok) == 4
    assert isinstance(results[3].error, RuntimeError)
    assert results[5].value == 50


def test_results_keyed_by_entity_not_completion_order() -> None:
    def worker(n: int) -> int:
        time.sleep(0.01 * (5 - n))
        return n

    results = aggregate_all([1, 2, 3, 4], worker, key=lambda n: f"e{n}", concurrency_limit=4, batch_pause_s=0)
    assert {k: r.value for k, r in results.items()} == {"e1": 1, "e2": 2, "e3": 3, "e4": 4}


def test_groups_are_bounded_and_paused() -> None:
    lock = threading.Lock()
    active = 0
    peak = 0
    sleeps: list[float] = []

    def worker(n: int) -> int:
        nonlocal active, peak
        with lock:
            active += 1
            peak = max(peak, active)
        time.sleep(0.01)
        with lock:
            active -= 1
        return n

    results = aggregate_all(
        list(range(7)),
        worker,
        key=lambda n: n,
        concurrency_limit=3,
        batch_pause_s=0.25,
        sleep=sleeps.append,
    )
    assert len(results) == 7
    assert peak <= 3
    assert sleeps == [0.25, 0.25]


def test_stop_event_cancels_remaining_groups() -> None:
    stop = threading.Event()
    seen: list[BatchResult[int]] = []

    def worker(n: int) -> int:
        stop.set()
        return n

    results = aggregate_all(
        [1, 2, 3, 4],
        worker,
        key=lambda n: n,
        concurrency_limit=2,
        batch_pause_s=0,
        stop_event=stop,
        on_result=seen.append,
    )
    assert [results[k].ok for k in (1, 2)] == [True, True]
    assert isinstance(results[3].error, BatchCancelled)
    assert isinstance(results[4].error, BatchCancelled)
    assert len(seen) == 4


def test_empty_input() -> None:
    assert aggregate_all([], lambda n: n, key=lambda n: n) == {}
