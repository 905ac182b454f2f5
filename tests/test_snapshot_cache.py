from __future__ import annotations

import threading
import time

from services.snapshot_cache import SnapshotCache


class FakeClock:
    def __init__(self) -> None:
        self.now = 100.0

    def __call__(self) -> float:
        return self.now


def test_fresh_value_is_reused_until_ttl_expires() -> None:
    clock = FakeClock()
    cache: SnapshotCache[dict] = SnapshotCache(ttl_seconds=5, clock=clock)
    calls: list[int] = []

    def compute() -> dict:
        calls.append(1)
        return {"call": len(calls)}

    first = cache.get_or_compute(compute)
    clock.now += 4.9
    second = cache.get_or_compute(compute)
    clock.now += 0.2
    third = cache.get_or_compute(compute)

    assert second is first
    assert third == {"call": 2}
    assert len(calls) == 2


def test_values_rejected_by_should_store_are_not_cached() -> None:
    cache: SnapshotCache[str] = SnapshotCache(ttl_seconds=5, clock=FakeClock())

    assert cache.get_or_compute(lambda: "mock", should_store=lambda value: value != "mock") == "mock"
    assert cache.get_fresh() is None


def test_clear_drops_the_snapshot() -> None:
    cache: SnapshotCache[str] = SnapshotCache(ttl_seconds=5, clock=FakeClock())
    cache.store("snapshot")

    cache.clear()

    assert cache.get_fresh() is None


def test_concurrent_callers_share_one_computation() -> None:
    cache: SnapshotCache[int] = SnapshotCache(ttl_seconds=60)
    calls: list[int] = []
    barrier = threading.Barrier(4)
    results: list[int] = []

    def compute() -> int:
        calls.append(1)
        time.sleep(0.05)
        return 7

    def worker() -> None:
        barrier.wait(timeout=1.0)
        results.append(cache.get_or_compute(compute))

    threads = [threading.Thread(target=worker) for _ in range(4)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=2.0)

    assert results == [7, 7, 7, 7]
    assert len(calls) == 1
