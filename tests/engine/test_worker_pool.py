from __future__ import annotations

import threading

from corpus_cleaner.engine import WorkerPool, resolve_worker_count


def test_resolve_worker_count() -> None:
    assert resolve_worker_count(3) == 3
    assert resolve_worker_count(0) >= 1
    assert resolve_worker_count(None) >= 1
    assert resolve_worker_count(-2) == resolve_worker_count(0)


def test_spawn_workers_runs_each_id_once() -> None:
    seen: list[int] = []
    names: set[str] = set()
    lock = threading.Lock()

    def target(worker_id: int) -> None:
        with lock:
            seen.append(worker_id)
            names.add(threading.current_thread().name)

    with WorkerPool(workers=3, name="test") as pool:
        futures = pool.spawn_workers(target)
        for future in futures:
            future.result(timeout=5)

    assert sorted(seen) == [0, 1, 2]
    assert all(name.startswith("test-worker") for name in names)


def test_writer_runs_on_its_own_thread() -> None:
    pool = WorkerPool(workers=1)
    try:
        name = pool.spawn_writer(lambda: threading.current_thread().name).result(timeout=5)
    finally:
        pool.shutdown()

    assert name.startswith("refinery-writer")
