"""Thread pool abstraction sizing the refinery workers."""

from __future__ import annotations

import os
from concurrent.futures import Future, ThreadPoolExecutor
from threading import Lock
from typing import Callable, List


def resolve_worker_count(threads: int | None) -> int:
    """Return the configured thread count, auto-detecting when unset or <= 0."""

    if threads is not None and threads > 0:
        return threads
    if hasattr(os, "sched_getaffinity"):
        try:
            return max(1, len(os.sched_getaffinity(0)))
        except OSError:
            pass
    return max(1, os.cpu_count() or 1)


class WorkerPool:
    """Fixed pool of worker threads plus the single aggregator thread."""

    def __init__(self, workers: int | None = None, name: str = "refinery") -> None:
        self.workers = resolve_worker_count(workers)
        self.name = name
        self._executor = ThreadPoolExecutor(max_workers=self.workers, thread_name_prefix=f"{name}-worker")
        self._writer = ThreadPoolExecutor(max_workers=1, thread_name_prefix=f"{name}-writer")
        self._futures: List[Future] = []
        self._lock = Lock()

    def spawn_workers(self, target: Callable[[int], None]) -> List[Future]:
        """Start ``target(worker_id)`` once per worker thread."""

        futures = [self._executor.submit(target, worker_id) for worker_id in range(self.workers)]
        with self._lock:
            self._futures.extend(futures)
        return futures

    def spawn_writer(self, target: Callable[[], object]) -> Future:
        future = self._writer.submit(target)
        with self._lock:
            self._futures.append(future)
        return future

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)
        self._writer.shutdown(wait=wait)
        with self._lock:
            self._futures.clear()

    def __enter__(self) -> "WorkerPool":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.shutdown(wait=True)


__all__ = ["WorkerPool", "resolve_worker_count"]
