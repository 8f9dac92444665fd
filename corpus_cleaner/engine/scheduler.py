"""Work scheduler driving records through filters, dedup and output."""

from __future__ import annotations

import queue
from dataclasses import dataclass
from enum import Enum
from threading import Event, Lock
from typing import Callable, Iterable, Union

from ..errors import RefineryError, SinkWriteError
from ..logging_conf import get_logger
from .aggregator import OutputAggregator
from .counters import RunCounters, WorkerTally
from .dedup import ShardedDedupIndex
from .filters import FilterChain
from .record import DecodeFailure, FingerprintPolicy, Observation, Record, Verdict
from .thread_pool import WorkerPool

SourceItem = Union[Record, DecodeFailure]

_STOP = object()


class RunStatus(str, Enum):
    """Final state of a run."""

    SUCCESS = "success"
    PARTIAL = "partial"
    FAILED = "failed"


class CancelToken:
    """Cooperative cancellation flag shared by the feeder and the workers.

    ``cancel`` asks for a graceful stop: nothing new is pulled from the
    source, but everything already pulled is classified and written.
    ``abort`` is the fatal variant used after an unrecoverable error.
    """

    def __init__(self) -> None:
        self._cancelled = Event()
        self._aborted = Event()
        self._lock = Lock()
        self.reason: str | None = None
        self.error: BaseException | None = None

    def cancel(self, reason: str = "cancelled") -> None:
        with self._lock:
            if self.reason is None:
                self.reason = reason
        self._cancelled.set()

    def abort(self, error: BaseException) -> None:
        with self._lock:
            if self.error is None:
                self.error = error
            if self.reason is None:
                self.reason = "aborted"
        self._aborted.set()
        self._cancelled.set()

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    @property
    def aborted(self) -> bool:
        return self._aborted.is_set()

    def wait(self, timeout: float | None = None) -> bool:
        return self._cancelled.wait(timeout)


@dataclass
class SchedulerOutcome:
    """What the scheduler managed to do before returning."""

    status: RunStatus
    items_read: int
    unprocessed: int
    cancel_reason: str | None = None
    error: BaseException | None = None


class WorkScheduler:
    """Distribute source items over a fixed worker pool.

    Per record: run the filter chain; on ``KEPT`` compute the fingerprint
    and observe it in the dedup index; first-seen records go to the
    output aggregator, duplicates are only counted. The feeder pushes
    items into a bounded queue and workers push survivors into the
    aggregator's bounded intake, so a slow sink throttles the whole run.
    No ordering of survivors relative to input order is guaranteed.
    """

    def __init__(
        self,
        chain: FilterChain,
        index: ShardedDedupIndex,
        counters: RunCounters,
        aggregator: OutputAggregator,
        fingerprint: Callable[[Record], str] | None = None,
        workers: int | None = None,
        queue_size: int = 1024,
        token: CancelToken | None = None,
        poll_interval: float = 0.1,
    ) -> None:
        if queue_size < 1:
            raise ValueError("queue_size must be >= 1")
        self.chain = chain
        self.index = index
        self.counters = counters
        self.aggregator = aggregator
        self.fingerprint = fingerprint or FingerprintPolicy()
        self.workers = workers
        self.queue_size = queue_size
        self.token = token or CancelToken()
        self.poll_interval = poll_interval
        self.logger = get_logger("scheduler")
        self._queue: "queue.Queue[object]" = queue.Queue(maxsize=queue_size)
        self._items_read = 0

    # ------------------------------------------------------------------
    def classify(self, item: SourceItem, tally: WorkerTally) -> Verdict:
        """Produce exactly one verdict for ``item`` and account for it."""

        if isinstance(item, DecodeFailure):
            tally.record_decode_failure(item.size)
            self.logger.debug("decode_failed", source=item.source, line=item.line, reason=item.reason)
            return Verdict.DROPPED_MALFORMED
        try:
            verdict = self.chain.evaluate(item)
            fingerprint = self.fingerprint(item) if verdict is Verdict.KEPT else None
        except RefineryError:
            raise
        except Exception as exc:  # noqa: BLE001
            self.logger.warning("record_rejected", source=item.source, error=str(exc))
            verdict, fingerprint = Verdict.DROPPED_MALFORMED, None
        if fingerprint is not None:
            if self.index.observe(fingerprint) is Observation.DUPLICATE:
                verdict = Verdict.DROPPED_DUPLICATE
            else:
                self.aggregator.submit(item, fingerprint)
        tally.record(verdict, item.size)
        return verdict

    def run(self, source: Iterable[SourceItem]) -> SchedulerOutcome:
        """Process ``source`` to completion, cancellation or fatal error."""

        pool = WorkerPool(self.workers)
        self.logger.info("scheduler_started", workers=pool.workers, queue_size=self.queue_size)
        writer = pool.spawn_writer(self.aggregator.run)
        futures = pool.spawn_workers(self._worker_loop)
        self._items_read = 0
        try:
            self._feed(source)
        except KeyboardInterrupt:
            self.token.cancel("interrupted")
        except Exception as exc:  # noqa: BLE001
            self.logger.error("source_failed", error=str(exc))
            self.token.abort(exc)
        finally:
            for _ in futures:
                self._put_blocking(_STOP, force=True)
            for future in futures:
                error = future.exception()
                if error is not None:
                    self.token.abort(error)
            self.aggregator.close()
            writer.result()
            pool.shutdown(wait=True)

        self._discard_remaining()
        items_read = self._items_read
        unprocessed = max(0, items_read - self.counters.snapshot().total)
        status = RunStatus.SUCCESS
        # a failed sink stops the run but what it flushed before the failure stays valid
        if self.token.aborted and not isinstance(self.token.error, SinkWriteError):
            status = RunStatus.FAILED
        elif self.token.cancelled or self.aggregator.failed:
            status = RunStatus.PARTIAL
        error = self.token.error
        if error is None and self.aggregator.failed:
            error = RefineryError("; ".join(self.aggregator.stats.errors))
        self.logger.info(
            "scheduler_finished",
            status=status.value,
            items_read=items_read,
            unprocessed=unprocessed,
            reason=self.token.reason,
        )
        return SchedulerOutcome(
            status=status,
            items_read=items_read,
            unprocessed=unprocessed,
            cancel_reason=self.token.reason,
            error=error,
        )

    # ------------------------------------------------------------------
    def _feed(self, source: Iterable[SourceItem]) -> None:
        for item in source:
            if self.token.cancelled:
                break
            if not self._put_blocking(item):
                break
            self._items_read += 1
            if self.token.cancelled:
                break

    def _put_blocking(self, item: object, force: bool = False) -> bool:
        while True:
            if not force and self.token.aborted:
                return False
            try:
                self._queue.put(item, timeout=self.poll_interval)
                return True
            except queue.Full:
                if force and self.token.aborted:
                    self._discard_one()
                continue

    def _discard_one(self) -> None:
        try:
            item = self._queue.get_nowait()
        except queue.Empty:
            return
        if item is _STOP:
            self._queue.put_nowait(item)

    def _discard_remaining(self) -> int:
        dropped = 0
        while True:
            try:
                item = self._queue.get_nowait()
            except queue.Empty:
                return dropped
            if item is not _STOP:
                dropped += 1

    def _worker_loop(self, worker_id: int) -> None:
        tally = self.counters.tally()
        while True:
            item = self._queue.get()
            if item is _STOP:
                return
            if self.token.aborted:
                # leave the item unclassified; it is reported as unprocessed
                continue
            try:
                self.classify(item, tally)  # type: ignore[arg-type]
            except RefineryError as exc:
                self.logger.error("worker_aborted", worker=worker_id, error=str(exc))
                self.token.abort(exc)


__all__ = ["CancelToken", "RunStatus", "SchedulerOutcome", "SourceItem", "WorkScheduler"]
