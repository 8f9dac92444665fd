"""Single-writer aggregator between the workers and the sink writers."""

from __future__ import annotations

import queue
from dataclasses import dataclass, field
from threading import Event, Lock
from typing import Callable, List, Sequence

from ..errors import SinkWriteError
from ..logging_conf import get_logger
from .exporter import BaseExporter
from .record import Record

_STOP = object()


@dataclass
class AggregatorStats:
    """What reached the sinks and what did not."""

    delivered: List[int] = field(default_factory=list)
    lost: int = 0
    failed_shards: List[int] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)

    @property
    def total_delivered(self) -> int:
        return sum(self.delivered)


def shard_for_fingerprint(fingerprint: str, shards: int) -> int:
    """Partitioning key for sharded output: leading 32 bits of the fingerprint."""

    if shards <= 1:
        return 0
    return int(fingerprint[:8], 16) % shards


class OutputAggregator:
    """Serialise kept-final records from many workers into the sinks.

    Workers hand records over through a bounded queue; when the queue is
    full ``submit`` blocks, which caps memory regardless of input size.
    One writer thread (``run``) drains the queue and is the only caller of
    the sink writers. With several sinks, records are partitioned by
    fingerprint and no ordering is promised across shards.
    """

    def __init__(
        self,
        sinks: Sequence[BaseExporter],
        queue_size: int = 1024,
        on_fatal: Callable[[SinkWriteError], None] | None = None,
        poll_interval: float = 0.1,
    ) -> None:
        if not sinks:
            raise ValueError("OutputAggregator requires at least one sink")
        if queue_size < 1:
            raise ValueError("queue_size must be >= 1")
        self.sinks = list(sinks)
        self.queue_size = queue_size
        self.poll_interval = poll_interval
        self._queue: "queue.Queue[object]" = queue.Queue(maxsize=queue_size)
        self._on_fatal = on_fatal
        self._failed = Event()
        self._closed = False
        self._lock = Lock()
        self.stats = AggregatorStats(delivered=[0] * len(self.sinks))
        self.logger = get_logger("aggregator")

    # ------------------------------------------------------------------
    # Producer side (worker threads)
    # ------------------------------------------------------------------
    @property
    def failed(self) -> bool:
        return self._failed.is_set()

    def submit(self, record: Record, fingerprint: str) -> bool:
        """Hand a record to the writer, blocking while the intake is full.

        Returns ``False`` when the writer can no longer accept records
        because every sink has failed.
        """

        if self._closed:
            raise RuntimeError("OutputAggregator is closed")
        item = (record, fingerprint)
        while True:
            if self._all_failed():
                with self._lock:
                    self.stats.lost += 1
                return False
            try:
                self._queue.put(item, timeout=self.poll_interval)
                return True
            except queue.Full:
                continue

    def close(self) -> None:
        """Signal the writer that no more records will arrive."""

        if self._closed:
            return
        self._closed = True
        while True:
            try:
                self._queue.put(_STOP, timeout=self.poll_interval)
                return
            except queue.Full:
                if self._all_failed():
                    self._discard_pending()

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    # ------------------------------------------------------------------
    # Writer side (single thread)
    # ------------------------------------------------------------------
    def run(self) -> AggregatorStats:
        """Drain the intake until ``close`` is called, then flush every sink."""

        while True:
            item = self._queue.get()
            if item is _STOP:
                break
            record, fingerprint = item  # type: ignore[misc]
            self._write(record, fingerprint)
        self._finish()
        return self.stats

    def _write(self, record: Record, fingerprint: str) -> None:
        shard = shard_for_fingerprint(fingerprint, len(self.sinks))
        if shard in self.stats.failed_shards:
            with self._lock:
                self.stats.lost += 1
            return
        try:
            self.sinks[shard].export(record, fingerprint)
        except Exception as exc:  # noqa: BLE001
            error = exc if isinstance(exc, SinkWriteError) else SinkWriteError(str(exc), shard=shard)
            self._mark_failed(shard, error)
            with self._lock:
                self.stats.lost += 1
            return
        self.stats.delivered[shard] += 1

    def _finish(self) -> None:
        for shard, sink in enumerate(self.sinks):
            try:
                if shard in self.stats.failed_shards:
                    sink.close()
                    continue
                sink.flush()
                sink.close()
            except SinkWriteError as exc:
                if shard not in self.stats.failed_shards:
                    # nothing in this shard is known to be durable any more
                    with self._lock:
                        self.stats.lost += self.stats.delivered[shard]
                    self.stats.delivered[shard] = 0
                    self._mark_failed(shard, exc)
            except OSError as exc:
                self.logger.warning("sink_close_failed", shard=shard, error=str(exc))
        self.logger.info(
            "aggregator_finished",
            delivered=self.stats.total_delivered,
            lost=self.stats.lost,
            failed_shards=self.stats.failed_shards,
        )

    def _mark_failed(self, shard: int, exc: SinkWriteError) -> None:
        self.stats.failed_shards.append(shard)
        self.stats.errors.append(str(exc))
        self._failed.set()
        self.logger.error("sink_write_failed", shard=shard, error=str(exc))
        if self._on_fatal is not None:
            self._on_fatal(exc)

    def _all_failed(self) -> bool:
        return self._failed.is_set() and len(self.stats.failed_shards) >= len(self.sinks)

    def _discard_pending(self) -> None:
        while True:
            try:
                item = self._queue.get_nowait()
            except queue.Empty:
                return
            if item is not _STOP:
                with self._lock:
                    self.stats.lost += 1


__all__ = ["AggregatorStats", "OutputAggregator", "shard_for_fingerprint"]
