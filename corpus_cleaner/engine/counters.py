"""Run-scoped telemetry counters."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from threading import Lock
from typing import Dict, List

from .record import Verdict


class WorkerTally:
    """Counters written by exactly one worker thread.

    Single-writer slots need no locking; readers may observe a slightly
    stale but never decreasing value for each field.
    """

    __slots__ = ("verdicts", "bytes_processed", "decode_failures")

    def __init__(self) -> None:
        self.verdicts: Dict[Verdict, int] = {verdict: 0 for verdict in Verdict}
        self.bytes_processed = 0
        self.decode_failures = 0

    def record(self, verdict: Verdict, size: int = 0) -> None:
        self.verdicts[verdict] += 1
        self.bytes_processed += size

    def record_decode_failure(self, size: int = 0) -> None:
        self.decode_failures += 1
        self.record(Verdict.DROPPED_MALFORMED, size)


@dataclass(frozen=True)
class CountersSnapshot:
    """Point-in-time view of RunCounters handed to progress reporters."""

    kept: int = 0
    dropped_failed: int = 0
    dropped_dust: int = 0
    dropped_malformed: int = 0
    dropped_duplicate: int = 0
    decode_failures: int = 0
    bytes_processed: int = 0
    elapsed: float = 0.0
    by_verdict: Dict[str, int] = field(default_factory=dict)

    @property
    def total(self) -> int:
        return (
            self.kept
            + self.dropped_failed
            + self.dropped_dust
            + self.dropped_malformed
            + self.dropped_duplicate
        )

    @property
    def dropped(self) -> int:
        return self.total - self.kept

    @property
    def records_per_second(self) -> float:
        return self.total / self.elapsed if self.elapsed > 0 else 0.0

    @property
    def bytes_per_second(self) -> float:
        return self.bytes_processed / self.elapsed if self.elapsed > 0 else 0.0

    def as_dict(self) -> dict[str, float | int]:
        return {
            "total": self.total,
            "kept": self.kept,
            "dropped_failed": self.dropped_failed,
            "dropped_dust": self.dropped_dust,
            "dropped_malformed": self.dropped_malformed,
            "dropped_duplicate": self.dropped_duplicate,
            "decode_failures": self.decode_failures,
            "bytes_processed": self.bytes_processed,
            "elapsed": round(self.elapsed, 3),
        }


class RunCounters:
    """Aggregate verdict counts for one invocation.

    Each worker obtains its own ``WorkerTally`` and increments it without
    synchronisation; ``snapshot`` sums the tallies. Counts are monotonic
    and eventually consistent across fields. After ``finalize`` no new
    tallies can be registered and the final snapshot is frozen.
    """

    def __init__(self) -> None:
        self._tallies: List[WorkerTally] = []
        self._lock = Lock()
        self._started = time.monotonic()
        self._final: CountersSnapshot | None = None

    def tally(self) -> WorkerTally:
        with self._lock:
            if self._final is not None:
                raise RuntimeError("RunCounters already finalized")
            tally = WorkerTally()
            self._tallies.append(tally)
            return tally

    @property
    def finalized(self) -> bool:
        return self._final is not None

    def snapshot(self) -> CountersSnapshot:
        if self._final is not None:
            return self._final
        with self._lock:
            tallies = list(self._tallies)
        verdicts = {verdict: 0 for verdict in Verdict}
        bytes_processed = 0
        decode_failures = 0
        for tally in tallies:
            for verdict, count in list(tally.verdicts.items()):
                verdicts[verdict] += count
            bytes_processed += tally.bytes_processed
            decode_failures += tally.decode_failures
        return CountersSnapshot(
            kept=verdicts[Verdict.KEPT],
            dropped_failed=verdicts[Verdict.DROPPED_FAILED],
            dropped_dust=verdicts[Verdict.DROPPED_DUST],
            dropped_malformed=verdicts[Verdict.DROPPED_MALFORMED],
            dropped_duplicate=verdicts[Verdict.DROPPED_DUPLICATE],
            decode_failures=decode_failures,
            bytes_processed=bytes_processed,
            elapsed=time.monotonic() - self._started,
            by_verdict={verdict.value: count for verdict, count in verdicts.items()},
        )

    def finalize(self) -> CountersSnapshot:
        if self._final is None:
            final = self.snapshot()
            with self._lock:
                self._final = final
        return self._final


__all__ = ["CountersSnapshot", "RunCounters", "WorkerTally"]
