"""Run-scoped deduplication index with sharded locking."""

from __future__ import annotations

import itertools
from threading import Lock
from typing import Iterable, Iterator, List, Set

import psutil

from ..errors import ResourceExhaustion
from ..logging_conf import get_logger
from .record import Observation

DEFAULT_SHARDS_PER_WORKER = 4


class ShardedDedupIndex:
    """Concurrent set of fingerprints offering atomic insert-if-absent.

    A fingerprint always hashes to the same shard, and each shard guards
    its check and insert with one lock, so exactly one of any number of
    racing ``observe`` calls for the same fingerprint sees ``FIRST_SEEN``.

    Growth is unbounded unless ``max_entries`` or ``min_free_memory_mb`` is
    set; crossing either limit raises ``ResourceExhaustion`` instead of
    silently dropping dedup guarantees.
    """

    def __init__(
        self,
        shards: int = 16,
        max_entries: int = 0,
        min_free_memory_mb: int = 0,
        memory_check_interval: int = 100_000,
    ) -> None:
        if shards < 1:
            raise ValueError("shards must be >= 1")
        self.shard_count = shards
        self.max_entries = max_entries
        self.min_free_memory_mb = min_free_memory_mb
        self.memory_check_interval = max(1, memory_check_interval)
        self._shards: List[Set[str]] = [set() for _ in range(shards)]
        self._locks: List[Lock] = [Lock() for _ in range(shards)]
        # next() on itertools.count is atomic under the GIL
        self._inserts = itertools.count(1)
        self._exhausted: str | None = None
        self.logger = get_logger("dedup")

    @classmethod
    def for_workers(cls, workers: int, shards: int = 0, **limits: int) -> "ShardedDedupIndex":
        """Size the index for a worker pool; ``shards <= 0`` derives it from ``workers``."""

        if shards <= 0:
            shards = max(1, workers) * DEFAULT_SHARDS_PER_WORKER
        return cls(shards=shards, **limits)

    # ------------------------------------------------------------------
    def shard_for(self, fingerprint: str) -> int:
        return int(fingerprint[:8], 16) % self.shard_count

    def observe(self, fingerprint: str) -> Observation:
        """Atomically record ``fingerprint`` and report whether it was new."""

        if self._exhausted is not None:
            raise ResourceExhaustion(self._exhausted)
        index = self.shard_for(fingerprint)
        shard = self._shards[index]
        with self._locks[index]:
            if fingerprint in shard:
                return Observation.DUPLICATE
            self._reserve_slot()
            shard.add(fingerprint)
        return Observation.FIRST_SEEN

    def preload(self, fingerprints: Iterable[str]) -> int:
        """Seed the index from a persisted store before the run starts."""

        loaded = 0
        for fingerprint in fingerprints:
            index = self.shard_for(fingerprint)
            with self._locks[index]:
                if fingerprint not in self._shards[index]:
                    self._reserve_slot()
                    self._shards[index].add(fingerprint)
                    loaded += 1
        return loaded

    def __contains__(self, fingerprint: str) -> bool:
        index = self.shard_for(fingerprint)
        with self._locks[index]:
            return fingerprint in self._shards[index]

    def __len__(self) -> int:
        return sum(len(shard) for shard in self._shards)

    def __iter__(self) -> Iterator[str]:
        for index, shard in enumerate(self._shards):
            with self._locks[index]:
                snapshot = list(shard)
            yield from snapshot

    def shard_sizes(self) -> list[int]:
        return [len(shard) for shard in self._shards]

    def clear(self) -> None:
        for index, shard in enumerate(self._shards):
            with self._locks[index]:
                shard.clear()
        self._inserts = itertools.count(1)
        self._exhausted = None

    # ------------------------------------------------------------------
    def _reserve_slot(self) -> None:
        position = next(self._inserts)
        if self.max_entries and position > self.max_entries:
            self._fail(f"dedup index exceeded max_entries={self.max_entries}")
        if self.min_free_memory_mb and position % self.memory_check_interval == 0:
            available_mb = psutil.virtual_memory().available / (1024 * 1024)
            if available_mb < self.min_free_memory_mb:
                self._fail(
                    f"available memory {available_mb:.0f} MiB below floor "
                    f"{self.min_free_memory_mb} MiB after {position} fingerprints"
                )

    def _fail(self, message: str) -> None:
        self._exhausted = message
        self.logger.error("dedup_index_exhausted", reason=message, entries=len(self))
        raise ResourceExhaustion(message)


__all__ = ["DEFAULT_SHARDS_PER_WORKER", "ShardedDedupIndex"]
