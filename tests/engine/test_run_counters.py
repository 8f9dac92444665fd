from __future__ import annotations

import threading

import pytest

from corpus_cleaner.engine import RunCounters, Verdict


def test_snapshot_sums_worker_tallies() -> None:
    counters = RunCounters()
    first, second = counters.tally(), counters.tally()

    first.record(Verdict.KEPT, size=10)
    first.record(Verdict.DROPPED_DUST, size=5)
    second.record(Verdict.KEPT, size=7)
    second.record_decode_failure(size=3)

    snapshot = counters.snapshot()
    assert snapshot.kept == 2
    assert snapshot.dropped_dust == 1
    assert snapshot.dropped_malformed == 1
    assert snapshot.decode_failures == 1
    assert snapshot.bytes_processed == 25
    assert snapshot.total == 4
    assert snapshot.dropped == 2
    assert snapshot.by_verdict["kept"] == 2


def test_concurrent_tallies_do_not_lose_updates() -> None:
    counters = RunCounters()

    def worker() -> None:
        tally = counters.tally()
        for _ in range(5_000):
            tally.record(Verdict.KEPT, 1)

    threads = [threading.Thread(target=worker) for _ in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert counters.snapshot().kept == 40_000
    assert counters.snapshot().bytes_processed == 40_000


def test_snapshots_are_monotonic() -> None:
    counters = RunCounters()
    tally = counters.tally()
    previous = counters.snapshot()

    for verdict in Verdict:
        tally.record(verdict)
        current = counters.snapshot()
        assert current.total >= previous.total
        previous = current


def test_finalize_freezes_counts() -> None:
    counters = RunCounters()
    tally = counters.tally()
    tally.record(Verdict.KEPT)

    final = counters.finalize()
    tally.record(Verdict.KEPT)

    assert counters.finalized
    assert counters.snapshot() is final
    assert counters.finalize().kept == 1
    with pytest.raises(RuntimeError):
        counters.tally()


def test_as_dict_exposes_every_category() -> None:
    counters = RunCounters()
    counters.tally().record(Verdict.DROPPED_DUPLICATE, 4)

    payload = counters.finalize().as_dict()

    assert payload["total"] == 1
    assert payload["dropped_duplicate"] == 1
    assert set(payload) >= {"kept", "dropped_failed", "dropped_dust", "dropped_malformed", "decode_failures"}
