from __future__ import annotations

import json
import time
from typing import Iterator

import pytest

from corpus_cleaner.config import FilterConfig
from corpus_cleaner.engine import (
    CancelToken,
    DecodeFailure,
    FilterChain,
    OutputAggregator,
    RunCounters,
    RunStatus,
    ShardedDedupIndex,
    Verdict,
    WorkScheduler,
)
from corpus_cleaner.errors import ResourceExhaustion, SinkWriteError
from corpus_cleaner.sources import RecordSource, decode_record


def build_scheduler(sinks, token: CancelToken | None = None, workers: int = 3, **index_limits) -> WorkScheduler:
    token = token or CancelToken()
    aggregator = OutputAggregator(sinks, queue_size=4, on_fatal=token.abort, poll_interval=0.01)
    return WorkScheduler(
        chain=FilterChain.from_config(FilterConfig(min_value=1_000)),
        index=ShardedDedupIndex(shards=4, **index_limits),
        counters=RunCounters(),
        aggregator=aggregator,
        workers=workers,
        queue_size=4,
        token=token,
        poll_interval=0.01,
    )


def to_records(documents) -> list:
    return [decode_record(doc, raw_bytes=json.dumps(doc).encode(), source="mem") for doc in documents]


def test_each_record_gets_exactly_one_verdict(memory_sink, scenario_lines) -> None:
    sink = memory_sink()
    scheduler = build_scheduler([sink])

    outcome = scheduler.run(to_records(scenario_lines))

    snapshot = scheduler.counters.snapshot()
    assert outcome.status is RunStatus.SUCCESS
    assert outcome.items_read == 5
    assert outcome.unprocessed == 0
    assert snapshot.by_verdict == {
        Verdict.KEPT.value: 1,
        Verdict.DROPPED_FAILED.value: 1,
        Verdict.DROPPED_DUST.value: 1,
        Verdict.DROPPED_MALFORMED.value: 1,
        Verdict.DROPPED_DUPLICATE.value: 1,
    }
    assert [record.document["signature"] for record, _ in sink.records] == ["sig-valid"]


def test_decode_failures_count_as_malformed(memory_sink, make_document) -> None:
    items = to_records([make_document(signature="a")]) + [DecodeFailure("mem", 2, "invalid json", size=7)]
    scheduler = build_scheduler([memory_sink()])

    outcome = scheduler.run(items)

    snapshot = scheduler.counters.snapshot()
    assert outcome.status is RunStatus.SUCCESS
    assert snapshot.kept == 1
    assert snapshot.dropped_malformed == 1
    assert snapshot.decode_failures == 1
    assert snapshot.total == outcome.items_read == 2


@pytest.mark.parametrize("digits", [400, 5_000])
def test_out_of_range_number_line_is_counted_not_fatal(memory_sink, write_jsonl, make_document, digits) -> None:
    path = write_jsonl(
        [
            make_document(signature="a"),
            '{"status": "success", "value": ' + "9" * digits + "}",
            make_document(signature="b"),
        ]
    )
    sink = memory_sink()
    scheduler = build_scheduler([sink])

    outcome = scheduler.run(RecordSource([path]))

    snapshot = scheduler.counters.snapshot()
    assert outcome.status is RunStatus.SUCCESS
    assert outcome.error is None
    assert snapshot.total == outcome.items_read == 3
    assert snapshot.dropped_malformed == 1
    assert snapshot.decode_failures == 1
    assert sorted(record.document["signature"] for record, _ in sink.records) == ["a", "b"]


def test_conservation_and_no_duplicate_output_under_load(memory_sink, make_document) -> None:
    documents = [make_document(signature=f"sig-{i % 250}") for i in range(2_000)]
    sinks = [memory_sink(shard=i) for i in range(3)]
    scheduler = build_scheduler(sinks, workers=4)

    outcome = scheduler.run(to_records(documents))

    snapshot = scheduler.counters.snapshot()
    written = [fingerprint for sink in sinks for _, fingerprint in sink.records]
    assert outcome.status is RunStatus.SUCCESS
    assert snapshot.total == 2_000
    assert snapshot.kept == 250
    assert snapshot.dropped_duplicate == 1_750
    assert len(written) == len(set(written)) == 250
    assert scheduler.aggregator.stats.total_delivered == snapshot.kept


def test_cancel_stops_pulling_and_drains_in_flight(memory_sink, make_document) -> None:
    token = CancelToken()
    scheduler = build_scheduler([memory_sink()], token=token)
    pulled = 0

    def source() -> Iterator:
        nonlocal pulled
        for i in range(10_000):
            if i == 50:
                token.cancel("test")
            pulled += 1
            yield to_records([make_document(signature=f"s-{i}")])[0]

    outcome = scheduler.run(source())

    snapshot = scheduler.counters.snapshot()
    assert outcome.status is RunStatus.PARTIAL
    assert outcome.cancel_reason == "test"
    assert outcome.items_read == 50
    assert pulled == 51
    assert snapshot.total == 50
    assert outcome.unprocessed == 0
    assert scheduler.aggregator.stats.total_delivered == snapshot.kept == 50


def test_sink_error_stops_the_run_as_partial(memory_sink, make_document) -> None:
    documents = [make_document(signature=f"sig-{i}") for i in range(200)]
    sink = memory_sink(fail_after=5)
    scheduler = build_scheduler([sink])

    outcome = scheduler.run(to_records(documents))

    snapshot = scheduler.counters.snapshot()
    assert outcome.status is RunStatus.PARTIAL
    assert outcome.cancel_reason == "aborted"
    assert isinstance(outcome.error, SinkWriteError)
    assert "disk full" in str(outcome.error)
    assert scheduler.aggregator.stats.delivered == [len(sink.records)] == [5]
    assert outcome.items_read == snapshot.total + outcome.unprocessed


def test_resource_exhaustion_aborts_the_run(memory_sink, make_document) -> None:
    documents = [make_document(signature=f"sig-{i}") for i in range(100)]
    scheduler = build_scheduler([memory_sink()], max_entries=10)

    outcome = scheduler.run(to_records(documents))

    assert outcome.status is RunStatus.FAILED
    assert isinstance(outcome.error, ResourceExhaustion)
    assert scheduler.counters.snapshot().kept <= 10


def test_source_error_aborts(memory_sink, make_document) -> None:
    def broken() -> Iterator:
        yield to_records([make_document()])[0]
        raise OSError("disk vanished")

    scheduler = build_scheduler([memory_sink()])

    outcome = scheduler.run(broken())

    assert outcome.status is RunStatus.FAILED
    assert isinstance(outcome.error, OSError)


def test_unexpected_filter_error_marks_record_malformed(memory_sink, make_document) -> None:
    class Broken:
        name = "broken"

        def check(self, record):
            raise ZeroDivisionError("bad math")

    scheduler = build_scheduler([memory_sink()])
    scheduler.chain = scheduler.chain.with_filter(Broken())

    outcome = scheduler.run(to_records([make_document()]))

    assert outcome.status is RunStatus.SUCCESS
    assert scheduler.counters.snapshot().dropped_malformed == 1


def test_slow_sink_does_not_break_conservation(memory_sink, make_document) -> None:
    documents = [make_document(signature=f"sig-{i}") for i in range(60)]
    sink = memory_sink(delay=0.005)
    scheduler = build_scheduler([sink], workers=2)

    started = time.monotonic()
    outcome = scheduler.run(to_records(documents))

    assert outcome.status is RunStatus.SUCCESS
    assert len(sink.records) == 60
    assert time.monotonic() - started >= 60 * 0.005


def test_queue_size_must_be_positive(memory_sink) -> None:
    with pytest.raises(ValueError):
        WorkScheduler(
            chain=FilterChain(),
            index=ShardedDedupIndex(),
            counters=RunCounters(),
            aggregator=OutputAggregator([memory_sink()]),
            queue_size=0,
        )


def test_cancel_token_keeps_first_reason() -> None:
    token = CancelToken()
    token.cancel("max_runtime")
    token.cancel("interrupted")
    assert token.reason == "max_runtime"
    assert token.cancelled and not token.aborted

    error = RuntimeError("x")
    token.abort(error)
    assert token.aborted
    assert token.error is error
    assert token.reason == "max_runtime"


def test_rerun_after_cancel_leaves_previous_counters_intact(memory_sink, make_document) -> None:
    documents = [make_document(signature=f"sig-{i}") for i in range(30)]
    token = CancelToken()
    first = build_scheduler([memory_sink()], token=token)

    def cancelling() -> Iterator:
        for i, record in enumerate(to_records(documents)):
            if i == 10:
                token.cancel("interrupted")
            yield record

    first.run(cancelling())
    frozen = first.counters.finalize()

    second = build_scheduler([memory_sink()])
    outcome = second.run(to_records(documents))

    assert outcome.status is RunStatus.SUCCESS
    assert second.counters.snapshot().kept == 30
    assert first.counters.snapshot() is frozen
    assert frozen.total == 10
