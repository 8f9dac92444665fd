from __future__ import annotations

from pathlib import Path

import pytest
from pydantic import ValidationError

from corpus_cleaner.config import (
    DedupConfig,
    FilterConfig,
    FingerprintConfig,
    HashAlgorithm,
    OutputConfig,
    OutputFormat,
    RefineryConfig,
    SchedulerConfig,
)


def test_defaults_describe_a_single_shard_jsonl_run() -> None:
    config = RefineryConfig()

    assert config.input_path is None
    assert config.output.format is OutputFormat.JSONL
    assert config.output.shards == 1
    assert config.fingerprint.fields == ["signature"]
    assert config.fingerprint.algorithm is HashAlgorithm.SHA256
    assert config.scheduler.threads == 0
    assert config.dedup.store_path is None


def test_fingerprint_fields_accept_comma_separated_text() -> None:
    config = FingerprintConfig(fields="signature, slot ,")

    assert config.fields == ["signature", "slot"]


@pytest.mark.parametrize(
    "payload",
    [
        {"min_value": -1},
        {"max_fee_ratio": -0.5},
    ],
)
def test_filter_thresholds_reject_negative_values(payload: dict) -> None:
    with pytest.raises(ValidationError):
        FilterConfig(**payload)


def test_scheduler_rejects_empty_queues_and_zero_runtime() -> None:
    with pytest.raises(ValidationError):
        SchedulerConfig(queue_size=0)
    with pytest.raises(ValidationError):
        SchedulerConfig(output_queue_size=0)
    with pytest.raises(ValidationError):
        SchedulerConfig(max_runtime_seconds=0)
    with pytest.raises(ValidationError):
        SchedulerConfig(read_batch_size=0)


def test_output_requires_at_least_one_shard_and_a_prefix() -> None:
    with pytest.raises(ValidationError):
        OutputConfig(shards=0)
    with pytest.raises(ValidationError):
        OutputConfig(prefix="   ")


def test_dedup_store_path_is_coerced() -> None:
    assert DedupConfig(store_path="state/fp.db").store_path == Path("state/fp.db")
    assert DedupConfig(store_path="").store_path is None
    with pytest.raises(ValidationError):
        DedupConfig(memory_check_interval=0)


def test_refinery_paths_expand_user(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setenv("HOME", str(tmp_path))

    config = RefineryConfig(input_path="~/in", output_path="")

    assert config.input_path == tmp_path / "in"
    assert config.output_path is None
