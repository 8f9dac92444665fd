"""Pytest configuration providing shared record builders and fixtures."""

from __future__ import annotations

import json
import os
import time
from pathlib import Path
from typing import Any, Callable, Iterable

import pytest

from corpus_cleaner.config import ConfigLocator, ConfigRepository, RefineryConfig
from corpus_cleaner.engine import Record, TxStatus, ValueFields
from corpus_cleaner.engine.exporter import BaseExporter
from corpus_cleaner.errors import SinkWriteError
from corpus_cleaner.logging_conf import configure_logging
from corpus_cleaner.sources import decode_record


@pytest.fixture(scope="session", autouse=True)
def _session_logging(tmp_path_factory: pytest.TempPathFactory) -> None:
    log_dir = tmp_path_factory.mktemp("logs")
    os.environ["CORPUS_CLEANER_LOG_DIR"] = str(log_dir)
    configure_logging()


def tx_document(**overrides: Any) -> dict[str, Any]:
    """A successful, valid, non-dust transaction document."""

    base: dict[str, Any] = {
        "signature": "5h6xBEauJ3PK6SWCZ1PGjBvj8vDdWG3KpwATGy1ARAXF",
        "status": "success",
        "value": 5_000_000,
        "fee": 5_000,
        "memo": "gm from the validator",
    }
    base.update(overrides)
    return {key: value for key, value in base.items() if value is not None}


@pytest.fixture
def make_document() -> Callable[..., dict[str, Any]]:
    return tx_document


@pytest.fixture
def make_record() -> Callable[..., Record]:
    def _builder(**overrides: Any) -> Record:
        document = tx_document(**overrides)
        raw = json.dumps(document).encode("utf-8")
        return decode_record(document, raw_bytes=raw, source="fixture.jsonl")

    return _builder


@pytest.fixture
def raw_record() -> Callable[..., Record]:
    """Build a Record directly, bypassing the document decoder."""

    def _builder(
        status: TxStatus = TxStatus.SUCCESS,
        payload: bytes = b"hello",
        amount: float | None = 100.0,
        fee: float | None = 1.0,
        **document: Any,
    ) -> Record:
        return Record(
            raw_bytes=json.dumps(document or {"payload": payload.hex()}).encode("utf-8"),
            status=status,
            payload=payload,
            value_fields=ValueFields(amount=amount, fee=fee),
            document=document,
        )

    return _builder


@pytest.fixture
def write_jsonl(tmp_path: Path) -> Callable[..., Path]:
    def _writer(lines: Iterable[dict | str | bytes], name: str = "input.jsonl") -> Path:
        path = tmp_path / "input" / name
        path.parent.mkdir(parents=True, exist_ok=True)
        with path.open("wb") as stream:
            for line in lines:
                if isinstance(line, dict):
                    line = json.dumps(line)
                if isinstance(line, str):
                    line = line.encode("utf-8")
                stream.write(line + b"\n")
        return path

    return _writer


@pytest.fixture
def scenario_lines() -> list[dict[str, Any]]:
    """Five records: failed, dust, malformed payload, unique, duplicate of unique."""

    return [
        tx_document(signature="sig-failed", status="failed"),
        tx_document(signature="sig-dust", value=10),
        tx_document(signature="sig-malformed", memo=None, payload_hex="c328ff00"),
        tx_document(signature="sig-valid"),
        tx_document(signature="sig-valid"),
    ]


@pytest.fixture
def refinery_config(tmp_path: Path) -> Callable[..., RefineryConfig]:
    def _builder(input_path: Path, **overrides: Any) -> RefineryConfig:
        payload: dict[str, Any] = {
            "input_path": input_path,
            "output_path": tmp_path / "out",
            "filters": {"min_value": 1_000},
            "scheduler": {"threads": 2, "queue_size": 8, "output_queue_size": 4, "progress_interval": 0.05},
            "progress": False,
        }
        for key, value in overrides.items():
            if isinstance(value, dict) and isinstance(payload.get(key), dict):
                payload[key] = {**payload[key], **value}
            else:
                payload[key] = value
        return RefineryConfig.model_validate(payload)

    return _builder


@pytest.fixture
def temp_config_repository(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> ConfigRepository:
    monkeypatch.setenv("CORPUS_CLEANER_HOME", str(tmp_path))
    return ConfigRepository(ConfigLocator(project_root=tmp_path))


class MemorySink(BaseExporter):
    """Sink collecting records in memory, optionally slow or failing."""

    def __init__(self, shard: int = 0, delay: float = 0.0, fail_after: int | None = None) -> None:
        self.shard = shard
        self.delay = delay
        self.fail_after = fail_after
        self.records: list[tuple[Record, str]] = []
        self.flushed = False
        self.closed = False

    def export(self, record: Record, fingerprint: str) -> None:
        if self.fail_after is not None and len(self.records) >= self.fail_after:
            raise SinkWriteError("disk full", shard=self.shard)
        if self.delay:
            time.sleep(self.delay)
        self.records.append((record, fingerprint))

    def flush(self) -> None:
        self.flushed = True

    def close(self) -> None:
        self.closed = True


@pytest.fixture
def memory_sink() -> Callable[..., MemorySink]:
    return MemorySink
