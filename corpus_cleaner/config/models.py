"""Pydantic models describing a single refinery run."""

from __future__ import annotations

from enum import Enum
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, field_validator, model_validator


class HashAlgorithm(str, Enum):
    """Digest used to turn canonical record content into a fingerprint."""

    SHA256 = "sha256"
    BLAKE2B = "blake2b"


class OutputFormat(str, Enum):
    """Sink writer formats."""

    JSONL = "jsonl"
    SQLITE = "sqlite"


class FilterConfig(BaseModel):
    """Thresholds for the default predicate chain."""

    min_value: float = 0.0
    max_fee_ratio: float | None = None
    strict_utf8: bool = True
    allow_empty_payload: bool = True

    @model_validator(mode="after")
    def _validate_thresholds(self) -> "FilterConfig":
        if self.min_value < 0:
            raise ValueError("min_value must be >= 0")
        if self.max_fee_ratio is not None and self.max_fee_ratio < 0:
            raise ValueError("max_fee_ratio must be >= 0")
        return self


class FingerprintConfig(BaseModel):
    """Which canonical fields take part in the fingerprint."""

    fields: list[str] = Field(default_factory=lambda: ["signature"])
    include_payload: bool = False
    algorithm: HashAlgorithm = HashAlgorithm.SHA256

    @field_validator("fields", mode="before")
    @classmethod
    def _coerce_fields(cls, value: Any) -> list[str]:
        if value in (None, ""):
            return []
        if isinstance(value, str):
            return [part.strip() for part in value.split(",") if part.strip()]
        return list(value)


class DedupConfig(BaseModel):
    """Sharding and memory limits of the run-scoped dedup index."""

    shards: int = 0
    max_entries: int = 0
    min_free_memory_mb: int = 0
    memory_check_interval: int = 100_000
    store_path: Path | None = None

    @field_validator("store_path", mode="before")
    @classmethod
    def _coerce_path(cls, value: Any) -> Path | None:
        if value in (None, ""):
            return None
        return Path(value)

    @model_validator(mode="after")
    def _validate_limits(self) -> "DedupConfig":
        if self.shards < 0:
            raise ValueError("shards must be >= 0")
        if self.max_entries < 0:
            raise ValueError("max_entries must be >= 0")
        if self.min_free_memory_mb < 0:
            raise ValueError("min_free_memory_mb must be >= 0")
        if self.memory_check_interval < 1:
            raise ValueError("memory_check_interval must be >= 1")
        return self


class SchedulerConfig(BaseModel):
    """Worker pool and hand-off sizing."""

    threads: int = 0
    queue_size: int = 1024
    output_queue_size: int = 1024
    max_runtime_seconds: float | None = None
    progress_interval: float = 0.5
    read_batch_size: int = 8192

    @model_validator(mode="after")
    def _validate_sizes(self) -> "SchedulerConfig":
        if self.queue_size < 1:
            raise ValueError("queue_size must be >= 1")
        if self.output_queue_size < 1:
            raise ValueError("output_queue_size must be >= 1")
        if self.max_runtime_seconds is not None and self.max_runtime_seconds <= 0:
            raise ValueError("max_runtime_seconds must be > 0")
        if self.progress_interval <= 0:
            raise ValueError("progress_interval must be > 0")
        if self.read_batch_size < 1:
            raise ValueError("read_batch_size must be >= 1")
        return self


class OutputConfig(BaseModel):
    """Sink layout of the clean corpus."""

    format: OutputFormat = OutputFormat.JSONL
    shards: int = 1
    prefix: str = "part"

    @model_validator(mode="after")
    def _validate_output(self) -> "OutputConfig":
        if self.shards < 1:
            raise ValueError("output shards must be >= 1")
        if not self.prefix.strip():
            raise ValueError("prefix cannot be empty")
        return self


class RefineryConfig(BaseModel):
    """Full definition of one refinery run."""

    input_path: Path | None = None
    output_path: Path | None = None
    filters: FilterConfig = Field(default_factory=FilterConfig)
    fingerprint: FingerprintConfig = Field(default_factory=FingerprintConfig)
    dedup: DedupConfig = Field(default_factory=DedupConfig)
    scheduler: SchedulerConfig = Field(default_factory=SchedulerConfig)
    output: OutputConfig = Field(default_factory=OutputConfig)
    progress: bool = True
    verbose: bool = False

    @field_validator("input_path", "output_path", mode="before")
    @classmethod
    def _coerce_paths(cls, value: Any) -> Path | None:
        if value in (None, ""):
            return None
        return Path(value).expanduser()


__all__ = [
    "DedupConfig",
    "FilterConfig",
    "FingerprintConfig",
    "HashAlgorithm",
    "OutputConfig",
    "OutputFormat",
    "RefineryConfig",
    "SchedulerConfig",
]
