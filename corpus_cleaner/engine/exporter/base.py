"""Sink Writer Service Provider Interface."""

from __future__ import annotations

from abc import ABC, abstractmethod
from pathlib import Path
from typing import Iterable

from ..record import Record


class BaseExporter(ABC):
    """Uniform sink contract enabling plug-and-play outputs.

    ``export`` must either persist the record (durably after ``flush``) or
    raise ``SinkWriteError``.
    """

    shard: int = 0
    path: Path | None = None

    @abstractmethod
    def export(self, record: Record, fingerprint: str) -> None:
        """Persist a single kept-final record."""

    def export_many(self, records: Iterable[tuple[Record, str]]) -> None:
        for record, fingerprint in records:
            self.export(record, fingerprint)

    @abstractmethod
    def flush(self) -> None:
        """Flush buffered data to destination."""

    @abstractmethod
    def close(self) -> None:
        """Release underlying resources."""


__all__ = ["BaseExporter"]
