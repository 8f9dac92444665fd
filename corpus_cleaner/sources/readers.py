"""Input discovery and container readers (line-delimited JSON and Parquet)."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Iterable, Iterator, List, Sequence, Union

import pyarrow as pa
import pyarrow.parquet as pq

from ..engine.record import DecodeFailure, Record
from ..errors import ConfigurationError, DecodeError
from ..logging_conf import get_logger
from .decoder import decode_record

JSONL_SUFFIXES = (".jsonl", ".json", ".ndjson")
PARQUET_SUFFIXES = (".parquet",)
SUPPORTED_SUFFIXES = JSONL_SUFFIXES + PARQUET_SUFFIXES

SourceItem = Union[Record, DecodeFailure]


def discover_files(path: Path) -> List[Path]:
    """Return the input files under ``path`` in a stable order."""

    if not path.exists():
        raise ConfigurationError(f"Input path does not exist: {path}")
    if path.is_file():
        return [path]
    return sorted(
        candidate
        for candidate in path.rglob("*")
        if candidate.is_file() and candidate.suffix.lower() in SUPPORTED_SUFFIXES
    )


class JsonlReader:
    """Yield one Record per non-blank line; bad lines become DecodeFailure items."""

    def __init__(self, path: Path) -> None:
        self.path = path

    def __iter__(self) -> Iterator[SourceItem]:
        source = str(self.path)
        with self.path.open("rb") as stream:
            for line_no, raw in enumerate(stream, start=1):
                line = raw.rstrip(b"\r\n")
                if not line.strip():
                    continue
                try:
                    # keep invalid bytes as surrogates so the encoding check sees them
                    document = json.loads(line.decode("utf-8", errors="surrogateescape"))
                except (ValueError, RecursionError) as exc:
                    # ValueError also covers integer literals past the int/str digit limit
                    yield DecodeFailure(source, line_no, f"invalid json: {exc}", size=len(line))
                    continue
                try:
                    item: SourceItem = decode_record(document, raw_bytes=line, source=source)
                except DecodeError as exc:
                    item = DecodeFailure(source, line_no, exc.reason, size=len(line))
                except (OverflowError, ValueError, RecursionError) as exc:
                    item = DecodeFailure(source, line_no, f"undecodable record: {exc}", size=len(line))
                yield item


class ParquetReader:
    """Stream rows of a Parquet file batch by batch."""

    def __init__(self, path: Path, batch_size: int = 8192) -> None:
        self.path = path
        self.batch_size = batch_size

    def __iter__(self) -> Iterator[SourceItem]:
        source = str(self.path)
        parquet_file = pq.ParquetFile(self.path)
        row_no = 0
        for batch in parquet_file.iter_batches(batch_size=self.batch_size):
            for row in batch.to_pylist():
                row_no += 1
                try:
                    item: SourceItem = decode_record(row, source=source)
                except DecodeError as exc:
                    item = DecodeFailure(source, row_no, exc.reason)
                except (OverflowError, ValueError) as exc:
                    item = DecodeFailure(source, row_no, f"undecodable record: {exc}")
                yield item


class RecordSource:
    """Chain the readers of many input files into one lazy item stream.

    A file that cannot be opened or that breaks mid-way produces one
    DecodeFailure item and iteration moves on to the next file.
    """

    def __init__(self, files: Sequence[Path], batch_size: int = 8192) -> None:
        self.files = list(files)
        self.batch_size = batch_size
        self.files_opened = 0
        self.files_failed = 0
        self.logger = get_logger("source")

    def reader_for(self, path: Path) -> Iterable[SourceItem]:
        suffix = path.suffix.lower()
        if suffix in PARQUET_SUFFIXES:
            return ParquetReader(path, batch_size=self.batch_size)
        if suffix in JSONL_SUFFIXES:
            return JsonlReader(path)
        raise ConfigurationError(f"Unsupported input format: {path}")

    def __iter__(self) -> Iterator[SourceItem]:
        for path in self.files:
            self.files_opened += 1
            self.logger.debug("file_started", path=str(path))
            try:
                yield from self.reader_for(path)
            except (OSError, pa.ArrowException) as exc:
                self.files_failed += 1
                self.logger.warning("file_failed", path=str(path), error=str(exc))
                yield DecodeFailure(str(path), None, f"unreadable file: {exc}")


__all__ = [
    "JsonlReader",
    "ParquetReader",
    "RecordSource",
    "SUPPORTED_SUFFIXES",
    "discover_files",
]
