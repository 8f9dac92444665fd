"""Line-delimited JSON sink."""

from __future__ import annotations

import os
import re
from pathlib import Path

from ...errors import SinkWriteError
from ..record import Record
from .base import BaseExporter


class JsonlExporter(BaseExporter):
    """Write each record's original document as one line of a shard file.

    An existing shard file is truncated unless ``append`` is set, which is
    only safe when a persisted fingerprint store keeps earlier survivors out.
    """

    def __init__(
        self,
        output_dir: Path,
        shard: int = 0,
        prefix: str = "part",
        fsync: bool = True,
        append: bool = False,
    ) -> None:
        self.output_dir = output_dir
        self.shard = shard
        self.fsync = fsync
        slug = re.sub(r"[^0-9A-Za-z_-]+", "_", prefix.strip()) or "part"
        self.path = self.output_dir / f"{slug}-{shard:05d}.jsonl"
        try:
            self.output_dir.mkdir(parents=True, exist_ok=True)
            self._file = self.path.open("ab" if append else "wb")
        except OSError as exc:
            raise SinkWriteError(f"cannot open {self.path}: {exc}", shard=shard) from exc
        self.written = 0

    def export(self, record: Record, fingerprint: str) -> None:
        line = record.raw_bytes.rstrip(b"\r\n")
        try:
            self._file.write(line)
            self._file.write(b"\n")
        except (OSError, ValueError) as exc:
            raise SinkWriteError(f"write to {self.path} failed: {exc}", shard=self.shard) from exc
        self.written += 1

    def flush(self) -> None:
        if self._file.closed:
            return
        try:
            self._file.flush()
            if self.fsync:
                os.fsync(self._file.fileno())
        except OSError as exc:
            raise SinkWriteError(f"flush of {self.path} failed: {exc}", shard=self.shard) from exc

    def close(self) -> None:
        if self._file.closed:
            return
        try:
            self.flush()
        finally:
            self._file.close()


__all__ = ["JsonlExporter"]
