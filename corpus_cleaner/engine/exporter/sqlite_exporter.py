"""Export kept records to a SQLite table."""

from __future__ import annotations

from pathlib import Path

import sqlite3

from ...errors import SinkWriteError
from ..record import Record
from .base import BaseExporter


class SQLiteExporter(BaseExporter):
    """Persist records as JSON text keyed by fingerprint."""

    def __init__(
        self,
        path: Path,
        table: str = "records",
        shard: int = 0,
        commit_every: int = 10_000,
        append: bool = False,
    ) -> None:
        self.path = path
        self.table = table
        self.shard = shard
        self.commit_every = commit_every
        self._pending = 0
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self.conn = sqlite3.connect(self.path, check_same_thread=False)
            self.conn.execute(
                f"""
                CREATE TABLE IF NOT EXISTS {self.table} (
                    fingerprint TEXT PRIMARY KEY,
                    source TEXT,
                    payload TEXT NOT NULL
                )
                """
            )
            if not append:
                self.conn.execute(f"DELETE FROM {self.table}")
            self.conn.commit()
        except (OSError, sqlite3.Error) as exc:
            raise SinkWriteError(f"cannot open {self.path}: {exc}", shard=shard) from exc

    def export(self, record: Record, fingerprint: str) -> None:
        try:
            self.conn.execute(
                f"INSERT OR REPLACE INTO {self.table}(fingerprint, source, payload) VALUES (?, ?, ?)",
                (fingerprint, record.source, record.raw_bytes.decode("utf-8", errors="replace")),
            )
        except sqlite3.Error as exc:
            raise SinkWriteError(f"insert into {self.path} failed: {exc}", shard=self.shard) from exc
        self._pending += 1
        if self._pending >= self.commit_every:
            self.flush()

    def flush(self) -> None:
        try:
            self.conn.commit()
        except sqlite3.Error as exc:
            raise SinkWriteError(f"commit to {self.path} failed: {exc}", shard=self.shard) from exc
        self._pending = 0

    def close(self) -> None:
        try:
            self.flush()
        finally:
            self.conn.close()


__all__ = ["SQLiteExporter"]
