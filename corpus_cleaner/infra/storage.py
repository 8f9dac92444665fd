"""Durable fingerprint store for cross-run deduplication."""

from __future__ import annotations

import sqlite3
from datetime import datetime, timezone
from pathlib import Path
from threading import Lock
from typing import Dict, Iterable, Iterator

from ..errors import ConfigurationError


class SQLiteManager:
    """Manage SQLite connections with basic schema guarantees."""

    def __init__(self) -> None:
        self._connections: Dict[Path, sqlite3.Connection] = {}
        self._lock = Lock()

    def connect(self, path: Path) -> sqlite3.Connection:
        path.parent.mkdir(parents=True, exist_ok=True)
        with self._lock:
            if path not in self._connections:
                conn = sqlite3.connect(path, check_same_thread=False)
                conn.row_factory = sqlite3.Row
                self._connections[path] = conn
                self._ensure_schema(conn)
            return self._connections[path]

    def _ensure_schema(self, conn: sqlite3.Connection) -> None:
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS fingerprint_history (
                fingerprint TEXT PRIMARY KEY,
                first_seen TEXT
            )
            """
        )
        conn.commit()

    def reset(self, path: Path) -> None:
        with self._lock:
            if path in self._connections:
                self._connections[path].close()
                del self._connections[path]
        if path.exists():
            path.unlink()

    def close_all(self) -> None:
        with self._lock:
            for conn in self._connections.values():
                conn.close()
            self._connections.clear()


class FingerprintStore:
    """Key-set of fingerprints loaded before a run and flushed after it."""

    def __init__(self, manager: SQLiteManager, path: Path, batch_size: int = 50_000) -> None:
        self.manager = manager
        self.path = path
        self.batch_size = batch_size
        try:
            self._conn = self.manager.connect(path)
        except (OSError, sqlite3.Error) as exc:
            raise ConfigurationError(f"Cannot open dedup store {path}: {exc}") from exc

    def __iter__(self) -> Iterator[str]:
        cursor = self._conn.execute("SELECT fingerprint FROM fingerprint_history")
        while True:
            rows = cursor.fetchmany(self.batch_size)
            if not rows:
                return
            for row in rows:
                yield row["fingerprint"]

    def __len__(self) -> int:
        return self._conn.execute("SELECT COUNT(*) FROM fingerprint_history").fetchone()[0]

    def flush(self, fingerprints: Iterable[str]) -> int:
        """Insert fingerprints not yet stored; returns how many were new."""

        stamp = datetime.now(timezone.utc).isoformat(timespec="seconds")
        before = self._conn.total_changes
        batch: list[tuple[str, str]] = []
        with self._conn:
            for fingerprint in fingerprints:
                batch.append((fingerprint, stamp))
                if len(batch) >= self.batch_size:
                    self._insert(batch)
                    batch.clear()
            if batch:
                self._insert(batch)
        return self._conn.total_changes - before

    def _insert(self, batch: list[tuple[str, str]]) -> None:
        self._conn.executemany(
            "INSERT OR IGNORE INTO fingerprint_history(fingerprint, first_seen) VALUES (?, ?)",
            batch,
        )

    def reset(self) -> None:
        self.manager.reset(self.path)
        self._conn = self.manager.connect(self.path)


__all__ = ["FingerprintStore", "SQLiteManager"]
