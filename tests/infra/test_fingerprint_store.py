from __future__ import annotations

from pathlib import Path

import pytest

from corpus_cleaner.errors import ConfigurationError
from corpus_cleaner.infra import FingerprintStore, SQLiteManager


@pytest.fixture
def manager() -> SQLiteManager:
    manager = SQLiteManager()
    yield manager
    manager.close_all()


def test_flush_reports_only_new_fingerprints(manager: SQLiteManager, tmp_path: Path) -> None:
    store = FingerprintStore(manager, tmp_path / "state" / "fp.db", batch_size=2)

    assert store.flush(["a", "b", "c"]) == 3
    assert store.flush(["a", "d"]) == 1
    assert len(store) == 4
    assert sorted(store) == ["a", "b", "c", "d"]


def test_store_survives_reopen(tmp_path: Path) -> None:
    path = tmp_path / "fp.db"
    first = SQLiteManager()
    FingerprintStore(first, path).flush(["x", "y"])
    first.close_all()

    second = SQLiteManager()
    try:
        assert set(FingerprintStore(second, path)) == {"x", "y"}
    finally:
        second.close_all()


def test_reset_drops_history(manager: SQLiteManager, tmp_path: Path) -> None:
    store = FingerprintStore(manager, tmp_path / "fp.db")
    store.flush(["x"])

    store.reset()

    assert len(store) == 0


def test_unopenable_store_is_a_configuration_error(manager: SQLiteManager, tmp_path: Path) -> None:
    blocker = tmp_path / "file"
    blocker.write_text("", encoding="utf-8")

    with pytest.raises(ConfigurationError):
        FingerprintStore(manager, blocker / "fp.db")
