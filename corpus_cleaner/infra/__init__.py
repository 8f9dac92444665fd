"""Infra layer utilities (persisted fingerprint storage)."""

from .storage import FingerprintStore, SQLiteManager

__all__ = ["FingerprintStore", "SQLiteManager"]
