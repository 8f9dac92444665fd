"""Record, verdict and fingerprint primitives."""

from __future__ import annotations

import hashlib
import json
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, Mapping, Sequence

from ..config.models import FingerprintConfig, HashAlgorithm


class TxStatus(str, Enum):
    """Execution outcome of a transaction."""

    SUCCESS = "success"
    FAILED = "failed"
    UNKNOWN = "unknown"


class Verdict(str, Enum):
    """Classification outcome assigned to a record exactly once."""

    KEPT = "kept"
    DROPPED_FAILED = "dropped_failed"
    DROPPED_DUST = "dropped_dust"
    DROPPED_MALFORMED = "dropped_malformed"
    DROPPED_DUPLICATE = "dropped_duplicate"

    @property
    def is_drop(self) -> bool:
        return self is not Verdict.KEPT


class Observation(str, Enum):
    """Result of ``ShardedDedupIndex.observe``."""

    FIRST_SEEN = "first_seen"
    DUPLICATE = "duplicate"


@dataclass(frozen=True, slots=True)
class ValueFields:
    """Numeric transfer fields used by the dust heuristics."""

    amount: float | None = None
    fee: float | None = None

    @property
    def fee_ratio(self) -> float | None:
        if self.fee is None or self.amount is None:
            return None
        if self.amount <= 0:
            return float("inf") if self.fee > 0 else 0.0
        return self.fee / self.amount


def _freeze(value: Any) -> Any:
    """Return a read-only copy: mappings become proxies and lists become tuples."""

    if isinstance(value, Mapping):
        return MappingProxyType({key: _freeze(item) for key, item in value.items()})
    if isinstance(value, (list, tuple)):
        return tuple(_freeze(item) for item in value)
    if isinstance(value, bytearray):
        return bytes(value)
    return value


@dataclass(frozen=True, slots=True)
class Record:
    """One decoded transaction-log entry. Immutable once constructed."""

    raw_bytes: bytes
    status: TxStatus
    payload: bytes
    value_fields: ValueFields = field(default_factory=ValueFields)
    document: Mapping[str, Any] = field(default_factory=dict)
    source: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "document", _freeze(self.document))

    @property
    def size(self) -> int:
        return len(self.raw_bytes)


@dataclass(frozen=True, slots=True)
class DecodeFailure:
    """An item the source reader could not turn into a Record."""

    source: str | None
    line: int | None
    reason: str
    size: int = 0


_MISSING = object()


def _lookup(document: Mapping[str, Any], dotted: str) -> Any:
    cursor: Any = document
    for part in dotted.split("."):
        if isinstance(cursor, Mapping) and part in cursor:
            cursor = cursor[part]
        elif isinstance(cursor, Sequence) and not isinstance(cursor, (str, bytes)) and part.isdigit():
            index = int(part)
            if index >= len(cursor):
                return _MISSING
            cursor = cursor[index]
        else:
            return _MISSING
    return cursor


def _canonical(value: Any) -> str:
    return json.dumps(value, sort_keys=True, separators=(",", ":"), ensure_ascii=False, default=_json_default)


def _json_default(value: Any) -> Any:
    if isinstance(value, (bytes, bytearray)):
        return value.hex()
    if isinstance(value, Mapping):
        return dict(value)
    # datetimes, decimals and other columnar scalars
    return str(value)


class FingerprintPolicy:
    """Derive deterministic fingerprints from a canonical subset of record fields.

    The fingerprint depends only on record content: configured field paths
    are looked up in the decoded document, serialised as canonical JSON and
    hashed. When none of the fields exist the whole document is used, so
    byte-identical re-ingested records still collapse.
    """

    def __init__(self, config: FingerprintConfig | None = None) -> None:
        self.config = config or FingerprintConfig()
        self.fields = tuple(self.config.fields)

    def canonicalize(self, record: Record) -> bytes:
        selected: dict[str, Any] = {}
        for path in self.fields:
            value = _lookup(record.document, path)
            if value is not _MISSING:
                selected[path] = value
        if not selected:
            selected = {"__document__": dict(record.document)} if record.document else {}
        if self.config.include_payload or not selected:
            selected["__payload__"] = record.payload.hex()
            if not record.document:
                selected["__raw__"] = record.raw_bytes.hex()
        return _canonical(selected).encode("utf-8")

    def fingerprint(self, record: Record) -> str:
        canonical = self.canonicalize(record)
        if self.config.algorithm is HashAlgorithm.BLAKE2B:
            return hashlib.blake2b(canonical, digest_size=32).hexdigest()
        return hashlib.sha256(canonical).hexdigest()

    __call__ = fingerprint


__all__ = [
    "DecodeFailure",
    "FingerprintPolicy",
    "Observation",
    "Record",
    "TxStatus",
    "ValueFields",
    "Verdict",
]
