"""Map decoded transaction documents onto Records."""

from __future__ import annotations

import base64
import binascii
import json
import math
import numbers
from decimal import Decimal
from typing import Any, Mapping, Sequence

from ..engine.record import Record, TxStatus, ValueFields
from ..errors import DecodeError

_SUCCESS_MARKERS = frozenset({"success", "succeeded", "ok", "true", "1", "confirmed", "finalized"})
_FAILURE_MARKERS = frozenset({"failed", "failure", "fail", "error", "false", "0", "reverted"})
AMOUNT_KEYS = ("value", "amount", "lamports")
PAYLOAD_TEXT_KEYS = ("payload", "memo")


def parse_status(document: Mapping[str, Any]) -> TxStatus:
    """Resolve the execution status of a transaction document.

    An explicit ``status`` field wins; Solana-style ``meta.err`` (or a
    top-level ``err``) is used otherwise: ``null`` means success.
    """

    if "status" in document:
        status = document["status"]
        if isinstance(status, bool):
            return TxStatus.SUCCESS if status else TxStatus.FAILED
        if isinstance(status, (int, float)):
            return TxStatus.SUCCESS if status == 1 else TxStatus.FAILED
        if isinstance(status, str):
            marker = status.strip().lower()
            if marker in _SUCCESS_MARKERS:
                return TxStatus.SUCCESS
            if marker in _FAILURE_MARKERS:
                return TxStatus.FAILED
        return TxStatus.UNKNOWN
    meta = document.get("meta")
    if isinstance(meta, Mapping) and "err" in meta:
        return TxStatus.SUCCESS if meta["err"] is None else TxStatus.FAILED
    if "err" in document:
        return TxStatus.SUCCESS if document["err"] is None else TxStatus.FAILED
    return TxStatus.UNKNOWN


def _to_number(value: Any, field: str) -> float | None:
    if value is None:
        return None
    if isinstance(value, bool):
        raise DecodeError(f"field {field!r} is boolean, expected a number")
    if isinstance(value, (numbers.Real, Decimal)):
        number = _checked_float(value, field)
    elif isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        try:
            parsed = int(text, 16) if text.lower().startswith("0x") else text
        except ValueError as exc:
            raise DecodeError(f"field {field!r} is not numeric: {value!r}") from exc
        number = _checked_float(parsed, field)
    else:
        raise DecodeError(f"field {field!r} has unsupported type {type(value).__name__}")
    if not math.isfinite(number):
        raise DecodeError(f"field {field!r} is out of range")
    return number


def _checked_float(value: Any, field: str) -> float:
    try:
        return float(value)
    except OverflowError as exc:
        raise DecodeError(f"field {field!r} is out of range") from exc
    except ValueError as exc:
        raise DecodeError(f"field {field!r} is not numeric") from exc


def _balance_delta(meta: Mapping[str, Any]) -> float | None:
    pre = meta.get("preBalances")
    post = meta.get("postBalances")
    if not isinstance(pre, Sequence) or not isinstance(post, Sequence) or isinstance(pre, str):
        return None
    deltas = []
    for before, after in zip(pre, post):
        start = _to_number(before, "preBalances")
        end = _to_number(after, "postBalances")
        if start is not None and end is not None:
            deltas.append(abs(end - start))
    return max(deltas) if deltas else None


def parse_value_fields(document: Mapping[str, Any]) -> ValueFields:
    amount = None
    for key in AMOUNT_KEYS:
        if key in document:
            amount = _to_number(document[key], key)
            break
    fee = _to_number(document.get("fee"), "fee")
    meta = document.get("meta")
    if isinstance(meta, Mapping):
        if fee is None:
            fee = _to_number(meta.get("fee"), "meta.fee")
        if amount is None:
            amount = _balance_delta(meta)
            if amount is not None and fee is not None:
                # the fee payer's balance change includes the fee itself
                amount = max(0.0, amount - fee)
    return ValueFields(amount=amount, fee=fee)


def _encode_text(value: str) -> bytes:
    return value.encode("utf-8", errors="surrogatepass")


def parse_payload(document: Mapping[str, Any]) -> bytes:
    """Extract the bytes that should be readable text."""

    for key in PAYLOAD_TEXT_KEYS:
        value = document.get(key)
        if isinstance(value, (bytes, bytearray)):
            return bytes(value)
        if isinstance(value, str):
            return _encode_text(value)
    if "payload_hex" in document:
        raw = str(document["payload_hex"]).strip()
        if raw[:2].lower() == "0x":
            raw = raw[2:]
        try:
            return bytes.fromhex(raw)
        except ValueError as exc:
            raise DecodeError("payload_hex is not valid hex") from exc
    if "payload_base64" in document:
        try:
            return base64.b64decode(str(document["payload_base64"]), validate=True)
        except (binascii.Error, ValueError) as exc:
            raise DecodeError("payload_base64 is not valid base64") from exc
    meta = document.get("meta")
    if isinstance(meta, Mapping):
        logs = meta.get("logMessages")
        if isinstance(logs, Sequence) and not isinstance(logs, str):
            return _encode_text("\n".join(str(line) for line in logs))
    return b""


def _json_default(value: Any) -> Any:
    if isinstance(value, (bytes, bytearray)):
        return bytes(value).hex()
    return str(value)


def document_bytes(document: Mapping[str, Any]) -> bytes:
    """Serialise a document that did not come from a text line (e.g. a Parquet row)."""

    return _encode_text(json.dumps(document, ensure_ascii=False, default=_json_default))


def decode_record(
    document: Any,
    raw_bytes: bytes | None = None,
    source: str | None = None,
) -> Record:
    """Build a Record from a decoded document, raising DecodeError when impossible."""

    if not isinstance(document, Mapping):
        raise DecodeError(f"expected an object, got {type(document).__name__}", source=source)
    try:
        status = parse_status(document)
        value_fields = parse_value_fields(document)
        payload = parse_payload(document)
    except DecodeError as exc:
        raise DecodeError(exc.reason, source=source) from exc
    return Record(
        raw_bytes=raw_bytes if raw_bytes is not None else document_bytes(document),
        status=status,
        payload=payload,
        value_fields=value_fields,
        document=document,
        source=source,
    )


__all__ = [
    "decode_record",
    "document_bytes",
    "parse_payload",
    "parse_status",
    "parse_value_fields",
]
