"""Predicate chain deciding keep/drop for each record."""

from __future__ import annotations

from typing import Iterable, List, Optional, Protocol

from ..config import FilterConfig
from .record import Record, TxStatus, Verdict


class Filter(Protocol):
    """Predicate behaviour expected by the chain.

    ``check`` returns ``None`` when the record passes, otherwise the drop
    verdict. Implementations must be pure and must not mutate the record.
    """

    name: str

    def check(self, record: Record) -> Verdict | None:
        """Return a drop verdict or ``None`` to pass the record on."""


class StatusFilter:
    """Drop every transaction that did not execute successfully."""

    name = "status"

    def check(self, record: Record) -> Verdict | None:
        if record.status is not TxStatus.SUCCESS:
            return Verdict.DROPPED_FAILED
        return None


class DustFilter:
    """Drop low-value transfers and transfers whose fee dwarfs their value.

    Records without value information pass: the heuristic only applies to
    what the record actually reports.
    """

    name = "dust"

    def __init__(self, min_value: float = 0.0, max_fee_ratio: float | None = None) -> None:
        self.min_value = min_value
        self.max_fee_ratio = max_fee_ratio

    def check(self, record: Record) -> Verdict | None:
        fields = record.value_fields
        if self.min_value > 0 and fields.amount is not None and fields.amount < self.min_value:
            return Verdict.DROPPED_DUST
        if self.max_fee_ratio is not None:
            ratio = fields.fee_ratio
            if ratio is not None and ratio > self.max_fee_ratio:
                return Verdict.DROPPED_DUST
        return None


class EncodingFilter:
    """Drop records whose payload is not well-formed UTF-8 text."""

    name = "encoding"

    def __init__(self, strict: bool = True, allow_empty: bool = True) -> None:
        self.strict = strict
        self.allow_empty = allow_empty

    def check(self, record: Record) -> Verdict | None:
        payload = record.payload
        if not payload:
            return None if self.allow_empty else Verdict.DROPPED_MALFORMED
        try:
            text = payload.decode("utf-8")
        except UnicodeDecodeError:
            return Verdict.DROPPED_MALFORMED
        if self.strict and _has_forbidden_controls(text):
            return Verdict.DROPPED_MALFORMED
        return None


_ALLOWED_CONTROLS = frozenset("\t\n\r")


def _has_forbidden_controls(text: str) -> bool:
    for char in text:
        code = ord(char)
        if (code < 0x20 and char not in _ALLOWED_CONTROLS) or code == 0x7F:
            return True
    return False


class FilterChain:
    """Ordered, short-circuiting sequence of stateless predicates.

    The first predicate reporting a drop decides the verdict, so every
    record gets a single deterministic drop reason. The chain holds no
    mutable state and is shared read-only by all workers.
    """

    def __init__(self, filters: Optional[Iterable[Filter]] = None) -> None:
        self._filters: tuple[Filter, ...] = tuple(filters or ())

    @classmethod
    def from_config(cls, config: FilterConfig | None = None) -> "FilterChain":
        config = config or FilterConfig()
        return cls(
            [
                StatusFilter(),
                DustFilter(min_value=config.min_value, max_fee_ratio=config.max_fee_ratio),
                EncodingFilter(strict=config.strict_utf8, allow_empty=config.allow_empty_payload),
            ]
        )

    def with_filter(self, filter_: Filter) -> "FilterChain":
        """Return a new chain with ``filter_`` appended."""

        return FilterChain([*self._filters, filter_])

    @property
    def names(self) -> List[str]:
        return [f.name for f in self._filters]

    def evaluate(self, record: Record) -> Verdict:
        for predicate in self._filters:
            verdict = predicate.check(record)
            if verdict is not None:
                if verdict is Verdict.KEPT or verdict is Verdict.DROPPED_DUPLICATE:
                    raise ValueError(f"Filter {predicate.name!r} returned invalid verdict {verdict}")
                return verdict
        return Verdict.KEPT

    __call__ = evaluate

    def __len__(self) -> int:
        return len(self._filters)


__all__ = ["DustFilter", "EncodingFilter", "Filter", "FilterChain", "StatusFilter"]
