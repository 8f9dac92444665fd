"""Error taxonomy shared across the refinery."""

from __future__ import annotations

from pathlib import Path


class RefineryError(RuntimeError):
    """Base class for errors raised by the refinery."""


class ConfigurationError(RefineryError):
    """Invalid paths, thresholds or worker settings detected before the run starts."""


class DecodeError(RefineryError):
    """A single item could not be decoded into a Record.

    Per-record and recoverable: readers turn it into a ``DecodeFailure`` item
    and processing continues.
    """

    def __init__(self, reason: str, source: Path | str | None = None, line: int | None = None) -> None:
        self.reason = reason
        self.source = str(source) if source is not None else None
        self.line = line
        location = ""
        if self.source:
            location = f" ({self.source}" + (f":{line}" if line is not None else "") + ")"
        super().__init__(f"{reason}{location}")


class ResourceExhaustion(RefineryError):
    """The dedup index cannot grow any further without losing its guarantees."""


class SinkWriteError(RefineryError):
    """An output sink failed to persist or flush records."""

    def __init__(self, message: str, shard: int | None = None) -> None:
        self.shard = shard
        super().__init__(message if shard is None else f"shard {shard}: {message}")


__all__ = [
    "ConfigurationError",
    "DecodeError",
    "RefineryError",
    "ResourceExhaustion",
    "SinkWriteError",
]
