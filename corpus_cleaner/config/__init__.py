"""Configuration package exports."""

from .loader import ConfigLocator, ConfigRepository
from .models import (
    DedupConfig,
    FilterConfig,
    FingerprintConfig,
    HashAlgorithm,
    OutputConfig,
    OutputFormat,
    RefineryConfig,
    SchedulerConfig,
)

__all__ = [
    "ConfigLocator",
    "ConfigRepository",
    "DedupConfig",
    "FilterConfig",
    "FingerprintConfig",
    "HashAlgorithm",
    "OutputConfig",
    "OutputFormat",
    "RefineryConfig",
    "SchedulerConfig",
]
