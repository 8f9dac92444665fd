"""Corpus cleaner: parallel filter/dedup refinery for transaction logs."""

__version__ = "1.0.0"

__all__ = ["__version__"]
