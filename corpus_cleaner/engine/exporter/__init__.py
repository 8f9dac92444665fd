"""Sink writer SPI and implementations."""

from .base import BaseExporter
from .file_exporter import JsonlExporter
from .sqlite_exporter import SQLiteExporter

__all__ = ["BaseExporter", "JsonlExporter", "SQLiteExporter"]
