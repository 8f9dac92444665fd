"""Source readers turning input files into Records."""

from .decoder import decode_record
from .readers import JsonlReader, ParquetReader, RecordSource, discover_files

__all__ = ["JsonlReader", "ParquetReader", "RecordSource", "decode_record", "discover_files"]
