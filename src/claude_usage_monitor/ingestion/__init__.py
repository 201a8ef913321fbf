"""Ingestion pipeline for assistant session logs."""

from .parser import SessionLog, parse_session_log
from .path_codec import decode_path, encode_path
from .scanner import ProjectScanner, ScanResult

__all__ = [
    "ProjectScanner",
    "ScanResult",
    "SessionLog",
    "decode_path",
    "encode_path",
    "parse_session_log",
]
