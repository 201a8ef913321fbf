"""Custom exceptions for session-log ingestion failures."""


class MonitorError(Exception):
    """Base exception for usage monitor errors."""


class IngestionError(MonitorError):
    """Base exception for ingestion errors."""


class InvalidIdentifier(IngestionError):
    """Raised when a project directory name is not a valid encoded path."""


class MalformedRecord(IngestionError):
    """Raised when one session log line cannot be turned into a record."""


class ScanRootUnavailable(IngestionError):
    """Raised when the session-log root directory cannot be read."""


class SessionReadError(IngestionError):
    """Raised when one session log file cannot be opened or read."""
