"""Recovered-error records attached to published snapshots."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class WarningKind(str, Enum):
    """Kinds of recovered errors surfaced to the display layer."""

    INVALID_IDENTIFIER = "InvalidIdentifier"
    MALFORMED_RECORD = "MalformedRecord"
    SESSION_READ_ERROR = "SessionReadError"
    PRICING_UNAVAILABLE = "PricingUnavailable"
    PRICING_STALE = "PricingStale"
    NETWORK_TIMEOUT = "NetworkTimeout"
    TODO_FILE_ERROR = "TodoFileError"


@dataclass(frozen=True)
class EngineWarning:
    """One recovered error; `subject` names the file, project or model involved."""

    kind: WarningKind
    message: str
    subject: str | None = None

    def __str__(self) -> str:
        if self.subject:
            return f"{self.kind.value}: {self.subject}: {self.message}"
        return f"{self.kind.value}: {self.message}"
