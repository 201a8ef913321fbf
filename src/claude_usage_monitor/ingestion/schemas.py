"""Typed schemas used by the ingestion pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path


@dataclass(frozen=True)
class TokenUsage:
    """Token counters for one message or any sum of messages."""

    input_tokens: int = 0
    output_tokens: int = 0
    cache_read_tokens: int = 0
    cache_write_tokens: int = 0

    def __add__(self, other: "TokenUsage") -> "TokenUsage":
        """Return a new object with summed counters."""
        return TokenUsage(
            input_tokens=self.input_tokens + other.input_tokens,
            output_tokens=self.output_tokens + other.output_tokens,
            cache_read_tokens=self.cache_read_tokens + other.cache_read_tokens,
            cache_write_tokens=self.cache_write_tokens + other.cache_write_tokens,
        )

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens + self.cache_read_tokens + self.cache_write_tokens

    @property
    def is_empty(self) -> bool:
        return self.total_tokens == 0


@dataclass(frozen=True)
class Message:
    """One conversational turn parsed from a session log line."""

    role: str
    timestamp: datetime
    usage: TokenUsage
    model: str | None
    content: str | None
    line_number: int
    message_id: str | None = None
    request_id: str | None = None
    cwd: str | None = None


@dataclass(frozen=True)
class ParsedSessionLog:
    """Parser output for one session file, read up to its size at parse start."""

    messages: tuple[Message, ...]
    lines_read: int
    malformed_lines: int
    records_filtered: int
    bytes_read: int


@dataclass(frozen=True)
class DedupeResult:
    """Deduplication output and counters for one session."""

    messages: tuple[Message, ...]
    duplicate_messages_skipped: int


@dataclass(frozen=True)
class FileState:
    """Filesystem fingerprint used to decide whether a session log must be re-parsed."""

    size_bytes: int
    mtime_ns: int


@dataclass(frozen=True)
class Session:
    """One session log file and its parsed messages."""

    session_id: str
    project_id: str
    file_path: Path
    messages: tuple[Message, ...]
    started_at: datetime | None
    ended_at: datetime | None
    models: tuple[str, ...]
    malformed_lines: int
    duplicate_messages_skipped: int
    file_state: FileState

    @property
    def usage(self) -> TokenUsage:
        total = TokenUsage()
        for message in self.messages:
            total = total + message.usage
        return total

    @property
    def last_activity(self) -> datetime | None:
        return self.ended_at

    @property
    def last_cwd(self) -> str | None:
        """Return the most recently recorded working directory, if any."""
        for message in reversed(self.messages):
            if message.cwd:
                return message.cwd
        return None


@dataclass(frozen=True)
class Project:
    """One project directory under the session-log root."""

    identifier: str
    decoded_path: str
    path: Path | None
    orphaned: bool
    is_active: bool
    last_activity: datetime | None
    sessions: tuple[Session, ...]

    @property
    def session_ids(self) -> tuple[str, ...]:
        return tuple(session.session_id for session in self.sessions)

    @property
    def display_name(self) -> str:
        """Return the last path segment as the project display name."""
        source = str(self.path) if self.path is not None else self.decoded_path
        trimmed = source.rstrip("/")
        return trimmed.rsplit("/", 1)[-1] if trimmed else self.identifier

    @property
    def message_count(self) -> int:
        return sum(len(session.messages) for session in self.sessions)

    @property
    def most_recent_session(self) -> Session | None:
        return self.sessions[0] if self.sessions else None

    @property
    def fingerprint(self) -> tuple[tuple[str, int, int], ...]:
        """Return a hashable summary of every session file state."""
        return tuple(
            (session.session_id, session.file_state.size_bytes, session.file_state.mtime_ns)
            for session in sorted(self.sessions, key=lambda item: item.session_id)
        )


@dataclass
class ScanCounters:
    """Scan counters emitted by ProjectScanner.scan()."""

    directories_seen: int = 0
    projects_found: int = 0
    identifiers_skipped: int = 0
    sessions_parsed: int = 0
    sessions_reused: int = 0
    session_read_errors: int = 0
    malformed_lines: int = 0
    duplicate_messages_skipped: int = 0
    failed_files: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class ProjectScanStats:
    """Summary statistics over one scan result."""

    total_projects: int
    active_projects: int
    orphaned_projects: int
    total_sessions: int
    most_recent_activity: datetime | None
