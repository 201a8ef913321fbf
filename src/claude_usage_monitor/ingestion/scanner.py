"""Project discovery over the session-log root directory."""

from __future__ import annotations

import logging
import os
import threading
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from pathlib import Path

from ..diagnostics import EngineWarning, WarningKind
from .dedupe import dedupe_messages
from .errors import InvalidIdentifier, ScanRootUnavailable
from .parser import parse_session_log
from .path_codec import decode_path
from .schemas import FileState, Project, ProjectScanStats, ScanCounters, Session

LOGGER = logging.getLogger(__name__)
SESSION_FILE_SUFFIX = ".jsonl"
DEFAULT_ACTIVITY_WINDOW = timedelta(hours=24)


@dataclass(frozen=True)
class ScanResult:
    """Projects found by one scan, in display order, plus recovered warnings."""

    projects: tuple[Project, ...]
    warnings: tuple[EngineWarning, ...]
    counters: ScanCounters
    scanned_at: datetime

    def active_projects(self) -> tuple[Project, ...]:
        return tuple(project for project in self.projects if project.is_active)

    def find(self, pattern: str) -> tuple[Project, ...]:
        """Return projects whose identifier, name or path contains `pattern` (case-insensitive)."""
        needle = pattern.lower()
        matches = []
        for project in self.projects:
            haystacks = [project.identifier, project.display_name, project.decoded_path]
            if project.path is not None:
                haystacks.append(str(project.path))
            if any(needle in haystack.lower() for haystack in haystacks):
                matches.append(project)
        return tuple(matches)

    def stats(self) -> ProjectScanStats:
        activities = [project.last_activity for project in self.projects if project.last_activity is not None]
        return ProjectScanStats(
            total_projects=len(self.projects),
            active_projects=sum(1 for project in self.projects if project.is_active),
            orphaned_projects=sum(1 for project in self.projects if project.orphaned),
            total_sessions=sum(len(project.sessions) for project in self.projects),
            most_recent_activity=max(activities) if activities else None,
        )


class ProjectScanner:
    """Walks the session-log root and groups session files into projects.

    Parsed sessions are remembered by file fingerprint (size, mtime) so that an
    unchanged file is not re-read on the next scan. The remembered set is
    replaced wholesale at the end of every scan.
    """

    def __init__(
        self,
        root: Path,
        clock: Callable[[], datetime] | None = None,
        activity_window: timedelta = DEFAULT_ACTIVITY_WINDOW,
    ) -> None:
        self._root = root
        self._clock = clock or (lambda: datetime.now(UTC))
        self._activity_window = activity_window
        self._file_cache: dict[Path, Session] = {}
        self._lock = threading.Lock()

    @property
    def root(self) -> Path:
        return self._root

    def scan(self) -> ScanResult:
        """Scan the root directory and return every project found.

        Raises:
            ScanRootUnavailable: If the root directory is missing or unreadable.
        """
        with self._lock:
            return self._scan()

    def _scan(self) -> ScanResult:
        now = self._clock()
        counters = ScanCounters()
        warnings: list[EngineWarning] = []
        next_cache: dict[Path, Session] = {}
        projects: list[Project] = []

        for project_dir in _list_project_dirs(self._root):
            counters.directories_seen += 1
            identifier = project_dir.name
            try:
                decoded_path = decode_path(identifier)
            except InvalidIdentifier as exc:
                counters.identifiers_skipped += 1
                warnings.append(EngineWarning(WarningKind.INVALID_IDENTIFIER, str(exc), subject=identifier))
                LOGGER.warning("Skipping project directory %s: %s", project_dir, exc)
                continue

            try:
                session_files = _list_session_files(project_dir)
            except OSError as exc:
                warnings.append(EngineWarning(WarningKind.SESSION_READ_ERROR, str(exc), subject=str(project_dir)))
                LOGGER.warning("Failed listing project directory %s: %s", project_dir, exc)
                continue
            if not session_files:
                continue

            sessions = []
            for session_file in session_files:
                session = self._load_session(identifier, session_file, counters, warnings)
                if session is not None:
                    next_cache[session_file] = session
                    sessions.append(session)

            projects.append(self._build_project(identifier, decoded_path, sessions, session_files, now))

        self._file_cache = next_cache
        projects.sort(key=_project_sort_key)
        counters.projects_found = len(projects)

        LOGGER.info(
            "Scanned %s: %d projects, %d sessions parsed, %d reused, %d malformed lines",
            self._root,
            counters.projects_found,
            counters.sessions_parsed,
            counters.sessions_reused,
            counters.malformed_lines,
        )
        return ScanResult(projects=tuple(projects), warnings=tuple(warnings), counters=counters, scanned_at=now)

    def _load_session(
        self,
        identifier: str,
        session_file: Path,
        counters: ScanCounters,
        warnings: list[EngineWarning],
    ) -> Session | None:
        try:
            file_state = _build_file_state(session_file)
            previous = self._file_cache.get(session_file)
            if previous is not None and previous.file_state == file_state:
                counters.sessions_reused += 1
                session = previous
            else:
                session = _parse_session(identifier, session_file, file_state)
                counters.sessions_parsed += 1
        except OSError as exc:
            counters.session_read_errors += 1
            counters.failed_files.append(str(session_file))
            warnings.append(EngineWarning(WarningKind.SESSION_READ_ERROR, str(exc), subject=str(session_file)))
            LOGGER.warning("Failed reading session log %s: %s", session_file, exc)
            return None

        counters.malformed_lines += session.malformed_lines
        counters.duplicate_messages_skipped += session.duplicate_messages_skipped
        if session.malformed_lines:
            warnings.append(
                EngineWarning(
                    WarningKind.MALFORMED_RECORD,
                    f"{session.malformed_lines} malformed line(s) skipped",
                    subject=str(session_file),
                )
            )
        return session

    def _build_project(
        self,
        identifier: str,
        decoded_path: str,
        sessions: list[Session],
        session_files: list[Path],
        now: datetime,
    ) -> Project:
        sessions.sort(key=lambda session: (_recency_key(session.last_activity), session.session_id))
        resolved_path = _resolve_project_path(decoded_path, sessions)
        threshold = now - self._activity_window
        is_active = any(
            session.last_activity is not None and session.last_activity >= threshold for session in sessions
        )

        activities = [session.last_activity for session in sessions if session.last_activity is not None]
        if activities:
            last_activity = max(activities)
        else:
            last_activity = _newest_mtime(sessions, session_files)

        return Project(
            identifier=identifier,
            decoded_path=decoded_path,
            path=resolved_path,
            orphaned=resolved_path is None,
            is_active=is_active,
            last_activity=last_activity,
            sessions=tuple(sessions),
        )


def _list_project_dirs(root: Path) -> list[Path]:
    """List immediate subdirectories of the root in name order."""
    if not root.is_dir():
        raise ScanRootUnavailable(f"Session-log root is not a directory: {root}")
    try:
        with os.scandir(root) as entries:
            return sorted(Path(entry.path) for entry in entries if entry.is_dir())
    except OSError as exc:
        raise ScanRootUnavailable(f"Session-log root is unreadable: {root}: {exc}") from exc


def _list_session_files(project_dir: Path) -> list[Path]:
    with os.scandir(project_dir) as entries:
        return sorted(
            Path(entry.path) for entry in entries if entry.is_file() and entry.name.endswith(SESSION_FILE_SUFFIX)
        )


def _build_file_state(session_file: Path) -> FileState:
    """Build file state from filesystem metadata."""
    stat_result = session_file.stat()
    return FileState(size_bytes=stat_result.st_size, mtime_ns=stat_result.st_mtime_ns)


def _parse_session(identifier: str, session_file: Path, file_state: FileState) -> Session:
    parsed = parse_session_log(session_file)
    dedupe_result = dedupe_messages(parsed.messages)
    messages = dedupe_result.messages
    timestamps = [message.timestamp for message in messages]
    models = sorted({message.model for message in messages if message.model is not None})
    return Session(
        session_id=session_file.stem,
        project_id=identifier,
        file_path=session_file,
        messages=messages,
        started_at=min(timestamps) if timestamps else None,
        ended_at=max(timestamps) if timestamps else None,
        models=tuple(models),
        malformed_lines=parsed.malformed_lines,
        duplicate_messages_skipped=dedupe_result.duplicate_messages_skipped,
        file_state=file_state,
    )


def _resolve_project_path(decoded_path: str, sessions: list[Session]) -> Path | None:
    """Return the decoded path if it exists, else the latest recorded cwd if that exists."""
    decoded = Path(decoded_path)
    if decoded.exists():
        return decoded
    for session in sessions:
        cwd = session.last_cwd
        if cwd and Path(cwd).exists():
            return Path(cwd)
    return None


def _newest_mtime(sessions: list[Session], session_files: list[Path]) -> datetime | None:
    mtimes = [session.file_state.mtime_ns for session in sessions]
    if not mtimes:
        for session_file in session_files:
            try:
                mtimes.append(session_file.stat().st_mtime_ns)
            except OSError:
                continue
    if not mtimes:
        return None
    return datetime.fromtimestamp(max(mtimes) / 1_000_000_000, tz=UTC)


def _recency_key(moment: datetime | None) -> tuple[int, float]:
    """Sort key placing recent moments first and missing moments last."""
    if moment is None:
        return (1, 0.0)
    return (0, -moment.timestamp())


def _project_sort_key(project: Project) -> tuple[int, tuple[int, float], str]:
    return (0 if project.is_active else 1, _recency_key(project.last_activity), project.identifier)
