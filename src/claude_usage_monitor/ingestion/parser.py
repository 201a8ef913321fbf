"""Parsing helpers for session log files."""

from __future__ import annotations

import logging
import os
from collections.abc import Iterator
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

import orjson

from .errors import MalformedRecord
from .schemas import Message, ParsedSessionLog, TokenUsage

LOGGER = logging.getLogger(__name__)

CONVERSATIONAL_RECORD_TYPES = frozenset({"user", "assistant"})


@dataclass
class _ParseCounters:
    lines_read: int = 0
    malformed_lines: int = 0
    records_filtered: int = 0
    bytes_read: int = 0


class SessionLog:
    """Lazy, restartable view over the messages of one session log file.

    Each iteration reopens the file and stops at the size observed when the
    iteration started, so a file that is still being appended to never blocks
    the reader. Counters of the most recent iteration are kept on the object.
    """

    def __init__(self, path: Path) -> None:
        self._path = path
        self._counters = _ParseCounters()

    @property
    def path(self) -> Path:
        return self._path

    @property
    def malformed_lines(self) -> int:
        return self._counters.malformed_lines

    def __iter__(self) -> Iterator[Message]:
        counters = _ParseCounters()
        self._counters = counters
        return self._iter_messages(counters)

    def parse(self) -> ParsedSessionLog:
        """Read the whole file (up to its current size) into a materialised result."""
        counters = _ParseCounters()
        self._counters = counters
        messages = tuple(self._iter_messages(counters))
        return ParsedSessionLog(
            messages=messages,
            lines_read=counters.lines_read,
            malformed_lines=counters.malformed_lines,
            records_filtered=counters.records_filtered,
            bytes_read=counters.bytes_read,
        )

    def _iter_messages(self, counters: _ParseCounters) -> Iterator[Message]:
        for line_number, record in _iter_json_records(self._path, counters):
            try:
                message = parse_record(record, line_number)
            except MalformedRecord as exc:
                counters.malformed_lines += 1
                LOGGER.debug("Skipping record in %s: %s", self._path, exc)
                continue
            if message is None:
                counters.records_filtered += 1
                continue
            yield message


def parse_session_log(path: Path) -> ParsedSessionLog:
    """Parse one session log file and return its messages with line counters."""
    parsed = SessionLog(path).parse()
    LOGGER.debug(
        "Parsed session log %s: %d lines, %d messages, %d malformed, %d filtered",
        path,
        parsed.lines_read,
        len(parsed.messages),
        parsed.malformed_lines,
        parsed.records_filtered,
    )
    return parsed


def parse_record(record: dict[str, Any], line_number: int) -> Message | None:
    """Turn one decoded JSON record into a Message, or None for non-conversational records.

    Raises:
        MalformedRecord: If a conversational record lacks a usable timestamp.
    """
    record_type = record.get("type")
    if record_type not in CONVERSATIONAL_RECORD_TYPES:
        return None
    message = record.get("message")
    if not isinstance(message, dict):
        return None

    timestamp = _parse_timestamp(record.get("timestamp"), line_number)
    role = message.get("role")
    model = message.get("model")
    message_id = message.get("id")
    request_id = record.get("requestId")
    cwd = record.get("cwd")

    return Message(
        role=role if isinstance(role, str) else record_type,
        timestamp=timestamp,
        usage=_extract_usage(message.get("usage")),
        model=model if isinstance(model, str) and model else None,
        content=_extract_text(message.get("content")),
        line_number=line_number,
        message_id=message_id if isinstance(message_id, str) else None,
        request_id=request_id if isinstance(request_id, str) else None,
        cwd=cwd if isinstance(cwd, str) and cwd else None,
    )


def _iter_json_records(path: Path, counters: _ParseCounters) -> Iterator[tuple[int, dict[str, Any]]]:
    """Yield decoded JSON objects with line numbers, skipping malformed lines."""
    with path.open("rb") as handle:
        size_limit = os.fstat(handle.fileno()).st_size
        offset = 0
        for line_number, raw_line in enumerate(handle, start=1):
            if offset + len(raw_line) > size_limit:
                break
            offset += len(raw_line)
            counters.bytes_read = offset
            if not raw_line.strip():
                continue
            counters.lines_read += 1
            complete = raw_line.endswith(b"\n")
            try:
                payload = orjson.loads(raw_line)
            except orjson.JSONDecodeError as exc:
                if not complete:
                    # Writer is mid-append; the line is picked up on the next pass.
                    counters.lines_read -= 1
                    counters.bytes_read = offset - len(raw_line)
                    break
                counters.malformed_lines += 1
                LOGGER.debug("Malformed JSON in %s at line %d: %s", path, line_number, exc)
                continue
            if not isinstance(payload, dict):
                counters.malformed_lines += 1
                LOGGER.debug(
                    "Expected JSON object in %s at line %d, got %s.", path, line_number, type(payload).__name__
                )
                continue
            yield line_number, payload


def _extract_usage(raw_usage: Any) -> TokenUsage:
    """Extract token counters; absent or invalid values count as zero."""
    if not isinstance(raw_usage, dict):
        return TokenUsage()
    return TokenUsage(
        input_tokens=_as_token_count(raw_usage.get("input_tokens")),
        output_tokens=_as_token_count(raw_usage.get("output_tokens")),
        cache_read_tokens=_as_token_count(raw_usage.get("cache_read_input_tokens")),
        cache_write_tokens=_as_token_count(raw_usage.get("cache_creation_input_tokens")),
    )


def _as_token_count(value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        return 0
    return max(value, 0)


def _extract_text(content: Any) -> str | None:
    """Flatten string content or text blocks into plain text."""
    if isinstance(content, str):
        return content or None
    if not isinstance(content, list):
        return None
    texts = [
        block["text"]
        for block in content
        if isinstance(block, dict) and block.get("type") == "text" and isinstance(block.get("text"), str)
    ]
    joined = "\n".join(text for text in texts if text)
    return joined or None


def _parse_timestamp(value: Any, line_number: int) -> datetime:
    """Parse a required RFC3339-style timestamp into an aware datetime."""
    if not isinstance(value, str):
        raise MalformedRecord(f"Missing or invalid timestamp at line {line_number}.")

    normalized = value.replace("Z", "+00:00")
    try:
        parsed = datetime.fromisoformat(normalized)
    except ValueError as exc:
        raise MalformedRecord(f"Invalid timestamp '{value}' at line {line_number}.") from exc

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed
