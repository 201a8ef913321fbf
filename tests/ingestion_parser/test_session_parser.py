"""Tests for session log parsing."""

from __future__ import annotations

from datetime import UTC, datetime
from pathlib import Path
from typing import Any

import orjson
import pytest

from claude_usage_monitor.ingestion.errors import MalformedRecord
from claude_usage_monitor.ingestion.parser import SessionLog, parse_record, parse_session_log
from claude_usage_monitor.ingestion.schemas import TokenUsage


def test_parse_session_log_skips_malformed_line_and_keeps_the_rest(tmp_path: Path) -> None:
    """Three valid records and one broken line yield three messages and one malformed count."""
    log_path = tmp_path / "session.jsonl"
    with log_path.open("wb") as handle:
        handle.write(orjson.dumps(_assistant_record("2026-03-01T10:00:00Z", input_tokens=10, output_tokens=5)) + b"\n")
        handle.write(b'{"type": "assistant", "message": \n')
        handle.write(orjson.dumps(_user_record("2026-03-01T10:01:00Z", "hello")) + b"\n")
        handle.write(orjson.dumps(_assistant_record("2026-03-01T10:02:00Z", input_tokens=3, output_tokens=7)) + b"\n")

    parsed = parse_session_log(log_path)

    assert len(parsed.messages) == 3
    assert parsed.malformed_lines == 1
    assert parsed.lines_read == 4
    assert [message.role for message in parsed.messages] == ["assistant", "user", "assistant"]
    assert parsed.messages[0].usage == TokenUsage(input_tokens=10, output_tokens=5)


def test_parse_session_log_is_idempotent(tmp_path: Path) -> None:
    """Re-parsing an unchanged file yields an equal message sequence."""
    log_path = tmp_path / "session.jsonl"
    _write_jsonl(
        log_path,
        [
            _user_record("2026-03-01T10:00:00Z", "- [ ] write tests"),
            _assistant_record("2026-03-01T10:00:05Z", input_tokens=100, output_tokens=20, cache_read=50),
        ],
    )

    first = parse_session_log(log_path)
    second = parse_session_log(log_path)

    assert first == second


def test_session_log_is_restartable(tmp_path: Path) -> None:
    """Each iteration reopens the file and yields the same messages."""
    log_path = tmp_path / "session.jsonl"
    _write_jsonl(log_path, [_assistant_record("2026-03-01T10:00:00Z", input_tokens=1, output_tokens=2)])
    log = SessionLog(log_path)

    assert list(log) == list(log)
    assert len(list(log)) == 1


def test_trailing_partial_line_is_not_counted(tmp_path: Path) -> None:
    """A final line without newline that does not parse is an in-progress append."""
    log_path = tmp_path / "session.jsonl"
    complete = orjson.dumps(_assistant_record("2026-03-01T10:00:00Z", input_tokens=1, output_tokens=1)) + b"\n"
    log_path.write_bytes(complete + b'{"type": "assist')

    parsed = parse_session_log(log_path)

    assert len(parsed.messages) == 1
    assert parsed.malformed_lines == 0
    assert parsed.bytes_read == len(complete)


def test_non_conversational_records_are_filtered(tmp_path: Path) -> None:
    """Summaries and metadata records yield no message and no malformed count."""
    log_path = tmp_path / "session.jsonl"
    _write_jsonl(
        log_path,
        [
            {"type": "summary", "summary": "Refactor", "leafUuid": "abc"},
            {"type": "file-history-snapshot", "snapshot": {}},
            _user_record("2026-03-01T10:00:00Z", "hi"),
        ],
    )

    parsed = parse_session_log(log_path)

    assert len(parsed.messages) == 1
    assert parsed.records_filtered == 2
    assert parsed.malformed_lines == 0


def test_non_object_json_line_is_malformed(tmp_path: Path) -> None:
    """Valid JSON that is not an object counts as malformed."""
    log_path = tmp_path / "session.jsonl"
    log_path.write_bytes(b"[1, 2, 3]\n" + orjson.dumps(_user_record("2026-03-01T10:00:00Z", "hi")) + b"\n")

    parsed = parse_session_log(log_path)

    assert parsed.malformed_lines == 1
    assert len(parsed.messages) == 1


def test_parse_record_extracts_usage_model_and_ids() -> None:
    """Assistant usage maps cache fields and carries message and request ids."""
    record = _assistant_record("2026-03-01T10:00:00Z", input_tokens=12, output_tokens=4, cache_read=30, cache_write=8)

    message = parse_record(record, line_number=7)

    assert message is not None
    assert message.timestamp == datetime(2026, 3, 1, 10, 0, tzinfo=UTC)
    assert message.usage == TokenUsage(input_tokens=12, output_tokens=4, cache_read_tokens=30, cache_write_tokens=8)
    assert message.model == "claude-sonnet-4-20250514"
    assert message.message_id == "msg_1"
    assert message.request_id == "req_1"
    assert message.cwd == "/home/wiz/project"
    assert message.line_number == 7
    assert message.content == "Done."


def test_parse_record_zeroes_invalid_and_negative_counts() -> None:
    """Absent, non-integer and negative token counts become zero."""
    record = _assistant_record("2026-03-01T10:00:00Z", input_tokens=-5, output_tokens=3)
    record["message"]["usage"]["cache_read_input_tokens"] = "12"
    record["message"]["usage"]["cache_creation_input_tokens"] = True

    message = parse_record(record, line_number=1)

    assert message is not None
    assert message.usage == TokenUsage(output_tokens=3)


@pytest.mark.parametrize("timestamp", [None, "", "yesterday", 1700000000])
def test_parse_record_rejects_bad_timestamp(timestamp: Any) -> None:
    """Conversational records need a parseable timestamp."""
    record = _user_record("2026-03-01T10:00:00Z", "hi")
    record["timestamp"] = timestamp

    with pytest.raises(MalformedRecord):
        parse_record(record, line_number=1)


def test_parse_record_flattens_text_blocks() -> None:
    """Only text blocks contribute to message content."""
    record = _user_record("2026-03-01T10:00:00Z", "")
    record["message"]["content"] = [
        {"type": "text", "text": "first"},
        {"type": "tool_result", "content": "ignored"},
        {"type": "text", "text": "second"},
    ]

    message = parse_record(record, line_number=1)

    assert message is not None
    assert message.content == "first\nsecond"
    assert message.usage.is_empty


def _assistant_record(
    timestamp: str,
    input_tokens: int,
    output_tokens: int,
    cache_read: int = 0,
    cache_write: int = 0,
) -> dict[str, Any]:
    return {
        "type": "assistant",
        "timestamp": timestamp,
        "requestId": "req_1",
        "cwd": "/home/wiz/project",
        "message": {
            "id": "msg_1",
            "role": "assistant",
            "model": "claude-sonnet-4-20250514",
            "content": [{"type": "text", "text": "Done."}],
            "usage": {
                "input_tokens": input_tokens,
                "output_tokens": output_tokens,
                "cache_read_input_tokens": cache_read,
                "cache_creation_input_tokens": cache_write,
            },
        },
    }


def _user_record(timestamp: str, text: str) -> dict[str, Any]:
    return {
        "type": "user",
        "timestamp": timestamp,
        "cwd": "/home/wiz/project",
        "message": {"role": "user", "content": text},
    }


def _write_jsonl(path: Path, records: list[dict[str, Any]]) -> None:
    with path.open("wb") as handle:
        for record in records:
            handle.write(orjson.dumps(record))
            handle.write(b"\n")
