"""Tests for streamed assistant message deduplication."""

from __future__ import annotations

from datetime import UTC, datetime

from claude_usage_monitor.ingestion.dedupe import dedupe_messages
from claude_usage_monitor.ingestion.schemas import Message, TokenUsage


def test_dedupe_keeps_first_record_per_message_and_request() -> None:
    """Streamed blocks repeating one message/request pair count once."""
    messages = [
        _message(line=1, message_id="msg_1", request_id="req_1", output_tokens=5),
        _message(line=2, message_id="msg_1", request_id="req_1", output_tokens=5),
        _message(line=3, message_id="msg_2", request_id="req_2", output_tokens=7),
        _message(line=4, message_id="msg_1", request_id="req_1", output_tokens=9),
    ]

    result = dedupe_messages(messages)

    assert [message.line_number for message in result.messages] == [1, 3]
    assert result.duplicate_messages_skipped == 2


def test_dedupe_never_merges_messages_without_ids() -> None:
    """Messages missing either id are always kept."""
    messages = [
        _message(line=1, message_id=None, request_id=None, output_tokens=1),
        _message(line=2, message_id=None, request_id=None, output_tokens=1),
        _message(line=3, message_id="msg_1", request_id=None, output_tokens=1),
        _message(line=4, message_id="msg_1", request_id=None, output_tokens=1),
    ]

    result = dedupe_messages(messages)

    assert len(result.messages) == 4
    assert result.duplicate_messages_skipped == 0


def test_same_message_id_with_different_request_is_kept() -> None:
    """A retried request is a separate billable call."""
    messages = [
        _message(line=1, message_id="msg_1", request_id="req_1", output_tokens=3),
        _message(line=2, message_id="msg_1", request_id="req_2", output_tokens=3),
    ]

    result = dedupe_messages(messages)

    assert len(result.messages) == 2


def _message(line: int, message_id: str | None, request_id: str | None, output_tokens: int) -> Message:
    return Message(
        role="assistant",
        timestamp=datetime(2026, 3, 1, 10, line, tzinfo=UTC),
        usage=TokenUsage(input_tokens=10, output_tokens=output_tokens),
        model="claude-sonnet-4",
        content=None,
        line_number=line,
        message_id=message_id,
        request_id=request_id,
    )
