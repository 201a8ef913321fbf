"""Deduplication of streamed assistant records within one session."""

from __future__ import annotations

import logging
from collections.abc import Iterable

from .schemas import DedupeResult, Message

LOGGER = logging.getLogger(__name__)


def dedupe_messages(messages: Iterable[Message]) -> DedupeResult:
    """Keep the first message for each (message_id, request_id) pair.

    The assistant tool writes one record per streamed content block, each
    repeating the same usage payload. Messages missing either id are kept.
    """
    seen: dict[tuple[str, str], Message] = {}
    kept: list[Message] = []
    duplicate_messages_skipped = 0

    for message in messages:
        if message.message_id is None or message.request_id is None:
            kept.append(message)
            continue

        key = (message.message_id, message.request_id)
        existing = seen.get(key)
        if existing is None:
            seen[key] = message
            kept.append(message)
            continue

        if existing.usage != message.usage:
            LOGGER.debug(
                "Duplicate message %s at line %d carries different usage than line %d; keeping the first.",
                message.message_id,
                message.line_number,
                existing.line_number,
            )
        duplicate_messages_skipped += 1

    return DedupeResult(messages=tuple(kept), duplicate_messages_skipped=duplicate_messages_skipped)
