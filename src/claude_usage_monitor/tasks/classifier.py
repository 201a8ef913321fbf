"""Tokenizer and classifier for free-text task markers in message content.

A line is scanned into typed tokens:

    - [x] Ship the parser (high)
    BULLET CHECKBOX TEXT TEXT TEXT PRIORITY

and classified as a task when it carries a checkbox or a task keyword.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum

from .schemas import TaskItem, TaskPriority, TaskStatus


class TokenKind(str, Enum):
    BULLET = "bullet"
    CHECKBOX = "checkbox"
    KEYWORD = "keyword"
    PRIORITY = "priority"
    STATUS = "status"
    TEXT = "text"


@dataclass(frozen=True)
class Token:
    kind: TokenKind
    text: str
    offset: int


_STATUS_WORDS = r"in[ _-]progress|wip|done|completed|pending"
# Alternation order matters: earlier kinds win at the same position.
_TOKEN_PATTERNS: tuple[tuple[str, str], ...] = (
    ("CHECKBOX", r"\[[ xX~-]\]"),
    ("PRIORITY", r"(?i:\((?:high|medium|low)\)|\[P[0-2]\]|!(?:high|medium|low)\b)|!{2,}"),
    ("KEYWORD", r"\b(?:TODO|FIXME|HACK|XXX|DONE)\b:?"),
    ("STATUS", rf"(?i:[\[(](?:{_STATUS_WORDS})[\])]|\b(?:{_STATUS_WORDS}):)"),
    ("TEXT", r"\S+"),
    ("SPACE", r"\s+"),
)
_TOKEN_RE = re.compile("|".join(f"(?P<{name}>{pattern})" for name, pattern in _TOKEN_PATTERNS))
_BULLET_RE = re.compile(r"\s*(?:[-*+\u2022]|\d+[.)])(?=\s)")

_CHECKBOX_STATUS = {
    " ": TaskStatus.PENDING,
    "x": TaskStatus.COMPLETED,
    "-": TaskStatus.IN_PROGRESS,
    "~": TaskStatus.IN_PROGRESS,
}
_PRIORITY_TAGS = {
    "high": TaskPriority.HIGH,
    "p0": TaskPriority.HIGH,
    "medium": TaskPriority.MEDIUM,
    "p1": TaskPriority.MEDIUM,
    "low": TaskPriority.LOW,
    "p2": TaskPriority.LOW,
}


def tokenize_line(line: str) -> list[Token]:
    """Split one line into typed tokens; whitespace is dropped."""
    tokens: list[Token] = []
    position = 0
    bullet = _BULLET_RE.match(line)
    if bullet is not None:
        tokens.append(Token(TokenKind.BULLET, bullet.group().strip(), bullet.start()))
        position = bullet.end()

    for match in _TOKEN_RE.finditer(line, position):
        if match.lastgroup == "SPACE":
            continue
        tokens.append(Token(TokenKind[match.lastgroup], match.group(), match.start()))
    return tokens


def classify_line(line: str) -> TaskItem | None:
    """Return the task a line describes, or None for ordinary text."""
    tokens = tokenize_line(line)
    status: TaskStatus | None = None
    explicit_status: TaskStatus | None = None
    priority = TaskPriority.MEDIUM
    words: list[str] = []

    for token in tokens:
        if token.kind is TokenKind.CHECKBOX:
            status = _CHECKBOX_STATUS[token.text[1].lower()]
        elif token.kind is TokenKind.KEYWORD:
            keyword_status = TaskStatus.COMPLETED if token.text.startswith("DONE") else TaskStatus.PENDING
            status = status or keyword_status
        elif token.kind is TokenKind.STATUS:
            explicit_status = _parse_status_word(token.text)
        elif token.kind is TokenKind.PRIORITY:
            priority = _parse_priority(token.text)
        elif token.kind is TokenKind.TEXT:
            words.append(token.text)

    if status is None or not words:
        return None
    return TaskItem(content=" ".join(words), status=explicit_status or status, priority=priority)


def extract_tasks(text: str) -> list[TaskItem]:
    """Extract tasks from a block of text, one per marked line.

    Repeated task text keeps its first position but takes the latest status.
    """
    found: dict[str, TaskItem] = {}
    for line_number, line in enumerate(text.splitlines(), start=1):
        task = classify_line(line)
        if task is None:
            continue
        previous = found.get(task.content)
        task_id = previous.id if previous is not None else f"line-{line_number}"
        found[task.content] = TaskItem(content=task.content, status=task.status, priority=task.priority, id=task_id)
    return list(found.values())


def _parse_status_word(text: str) -> TaskStatus:
    word = text.strip("[]():").lower().replace("_", " ").replace("-", " ")
    if word in {"in progress", "wip"}:
        return TaskStatus.IN_PROGRESS
    if word in {"done", "completed"}:
        return TaskStatus.COMPLETED
    return TaskStatus.PENDING


def _parse_priority(text: str) -> TaskPriority:
    if text.startswith("!!"):
        return TaskPriority.HIGH
    return _PRIORITY_TAGS[text.strip("[]()!").lower()]
