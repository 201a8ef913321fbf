"""Tests for task-marker tokenizing and classification."""

from __future__ import annotations

import pytest

from claude_usage_monitor.tasks.classifier import TokenKind, classify_line, extract_tasks, tokenize_line
from claude_usage_monitor.tasks.schemas import TaskPriority, TaskStatus


def test_tokenize_line_types_each_token() -> None:
    """Bullets, checkboxes, words and priority tags become typed tokens."""
    tokens = tokenize_line("- [x] Ship the parser (high)")

    assert [token.kind for token in tokens] == [
        TokenKind.BULLET,
        TokenKind.CHECKBOX,
        TokenKind.TEXT,
        TokenKind.TEXT,
        TokenKind.TEXT,
        TokenKind.PRIORITY,
    ]
    assert [token.offset for token in tokens[:2]] == [0, 2]
    assert tokens[-1].text == "(high)"


def test_tokenize_line_recognises_keywords_and_status_words() -> None:
    """Task keywords and bracketed status words are not plain text."""
    tokens = tokenize_line("FIXME: (wip) flaky timer !low")

    assert [(token.kind, token.text) for token in tokens] == [
        (TokenKind.KEYWORD, "FIXME:"),
        (TokenKind.STATUS, "(wip)"),
        (TokenKind.TEXT, "flaky"),
        (TokenKind.TEXT, "timer"),
        (TokenKind.PRIORITY, "!low"),
    ]


@pytest.mark.parametrize(
    ("line", "content", "status", "priority"),
    [
        ("- [ ] Write parser tests", "Write parser tests", TaskStatus.PENDING, TaskPriority.MEDIUM),
        ("- [x] Ship it (high)", "Ship it", TaskStatus.COMPLETED, TaskPriority.HIGH),
        ("* [X] Ship it", "Ship it", TaskStatus.COMPLETED, TaskPriority.MEDIUM),
        ("* [~] Refactor scanner", "Refactor scanner", TaskStatus.IN_PROGRESS, TaskPriority.MEDIUM),
        ("1. [-] Wire the scheduler [P2]", "Wire the scheduler", TaskStatus.IN_PROGRESS, TaskPriority.LOW),
        ("TODO: fix cache [P0]", "fix cache", TaskStatus.PENDING, TaskPriority.HIGH),
        ("FIXME: (wip) flaky timer !low", "flaky timer", TaskStatus.IN_PROGRESS, TaskPriority.LOW),
        ("DONE: release notes", "release notes", TaskStatus.COMPLETED, TaskPriority.MEDIUM),
        ("- [ ] Rotate keys !!", "Rotate keys", TaskStatus.PENDING, TaskPriority.HIGH),
        ("- [ ] [done] Old item", "Old item", TaskStatus.COMPLETED, TaskPriority.MEDIUM),
    ],
)
def test_classify_line(line: str, content: str, status: TaskStatus, priority: TaskPriority) -> None:
    """Marked lines become tasks with status and priority from their markers."""
    task = classify_line(line)

    assert task is not None
    assert task.content == content
    assert task.status is status
    assert task.priority is priority


@pytest.mark.parametrize(
    "line",
    [
        "Just a regular sentence about the parser.",
        "- a bullet without a checkbox",
        "- [ ] ",
        "TODO:",
        "",
    ],
)
def test_unmarked_or_empty_lines_are_not_tasks(line: str) -> None:
    """Ordinary text and markers without words are ignored."""
    assert classify_line(line) is None


def test_extract_tasks_keeps_first_position_and_latest_status() -> None:
    """A task mentioned twice keeps its first id and takes the later status."""
    text = "\n".join(
        [
            "Plan:",
            "- [ ] Add scanner",
            "- [ ] Add parser",
            "Progress:",
            "- [x] Add scanner",
        ]
    )

    tasks = extract_tasks(text)

    assert [(task.id, task.content, task.status) for task in tasks] == [
        ("line-2", "Add scanner", TaskStatus.COMPLETED),
        ("line-3", "Add parser", TaskStatus.PENDING),
    ]
