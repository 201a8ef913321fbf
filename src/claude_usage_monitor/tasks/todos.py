"""Todo-file loading and per-project task statistics."""

from __future__ import annotations

import logging
from collections import defaultdict
from collections.abc import Iterable
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

import orjson

from ..diagnostics import EngineWarning, WarningKind
from ..ingestion.schemas import Project
from .classifier import extract_tasks
from .schemas import ProjectTasks, ProjectTaskStats, SessionTodos, TaskItem, TaskPriority, TaskStatus, TodoIndex

LOGGER = logging.getLogger(__name__)
AGENT_SEPARATOR = "-agent-"
EMPTY_TODO_INDEX = TodoIndex(by_session={})


class TodoFormatError(ValueError):
    """A todo file decoded as JSON but does not hold a list of todos."""


def load_session_todos(todos_dir: Path | None) -> tuple[TodoIndex, list[EngineWarning]]:
    """Read `<session>-agent-<agent>.json` todo files.

    A missing directory yields an empty index. Files that cannot be read or
    decoded, or whose top level is not a list of todos, are skipped and
    reported as warnings.
    """
    if todos_dir is None or not todos_dir.is_dir():
        return EMPTY_TODO_INDEX, []

    grouped: dict[str, list[SessionTodos]] = defaultdict(list)
    warnings: list[EngineWarning] = []
    for todo_file in sorted(todos_dir.glob("*.json")):
        session_id, separator, agent_id = todo_file.stem.partition(AGENT_SEPARATOR)
        if not separator or not session_id:
            continue
        try:
            last_modified = datetime.fromtimestamp(todo_file.stat().st_mtime, tz=UTC)
            with todo_file.open("rb") as handle:
                todos = _parse_todo_items(orjson.loads(handle.read()))
        except (OSError, orjson.JSONDecodeError, TodoFormatError) as exc:
            LOGGER.warning("Failed to parse todo file %s: %s", todo_file, exc)
            warnings.append(EngineWarning(WarningKind.TODO_FILE_ERROR, str(exc), subject=str(todo_file)))
            continue
        grouped[session_id].append(
            SessionTodos(
                session_id=session_id,
                agent_id=agent_id,
                todos=tuple(todos),
                last_modified=last_modified,
            )
        )

    return TodoIndex(by_session={key: tuple(value) for key, value in grouped.items()}), warnings


def sort_tasks(tasks: Iterable[TaskItem]) -> list[TaskItem]:
    """Sort by priority (High first), then status (In Progress, Pending, Completed)."""
    return sorted(tasks, key=lambda task: (task.priority.sort_rank, task.status.sort_rank))


def calculate_task_stats(tasks: Iterable[TaskItem]) -> ProjectTaskStats:
    total = completed = in_progress = pending = high_priority_remaining = 0
    for task in tasks:
        total += 1
        if task.status is TaskStatus.COMPLETED:
            completed += 1
        elif task.status is TaskStatus.IN_PROGRESS:
            in_progress += 1
        else:
            pending += 1
            if task.priority is TaskPriority.HIGH:
                high_priority_remaining += 1
    return ProjectTaskStats(
        total=total,
        completed=completed,
        in_progress=in_progress,
        pending=pending,
        high_priority_remaining=high_priority_remaining,
    )


def project_tasks(project: Project, todos: TodoIndex) -> ProjectTasks:
    """Collect the tasks of a project's most recent session.

    The session's todo file wins when present; otherwise tasks are extracted
    from the markers in its assistant messages, later mentions updating
    earlier ones.
    """
    session = project.most_recent_session
    if session is None:
        return ProjectTasks(tasks=(), stats=ProjectTaskStats(), source="none")

    session_todos = todos.latest_for_session(session.session_id)
    if session_todos is not None:
        tasks = sort_tasks(session_todos.todos)
        return ProjectTasks(
            tasks=tuple(tasks),
            stats=calculate_task_stats(tasks),
            source="todo-file",
            session_id=session.session_id,
        )

    extracted: dict[str, TaskItem] = {}
    for message in session.messages:
        if message.role != "assistant" or not message.content:
            continue
        for task in extract_tasks(message.content):
            previous = extracted.get(task.content)
            extracted[task.content] = task if previous is None else _with_id(task, previous.id)
    tasks = sort_tasks(extracted.values())
    return ProjectTasks(
        tasks=tuple(tasks),
        stats=calculate_task_stats(tasks),
        source="messages",
        session_id=session.session_id,
    )


def _parse_todo_items(data: Any) -> list[TaskItem]:
    items = data.get("todos", []) if isinstance(data, dict) else data
    if not isinstance(items, list):
        raise TodoFormatError(f"Expected a list of todos, got {type(items).__name__}.")
    parsed: list[TaskItem] = []
    for index, item in enumerate(items):
        if not isinstance(item, dict):
            continue
        content = str(item.get("content") or "").strip()
        if not content:
            continue
        parsed.append(
            TaskItem(
                content=content,
                status=_coerce_enum(TaskStatus, item.get("status"), TaskStatus.PENDING),
                priority=_coerce_enum(TaskPriority, item.get("priority"), TaskPriority.MEDIUM),
                id=str(item.get("id") or index),
            )
        )
    return parsed


def _coerce_enum(enum_type: Any, value: Any, default: Any) -> Any:
    if not isinstance(value, str):
        return default
    try:
        return enum_type(value.strip().lower())
    except ValueError:
        return default


def _with_id(task: TaskItem, task_id: str) -> TaskItem:
    return TaskItem(content=task.content, status=task.status, priority=task.priority, id=task_id)
