"""Typed schemas for task items and todo statistics."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum


class TaskStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"

    @property
    def display(self) -> str:
        return _STATUS_DISPLAY[self]

    @property
    def sort_rank(self) -> int:
        return _STATUS_RANK[self]


class TaskPriority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

    @property
    def display(self) -> str:
        return self.value.capitalize()

    @property
    def sort_rank(self) -> int:
        return _PRIORITY_RANK[self]


_STATUS_DISPLAY = {
    TaskStatus.PENDING: "Pending",
    TaskStatus.IN_PROGRESS: "In Progress",
    TaskStatus.COMPLETED: "Completed",
}
_STATUS_RANK = {TaskStatus.IN_PROGRESS: 0, TaskStatus.PENDING: 1, TaskStatus.COMPLETED: 2}
_PRIORITY_RANK = {TaskPriority.HIGH: 0, TaskPriority.MEDIUM: 1, TaskPriority.LOW: 2}


@dataclass(frozen=True)
class TaskItem:
    """One task, from a todo file or extracted from message text."""

    content: str
    status: TaskStatus = TaskStatus.PENDING
    priority: TaskPriority = TaskPriority.MEDIUM
    id: str = ""


@dataclass(frozen=True)
class SessionTodos:
    """Todo list written by one agent of one session."""

    session_id: str
    agent_id: str
    todos: tuple[TaskItem, ...]
    last_modified: datetime


@dataclass(frozen=True)
class ProjectTaskStats:
    """Task counters for one project."""

    total: int = 0
    completed: int = 0
    in_progress: int = 0
    pending: int = 0
    high_priority_remaining: int = 0

    @property
    def completion_percentage(self) -> float:
        return (self.completed / self.total) * 100.0 if self.total else 0.0


@dataclass(frozen=True)
class ProjectTasks:
    """Sorted tasks of a project plus where they came from."""

    tasks: tuple[TaskItem, ...]
    stats: ProjectTaskStats
    source: str
    session_id: str | None = None


@dataclass(frozen=True)
class TodoIndex:
    """Todo files found on disk, grouped by session id."""

    by_session: dict[str, tuple[SessionTodos, ...]]

    def __len__(self) -> int:
        return sum(len(todos) for todos in self.by_session.values())

    def latest_for_session(self, session_id: str) -> SessionTodos | None:
        """Return the most recently written todo list of a session, if any."""
        candidates = self.by_session.get(session_id, ())
        if not candidates:
            return None
        return max(candidates, key=lambda item: (item.last_modified, item.agent_id))
