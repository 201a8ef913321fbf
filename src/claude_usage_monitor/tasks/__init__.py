"""Task extraction from todo files and message markers."""

from .classifier import classify_line, extract_tasks, tokenize_line
from .schemas import ProjectTasks, ProjectTaskStats, SessionTodos, TaskItem, TaskPriority, TaskStatus, TodoIndex
from .todos import calculate_task_stats, load_session_todos, project_tasks, sort_tasks

__all__ = [
    "ProjectTaskStats",
    "ProjectTasks",
    "SessionTodos",
    "TaskItem",
    "TaskPriority",
    "TaskStatus",
    "TodoIndex",
    "calculate_task_stats",
    "classify_line",
    "extract_tasks",
    "load_session_todos",
    "project_tasks",
    "sort_tasks",
    "tokenize_line",
]
