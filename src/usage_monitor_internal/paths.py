"""Shared path utilities for claude-usage-monitor."""

from __future__ import annotations

import os
from pathlib import Path

APP_DIR_NAME = "claude-usage-monitor"


def get_claude_home() -> Path:
    """Return the assistant's home directory (`~/.claude`)."""
    claude_home = os.environ.get("CLAUDE_HOME")
    if claude_home:
        return Path(claude_home).expanduser()
    return Path("~/.claude").expanduser()


def get_default_projects_root() -> Path:
    """Return the session-log root, honoring `CLAUDE_PROJECTS_DIR` when set."""
    projects_dir = os.environ.get("CLAUDE_PROJECTS_DIR")
    if projects_dir:
        return Path(projects_dir).expanduser()
    return get_claude_home() / "projects"


def get_default_todos_dir() -> Path:
    """Return the todo-file directory, honoring `CLAUDE_TODOS_DIR` when set."""
    todos_dir = os.environ.get("CLAUDE_TODOS_DIR")
    if todos_dir:
        return Path(todos_dir).expanduser()
    return get_claude_home() / "todos"


def get_default_price_cache_path() -> Path:
    """Return the default pricing cache path following XDG conventions."""
    xdg_cache_home = os.environ.get("XDG_CACHE_HOME")
    if xdg_cache_home:
        base_cache_dir = Path(xdg_cache_home).expanduser()
    else:
        base_cache_dir = Path("~/.cache").expanduser()
    return base_cache_dir / APP_DIR_NAME / "pricing_catalog.json"
