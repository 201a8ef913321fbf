"""CLI entrypoints for the assistant usage monitor."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from datetime import UTC, datetime
from pathlib import Path
from zoneinfo import ZoneInfo

import typer
from rich.console import Console, Group
from rich.live import Live
from rich.text import Text

from model_pricing import PricingConfig
from usage_monitor_internal.paths import get_default_projects_root, get_default_todos_dir

from .diagnostics import EngineWarning
from .engine.config import DEFAULT_HISTORY_DAYS, DEFAULT_REFRESH_INTERVAL, EngineConfig, parse_timezone
from .engine.scheduler import RefreshScheduler
from .engine.snapshot import PricingStatus, Snapshot
from .ingestion.errors import ScanRootUnavailable
from .ingestion.scanner import ProjectScanner
from .stats.render import (
    build_hourly_table,
    build_project_usage_table,
    build_projects_table,
    build_usage_tables,
    format_burn_rate,
    format_cache_efficiency,
    format_day_cost,
    render_daily_usage,
)
from .tasks.todos import load_session_todos, project_tasks

LOGGER = logging.getLogger(__name__)
DEFAULT_PROJECTS_ROOT = get_default_projects_root()
DEFAULT_TODOS_DIR = get_default_todos_dir()

TYPER_APP = typer.Typer(help="Usage, cost and task monitor for assistant session logs.")


@TYPER_APP.callback()
def main() -> None:
    """Root CLI callback."""


@TYPER_APP.command("projects")
def projects_command(
    root: Path = typer.Option(DEFAULT_PROJECTS_ROOT, "--root", "-r", help="Session-log root directory."),
    todos_dir: Path = typer.Option(DEFAULT_TODOS_DIR, "--todos-dir", help="Todo-file directory."),
    search: str | None = typer.Option(None, "--search", "-s", help="Only list projects matching this text."),
    active_only: bool = typer.Option(False, "--active", help="Only list projects active in the last 24 hours."),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable info-level logging."),
) -> None:
    """Scan the session-log root once and list projects."""
    _configure_logging(verbose)
    try:
        result = ProjectScanner(root).scan()
    except ScanRootUnavailable as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from exc

    projects = result.find(search) if search else result.projects
    if active_only:
        projects = tuple(project for project in projects if project.is_active)
    if not projects:
        typer.echo("No projects found.")
        return

    todo_index, _ = load_session_todos(todos_dir)
    rows = [(project, project_tasks(project, todo_index).stats) for project in projects]
    console = Console()
    console.print(build_projects_table(rows, now=datetime.now(UTC)))

    stats = result.stats()
    typer.echo(
        f"\n{stats.total_projects} projects, {stats.active_projects} active, "
        f"{stats.orphaned_projects} orphaned, {stats.total_sessions} sessions."
    )
    _emit_warnings(result.warnings)


@TYPER_APP.command("stats")
def stats_command(
    root: Path = typer.Option(DEFAULT_PROJECTS_ROOT, "--root", "-r", help="Session-log root directory."),
    timezone: str | None = typer.Option(
        None,
        "--timezone",
        "-tz",
        help="Timezone to use for daily stats (e.g., 'UTC', 'America/New_York'). Defaults to local system time.",
    ),
    days: int = typer.Option(DEFAULT_HISTORY_DAYS, "--days", "-d", min=1, help="Number of most recent days to show."),
    project: str | None = typer.Option(None, "--project", "-p", help="Only show usage of projects matching this text."),
    offline: bool = typer.Option(False, "--offline", help="Do not fetch pricing; use the disk cache only."),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable info-level logging."),
) -> None:
    """Aggregate and print daily token usage and costs."""
    _configure_logging(verbose)
    config = _build_config(root=root, timezone=timezone, days=days, offline=offline)
    scheduler = RefreshScheduler(config)
    try:
        snapshot = scheduler.refresh()
    except ScanRootUnavailable as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from exc

    console = Console()
    if project:
        needle = project.lower()
        matches = [
            summary
            for summary in snapshot.projects
            if needle in summary.project.identifier.lower() or needle in summary.project.display_name.lower()
        ]
        if not matches:
            raise typer.BadParameter(f"No project matches {project!r}.")
        for summary in matches:
            console.print(Text(summary.project.display_name, style="bold"))
            render_daily_usage(summary.daily_usage, console)
    else:
        render_daily_usage(snapshot.daily_usage, console)
        if snapshot.daily_usage:
            project_stats = [summary.usage_stats for summary in snapshot.projects if summary.usage_stats is not None]
            console.print(Text(""))
            console.print(build_project_usage_table(project_stats))
            console.print(Text(""))
            console.print(build_hourly_table(snapshot.hourly_usage))

    typer.echo(f"\nPricing: {_describe_pricing(snapshot)}")
    _emit_warnings(snapshot.warnings)


@TYPER_APP.command("watch")
def watch_command(
    root: Path = typer.Option(DEFAULT_PROJECTS_ROOT, "--root", "-r", help="Session-log root directory."),
    interval: float = typer.Option(
        DEFAULT_REFRESH_INTERVAL,
        "--interval",
        "-i",
        min=2,
        max=60,
        help="Seconds between refreshes.",
    ),
    timezone: str | None = typer.Option(None, "--timezone", "-tz", help="Timezone to use for daily stats."),
    days: int = typer.Option(DEFAULT_HISTORY_DAYS, "--days", "-d", min=1, help="Number of most recent days to show."),
    offline: bool = typer.Option(False, "--offline", help="Do not fetch pricing; use the disk cache only."),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable info-level logging."),
) -> None:
    """Keep refreshing in the background and redraw on every new snapshot."""
    _configure_logging(verbose)
    config = _build_config(root=root, timezone=timezone, days=days, offline=offline, refresh_interval=interval)
    scheduler = RefreshScheduler(config)
    console = Console()
    scheduler.start()
    try:
        with Live(build_dashboard(scheduler.snapshot), console=console, refresh_per_second=4) as live:
            generation = 0
            while True:
                snapshot = scheduler.wait_for_update(generation, timeout=0.5)
                if snapshot is not None:
                    generation = snapshot.generation
                live.update(build_dashboard(scheduler.snapshot, last_error=scheduler.last_error))
    except KeyboardInterrupt:
        LOGGER.info("Interrupted; stopping refresh loop.")
    finally:
        scheduler.stop(timeout=1.0)


def build_dashboard(snapshot: Snapshot, last_error: Exception | None = None) -> Group:
    """Build the watch view for one snapshot."""
    if snapshot.is_empty:
        if last_error is not None:
            return Group(Text(f"Refresh failed: {last_error}", style="red"))
        return Group(Text("Loading session logs...", style="dim"))

    header = Text(f"Refresh #{snapshot.generation} at {snapshot.created_at.astimezone():%H:%M:%S}", style="bold")
    today = snapshot.today
    if today is not None:
        header.append(f" | today: {today.usage.total_tokens:,} tokens, ${format_day_cost(today)}")
    header.append(f" | pricing: {_describe_pricing(snapshot)}")
    if snapshot.warning_count:
        header.append(f" | {snapshot.warning_count} warnings", style="yellow")
    insights = Text(f"Block resets in {snapshot.time_until_reset(datetime.now(UTC))}", style="cyan")
    insights.append(f" | burn: {format_burn_rate(snapshot.burn_rate)}")
    insights.append(f" | cache: {format_cache_efficiency(snapshot.cache_efficiency)}")
    parts = [header, insights]
    if last_error is not None:
        parts.append(Text(f"Last refresh failed: {last_error}", style="red"))

    rows = [(summary.project, summary.tasks.stats) for summary in snapshot.projects]
    if rows:
        parts.append(build_projects_table(rows, now=snapshot.created_at))
    if snapshot.daily_usage:
        parts.append(build_usage_tables(snapshot.daily_usage))
    return Group(*parts)


def _build_config(
    root: Path,
    timezone: str | None,
    days: int,
    offline: bool,
    refresh_interval: float = DEFAULT_REFRESH_INTERVAL,
) -> EngineConfig:
    try:
        return EngineConfig(
            projects_root=root,
            refresh_interval=refresh_interval,
            timezone=_parse_timezone(timezone),
            history_days=days,
            pricing=PricingConfig(offline=offline),
        )
    except ValueError as exc:
        raise typer.BadParameter(str(exc)) from exc


def _configure_logging(verbose: bool) -> None:
    level = logging.INFO if verbose else logging.WARNING
    logging.basicConfig(
        level=level,
        format="[%(asctime)s][%(levelname)s][%(name)s] %(message)s",
    )


def _describe_pricing(snapshot: Snapshot) -> str:
    if snapshot.pricing is None or snapshot.pricing_status is PricingStatus.UNAVAILABLE:
        return "unavailable (costs shown as ?)"
    fetched = f"{snapshot.pricing.fetched_at:%Y-%m-%d %H:%M} UTC"
    if snapshot.pricing_status is PricingStatus.STALE:
        return f"stale, fetched {fetched} (costs marked ~)"
    return f"{len(snapshot.pricing)} models, fetched {fetched}"


def _emit_warnings(warnings: Sequence[EngineWarning]) -> None:
    if not warnings:
        return
    typer.echo(f"\nWarnings ({len(warnings)}):", err=True)
    for warning in warnings:
        typer.echo(f"  {warning}", err=True)


def _parse_timezone(timezone: str | None) -> ZoneInfo | None:
    """Parse timezone option into a ZoneInfo instance."""
    if timezone is None:
        return None
    try:
        return parse_timezone(timezone)
    except ValueError as exc:
        raise typer.BadParameter(str(exc)) from exc


def module_cli_entry_point() -> None:
    TYPER_APP()
