"""Rich rendering helpers for usage statistics and project listings."""

from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime

from rich.console import Console, Group
from rich.table import Table
from rich.text import Text

from ..ingestion.schemas import Project, TokenUsage
from ..tasks.schemas import ProjectTaskStats
from .analytics import BurnRate, CacheEfficiency, HourlyUsage, ProjectUsageStats
from .schemas import CostEstimate, DailyUsage, ModelUsage
from .service import model_totals

TABLE_ROW_STYLES = ["white", "yellow"]
UNKNOWN_COST_LABEL = "?"
STALE_COST_PREFIX = "~"


def render_daily_usage(daily: Sequence[DailyUsage], console: Console) -> None:
    """Render daily, daily-cost and overall-by-model tables."""
    if not daily:
        console.print("No token usage found in the session logs.")
        return
    console.print(build_usage_tables(daily))


def build_usage_tables(daily: Sequence[DailyUsage]) -> Group:
    daily_rows = [((day.date.isoformat(), model_usage.model), model_usage) for day in daily for model_usage in day.models]
    overall_rows = [((model_usage.model,), model_usage) for model_usage in model_totals(daily)]
    return Group(
        _build_usage_table("Daily Token Usage", daily_rows, show_date=True),
        Text(""),
        build_daily_cost_table(daily),
        Text(""),
        _build_usage_table("Overall Token Usage by Model", overall_rows, show_date=False),
    )


def build_daily_cost_table(daily: Sequence[DailyUsage]) -> Table:
    cost_table = Table(title="Daily Aggregated Costs", show_footer=True, title_justify="left")
    cost_table.add_column("Date", justify="left")
    cost_table.add_column("Cost ($)", justify="right", footer_style="bold")

    for index, day in enumerate(daily):
        style = TABLE_ROW_STYLES[index % len(TABLE_ROW_STYLES)]
        cost_table.add_row(day.date.isoformat(), format_day_cost(day), style=style)

    total_known = sum(day.known_cost for day in daily)
    has_unknown = any(day.has_unknown_cost for day in daily)
    has_stale = any(day.has_stale_cost for day in daily)
    cost_table.columns[1].footer = _format_partial_cost(total_known, has_unknown, has_stale)
    return cost_table


def build_hourly_table(hourly: Sequence[HourlyUsage]) -> Table:
    """Build the usage-by-hour table; hours without messages are left out."""
    table = Table(title="Usage by Hour", title_justify="left")
    table.add_column("Hour", justify="left")
    table.add_column("Messages", justify="right")
    table.add_column("Total Tokens", justify="right")
    table.add_column("Cost ($)", justify="right")

    busy = [hour for hour in hourly if hour.message_count]
    for index, hour in enumerate(busy):
        table.add_row(
            f"{hour.hour:02d}:00",
            str(hour.message_count),
            f"{hour.usage.total_tokens:,}",
            format_cost(hour.cost),
            style=TABLE_ROW_STYLES[index % len(TABLE_ROW_STYLES)],
        )
    return table


def build_project_usage_table(rows: Sequence[ProjectUsageStats]) -> Table:
    table = Table(title="Usage by Project", title_justify="left")
    table.add_column("Project", justify="left")
    table.add_column("Sessions", justify="right")
    table.add_column("Messages", justify="right")
    table.add_column("Total Tokens", justify="right")
    table.add_column("Cost ($)", justify="right")
    table.add_column("Top Model", justify="left")
    table.add_column("Avg Session", justify="right")
    table.add_column("Cache Hit", justify="right")

    for index, stats in enumerate(rows):
        table.add_row(
            stats.project_name,
            str(stats.session_count),
            str(stats.message_count),
            f"{stats.total_tokens:,}",
            format_cost(stats.cost),
            stats.most_used_model or "-",
            f"{stats.avg_session_minutes:.0f}m",
            f"{stats.cache_efficiency.hit_rate:.1f}%",
            style=TABLE_ROW_STYLES[index % len(TABLE_ROW_STYLES)],
        )
    return table


def build_projects_table(
    rows: Sequence[tuple[Project, ProjectTaskStats | None]],
    now: datetime | None = None,
) -> Table:
    """Build the project listing.

    Each row is `(project, task_stats_or_None)`.
    """
    table = Table(title="Projects", title_justify="left")
    table.add_column("Project", justify="left")
    table.add_column("Path", justify="left")
    table.add_column("Status", justify="left")
    table.add_column("Last Activity", justify="left")
    table.add_column("Sessions", justify="right")
    table.add_column("Messages", justify="right")
    table.add_column("Tasks", justify="right")

    for index, (project, task_stats) in enumerate(rows):
        style = TABLE_ROW_STYLES[index % len(TABLE_ROW_STYLES)]
        if project.orphaned:
            status = "orphaned"
        else:
            status = "active" if project.is_active else "idle"
        tasks = "-"
        if task_stats is not None and task_stats.total:
            tasks = f"{task_stats.completed}/{task_stats.total} ({task_stats.completion_percentage:.0f}%)"
        table.add_row(
            project.display_name,
            str(project.path) if project.path is not None else project.decoded_path,
            status,
            format_last_activity(project.last_activity, now),
            str(len(project.sessions)),
            str(project.message_count),
            tasks,
            style=style,
        )
    return table


def format_cost(cost: CostEstimate) -> str:
    """Format one cost; unknown is `?`, stale amounts are prefixed with `~`."""
    if cost.amount is None:
        return UNKNOWN_COST_LABEL
    prefix = STALE_COST_PREFIX if cost.stale else ""
    return f"{prefix}{cost.amount:,.6f}"


def format_burn_rate(rate: BurnRate | None) -> str:
    if rate is None:
        return "idle"
    return f"{rate.tokens_per_minute:,.0f} tok/min, ${format_cost(rate.cost_per_hour)}/h"


def format_cache_efficiency(efficiency: CacheEfficiency) -> str:
    return f"{efficiency.hit_rate:.1f}% hit, saved ${format_cost(efficiency.savings)}"


def format_day_cost(day: DailyUsage) -> str:
    return _format_partial_cost(day.known_cost, day.has_unknown_cost, day.has_stale_cost)


def format_last_activity(last_activity: datetime | None, now: datetime | None = None) -> str:
    if last_activity is None:
        return "never"
    local_time = last_activity.astimezone()
    if now is not None:
        age = now - last_activity
        if age.total_seconds() < 3600:
            return f"{max(int(age.total_seconds() // 60), 0)}m ago"
        if age.days < 1:
            return f"{int(age.total_seconds() // 3600)}h ago"
    return local_time.strftime("%Y-%m-%d %H:%M")


def _format_partial_cost(known: float, has_unknown: bool, stale: bool) -> str:
    if has_unknown and known == 0:
        return UNKNOWN_COST_LABEL
    prefix = STALE_COST_PREFIX if stale else ""
    suffix = f" + {UNKNOWN_COST_LABEL}" if has_unknown else ""
    return f"{prefix}{known:,.6f}{suffix}"


def _build_usage_table(title: str, data: list[tuple[tuple[str, ...], ModelUsage]], show_date: bool) -> Table:
    """Build one usage table with totals."""
    table = Table(
        title=title,
        show_footer=True,
        footer_style="bold",
        title_justify="left",
    )

    if show_date:
        table.add_column("Date", justify="left")
    table.add_column("Model", footer="Grand Total", justify="left")
    table.add_column("Messages", footer_style="bold", justify="right")
    table.add_column("Input Tokens", footer_style="bold", justify="right")
    table.add_column("Output Tokens", footer_style="bold", justify="right")
    table.add_column("Cache Read Tokens", footer_style="bold", justify="right")
    table.add_column("Cache Write Tokens", footer_style="bold", justify="right")
    table.add_column("Cost ($)", footer_style="bold", justify="right")
    table.add_column("Total Tokens", footer_style="bold", justify="right")

    total_usage = TokenUsage()
    total_messages = 0
    last_date: str | None = None
    style_index = 0

    for key, model_usage in data:
        usage = model_usage.usage
        total_usage = total_usage + usage
        total_messages += model_usage.message_count

        row_style: str | None = None
        if show_date:
            date_str = key[0]
            if last_date is not None and date_str != last_date:
                style_index = (style_index + 1) % len(TABLE_ROW_STYLES)
            last_date = date_str
            row_style = TABLE_ROW_STYLES[style_index]

        table.add_row(
            *key,
            str(model_usage.message_count),
            f"{usage.input_tokens:,}",
            f"{usage.output_tokens:,}",
            f"{usage.cache_read_tokens:,}",
            f"{usage.cache_write_tokens:,}",
            format_cost(model_usage.cost),
            f"{usage.total_tokens:,}",
            style=row_style,
        )

    costs = [model_usage.cost for _, model_usage in data]
    total_known = sum(cost.amount or 0.0 for cost in costs)
    has_unknown = any(not cost.is_known for cost in costs)
    has_stale = any(cost.stale for cost in costs)

    col_offset = 1 if show_date else 0
    table.columns[1 + col_offset].footer = str(total_messages)
    table.columns[2 + col_offset].footer = f"{total_usage.input_tokens:,}"
    table.columns[3 + col_offset].footer = f"{total_usage.output_tokens:,}"
    table.columns[4 + col_offset].footer = f"{total_usage.cache_read_tokens:,}"
    table.columns[5 + col_offset].footer = f"{total_usage.cache_write_tokens:,}"
    table.columns[6 + col_offset].footer = _format_partial_cost(total_known, has_unknown, has_stale)
    table.columns[7 + col_offset].footer = f"{total_usage.total_tokens:,}"
    return table
