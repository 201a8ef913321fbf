"""Immutable engine output read by the display layer."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from enum import Enum

from model_pricing import PriceCatalog

from ..diagnostics import EngineWarning
from ..ingestion.schemas import Project, TokenUsage
from ..stats.analytics import (
    BurnRate,
    CacheEfficiency,
    HourlyUsage,
    ProjectUsageStats,
    SessionBlock,
    active_block,
    cache_efficiency,
    format_time_until,
    next_reset,
)
from ..stats.schemas import CostEstimate, DailyUsage, ModelUsage
from ..stats.service import find_day, model_totals
from ..tasks.schemas import ProjectTasks, ProjectTaskStats

EMPTY_TASKS = ProjectTasks(tasks=(), stats=ProjectTaskStats(), source="none")


class PricingStatus(str, Enum):
    FRESH = "fresh"
    STALE = "stale"
    UNAVAILABLE = "unavailable"


@dataclass(frozen=True)
class ProjectSummary:
    """One project with its priced usage, usage analytics and tasks."""

    project: Project
    daily_usage: tuple[DailyUsage, ...]
    tasks: ProjectTasks = EMPTY_TASKS
    usage_stats: ProjectUsageStats | None = None

    @property
    def usage(self) -> TokenUsage:
        total = TokenUsage()
        for day in self.daily_usage:
            total = total + day.usage
        return total

    @property
    def cost(self) -> CostEstimate:
        return CostEstimate.combine(model_usage.cost for day in self.daily_usage for model_usage in day.models)


@dataclass(frozen=True)
class Snapshot:
    """Everything the display needs, published atomically by the scheduler.

    `generation` strictly increases with each publication; generation 0 is
    the empty snapshot that exists before the first refresh completes.
    """

    generation: int
    created_at: datetime
    projects: tuple[ProjectSummary, ...] = ()
    daily_usage: tuple[DailyUsage, ...] = ()
    pricing: PriceCatalog | None = None
    pricing_status: PricingStatus = PricingStatus.UNAVAILABLE
    warnings: tuple[EngineWarning, ...] = ()
    local_date: date | None = None
    hourly_usage: tuple[HourlyUsage, ...] = ()
    session_blocks: tuple[SessionBlock, ...] = ()
    burn_rate: BurnRate | None = None

    @classmethod
    def empty(cls, created_at: datetime) -> "Snapshot":
        return cls(generation=0, created_at=created_at)

    @property
    def is_empty(self) -> bool:
        return self.generation == 0

    @property
    def today(self) -> DailyUsage | None:
        """Usage on the local calendar date the snapshot was built for."""
        if self.local_date is None:
            return None
        return find_day(self.daily_usage, self.local_date)

    @property
    def warning_count(self) -> int:
        return len(self.warnings)

    def model_totals(self) -> tuple[ModelUsage, ...]:
        return model_totals(self.daily_usage)

    def project(self, identifier: str) -> ProjectSummary | None:
        for summary in self.projects:
            if summary.project.identifier == identifier:
                return summary
        return None

    @property
    def active_block(self) -> SessionBlock | None:
        return active_block(self.session_blocks)

    @property
    def next_reset(self) -> datetime:
        """When the active 5-hour block ends, as seen at `created_at`."""
        return next_reset(self.session_blocks, self.created_at)

    def time_until_reset(self, now: datetime | None = None) -> str:
        return format_time_until(self.next_reset, now or self.created_at)

    @property
    def cache_efficiency(self) -> CacheEfficiency:
        return cache_efficiency(self.model_totals(), self.pricing)
