"""Engine configuration."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from datetime import date, timedelta
from pathlib import Path
from typing import Any
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from model_pricing import PricingConfig
from usage_monitor_internal.paths import get_default_projects_root, get_default_todos_dir

MIN_REFRESH_INTERVAL = 2.0
MAX_REFRESH_INTERVAL = 60.0
DEFAULT_REFRESH_INTERVAL = 5.0
DEFAULT_HISTORY_DAYS = 30


@dataclass(frozen=True)
class EngineConfig:
    """Configuration for the background refresh engine.

    Attributes:
        projects_root: Directory holding one sub-directory per project.
        refresh_interval: Seconds between background refresh cycles (2-60).
        scan_ttl: Seconds a directory scan result may be reused.
        timezone: Zone used for calendar-day buckets; `None` uses local system time.
        history_days: Number of most recent days to aggregate; `None` keeps all history.
        todos_dir: Directory holding todo files; `None` disables task loading.
        pricing: Pricing catalog fetch and cache settings.
    """

    projects_root: Path = field(default_factory=get_default_projects_root)
    refresh_interval: float = DEFAULT_REFRESH_INTERVAL
    scan_ttl: float = 1.0
    timezone: ZoneInfo | None = None
    history_days: int | None = DEFAULT_HISTORY_DAYS
    todos_dir: Path | None = field(default_factory=get_default_todos_dir)
    pricing: PricingConfig = field(default_factory=PricingConfig)

    def __post_init__(self) -> None:
        if not MIN_REFRESH_INTERVAL <= self.refresh_interval <= MAX_REFRESH_INTERVAL:
            raise ValueError(
                f"refresh_interval must be between {MIN_REFRESH_INTERVAL:g} and "
                f"{MAX_REFRESH_INTERVAL:g} seconds, got {self.refresh_interval!r}."
            )
        if self.scan_ttl < 0:
            raise ValueError(f"scan_ttl must not be negative, got {self.scan_ttl!r}.")
        if self.history_days is not None and self.history_days < 1:
            raise ValueError(f"history_days must be at least 1, got {self.history_days!r}.")

    @classmethod
    def from_env(cls, **overrides: Any) -> "EngineConfig":
        """Build a config from `USAGE_MONITOR_*` environment variables, then apply overrides.

        Raises:
            ValueError: If an environment value cannot be parsed or is out of range.
        """
        values: dict[str, Any] = {}
        refresh_interval = os.environ.get("USAGE_MONITOR_REFRESH_INTERVAL")
        if refresh_interval:
            values["refresh_interval"] = _parse_float("USAGE_MONITOR_REFRESH_INTERVAL", refresh_interval)
        timezone = os.environ.get("USAGE_MONITOR_TIMEZONE")
        if timezone:
            values["timezone"] = parse_timezone(timezone)
        history_days = os.environ.get("USAGE_MONITOR_HISTORY_DAYS")
        if history_days:
            values["history_days"] = _parse_int("USAGE_MONITOR_HISTORY_DAYS", history_days)
        values.update(overrides)
        return cls(**values)

    def history_start(self, today: date) -> date | None:
        """Return the first day inside the history window ending on `today`."""
        if self.history_days is None:
            return None
        return today - timedelta(days=self.history_days - 1)


def parse_timezone(name: str) -> ZoneInfo:
    """Parse an IANA zone name.

    Raises:
        ValueError: If the zone is unknown.
    """
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise ValueError(f"Invalid timezone: {name}.") from exc


def _parse_float(name: str, raw: str) -> float:
    try:
        return float(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be a number, got {raw!r}.") from exc


def _parse_int(name: str, raw: str) -> int:
    try:
        return int(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be an integer, got {raw!r}.") from exc
