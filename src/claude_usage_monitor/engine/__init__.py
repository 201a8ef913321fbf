"""Background refresh engine and the snapshots it publishes."""

from .config import EngineConfig
from .scheduler import RefreshScheduler, SchedulerState
from .snapshot import PricingStatus, ProjectSummary, Snapshot

__all__ = [
    "EngineConfig",
    "PricingStatus",
    "ProjectSummary",
    "RefreshScheduler",
    "SchedulerState",
    "Snapshot",
]
