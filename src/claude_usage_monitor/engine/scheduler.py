"""Background refresh loop that publishes immutable snapshots."""

from __future__ import annotations

import itertools
import logging
import math
import threading
from collections.abc import Callable, Hashable
from datetime import UTC, datetime
from enum import Enum
from functools import reduce

from model_pricing import NetworkTimeout, PriceCatalog, PricingError, PricingResolver
from usage_monitor_internal.cache import CacheStore

from ..diagnostics import EngineWarning, WarningKind
from ..ingestion.scanner import ProjectScanner, ScanResult
from ..ingestion.schemas import Project
from ..stats.analytics import burn_rate, hourly_usage, project_usage_stats, session_blocks
from ..stats.schemas import UsageAggregate
from ..stats.service import UsageCalculator, local_today
from ..tasks.schemas import TodoIndex
from ..tasks.todos import load_session_todos, project_tasks
from .config import EngineConfig
from .snapshot import PricingStatus, ProjectSummary, Snapshot

LOGGER = logging.getLogger(__name__)
CYCLE_KEY = ("refresh-cycle",)
SCAN_KEY_PREFIX = "scan"
USAGE_KEY_PREFIX = "usage"
TODOS_KEY_PREFIX = "todos"


class SchedulerState(str, Enum):
    IDLE = "idle"
    REFRESHING = "refreshing"
    STOPPED = "stopped"


class RefreshScheduler:
    """Keeps a Snapshot fresh from a single background thread.

    The display layer reads `snapshot` (never blocks on I/O), triggers manual
    refreshes with `request_refresh()` and learns about new data through
    `subscribe()` or `wait_for_update()`. Overlapping refreshes collapse into a
    single cycle. A cycle that cannot scan the root publishes nothing, so the
    previous snapshot stays visible.
    """

    def __init__(
        self,
        config: EngineConfig | None = None,
        scanner: ProjectScanner | None = None,
        calculator: UsageCalculator | None = None,
        pricing: PricingResolver | None = None,
        cache: CacheStore | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._config = config or EngineConfig()
        self._clock = clock or (lambda: datetime.now(UTC))
        self._cache = cache or CacheStore()
        self._scanner = scanner or ProjectScanner(self._config.projects_root, clock=self._clock)
        self._calculator = calculator
        self._pricing = pricing or PricingResolver(self._config.pricing, cache=self._cache)

        self._condition = threading.Condition()
        self._snapshot = Snapshot.empty(self._clock())
        self._generations = itertools.count(1)
        self._state = SchedulerState.IDLE
        self._last_error: Exception | None = None
        self._subscribers: list[Callable[[Snapshot], None]] = []
        self._stop_event = threading.Event()
        self._wake_event = threading.Event()
        self._thread: threading.Thread | None = None

    @property
    def config(self) -> EngineConfig:
        return self._config

    @property
    def snapshot(self) -> Snapshot:
        with self._condition:
            return self._snapshot

    @property
    def state(self) -> SchedulerState:
        with self._condition:
            return self._state

    @property
    def last_error(self) -> Exception | None:
        with self._condition:
            return self._last_error

    def start(self) -> None:
        """Start the background refresh thread; a no-op when already running."""
        with self._condition:
            if self._state is SchedulerState.STOPPED:
                raise RuntimeError("Scheduler has been stopped.")
            if self._thread is not None and self._thread.is_alive():
                return
            self._thread = threading.Thread(target=self._run_loop, name="usage-refresh", daemon=True)
            self._thread.start()
        LOGGER.info("Refresh loop started (interval %.1fs).", self._config.refresh_interval)

    def stop(self, timeout: float | None = None) -> None:
        """Stop the loop; a cycle still running is abandoned after `timeout` seconds."""
        with self._condition:
            self._state = SchedulerState.STOPPED
            thread = self._thread
            self._condition.notify_all()
        self._stop_event.set()
        self._wake_event.set()
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout)
        LOGGER.info("Refresh loop stopped.")

    def request_refresh(self) -> None:
        """Ask the background loop for an immediate cycle without waiting for it."""
        self._cache.invalidate(self._scan_key())
        self._wake_event.set()

    def refresh(self, force: bool = False) -> Snapshot:
        """Run one refresh cycle synchronously and return the latest snapshot.

        With `force`, cached scan, usage and pricing results are dropped first.

        Raises:
            ScanRootUnavailable: If the projects root cannot be read; the
                previous snapshot is kept.
            RuntimeError: If the scheduler has been stopped.
        """
        if self.state is SchedulerState.STOPPED:
            raise RuntimeError("Scheduler has been stopped.")
        if force:
            self._invalidate_all()

        try:
            self._cache.get_or_compute(CYCLE_KEY, 0, self._run_cycle)
        except Exception as exc:
            with self._condition:
                self._last_error = exc
            LOGGER.error("Refresh failed: %s", exc)
            raise

        with self._condition:
            self._last_error = None
            return self._snapshot

    def subscribe(self, callback: Callable[[Snapshot], None]) -> Callable[[], None]:
        """Call `callback` with every newly published snapshot; returns an unsubscribe function."""
        with self._condition:
            self._subscribers.append(callback)

        def unsubscribe() -> None:
            with self._condition:
                if callback in self._subscribers:
                    self._subscribers.remove(callback)

        return unsubscribe

    def wait_for_update(self, after_generation: int, timeout: float | None = None) -> Snapshot | None:
        """Block until a snapshot newer than `after_generation` exists, or time out."""
        with self._condition:
            published = self._condition.wait_for(
                lambda: self._snapshot.generation > after_generation or self._state is SchedulerState.STOPPED,
                timeout,
            )
            if not published or self._snapshot.generation <= after_generation:
                return None
            return self._snapshot

    def _run_loop(self) -> None:
        while not self._stop_event.is_set():
            try:
                self.refresh()
            except Exception:
                # Already recorded in last_error; keep the loop alive.
                LOGGER.debug("Background refresh cycle failed.", exc_info=True)
            self._wake_event.wait(self._config.refresh_interval)
            self._wake_event.clear()

    def _run_cycle(self) -> Snapshot:
        self._set_state(SchedulerState.REFRESHING)
        try:
            return self._build_and_publish()
        finally:
            self._set_state(SchedulerState.IDLE)

    def _build_and_publish(self) -> Snapshot:
        now = self._clock()
        today = local_today(self._config.timezone, now)
        calculator = self._calculator or UsageCalculator(
            timezone=self._config.timezone,
            since=self._config.history_start(today),
        )

        scan: ScanResult = self._cache.get_or_compute(self._scan_key(), self._config.scan_ttl, self._scanner.scan)
        warnings: list[EngineWarning] = list(scan.warnings)

        aggregates = self._fold_projects(scan, calculator)
        total = reduce(UsageAggregate.merge, aggregates.values(), UsageAggregate())

        catalog, pricing_status, pricing_warnings = self._resolve_pricing()
        warnings.extend(pricing_warnings)
        if catalog is not None:
            warnings.extend(
                EngineWarning(WarningKind.PRICING_UNAVAILABLE, "No pricing entry for model.", subject=model)
                for model in sorted({model for _, model in total.buckets})
                if catalog.lookup(model) is None
            )

        todo_index, todo_warnings = self._cache.get_or_compute(
            (TODOS_KEY_PREFIX, str(self._config.todos_dir)),
            self._config.scan_ttl,
            lambda: load_session_todos(self._config.todos_dir),
        )
        warnings.extend(todo_warnings)

        projects = tuple(
            self._summarize(project, aggregates[project.identifier], calculator, catalog, todo_index)
            for project in scan.projects
        )
        daily_usage = calculator.price(total, catalog)
        sessions = [session for project in scan.projects for session in project.sessions]
        hourly = hourly_usage(sessions, catalog, calculator.timezone, calculator.since)
        blocks = session_blocks(sessions, now, catalog, calculator.timezone, calculator.since)
        burn = burn_rate(sessions, now, catalog)
        generation = next(self._generations)
        snapshot = Snapshot(
            generation=generation,
            created_at=now,
            projects=projects,
            daily_usage=daily_usage,
            pricing=catalog,
            pricing_status=pricing_status,
            warnings=tuple(warnings),
            local_date=today,
            hourly_usage=hourly,
            session_blocks=blocks,
            burn_rate=burn,
        )
        self._publish(snapshot)
        LOGGER.info(
            "Refresh #%d: %d projects, %d days, pricing %s, %d warnings.",
            generation,
            len(snapshot.projects),
            len(snapshot.daily_usage),
            pricing_status.value,
            snapshot.warning_count,
        )
        return snapshot

    def _fold_projects(self, scan: ScanResult, calculator: UsageCalculator) -> dict[str, UsageAggregate]:
        aggregates: dict[str, UsageAggregate] = {}
        live_keys: set[Hashable] = set()
        for project in scan.projects:
            key = (USAGE_KEY_PREFIX, project.identifier, project.fingerprint, calculator.timezone, calculator.since)
            live_keys.add(key)
            aggregates[project.identifier] = self._cache.get_or_compute(
                key,
                math.inf,
                lambda project=project: calculator.fold_sessions(project.sessions),
            )

        dropped = self._cache.invalidate_where(lambda key: _has_prefix(key, USAGE_KEY_PREFIX) and key not in live_keys)
        if dropped:
            LOGGER.debug("Dropped %d obsolete usage aggregates.", dropped)
        return aggregates

    def _resolve_pricing(self) -> tuple[PriceCatalog | None, PricingStatus, list[EngineWarning]]:
        try:
            catalog = self._pricing.resolve_catalog()
        except NetworkTimeout as exc:
            return None, PricingStatus.UNAVAILABLE, [EngineWarning(WarningKind.NETWORK_TIMEOUT, str(exc))]
        except PricingError as exc:
            return None, PricingStatus.UNAVAILABLE, [EngineWarning(WarningKind.PRICING_UNAVAILABLE, str(exc))]

        if not catalog.stale:
            return catalog, PricingStatus.FRESH, []
        reason = self._pricing.last_error
        message = f"Using pricing fetched at {catalog.fetched_at:%Y-%m-%d %H:%M} UTC"
        if reason is not None:
            message = f"{message}: {reason}"
        return catalog, PricingStatus.STALE, [EngineWarning(WarningKind.PRICING_STALE, message)]

    def _summarize(
        self,
        project: Project,
        aggregate: UsageAggregate,
        calculator: UsageCalculator,
        catalog: PriceCatalog | None,
        todo_index: TodoIndex,
    ) -> ProjectSummary:
        daily_usage = calculator.price(aggregate, catalog)
        return ProjectSummary(
            project=project,
            daily_usage=daily_usage,
            tasks=project_tasks(project, todo_index),
            usage_stats=project_usage_stats(project, daily_usage, catalog),
        )

    def _publish(self, snapshot: Snapshot) -> bool:
        with self._condition:
            if snapshot.generation <= self._snapshot.generation:
                LOGGER.debug(
                    "Discarding snapshot #%d; #%d is already published.",
                    snapshot.generation,
                    self._snapshot.generation,
                )
                return False
            self._snapshot = snapshot
            subscribers = list(self._subscribers)
            self._condition.notify_all()

        for callback in subscribers:
            try:
                callback(snapshot)
            except Exception:
                LOGGER.exception("Snapshot subscriber %r failed.", callback)
        return True

    def _set_state(self, state: SchedulerState) -> None:
        with self._condition:
            if self._state is not SchedulerState.STOPPED:
                self._state = state

    def _scan_key(self) -> tuple[str, str]:
        return (SCAN_KEY_PREFIX, str(self._scanner.root))

    def _invalidate_all(self) -> None:
        self._cache.invalidate_where(
            lambda key: _has_prefix(key, SCAN_KEY_PREFIX)
            or _has_prefix(key, USAGE_KEY_PREFIX)
            or _has_prefix(key, TODOS_KEY_PREFIX)
        )
        self._pricing.invalidate()


def _has_prefix(key: Hashable, prefix: str) -> bool:
    return isinstance(key, tuple) and bool(key) and key[0] == prefix
