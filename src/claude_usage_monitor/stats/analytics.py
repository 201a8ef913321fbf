"""Usage analytics over parsed sessions: hourly patterns, 5-hour blocks, burn rate and cache efficiency."""

from __future__ import annotations

from collections.abc import Iterable, Iterator, Sequence
from dataclasses import dataclass
from datetime import UTC, date, datetime, timedelta
from zoneinfo import ZoneInfo

from model_pricing import PriceCatalog

from ..ingestion.schemas import Message, Project, Session, TokenUsage
from .schemas import UNKNOWN_COST, UNKNOWN_MODEL, CostEstimate, DailyUsage, ModelUsage
from .service import TOKENS_PER_MILLION, estimate_cost, model_totals, resolve_message_date

BLOCK_DURATION = timedelta(hours=5)
BURN_RATE_WINDOW = timedelta(hours=1)
HOURS_PER_DAY = 24
RESET_SOON_LABEL = "Soon"


@dataclass(frozen=True)
class HourlyUsage:
    """Usage of all days folded onto one local hour of the day (0-23)."""

    hour: int
    usage: TokenUsage
    message_count: int
    cost: CostEstimate


@dataclass(frozen=True)
class SessionBlock:
    """A 5-hour usage window starting at the top of the hour of its first message."""

    start: datetime
    end: datetime
    usage: TokenUsage
    message_count: int
    cost: CostEstimate
    is_active: bool


@dataclass(frozen=True)
class BurnRate:
    """Token and cost throughput of the most recently active session."""

    session_id: str
    tokens_per_minute: float
    cost_per_hour: CostEstimate


@dataclass(frozen=True)
class CacheEfficiency:
    """Prompt-cache reuse and what it saved compared to uncached input."""

    cache_read_tokens: int = 0
    cache_write_tokens: int = 0
    savings: CostEstimate = CostEstimate(amount=0.0)

    @property
    def hit_rate(self) -> float:
        """Percentage of cache tokens that were reads rather than writes."""
        cached = self.cache_read_tokens + self.cache_write_tokens
        if cached == 0:
            return 0.0
        return self.cache_read_tokens / cached * 100


@dataclass(frozen=True)
class ProjectUsageStats:
    project_name: str
    session_count: int
    message_count: int
    usage: TokenUsage
    cost: CostEstimate
    models_used: tuple[str, ...]
    most_used_model: str | None
    first_activity: datetime | None
    last_activity: datetime | None
    avg_session_minutes: float
    cache_efficiency: CacheEfficiency

    @property
    def total_tokens(self) -> int:
        return self.usage.total_tokens


def message_cost(message: Message, catalog: PriceCatalog | None) -> CostEstimate:
    if catalog is None:
        return UNKNOWN_COST
    return estimate_cost(message.usage, catalog.lookup(message.model or UNKNOWN_MODEL))


def hourly_usage(
    sessions: Iterable[Session],
    catalog: PriceCatalog | None,
    timezone: ZoneInfo | None = None,
    since: date | None = None,
) -> tuple[HourlyUsage, ...]:
    """Fold usage onto the 24 local hours of the day; hours without usage are zero."""
    usage_by_hour = [TokenUsage()] * HOURS_PER_DAY
    messages_by_hour = [0] * HOURS_PER_DAY
    costs_by_hour: list[list[CostEstimate]] = [[] for _ in range(HOURS_PER_DAY)]
    for message in _usage_messages(sessions, timezone, since):
        hour = _as_utc(message.timestamp).astimezone(timezone).hour
        usage_by_hour[hour] = usage_by_hour[hour] + message.usage
        messages_by_hour[hour] += 1
        costs_by_hour[hour].append(message_cost(message, catalog))

    return tuple(
        HourlyUsage(
            hour=hour,
            usage=usage_by_hour[hour],
            message_count=messages_by_hour[hour],
            cost=CostEstimate.combine(costs_by_hour[hour]),
        )
        for hour in range(HOURS_PER_DAY)
    )


def session_blocks(
    sessions: Iterable[Session],
    now: datetime,
    catalog: PriceCatalog | None,
    timezone: ZoneInfo | None = None,
    since: date | None = None,
) -> tuple[SessionBlock, ...]:
    """Group usage into consecutive 5-hour blocks, oldest first.

    A block starts at the top of the hour of the first message not covered by
    the previous block and ends five hours later. Only the block containing
    `now` is active.
    """
    messages = sorted(_usage_messages(sessions, timezone, since), key=lambda message: _as_utc(message.timestamp))
    blocks: list[SessionBlock] = []
    current: list[Message] = []
    start = end = None
    for message in messages:
        timestamp = _as_utc(message.timestamp)
        if end is None or timestamp >= end:
            if current:
                blocks.append(_build_block(start, end, current, now, catalog))
            start = floor_to_hour(timestamp)
            end = start + BLOCK_DURATION
            current = []
        current.append(message)
    if current:
        blocks.append(_build_block(start, end, current, now, catalog))
    return tuple(blocks)


def active_block(blocks: Sequence[SessionBlock]) -> SessionBlock | None:
    for block in reversed(blocks):
        if block.is_active:
            return block
    return None


def next_reset(blocks: Sequence[SessionBlock], now: datetime) -> datetime:
    """End of the active block, or five hours after the current hour when none is active."""
    block = active_block(blocks)
    if block is not None:
        return block.end
    return floor_to_hour(now) + BLOCK_DURATION


def format_time_until(target: datetime, now: datetime) -> str:
    """Render a countdown as `2h 5m`, `5m` or `Soon`."""
    remaining = int((target - now).total_seconds())
    hours, minutes = remaining // 3600, remaining % 3600 // 60
    if remaining <= 0 or (hours == 0 and minutes == 0):
        return RESET_SOON_LABEL
    if hours > 0:
        return f"{hours}h {minutes}m"
    return f"{minutes}m"


def burn_rate(sessions: Iterable[Session], now: datetime, catalog: PriceCatalog | None) -> BurnRate | None:
    """Throughput of the most recent session active within the last hour.

    Input and output tokens count; cache traffic does not. The rate is taken
    over the time from the session's first message until `now`. Returns None
    when no session was active in the last hour.
    """
    recent = [
        session
        for session in sessions
        if session.ended_at is not None
        and session.started_at is not None
        and now - _as_utc(session.ended_at) < BURN_RATE_WINDOW
    ]
    if not recent:
        return None
    session = max(recent, key=lambda item: _as_utc(item.ended_at))

    minutes = (now - _as_utc(session.started_at)).total_seconds() / 60
    usage = session.usage
    tokens = usage.input_tokens + usage.output_tokens
    cost = CostEstimate.combine(
        message_cost(message, catalog) for message in session.messages if not message.usage.is_empty
    )
    if minutes <= 0:
        return BurnRate(session.session_id, tokens_per_minute=0.0, cost_per_hour=CostEstimate(0.0, cost.stale))
    hourly_cost = None if cost.amount is None else cost.amount / (minutes / 60)
    return BurnRate(
        session_id=session.session_id,
        tokens_per_minute=tokens / minutes,
        cost_per_hour=CostEstimate(amount=hourly_cost, stale=cost.stale),
    )


def cache_efficiency(model_usages: Iterable[ModelUsage], catalog: PriceCatalog | None) -> CacheEfficiency:
    """Sum cache traffic and price the reads at the input rate they replaced.

    Savings are unknown when a model with cache reads has no pricing.
    """
    cache_read = cache_write = 0
    savings: list[CostEstimate] = []
    for model_usage in model_usages:
        usage = model_usage.usage
        cache_read += usage.cache_read_tokens
        cache_write += usage.cache_write_tokens
        if usage.cache_read_tokens == 0:
            continue
        entry = catalog.lookup(model_usage.model) if catalog is not None else None
        if entry is None:
            savings.append(UNKNOWN_COST)
            continue
        saved_per_million = entry.input_per_million - entry.cache_read_per_million
        savings.append(
            CostEstimate(amount=usage.cache_read_tokens * saved_per_million / TOKENS_PER_MILLION, stale=entry.stale)
        )
    return CacheEfficiency(
        cache_read_tokens=cache_read,
        cache_write_tokens=cache_write,
        savings=CostEstimate.combine(savings),
    )


def project_usage_stats(
    project: Project,
    daily_usage: Sequence[DailyUsage],
    catalog: PriceCatalog | None,
) -> ProjectUsageStats:
    """Summarise one project's priced usage, sessions and models."""
    totals = model_totals(daily_usage)
    usage = TokenUsage()
    for model_usage in totals:
        usage = usage + model_usage.usage
    # Most messages wins; ties go to the larger token total, then the name.
    most_used = max(
        totals,
        key=lambda item: (item.message_count, item.usage.total_tokens, item.model),
        default=None,
    )

    started = [_as_utc(session.started_at) for session in project.sessions if session.started_at is not None]
    ended = [_as_utc(session.ended_at) for session in project.sessions if session.ended_at is not None]
    durations = [
        (_as_utc(session.ended_at) - _as_utc(session.started_at)).total_seconds() / 60
        for session in project.sessions
        if session.started_at is not None and session.ended_at is not None
    ]

    return ProjectUsageStats(
        project_name=project.display_name,
        session_count=len(project.sessions),
        message_count=sum(model_usage.message_count for model_usage in totals),
        usage=usage,
        cost=CostEstimate.combine(model_usage.cost for model_usage in totals),
        models_used=tuple(model_usage.model for model_usage in totals),
        most_used_model=most_used.model if most_used is not None else None,
        first_activity=min(started, default=None),
        last_activity=max(ended, default=None),
        avg_session_minutes=sum(durations) / len(durations) if durations else 0.0,
        cache_efficiency=cache_efficiency(totals, catalog),
    )


def floor_to_hour(timestamp: datetime) -> datetime:
    return _as_utc(timestamp).replace(minute=0, second=0, microsecond=0)


def _build_block(
    start: datetime,
    end: datetime,
    messages: Sequence[Message],
    now: datetime,
    catalog: PriceCatalog | None,
) -> SessionBlock:
    usage = TokenUsage()
    for message in messages:
        usage = usage + message.usage
    return SessionBlock(
        start=start,
        end=end,
        usage=usage,
        message_count=len(messages),
        cost=CostEstimate.combine(message_cost(message, catalog) for message in messages),
        is_active=start <= now < end,
    )


def _usage_messages(sessions: Iterable[Session], timezone: ZoneInfo | None, since: date | None) -> Iterator[Message]:
    for session in sessions:
        for message in session.messages:
            if message.usage.is_empty:
                continue
            if since is not None and resolve_message_date(message.timestamp, timezone) < since:
                continue
            yield message


def _as_utc(timestamp: datetime) -> datetime:
    normalized = timestamp if timestamp.tzinfo is not None else timestamp.replace(tzinfo=UTC)
    return normalized.astimezone(UTC)
