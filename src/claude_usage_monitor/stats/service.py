"""Usage aggregation and cost calculation over parsed sessions."""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Iterable
from datetime import UTC, date, datetime
from zoneinfo import ZoneInfo

from model_pricing import PriceCatalog, PricingEntry

from ..ingestion.schemas import Session, TokenUsage
from .schemas import UNKNOWN_COST, UNKNOWN_MODEL, CostEstimate, DailyUsage, ModelDayUsage, ModelUsage, UsageAggregate

TOKENS_PER_MILLION = 1_000_000


class UsageCalculator:
    """Fold session messages into per-day, per-model usage and price it."""

    def __init__(self, timezone: ZoneInfo | None = None, since: date | None = None) -> None:
        self._timezone = timezone
        self._since = since

    @property
    def timezone(self) -> ZoneInfo | None:
        return self._timezone

    @property
    def since(self) -> date | None:
        return self._since

    def fold_sessions(self, sessions: Iterable[Session], into: UsageAggregate | None = None) -> UsageAggregate:
        """Aggregate message usage by calendar day and model.

        Messages without token usage and messages dated before `since` are
        skipped. When `into` is given the result is merged into it.
        """
        buckets: dict[tuple[date, str], ModelDayUsage] = defaultdict(ModelDayUsage)
        for session in sessions:
            for message in session.messages:
                if message.usage.is_empty:
                    continue
                message_date = resolve_message_date(message.timestamp, self._timezone)
                if self._since is not None and message_date < self._since:
                    continue
                key = (message_date, message.model or UNKNOWN_MODEL)
                buckets[key] = buckets[key] + ModelDayUsage(usage=message.usage, message_count=1)

        folded = UsageAggregate.from_buckets(buckets)
        return folded if into is None else into.merge(folded)

    def price(self, aggregate: UsageAggregate, catalog: PriceCatalog | None) -> tuple[DailyUsage, ...]:
        """Attach cost estimates to every bucket, ordered by date then model."""
        by_day: dict[date, list[ModelUsage]] = defaultdict(list)
        for (bucket_date, model), bucket in aggregate.buckets.items():
            entry = catalog.lookup(model) if catalog is not None else None
            by_day[bucket_date].append(
                ModelUsage(
                    model=model,
                    usage=bucket.usage,
                    message_count=bucket.message_count,
                    cost=estimate_cost(bucket.usage, entry),
                )
            )
        return tuple(
            DailyUsage(date=day, models=tuple(sorted(by_day[day], key=lambda item: item.model)))
            for day in sorted(by_day)
        )


def calculate_cost(usage: TokenUsage, entry: PricingEntry) -> float:
    """Calculate USD cost for a usage total with one model's pricing."""
    return (
        usage.input_tokens * entry.input_per_million
        + usage.output_tokens * entry.output_per_million
        + usage.cache_read_tokens * entry.cache_read_per_million
        + usage.cache_write_tokens * entry.cache_write_per_million
    ) / TOKENS_PER_MILLION


def estimate_cost(usage: TokenUsage, entry: PricingEntry | None) -> CostEstimate:
    if entry is None:
        return UNKNOWN_COST
    return CostEstimate(amount=calculate_cost(usage, entry), stale=entry.stale)


def model_totals(daily: Iterable[DailyUsage]) -> tuple[ModelUsage, ...]:
    """Sum usage and cost per model across days, ordered by model name."""
    usage_by_model: dict[str, TokenUsage] = defaultdict(TokenUsage)
    messages_by_model: dict[str, int] = defaultdict(int)
    costs_by_model: dict[str, list[CostEstimate]] = defaultdict(list)
    for day in daily:
        for model_usage in day.models:
            usage_by_model[model_usage.model] = usage_by_model[model_usage.model] + model_usage.usage
            messages_by_model[model_usage.model] += model_usage.message_count
            costs_by_model[model_usage.model].append(model_usage.cost)

    return tuple(
        ModelUsage(
            model=model,
            usage=usage_by_model[model],
            message_count=messages_by_model[model],
            cost=CostEstimate.combine(costs_by_model[model]),
        )
        for model in sorted(usage_by_model)
    )


def find_day(daily: Iterable[DailyUsage], day: date) -> DailyUsage | None:
    for daily_usage in daily:
        if daily_usage.date == day:
            return daily_usage
    return None


def resolve_message_date(timestamp: datetime, timezone: ZoneInfo | None) -> date:
    """Resolve message date in the selected timezone (or local system timezone)."""
    normalized = timestamp if timestamp.tzinfo is not None else timestamp.replace(tzinfo=UTC)
    return normalized.astimezone(timezone).date()


def local_today(timezone: ZoneInfo | None, now: datetime | None = None) -> date:
    """Return today's date in the selected timezone (or local system timezone)."""
    current = now or datetime.now(UTC)
    return resolve_message_date(current, timezone)
