"""Typed schemas used by the usage statistics pipeline."""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import date
from types import MappingProxyType

from ..ingestion.schemas import TokenUsage

UNKNOWN_MODEL = "unknown"


@dataclass(frozen=True)
class ModelDayUsage:
    """Token usage and message count for one (day, model) bucket."""

    usage: TokenUsage = TokenUsage()
    message_count: int = 0

    def __add__(self, other: "ModelDayUsage") -> "ModelDayUsage":
        return ModelDayUsage(usage=self.usage + other.usage, message_count=self.message_count + other.message_count)


@dataclass(frozen=True)
class UsageAggregate:
    """Per-day, per-model usage buckets.

    `merge` is associative and commutative with `UsageAggregate()` as identity,
    so aggregates of disjoint session sets can be combined in any order.
    """

    buckets: Mapping[tuple[date, str], ModelDayUsage] = field(default_factory=lambda: MappingProxyType({}))

    @classmethod
    def from_buckets(cls, buckets: Mapping[tuple[date, str], ModelDayUsage]) -> "UsageAggregate":
        return cls(buckets=MappingProxyType(dict(buckets)))

    def merge(self, other: "UsageAggregate") -> "UsageAggregate":
        merged = dict(self.buckets)
        for key, bucket in other.buckets.items():
            existing = merged.get(key)
            merged[key] = bucket if existing is None else existing + bucket
        return UsageAggregate.from_buckets(merged)

    def __add__(self, other: "UsageAggregate") -> "UsageAggregate":
        return self.merge(other)

    def __len__(self) -> int:
        return len(self.buckets)

    def dates(self) -> list[date]:
        return sorted({day for day, _ in self.buckets})

    def total(self) -> TokenUsage:
        total = TokenUsage()
        for bucket in self.buckets.values():
            total = total + bucket.usage
        return total


@dataclass(frozen=True)
class CostEstimate:
    """Derived USD cost; `amount is None` means no pricing data (distinct from free)."""

    amount: float | None
    stale: bool = False

    @property
    def is_known(self) -> bool:
        return self.amount is not None

    @classmethod
    def combine(cls, estimates: Iterable["CostEstimate"]) -> "CostEstimate":
        """Sum estimates; the result is unknown if any part is unknown."""
        total = 0.0
        stale = False
        for estimate in estimates:
            if estimate.amount is None:
                return cls(amount=None, stale=stale or estimate.stale)
            total += estimate.amount
            stale = stale or estimate.stale
        return cls(amount=total, stale=stale)


UNKNOWN_COST = CostEstimate(amount=None)


@dataclass(frozen=True)
class ModelUsage:
    """Usage and cost of one model over some period."""

    model: str
    usage: TokenUsage
    message_count: int
    cost: CostEstimate


@dataclass(frozen=True)
class DailyUsage:
    """Usage of all models on one calendar day."""

    date: date
    models: tuple[ModelUsage, ...]

    @property
    def usage(self) -> TokenUsage:
        total = TokenUsage()
        for model_usage in self.models:
            total = total + model_usage.usage
        return total

    @property
    def message_count(self) -> int:
        return sum(model_usage.message_count for model_usage in self.models)

    @property
    def known_cost(self) -> float:
        return sum(model_usage.cost.amount or 0.0 for model_usage in self.models)

    @property
    def has_unknown_cost(self) -> bool:
        return any(not model_usage.cost.is_known for model_usage in self.models)

    @property
    def has_stale_cost(self) -> bool:
        return any(model_usage.cost.stale for model_usage in self.models)

    def model(self, name: str) -> ModelUsage | None:
        for model_usage in self.models:
            if model_usage.model == name:
                return model_usage
        return None
