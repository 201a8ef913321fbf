"""Pricing catalog records and normalisation of remote catalog payloads."""

from __future__ import annotations

import logging
import math
import re
from collections.abc import Mapping
from dataclasses import dataclass, replace
from datetime import datetime
from functools import cached_property
from typing import Any

from .errors import PricingUnavailable

LOGGER = logging.getLogger(__name__)
TOKENS_PER_MILLION = 1_000_000
_DATE_SUFFIX = re.compile(r"-\d{8}$")
_DASHED_VERSION = re.compile(r"(\d)-(\d)")


@dataclass(frozen=True)
class PricingEntry:
    """USD price per million tokens for each token kind of one model."""

    model: str
    input_per_million: float
    output_per_million: float
    cache_read_per_million: float
    cache_write_per_million: float
    fetched_at: datetime
    stale: bool = False


@dataclass(frozen=True)
class PriceCatalog:
    """All pricing entries from one catalog fetch."""

    entries: Mapping[str, PricingEntry]
    fetched_at: datetime
    source: str
    stale: bool = False

    def __len__(self) -> int:
        return len(self.entries)

    def as_stale(self) -> "PriceCatalog":
        return replace(self, stale=True)

    def lookup(self, model: str) -> PricingEntry | None:
        """Find pricing for a model name as written in session logs.

        Tries the exact name, then the name without provider prefix, without a
        trailing release date, and with dashed versions written dotted
        (`claude-3-5-sonnet` -> `claude-3.5-sonnet`).
        """
        for candidate in _name_candidates(model):
            entry = self._index.get(candidate)
            if entry is not None:
                return replace(entry, stale=True) if self.stale else entry
        return None

    @cached_property
    def _index(self) -> dict[str, PricingEntry]:
        index: dict[str, PricingEntry] = {}
        for name in sorted(self.entries):
            entry = self.entries[name]
            index.setdefault(name, entry)
        for name in sorted(self.entries):
            index.setdefault(_strip_provider(name), self.entries[name])
        return index


def parse_catalog(payload: Any, fetched_at: datetime, source: str) -> PriceCatalog:
    """Normalise a decoded catalog payload into a PriceCatalog.

    Accepts a JSON array of entries or an object holding the array under `data`.

    Raises:
        PricingUnavailable: If the payload has no usable entries.
    """
    if isinstance(payload, dict):
        payload = payload.get("data")
    if not isinstance(payload, list):
        raise PricingUnavailable("Malformed pricing catalog: expected a list of model entries.")

    entries: dict[str, PricingEntry] = {}
    skipped = 0
    for raw_entry in payload:
        entry = _parse_entry(raw_entry, fetched_at)
        if entry is None:
            skipped += 1
            continue
        entries.setdefault(entry.model, entry)

    if not entries:
        raise PricingUnavailable("Malformed pricing catalog: no usable model entries.")
    if skipped:
        LOGGER.debug("Skipped %d pricing entries without a name or usable prices.", skipped)
    return PriceCatalog(entries=entries, fetched_at=fetched_at, source=source)


def _parse_entry(raw_entry: Any, fetched_at: datetime) -> PricingEntry | None:
    if not isinstance(raw_entry, dict):
        return None
    model = raw_entry.get("model") or raw_entry.get("id")
    if not isinstance(model, str) or not model:
        return None

    nested = raw_entry.get("pricing")
    nested = nested if isinstance(nested, dict) else {}
    prompt = _as_price(raw_entry.get("prompt_price", nested.get("prompt")))
    completion = _as_price(raw_entry.get("completion_price", nested.get("completion")))
    if prompt is None or completion is None:
        return None
    cache_read = _as_price(raw_entry.get("cache_read_price", nested.get("input_cache_read")))
    cache_write = _as_price(raw_entry.get("cache_write_price", nested.get("input_cache_write")))

    return PricingEntry(
        model=model,
        input_per_million=prompt * TOKENS_PER_MILLION,
        output_per_million=completion * TOKENS_PER_MILLION,
        cache_read_per_million=(cache_read if cache_read is not None else 0.0) * TOKENS_PER_MILLION,
        cache_write_per_million=(cache_write if cache_write is not None else prompt) * TOKENS_PER_MILLION,
        fetched_at=fetched_at,
    )


def _as_price(value: Any) -> float | None:
    """Parse a per-token price from a number or numeric string; negative and non-finite prices are unusable."""
    if isinstance(value, bool) or not isinstance(value, (int, float, str)):
        return None
    try:
        price = float(value)
    except (ValueError, OverflowError):
        return None
    if not math.isfinite(price) or price < 0:
        return None
    return price


def _strip_provider(name: str) -> str:
    return name.rsplit("/", 1)[-1]


def _name_candidates(model: str) -> list[str]:
    candidates: list[str] = []
    bare = _strip_provider(model)
    undated = _DATE_SUFFIX.sub("", bare)
    for candidate in (model, bare, undated, _DASHED_VERSION.sub(r"\1.\2", undated)):
        if candidate not in candidates:
            candidates.append(candidate)
    return candidates
