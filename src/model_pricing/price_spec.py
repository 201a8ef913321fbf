"""Pricing catalog fetch and disk cache helpers."""

from __future__ import annotations

import http.client
import logging
import os
import time
import urllib.error
import urllib.request
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

import orjson

from usage_monitor_internal.paths import get_default_price_cache_path

from .catalog import PriceCatalog, parse_catalog
from .errors import NetworkTimeout, PricingUnavailable

LOGGER = logging.getLogger(__name__)
DEFAULT_CATALOG_URL = "https://openrouter.ai/api/v1/models"
DEFAULT_PRICE_CACHE_PATH = get_default_price_cache_path()
DEFAULT_TIMEOUT_SECONDS = 5.0
USER_AGENT = "claude-usage-monitor/0.1"
_CACHE_PATH_UNSET = object()


@dataclass(frozen=True)
class PricingConfig:
    """Configuration for fetching and caching model pricing data.

    Attributes:
        url: Remote JSON endpoint that returns the pricing catalog.
        ttl_seconds: Age after which cached pricing is refreshed.
        timeout_seconds: Upper bound for one catalog request.
        cache_path: Disk cache location.
            - `None` disables cache reads/writes.
            - `Path` uses that explicit cache location.
            - Omitted uses `PRICE_CACHE_PATH` env var when present, otherwise
              `DEFAULT_PRICE_CACHE_PATH`.
        offline: Never contact the network; serve the disk cache only.
    """

    url: str = DEFAULT_CATALOG_URL
    ttl_seconds: int = 86400
    timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS
    cache_path: Path | None | object = _CACHE_PATH_UNSET
    offline: bool = False


def fetch_catalog(url: str, timeout: float) -> Any:
    """Fetch and decode the pricing catalog.

    Non-2xx responses, connection failures, truncated and malformed bodies are all
    reported as `PricingUnavailable`.

    Raises:
        NetworkTimeout: If the request does not complete within `timeout` seconds.
        PricingUnavailable: For any other failure.
    """
    request = urllib.request.Request(url, headers={"User-Agent": USER_AGENT, "Accept": "application/json"})
    try:
        with urllib.request.urlopen(request, timeout=timeout) as response:
            if not 200 <= response.status < 300:
                raise PricingUnavailable(f"Failed to fetch pricing catalog: HTTP {response.status}")
            body = response.read()
    except urllib.error.HTTPError as exc:
        raise PricingUnavailable(f"Failed to fetch pricing catalog from {url}: HTTP {exc.code}") from exc
    except TimeoutError as exc:
        raise NetworkTimeout(f"Timed out after {timeout}s fetching pricing catalog from {url}") from exc
    except urllib.error.URLError as exc:
        if isinstance(exc.reason, TimeoutError):
            raise NetworkTimeout(f"Timed out after {timeout}s fetching pricing catalog from {url}") from exc
        raise PricingUnavailable(f"Failed to fetch pricing catalog from {url}: {exc.reason}") from exc
    except OSError as exc:
        raise PricingUnavailable(f"Failed to fetch pricing catalog from {url}: {exc}") from exc
    except (http.client.HTTPException, ValueError) as exc:
        raise PricingUnavailable(f"Failed to read pricing catalog from {url}: {exc!r}") from exc

    try:
        return orjson.loads(body)
    except orjson.JSONDecodeError as exc:
        raise PricingUnavailable(f"Malformed pricing catalog body from {url}") from exc


def resolve_cache_path(cache_path: Path | str | None | object) -> Path | None:
    """Resolve the effective cache path with env/default compatibility behavior."""
    if cache_path is _CACHE_PATH_UNSET:
        env_cache_path = os.environ.get("PRICE_CACHE_PATH")
        return Path(env_cache_path).expanduser() if env_cache_path else DEFAULT_PRICE_CACHE_PATH
    if cache_path is None:
        return None
    assert isinstance(cache_path, (Path, str)), f"Invalid cache_path: {cache_path}"
    return Path(cache_path).expanduser()


def read_cached_catalog(cache_path: Path | None, max_age_seconds: float | None) -> PriceCatalog | None:
    """Load the disk cache if present and, when `max_age_seconds` is given, young enough."""
    if cache_path is None or not cache_path.exists():
        return None
    try:
        mtime = cache_path.stat().st_mtime
        if max_age_seconds is not None and time.time() - mtime >= max_age_seconds:
            return None
        with cache_path.open("rb") as handle:
            payload = orjson.loads(handle.read())
        return parse_catalog(payload, fetched_at=datetime.fromtimestamp(mtime, tz=UTC), source="disk")
    except (OSError, orjson.JSONDecodeError, PricingUnavailable):
        LOGGER.warning("Failed reading pricing cache at %s.", cache_path)
        return None


def write_cached_catalog(cache_path: Path | None, payload: Any) -> None:
    """Persist a fetched catalog payload; failures are logged, never raised."""
    if cache_path is None:
        return
    try:
        cache_path.parent.mkdir(parents=True, exist_ok=True)
        with cache_path.open("wb") as handle:
            handle.write(orjson.dumps(payload))
    except (OSError, TypeError):
        LOGGER.warning("Failed writing pricing cache at %s.", cache_path)
