"""Tests for fetching the pricing catalog over HTTP."""

from __future__ import annotations

import threading
from collections.abc import Iterator
from http.server import BaseHTTPRequestHandler, HTTPServer
from pathlib import Path

import orjson
import pytest

from model_pricing import PricingConfig, PricingResolver, PricingUnavailable, fetch_catalog

PAYLOAD = {"data": [{"id": "anthropic/claude-sonnet-4", "pricing": {"prompt": "0.000003", "completion": "0.000015"}}]}


class _CatalogHandler(BaseHTTPRequestHandler):
    routes: dict[str, tuple[int, bytes]] = {
        "/ok": (200, orjson.dumps(PAYLOAD)),
        "/broken": (500, b"internal error"),
        "/garbage": (200, b"<html>not json</html>"),
        "/truncated": (200, b'{"data": ['),
    }
    declared_lengths: dict[str, int] = {"/truncated": 1000}

    def do_GET(self) -> None:
        status, body = self.routes.get(self.path, (404, b"missing"))
        self.send_response(status)
        self.send_header("Content-Type", "application/json")
        self.send_header("Content-Length", str(self.declared_lengths.get(self.path, len(body))))
        self.end_headers()
        self.wfile.write(body)

    def log_message(self, format: str, *args: object) -> None:
        return


@pytest.fixture()
def catalog_server() -> Iterator[str]:
    server = HTTPServer(("127.0.0.1", 0), _CatalogHandler)
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    try:
        yield f"http://127.0.0.1:{server.server_address[1]}"
    finally:
        server.shutdown()
        server.server_close()


def test_fetch_catalog_decodes_json(catalog_server: str) -> None:
    """A 200 response is decoded into the raw payload."""
    assert fetch_catalog(f"{catalog_server}/ok", timeout=5.0) == PAYLOAD


def test_fetch_catalog_reports_http_500_as_unavailable(catalog_server: str) -> None:
    """Non-2xx responses are unavailable pricing."""
    with pytest.raises(PricingUnavailable, match="HTTP 500"):
        fetch_catalog(f"{catalog_server}/broken", timeout=5.0)


def test_fetch_catalog_reports_malformed_body_as_unavailable(catalog_server: str) -> None:
    """A body that is not JSON is unavailable pricing."""
    with pytest.raises(PricingUnavailable):
        fetch_catalog(f"{catalog_server}/garbage", timeout=5.0)


def test_fetch_catalog_reports_truncated_body_as_unavailable(catalog_server: str) -> None:
    """A body shorter than its Content-Length is unavailable pricing, not a raw http.client error."""
    with pytest.raises(PricingUnavailable, match="Failed to read pricing catalog"):
        fetch_catalog(f"{catalog_server}/truncated", timeout=5.0)


def test_fetch_catalog_reports_connection_failure_as_unavailable() -> None:
    """An unreachable host is unavailable pricing."""
    server = HTTPServer(("127.0.0.1", 0), _CatalogHandler)
    port = server.server_address[1]
    server.server_close()

    with pytest.raises(PricingUnavailable):
        fetch_catalog(f"http://127.0.0.1:{port}/ok", timeout=2.0)


def test_resolver_without_cache_raises_on_http_500(catalog_server: str, tmp_path: Path) -> None:
    """An HTTP 500 with nothing cached surfaces as PricingUnavailable."""
    resolver = PricingResolver(PricingConfig(url=f"{catalog_server}/broken", cache_path=tmp_path / "prices.json"))

    with pytest.raises(PricingUnavailable):
        resolver.resolve("claude-sonnet-4")
    assert not (tmp_path / "prices.json").exists()
