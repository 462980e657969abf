from __future__ import annotations

import asyncio
import json

import httpx
import pytest

from clients.thingspeak import ThingSpeakClient, ThingSpeakError


def _run(coro):
    return asyncio.run(coro)


def _client(handler) -> ThingSpeakClient:
    return ThingSpeakClient(base_url="https://ts.test", transport=httpx.MockTransport(handler))


async def _fetch_latest(client: ThingSpeakClient):
    try:
        return await client.fetch_latest("42", "KEY")
    finally:
        await client.aclose()


async def _fetch_feed(client: ThingSpeakClient, results: int = 144):
    try:
        return await client.fetch_feed("42", "KEY", results)
    finally:
        await client.aclose()


def test_fetch_latest_sends_channel_and_key() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"created_at": "2024-01-01T00:00:00Z", "field1": "3.2"})

    payload = _run(_fetch_latest(_client(handler)))

    assert payload == {"created_at": "2024-01-01T00:00:00Z", "field1": "3.2"}
    assert seen[0].url.path == "/channels/42/feeds/last.json"
    assert seen[0].url.params["api_key"] == "KEY"


def test_fetch_latest_on_empty_channel_returns_none() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, content=b"-1")

    assert _run(_fetch_latest(_client(handler))) is None


def test_fetch_feed_passes_result_count() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        body = {"channel": {"id": 42}, "feeds": [{"created_at": "2024-01-01T00:00:00Z"}, "junk"]}
        return httpx.Response(200, content=json.dumps(body).encode())

    feeds = _run(_fetch_feed(_client(handler), results=504))

    assert feeds == [{"created_at": "2024-01-01T00:00:00Z"}]
    assert seen[0].url.path == "/channels/42/feeds.json"
    assert seen[0].url.params["results"] == "504"


def test_non_success_status_raises_readable_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(404, json={"status": "404"})

    with pytest.raises(ThingSpeakError) as excinfo:
        _run(_fetch_feed(_client(handler)))

    assert str(excinfo.value) == "ThingSpeak API error: 404"
    assert excinfo.value.status_code == 404


def test_transport_failure_raises_readable_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(ThingSpeakError) as excinfo:
        _run(_fetch_latest(_client(handler)))

    assert "Failed to reach ThingSpeak" in str(excinfo.value)


def test_unreadable_body_raises() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, content=b"<html>maintenance</html>")

    with pytest.raises(ThingSpeakError):
        _run(_fetch_feed(_client(handler)))
