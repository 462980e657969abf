"""Async HTTP client for the ThingSpeak channel read endpoints."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

import httpx

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://api.thingspeak.com"


class ThingSpeakError(Exception):
    """A fetch failed in transport, returned a non-2xx status, or was unreadable."""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class ThingSpeakClient:
    """Minimal client for the "last entry" and "feed history" endpoints."""

    def __init__(
        self,
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip("/"), timeout=timeout, transport=transport
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def fetch_latest(self, channel_id: str, read_key: str) -> Optional[Dict[str, Any]]:
        """Return the newest feed entry, or ``None`` when the channel is empty."""
        payload = await self._get_json(
            f"/channels/{channel_id}/feeds/last.json",
            {"api_key": read_key},
            channel_id,
        )
        # An empty channel answers with the bare literal -1.
        if not isinstance(payload, dict):
            return None
        return payload

    async def fetch_feed(self, channel_id: str, read_key: str, results: int) -> List[Dict[str, Any]]:
        payload = await self._get_json(
            f"/channels/{channel_id}/feeds.json",
            {"api_key": read_key, "results": results},
            channel_id,
        )
        if not isinstance(payload, dict):
            raise ThingSpeakError("Unexpected ThingSpeak feed payload.")
        feeds = payload.get("feeds") or []
        if not isinstance(feeds, list):
            raise ThingSpeakError("Unexpected ThingSpeak feed payload.")
        return [entry for entry in feeds if isinstance(entry, dict)]

    async def _get_json(self, path: str, params: Dict[str, Any], channel_id: str) -> Any:
        try:
            response = await self._client.get(path, params=params)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            status_code = exc.response.status_code
            logger.warning(
                "ThingSpeak request rejected",
                extra={"channel_id": channel_id, "status_code": status_code},
            )
            raise ThingSpeakError(f"ThingSpeak API error: {status_code}", status_code) from exc
        except httpx.HTTPError as exc:
            logger.warning(
                "ThingSpeak request failed",
                extra={"channel_id": channel_id, "reason": type(exc).__name__},
            )
            raise ThingSpeakError(f"Failed to reach ThingSpeak: {exc}") from exc

        try:
            return response.json()
        except ValueError as exc:
            raise ThingSpeakError("ThingSpeak returned an unreadable response.") from exc
