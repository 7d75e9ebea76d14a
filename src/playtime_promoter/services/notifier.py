"""Promotion announcements.

Notifications are best-effort: a failed announcement is logged and dropped,
and never affects the promotion it describes.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Protocol

import httpx

from playtime_promoter.db.time import utcnow
from playtime_promoter.services.errors import NotifyError

logger = logging.getLogger(__name__)

EMBED_COLOR_GREEN = 0x00FF00


@dataclass(frozen=True)
class PromotionEvent:
    """Structured payload describing one confirmed promotion."""

    user_id: str
    previous_rank: int
    new_rank: int
    playtime_seconds: int

    @property
    def playtime_hours(self) -> float:
        return round(self.playtime_seconds / 3600, 1)


class Notifier(Protocol):
    async def notify(self, event: PromotionEvent) -> None:
        """Deliver ``event``, raising ``NotifyError`` on failure."""


class NullNotifier:
    """Notifier used when no channel is configured."""

    async def notify(self, event: PromotionEvent) -> None:
        logger.debug("Notifications disabled; skipping event for user %s", event.user_id)


class DiscordWebhookNotifier:
    """Posts promotion embeds to a Discord webhook."""

    def __init__(
        self,
        webhook_url: str,
        *,
        timeout_seconds: float = 5.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._webhook_url = webhook_url
        self._timeout = httpx.Timeout(timeout_seconds)
        self._transport = transport
        self._client: httpx.AsyncClient | None = None
        self._client_lock = asyncio.Lock()

    async def _ensure_client(self) -> httpx.AsyncClient:
        async with self._client_lock:
            if self._client is None:
                self._client = httpx.AsyncClient(timeout=self._timeout, transport=self._transport)
        return self._client

    @staticmethod
    def build_payload(event: PromotionEvent) -> dict[str, Any]:
        return {
            "embeds": [
                {
                    "title": "🔼 Rank Promotion",
                    "color": EMBED_COLOR_GREEN,
                    "fields": [
                        {"name": "User ID", "value": event.user_id, "inline": True},
                        {"name": "Previous Rank", "value": str(event.previous_rank), "inline": True},
                        {"name": "New Rank", "value": str(event.new_rank), "inline": True},
                        {"name": "Playtime", "value": f"{event.playtime_hours:.1f} hours", "inline": True},
                    ],
                    "timestamp": utcnow().isoformat(),
                }
            ]
        }

    async def notify(self, event: PromotionEvent) -> None:
        client = await self._ensure_client()
        try:
            response = await client.post(self._webhook_url, json=self.build_payload(event))
        except httpx.HTTPError as exc:
            raise NotifyError(f"Webhook delivery failed: {exc}") from exc
        if response.status_code >= 300:
            raise NotifyError(f"Webhook responded with {response.status_code}")

    async def close(self) -> None:
        async with self._client_lock:
            if self._client is not None:
                await self._client.aclose()
                self._client = None
