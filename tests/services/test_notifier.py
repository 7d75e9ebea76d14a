"""Tests for Discord promotion announcements."""

import json

import httpx
import pytest

from playtime_promoter.services.errors import NotifyError
from playtime_promoter.services.notifier import (
    DiscordWebhookNotifier,
    NullNotifier,
    PromotionEvent,
)

WEBHOOK_URL = "https://discord.example.test/api/webhooks/1/abc"

EVENT = PromotionEvent(user_id="1001", previous_rank=1, new_rank=2, playtime_seconds=8000)


def test_payload_matches_embed_layout():
    payload = DiscordWebhookNotifier.build_payload(EVENT)
    (embed,) = payload["embeds"]

    assert embed["title"] == "🔼 Rank Promotion"
    assert embed["color"] == 0x00FF00
    fields = {f["name"]: f["value"] for f in embed["fields"]}
    assert fields == {
        "User ID": "1001",
        "Previous Rank": "1",
        "New Rank": "2",
        "Playtime": "2.2 hours",
    }
    assert "timestamp" in embed


async def test_notify_posts_to_webhook():
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(204)

    notifier = DiscordWebhookNotifier(WEBHOOK_URL, transport=httpx.MockTransport(handler))
    await notifier.notify(EVENT)
    await notifier.close()

    (request,) = seen
    assert str(request.url) == WEBHOOK_URL
    assert json.loads(request.content)["embeds"][0]["fields"][0]["value"] == "1001"


async def test_error_status_raises_notify_error():
    notifier = DiscordWebhookNotifier(
        WEBHOOK_URL, transport=httpx.MockTransport(lambda request: httpx.Response(429))
    )
    with pytest.raises(NotifyError):
        await notifier.notify(EVENT)
    await notifier.close()


async def test_transport_error_raises_notify_error():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("refused", request=request)

    notifier = DiscordWebhookNotifier(WEBHOOK_URL, transport=httpx.MockTransport(handler))
    with pytest.raises(NotifyError):
        await notifier.notify(EVENT)
    await notifier.close()


async def test_null_notifier_does_nothing():
    await NullNotifier().notify(EVENT)
