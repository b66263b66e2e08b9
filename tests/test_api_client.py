"""Tests for the device's HTTP client."""

import json
from datetime import UTC, datetime, timedelta

import httpx
import pytest

from src.device.api_client import LocalSubscription, ReminderApiClient

START = datetime(2026, 4, 1, 12, 0, tzinfo=UTC)


def _client(handler) -> ReminderApiClient:
    return ReminderApiClient(
        "http://reminders.test/", "token-123", transport=httpx.MockTransport(handler)
    )


@pytest.mark.asyncio
async def test_fetch_upcoming():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["path"] = request.url.path
        seen["auth"] = request.headers["Authorization"]
        seen["start"] = request.url.params["start"]
        return httpx.Response(
            200,
            json={
                "start": START.isoformat(),
                "end": (START + timedelta(hours=24)).isoformat(),
                "reminders": [
                    {"id": 4, "text": "Stretch", "due_time": "2026-04-01T12:30:00Z"},
                ],
            },
        )

    reminders = await _client(handler).fetch_upcoming(1, START, START + timedelta(hours=24))

    assert seen["path"] == "/api/v1/reminders/upcoming"
    assert seen["auth"] == "Bearer token-123"
    assert seen["start"] == START.isoformat()
    assert reminders[0].id == 4
    assert reminders[0].due_time == START + timedelta(minutes=30)


@pytest.mark.asyncio
async def test_server_error_raises():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(500, json={"detail": "boom"})

    with pytest.raises(httpx.HTTPStatusError):
        await _client(handler).fetch_upcoming(1, START, START + timedelta(hours=1))


@pytest.mark.asyncio
async def test_register_subscription_body():
    captured = {}

    def handler(request: httpx.Request) -> httpx.Response:
        captured["method"] = request.method
        captured["body"] = json.loads(request.content)
        return httpx.Response(200, json={"id": 3})

    subscription = LocalSubscription(endpoint="https://push.example.com/a", p256dh="k", auth="s")
    result = await _client(handler).register_subscription(subscription, "Phone")

    assert result == {"id": 3}
    assert captured["method"] == "POST"
    assert captured["body"] == {
        "endpoint": "https://push.example.com/a",
        "keys": {"p256dh": "k", "auth": "s"},
        "device_label": "Phone",
    }


@pytest.mark.asyncio
async def test_validate_and_vapid_key():
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path.endswith("/vapid-public-key"):
            return httpx.Response(200, json={"public_key": "BKey"})
        assert request.url.params["endpoint"] == "https://push.example.com/a"
        return httpx.Response(200, json={"endpoint": "https://push.example.com/a", "valid": False})

    client = _client(handler)

    assert await client.get_vapid_public_key() == "BKey"
    assert await client.validate_subscription("https://push.example.com/a") is False
