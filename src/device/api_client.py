"""HTTP client the device uses to talk to the reminder server."""

import logging
from dataclasses import dataclass
from datetime import datetime

import httpx

from src.schemas.snapshot import SnapshotReminder, UpcomingRemindersResponse

logger = logging.getLogger(__name__)


@dataclass
class LocalSubscription:
    """A push subscription as held by the local push platform."""

    endpoint: str
    p256dh: str
    auth: str
    expiration_time: datetime | None = None
    application_server_key: str | None = None


class ReminderApiClient:
    """Authenticated calls against the notification and reminder endpoints."""

    def __init__(
        self,
        base_url: str,
        access_token: str,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._headers = {"Authorization": f"Bearer {access_token}"}
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            headers=self._headers,
            timeout=self.timeout,
            transport=self._transport,
        )

    async def fetch_upcoming(
        self, owner_id: int, start: datetime, end: datetime
    ) -> list[SnapshotReminder]:
        """Unsent reminders due in ``[start, end)``.

        The server scopes the query to the token's user; ``owner_id`` is only
        used for logging.
        """
        async with self._client() as client:
            response = await client.get(
                "/api/v1/reminders/upcoming",
                params={"start": start.isoformat(), "end": end.isoformat()},
            )
            response.raise_for_status()
        data = UpcomingRemindersResponse.model_validate(response.json())
        logger.debug(f"Fetched {len(data.reminders)} upcoming reminders for user {owner_id}")
        return data.reminders

    async def get_vapid_public_key(self) -> str | None:
        async with self._client() as client:
            response = await client.get("/api/v1/notifications/vapid-public-key")
            response.raise_for_status()
        return response.json()["public_key"]

    async def validate_subscription(self, endpoint: str) -> bool:
        async with self._client() as client:
            response = await client.get(
                "/api/v1/notifications/subscribe/validate",
                params={"endpoint": endpoint},
            )
            response.raise_for_status()
        return bool(response.json()["valid"])

    async def register_subscription(
        self, subscription: LocalSubscription, device_label: str | None = None
    ) -> dict:
        async with self._client() as client:
            response = await client.post(
                "/api/v1/notifications/subscribe",
                json={
                    "endpoint": subscription.endpoint,
                    "keys": {"p256dh": subscription.p256dh, "auth": subscription.auth},
                    "device_label": device_label,
                },
            )
            response.raise_for_status()
        return response.json()

    async def unregister_subscription(self, endpoint: str) -> None:
        async with self._client() as client:
            response = await client.delete(
                "/api/v1/notifications/subscribe",
                params={"endpoint": endpoint},
            )
            response.raise_for_status()
