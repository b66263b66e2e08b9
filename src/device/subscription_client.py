"""Device-side push registration with the server's device registry."""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Protocol

import httpx

from src.device.api_client import LocalSubscription, ReminderApiClient
from src.exceptions import InitializationError, PushPlatformError
from src.utils.time import to_utc_aware, utc_now

logger = logging.getLogger(__name__)


class PushPlatform(Protocol):
    """The device's own push subscription manager."""

    async def get_subscription(self) -> LocalSubscription | None: ...

    async def subscribe(self, application_server_key: str) -> LocalSubscription: ...

    async def unsubscribe(self) -> None: ...


class PushSubscriptionClient:
    """Makes sure this device has exactly one valid registration on the server.

    Concurrent ``initialize()`` calls share one in-flight attempt, so two
    tabs or two startup paths cannot register twice.
    """

    def __init__(
        self,
        api: ReminderApiClient,
        platform: PushPlatform,
        device_label: str | None = None,
        max_attempts: int = 4,
        backoff_seconds: float = 2.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.api = api
        self.platform = platform
        self.device_label = device_label
        self.max_attempts = max_attempts
        self.backoff_seconds = backoff_seconds
        self._sleep = sleep
        self._subscription: LocalSubscription | None = None
        self._in_flight: asyncio.Task | None = None

    @property
    def subscription(self) -> LocalSubscription | None:
        return self._subscription

    async def initialize(self) -> LocalSubscription:
        """Register the device, retrying with exponential backoff.

        Raises:
            InitializationError: every attempt failed.
        """
        if self._in_flight is None or self._failed(self._in_flight):
            self._in_flight = asyncio.create_task(self._initialize_with_backoff())
        return await asyncio.shield(self._in_flight)

    async def reset(self) -> None:
        """Drop this device's registration locally and on the server."""
        local = await self.platform.get_subscription()
        if local is not None:
            await self.api.unregister_subscription(local.endpoint)
            await self.platform.unsubscribe()
        self._subscription = None
        self._in_flight = None
        logger.info("Push registration reset")

    async def _initialize_with_backoff(self) -> LocalSubscription:
        last_error: Exception | None = None
        for attempt in range(1, self.max_attempts + 1):
            try:
                return await self._ensure_registered()
            except (httpx.HTTPError, PushPlatformError) as e:
                last_error = e
                if attempt == self.max_attempts:
                    break
                delay = self.backoff_seconds * 2 ** (attempt - 1)
                logger.warning(
                    f"Push registration attempt {attempt} failed: {e}; retrying in {delay}s"
                )
                await self._sleep(delay)

        logger.error(f"Push registration gave up after {self.max_attempts} attempts")
        raise InitializationError(
            f"Push registration failed: {last_error}", attempts=self.max_attempts
        ) from last_error

    async def _ensure_registered(self) -> LocalSubscription:
        server_key = await self.api.get_vapid_public_key()
        if not server_key:
            raise PushPlatformError("Server has no VAPID public key configured")

        local = await self.platform.get_subscription()

        if local is not None and not self._acceptable(local, server_key):
            logger.info("Local subscription rejected by platform checks, replacing it")
            await self.api.unregister_subscription(local.endpoint)
            await self.platform.unsubscribe()
            local = None

        if local is not None and not await self.api.validate_subscription(local.endpoint):
            # The server dropped it, typically after the push service rejected it
            logger.info("Cached subscription unknown to the server, creating a fresh one")
            await self.platform.unsubscribe()
            local = None

        if local is None:
            local = await self.platform.subscribe(server_key)

        await self.api.register_subscription(local, self.device_label)
        self._subscription = local
        logger.info(f"Push registration active for {self.device_label or 'this device'}")
        return local

    @staticmethod
    def _acceptable(local: LocalSubscription, server_key: str) -> bool:
        if local.expiration_time is not None and to_utc_aware(local.expiration_time) <= utc_now():
            return False
        if local.application_server_key and local.application_server_key != server_key:
            return False
        return True

    @staticmethod
    def _failed(task: asyncio.Task) -> bool:
        return task.done() and (task.cancelled() or task.exception() is not None)
