"""Wiring of the foreground and background contexts of one device."""

import asyncio
import logging
from datetime import timedelta

from src.config import Settings, get_settings
from src.device.api_client import ReminderApiClient
from src.device.dispatcher import AppLauncher, LoggingNotifier, NotificationDispatcher, Notifier
from src.device.fallback_cache import FallbackCache, ReminderPoller, ReminderSource
from src.device.local_store import DurableStore, MemoryStore, SnapshotStore
from src.device.subscription_client import PushPlatform, PushSubscriptionClient
from src.device.sync_channel import BroadcastBus, SyncChannel, SyncMessage, TaskActionHandler

logger = logging.getLogger(__name__)


class DeviceRuntime:
    """Owns every long-lived device-side task.

    The foreground half (poller, snapshot responder, push registration) and
    the background half (dispatcher) only talk over the broadcast bus; the
    dispatcher reads the durable store directly when the foreground does not
    answer.
    """

    def __init__(
        self,
        owner_id: int,
        source: ReminderSource,
        durable: DurableStore,
        notifier: Notifier | None = None,
        subscription_client: PushSubscriptionClient | None = None,
        settings: Settings | None = None,
        action_handler: TaskActionHandler | None = None,
        launcher: AppLauncher | None = None,
    ) -> None:
        self.settings = settings or get_settings()
        self.owner_id = owner_id
        self.durable = durable
        self.bus = BroadcastBus()
        self.subscription_client = subscription_client
        self.action_handler = action_handler

        # Foreground
        self.cache = FallbackCache(
            source=source,
            store=SnapshotStore(durable, MemoryStore()),
            lookahead=timedelta(hours=self.settings.snapshot_lookahead_hours),
            fallback_interval=timedelta(seconds=self.settings.fallback_interval_seconds),
            fallback_window=timedelta(minutes=self.settings.fallback_window_minutes),
        )
        self.poller = ReminderPoller(
            self.cache, owner_id, interval=self.settings.refresh_interval_seconds
        )
        self._responder_channel = SyncChannel(self.bus.connect())
        self._responder: asyncio.Task | None = None

        # Background
        self.dispatcher = NotificationDispatcher(
            notifier=notifier or LoggingNotifier(),
            store=SnapshotStore(durable),
            channel=SyncChannel(self.bus.connect(), timeout=self.settings.sync_timeout_seconds),
            fallback_interval=self.settings.fallback_interval_seconds,
            fallback_window=timedelta(minutes=self.settings.fallback_window_minutes),
            launcher=launcher,
            snooze_minutes=self.settings.snooze_minutes,
        )

    @classmethod
    def connect(
        cls,
        owner_id: int,
        access_token: str,
        platform: PushPlatform,
        device_label: str | None = None,
        notifier: Notifier | None = None,
        settings: Settings | None = None,
        action_handler: TaskActionHandler | None = None,
        launcher: AppLauncher | None = None,
    ) -> "DeviceRuntime":
        """Build a runtime that talks to the reminder server over HTTP."""
        settings = settings or get_settings()
        api = ReminderApiClient(settings.api_base_url, access_token)
        return cls(
            owner_id=owner_id,
            source=api,
            durable=DurableStore(settings.local_store_url),
            notifier=notifier,
            subscription_client=PushSubscriptionClient(
                api,
                platform,
                device_label=device_label,
                max_attempts=settings.registration_max_attempts,
                backoff_seconds=settings.registration_backoff_seconds,
            ),
            settings=settings,
            action_handler=action_handler,
            launcher=launcher,
        )

    async def start(self) -> None:
        """Register for push, then start the poller, responder and dispatcher.

        A failed registration is logged; the fallback path still runs without it.
        """
        if self.subscription_client is not None:
            try:
                await self.subscription_client.initialize()
            except Exception as e:
                logger.error(f"Continuing without push registration: {e}")

        self.poller.start()
        on_task_action = self._on_task_action if self.action_handler is not None else None
        self._responder = asyncio.create_task(
            self._responder_channel.serve(self.cache.read, on_task_action),
            name="snapshot-responder",
        )
        self.dispatcher.start()
        logger.info(f"Device runtime started for user {self.owner_id}")

    async def stop(self) -> None:
        """Cancel all timers and listeners."""
        await self.dispatcher.stop()
        await self.poller.stop()
        if self._responder is not None:
            self._responder.cancel()
            try:
                await self._responder
            except asyncio.CancelledError:
                pass
            self._responder = None
        self.durable.close()
        logger.info(f"Device runtime stopped for user {self.owner_id}")

    def reminders_changed(self) -> None:
        """Hook for the task surface after a reminder was created or edited."""
        self.poller.notify_changed()

    async def _on_task_action(self, message: SyncMessage) -> None:
        await self.action_handler(message)
        # Completing or snoozing edits the reminder
        self.reminders_changed()
