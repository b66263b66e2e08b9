"""Background notification dispatcher.

Push arrival and the fallback timer are the only two ways in, and they can
race. Both funnel through ``_render``, which claims a reminder id before its
first ``await`` so whichever path comes second is a no-op.
"""

import asyncio
import logging
from collections.abc import Callable
from datetime import datetime, timedelta
from typing import Protocol
from urllib.parse import urlencode

from src.device.enums import DeliveryState, NotificationAction, SyncMessageType
from src.device.local_store import SnapshotStore
from src.device.payload import DEFAULT_BODY, DEFAULT_TITLE, Notification, parse_push_payload
from src.device.sync_channel import SyncChannel
from src.schemas.snapshot import LocalSnapshot, SnapshotReminder
from src.utils.time import utc_now

logger = logging.getLogger(__name__)


class Notifier(Protocol):
    """Shows a notification on the device."""

    async def show(self, notification: Notification) -> None: ...


class AppLauncher(Protocol):
    """Opens the app's foreground context at a path."""

    async def open(self, path: str) -> None: ...


class LoggingNotifier:
    """Notifier that only records what would have been shown."""

    def __init__(self) -> None:
        self.shown: list[Notification] = []

    async def show(self, notification: Notification) -> None:
        self.shown.append(notification)
        logger.info(f"Notification [{notification.tag}] {notification.title}: {notification.body}")


class LoggingLauncher:
    """Launcher that only records the paths it was asked to open."""

    def __init__(self) -> None:
        self.opened: list[str] = []

    async def open(self, path: str) -> None:
        self.opened.append(path)
        logger.info(f"Opening app at {path}")


class NotificationDispatcher:
    """Renders each reminder at most once per dispatcher lifetime.

    A snoozed reminder is the one exception: it is rendered once more when
    its snooze runs out.
    """

    def __init__(
        self,
        notifier: Notifier,
        store: SnapshotStore,
        channel: SyncChannel | None = None,
        fallback_interval: float = 60.0,
        fallback_window: timedelta = timedelta(minutes=60),
        clock: Callable[[], datetime] = utc_now,
        launcher: AppLauncher | None = None,
        snooze_minutes: int = 15,
    ) -> None:
        self.notifier = notifier
        self.store = store
        self.channel = channel
        self.fallback_interval = fallback_interval
        self.fallback_window = fallback_window
        self.clock = clock
        self.launcher = launcher or LoggingLauncher()
        self.snooze_minutes = snooze_minutes
        self._states: dict[int, DeliveryState] = {}
        self._pending: dict[int, SnapshotReminder] = {}
        self._shown: dict[int, Notification] = {}
        self._snoozed: dict[int, datetime] = {}
        self._task: asyncio.Task | None = None

    def state_of(self, reminder_id: int) -> DeliveryState | None:
        return self._states.get(reminder_id)

    @property
    def pending_ids(self) -> list[int]:
        return sorted(self._pending)

    async def handle_push(self, raw: bytes | str | None) -> bool:
        """Primary path: render an inbound push message right away.

        Returns True if a notification was shown.
        """
        notification = parse_push_payload(raw)
        if notification.reminder_id is None:
            logger.info("Push without reminder id, showing it as is")
        return await self._render(notification)

    async def check_fallback(self, now: datetime | None = None) -> int:
        """Fallback path: render snapshot entries that are due but were never shown.

        Returns the number of notifications shown.
        """
        now = now or self.clock()
        snapshot = await self._load_snapshot()
        if snapshot is not None:
            self._track(snapshot)

        rendered = 0
        for reminder_id, until in sorted(self._snoozed.items(), key=lambda item: item[1]):
            if until > now:
                continue
            del self._snoozed[reminder_id]
            self._states[reminder_id] = DeliveryState.PENDING
            if await self._render(self._snoozed_notification(reminder_id)):
                rendered += 1
            elif self._states.get(reminder_id) == DeliveryState.PENDING:
                # Failed render, try again on the next check
                self._snoozed[reminder_id] = until
                self._states[reminder_id] = DeliveryState.SNOOZED

        for entry in sorted(self._pending.values(), key=lambda r: (r.due_time, r.id)):
            if entry.due_time > now:
                continue
            if now - entry.due_time > self.fallback_window:
                logger.info(f"Reminder {entry.id} is past the fallback window, skipping")
                self._states[entry.id] = DeliveryState.SKIPPED
                self._pending.pop(entry.id, None)
                continue
            if await self._render(Notification.for_reminder(entry.id, entry.text)):
                rendered += 1

        if rendered:
            logger.info(f"Fallback check rendered {rendered} reminders")
        return rendered

    def dismiss(self, reminder_id: int) -> None:
        """Stop rendering a reminder, e.g. after it was handled on another device."""
        state = self._states.get(reminder_id)
        if state is None or not state.is_terminal:
            self._states[reminder_id] = DeliveryState.SKIPPED
        self._pending.pop(reminder_id, None)
        self._snoozed.pop(reminder_id, None)

    async def handle_action(
        self,
        reminder_id: int | None,
        action: NotificationAction | str | None,
        now: datetime | None = None,
    ) -> bool:
        """React to a click on a rendered notification.

        ``complete`` and ``snooze`` are forwarded to the foreground context;
        when no foreground acknowledges within the sync timeout, the app is
        opened with the action in its query string. ``dismiss`` only closes
        the notification and any other click opens the app.

        Returns True if a foreground context took the action.
        """
        try:
            action = NotificationAction(action) if action else NotificationAction.OPEN
        except ValueError:
            logger.warning(f"Unknown notification action {action!r}, opening the app")
            action = NotificationAction.OPEN

        if action == NotificationAction.DISMISS:
            return False
        if reminder_id is None or action == NotificationAction.OPEN:
            await self._open_app("/")
            return False

        snooze_minutes = None
        if action == NotificationAction.SNOOZE:
            message_type = SyncMessageType.SNOOZE_TASK
            snooze_minutes = self.snooze_minutes
            self._snooze(reminder_id, (now or self.clock()) + timedelta(minutes=snooze_minutes))
        else:
            message_type = SyncMessageType.COMPLETE_TASK
            self.dismiss(reminder_id)

        if self.channel is not None:
            if await self.channel.send_task_action(message_type, reminder_id, snooze_minutes):
                logger.info(f"{message_type} for reminder {reminder_id} handed to the foreground")
                return True

        params = {"action": message_type, "taskId": reminder_id}
        if snooze_minutes is not None:
            params["snoozeMinutes"] = snooze_minutes
        await self._open_app(f"/?{urlencode(params)}")
        return False

    def start(self) -> None:
        """Start the fallback timer; the first check runs immediately."""
        if self._task is not None and not self._task.done():
            return
        self._task = asyncio.create_task(self._run(), name="notification-dispatcher")

    async def stop(self) -> None:
        """Cancel the fallback timer on teardown."""
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None

    async def _run(self) -> None:
        while True:
            try:
                await self.check_fallback()
            except Exception as e:
                logger.error(f"Fallback check failed: {e}", exc_info=True)
            await asyncio.sleep(self.fallback_interval)

    async def _render(self, notification: Notification) -> bool:
        reminder_id = notification.reminder_id
        if reminder_id is None:
            # Nothing to de-duplicate on
            try:
                await self.notifier.show(notification)
            except Exception as e:
                logger.error(f"Failed to show notification {notification.tag}: {e}")
                return False
            return True

        state = self._states.get(reminder_id)
        if state is not None and state != DeliveryState.PENDING:
            logger.debug(f"Reminder {reminder_id} already {state}, not rendering again")
            return False

        self._states[reminder_id] = DeliveryState.ATTEMPTING
        try:
            await self.notifier.show(notification)
        except Exception as e:
            self._states[reminder_id] = DeliveryState.PENDING
            logger.error(f"Failed to show reminder {reminder_id}: {e}")
            return False

        self._states[reminder_id] = DeliveryState.DELIVERED
        self._pending.pop(reminder_id, None)
        self._shown[reminder_id] = notification
        return True

    def _snooze(self, reminder_id: int, until: datetime) -> None:
        state = self._states.get(reminder_id)
        if state == DeliveryState.SKIPPED:
            return
        self._states[reminder_id] = DeliveryState.SNOOZED
        self._pending.pop(reminder_id, None)
        self._snoozed[reminder_id] = until
        logger.info(f"Reminder {reminder_id} snoozed until {until.isoformat()}")

    def _snoozed_notification(self, reminder_id: int) -> Notification:
        shown = self._shown.get(reminder_id)
        if shown is not None:
            return shown
        return Notification(
            title=DEFAULT_TITLE,
            body=DEFAULT_BODY,
            tag=f"task-{reminder_id}",
            reminder_id=reminder_id,
        )

    async def _open_app(self, path: str) -> None:
        try:
            await self.launcher.open(path)
        except Exception as e:
            logger.error(f"Failed to open the app at {path}: {e}")

    async def _load_snapshot(self) -> LocalSnapshot | None:
        if self.channel is not None:
            snapshot = await self.channel.request_pending_reminders()
            if snapshot is not None:
                return snapshot
        return self.store.load()

    def _track(self, snapshot: LocalSnapshot) -> None:
        listed = {entry.id for entry in snapshot.reminders}

        # Gone from the snapshot while still in the future: edited or deleted.
        # Gone after its due time: it simply aged out, keep it for the window.
        for reminder_id, entry in list(self._pending.items()):
            if reminder_id not in listed and entry.due_time >= snapshot.captured_at:
                del self._pending[reminder_id]
                if self._states.get(reminder_id) == DeliveryState.PENDING:
                    del self._states[reminder_id]

        for entry in snapshot.reminders:
            state = self._states.get(entry.id)
            if state is not None and state != DeliveryState.PENDING:
                continue
            self._pending[entry.id] = entry
            self._states[entry.id] = DeliveryState.PENDING
