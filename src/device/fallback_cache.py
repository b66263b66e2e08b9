"""Foreground side of the fallback path: snapshot refresh and its poller."""

import asyncio
import logging
from collections.abc import Callable
from datetime import datetime, timedelta
from typing import Protocol

from src.config import MIN_LOOKAHEAD_TO_FALLBACK_RATIO
from src.device.local_store import SnapshotStore
from src.exceptions import StoreUnavailable
from src.schemas.snapshot import LocalSnapshot, SnapshotReminder
from src.utils.time import utc_now

logger = logging.getLogger(__name__)


class ReminderSource(Protocol):
    """Where the foreground context reads upcoming reminders from."""

    async def fetch_upcoming(
        self, owner_id: int, start: datetime, end: datetime
    ) -> list[SnapshotReminder]: ...


class FallbackCache:
    """Keeps a snapshot of soon-due reminders for the background dispatcher."""

    def __init__(
        self,
        source: ReminderSource,
        store: SnapshotStore,
        lookahead: timedelta,
        fallback_interval: timedelta,
        fallback_window: timedelta = timedelta(minutes=60),
    ) -> None:
        if lookahead < MIN_LOOKAHEAD_TO_FALLBACK_RATIO * fallback_interval:
            raise ValueError(
                f"lookahead {lookahead} is shorter than {MIN_LOOKAHEAD_TO_FALLBACK_RATIO} "
                f"fallback intervals of {fallback_interval}"
            )
        self.source = source
        self.store = store
        self.lookahead = lookahead
        self.fallback_window = fallback_window

    async def refresh(self, owner_id: int, now: datetime | None = None) -> LocalSnapshot:
        """Capture unsent reminders due in ``[now - fallback_window, now + lookahead)``.

        Past-due reminders stay in the snapshot for the fallback window, so a
        dispatcher that slept through their due time still finds them after a
        later refresh. A failed durable write is logged; the mirror still holds
        the new snapshot and the next refresh writes it again.
        """
        now = now or utc_now()
        start = now - self.fallback_window
        end = now + self.lookahead
        fetched = await self.source.fetch_upcoming(owner_id, start, end)

        reminders = sorted(
            (r for r in fetched if start <= r.due_time < end),
            key=lambda r: (r.due_time, r.id),
        )
        snapshot = LocalSnapshot(captured_at=now, reminders=reminders)

        try:
            self.store.save(snapshot)
        except StoreUnavailable as e:
            logger.warning(f"Snapshot not persisted, will retry next refresh: {e}")

        logger.info(f"Refreshed snapshot for user {owner_id}: {len(reminders)} reminders")
        return snapshot

    def read(self) -> LocalSnapshot | None:
        """Most recent snapshot, or None if absent or unreadable."""
        return self.store.load()


class ReminderPoller:
    """Refreshes the fallback cache on a fixed interval while the foreground is alive."""

    def __init__(
        self,
        cache: FallbackCache,
        owner_id: int,
        interval: float,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.cache = cache
        self.owner_id = owner_id
        self.interval = interval
        self.clock = clock
        self._wake = asyncio.Event()
        self._task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Start polling; the first refresh happens immediately."""
        if self.running:
            return
        self._task = asyncio.create_task(self._run(), name=f"reminder-poller-{self.owner_id}")

    async def stop(self) -> None:
        """Cancel the poll loop on foreground teardown."""
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None

    def notify_changed(self) -> None:
        """Refresh right away, e.g. after a reminder was created or edited."""
        self._wake.set()

    async def refresh_once(self) -> LocalSnapshot | None:
        """Run one refresh; failures are logged and left for the next cycle."""
        try:
            return await self.cache.refresh(self.owner_id, self.clock())
        except Exception as e:
            logger.error(f"Reminder snapshot refresh failed: {e}")
            return None

    async def _run(self) -> None:
        while True:
            self._wake.clear()
            await self.refresh_once()
            try:
                await asyncio.wait_for(self._wake.wait(), timeout=self.interval)
            except TimeoutError:
                pass
