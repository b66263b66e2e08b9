"""Remote delivery trigger: sweeps due reminders and fans them out to devices."""

import logging
import uuid
from dataclasses import asdict, dataclass
from datetime import datetime, timedelta

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from src.config import get_settings
from src.exceptions import RegistryUnavailableError, TransportRejected, TransportTransient
from src.models import Reminder
from src.services.device_registry import DeviceRegistry
from src.services.push_transport import PushPayload, WebPushTransport
from src.services.reminder_store import ReminderStore

logger = logging.getLogger(__name__)


@dataclass
class SweepResult:
    """Statistics for one sweep.

    ``delivered`` and ``failed`` count device deliveries, ``processed`` counts
    reminders this sweep claimed, ``skipped`` counts reminders another sweep
    held the claim on.
    """

    processed: int = 0
    delivered: int = 0
    failed: int = 0
    skipped: int = 0

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class FanOutResult:
    delivered: int = 0
    failed: int = 0
    removed: int = 0


class DeliveryTrigger:
    """Scans the reminder store and pushes due reminders to every registered device.

    Delivery is best effort per device: one attempt per device per sweep, and
    the reminder is marked sent once the fan-out has been attempted. Overlapping
    sweeps coordinate through the per-reminder claim, never through the
    ``sent`` flag.
    """

    def __init__(
        self,
        db: Session,
        transport: WebPushTransport | None = None,
        claim_ttl: timedelta | None = None,
    ) -> None:
        self.db = db
        self.settings = get_settings()
        self.transport = transport or WebPushTransport(self.settings)
        self.claim_ttl = claim_ttl or timedelta(seconds=self.settings.claim_ttl_seconds)
        self.reminders = ReminderStore(db)
        self.registry = DeviceRegistry(db)

    def sweep(self, now: datetime) -> SweepResult:
        """Deliver every due, unsent reminder once."""
        result = SweepResult()

        if not self.transport.available:
            logger.warning("Push transport not configured, leaving due reminders untouched")
            return result

        due_reminders = self.reminders.due(now)
        logger.info(f"Sweep at {now.isoformat()}: {len(due_reminders)} due reminders")

        for reminder in due_reminders:
            token = str(uuid.uuid4())
            reminder_id = reminder.id
            try:
                claimed = self.reminders.claim(reminder_id, token, now, self.claim_ttl)
            except SQLAlchemyError as e:
                self.db.rollback()
                logger.error(f"Failed to claim reminder {reminder_id}: {e}")
                continue

            if not claimed:
                logger.info(f"Reminder {reminder_id} claimed by another sweep, skipping")
                result.skipped += 1
                continue

            try:
                fan_out = self._fan_out(reminder)
            except (RegistryUnavailableError, SQLAlchemyError) as e:
                self.db.rollback()
                logger.error(f"Fan-out for reminder {reminder_id} aborted: {e}", exc_info=True)
                self.reminders.release(reminder_id, token)
                continue

            result.processed += 1
            result.delivered += fan_out.delivered
            result.failed += fan_out.failed

            try:
                self.reminders.mark_sent(reminder_id, token, now)
            except SQLAlchemyError as e:
                # The claim expires on its own and a later sweep retries the reminder
                self.db.rollback()
                logger.error(f"Failed to mark reminder {reminder_id} as sent: {e}")

        logger.info(f"Sweep complete: {result}")
        return result

    def _fan_out(self, reminder: Reminder) -> FanOutResult:
        """Attempt delivery to each of the owner's devices independently."""
        fan_out = FanOutResult()
        subscriptions = self.registry.list_for_owner(reminder.owner_id)

        if not subscriptions:
            logger.info(f"No push subscriptions for user {reminder.owner_id}")
            return fan_out

        payload = PushPayload.for_reminder(
            reminder.id,
            reminder.text,
            url=f"/list/{reminder.list_id}" if reminder.list_id else "/",
        )

        for subscription in subscriptions:
            subscription_id = subscription.id
            try:
                self.transport.send(subscription, payload)
            except TransportRejected as e:
                fan_out.failed += 1
                logger.info(
                    f"Subscription {subscription_id} rejected ({e.status_code}), removing it"
                )
                try:
                    self.registry.remove(subscription_id)
                    fan_out.removed += 1
                except RegistryUnavailableError as remove_error:
                    logger.error(f"Could not remove subscription {subscription_id}: {remove_error}")
                continue
            except TransportTransient as e:
                fan_out.failed += 1
                logger.error(f"Push failed for subscription {subscription_id}: {e}")
                continue

            fan_out.delivered += 1
            try:
                self.registry.touch(subscription_id)
            except RegistryUnavailableError as e:
                logger.warning(f"Could not stamp subscription {subscription_id}: {e}")

        logger.info(
            f"Reminder {reminder.id}: sent to {fan_out.delivered}/{len(subscriptions)} "
            f"devices of user {reminder.owner_id}, "
            f"removed {fan_out.removed} stale subscriptions"
        )
        return fan_out
