"""Query surface over the reminders table used by the delivery subsystem."""

import logging
from datetime import datetime, timedelta

from sqlalchemy import or_, update
from sqlalchemy.orm import Session

from src.models import Reminder
from src.utils.time import utc_now

logger = logging.getLogger(__name__)


class ReminderStore:
    """Reads due/upcoming reminders and performs the trigger's conditional writes."""

    def __init__(self, db: Session) -> None:
        self.db = db

    def upcoming(self, owner_id: int, start: datetime, end: datetime) -> list[Reminder]:
        """Unsent reminders of one owner with ``start <= due_time < end``, soonest first."""
        return (
            self.db.query(Reminder)
            .filter(
                Reminder.owner_id == owner_id,
                Reminder.sent.is_(False),
                Reminder.due_time >= start,
                Reminder.due_time < end,
            )
            .order_by(Reminder.due_time, Reminder.id)
            .all()
        )

    def due(self, now: datetime, limit: int | None = None) -> list[Reminder]:
        """All unsent reminders whose due time has passed, oldest first."""
        query = (
            self.db.query(Reminder)
            .filter(Reminder.sent.is_(False), Reminder.due_time <= now)
            .order_by(Reminder.due_time, Reminder.id)
        )
        if limit:
            query = query.limit(limit)
        return query.all()

    def claim(self, reminder_id: int, token: str, now: datetime, ttl: timedelta) -> bool:
        """Take the per-reminder claim for one sweep.

        Succeeds only while the reminder is unsent and nobody else holds an
        unexpired claim. Returns False on collision.
        """
        result = self.db.execute(
            update(Reminder)
            .where(
                Reminder.id == reminder_id,
                Reminder.sent.is_(False),
                or_(Reminder.claimed_until.is_(None), Reminder.claimed_until <= now),
            )
            .values(claim_token=token, claimed_until=now + ttl)
            .execution_options(synchronize_session=False)
        )
        self.db.commit()
        return result.rowcount == 1

    def mark_sent(self, reminder_id: int, token: str, now: datetime | None = None) -> bool:
        """Flip ``sent`` to true for a reminder this sweep holds the claim on.

        The ``sent = false`` guard keeps the transition one-way and single.
        """
        result = self.db.execute(
            update(Reminder)
            .where(
                Reminder.id == reminder_id,
                Reminder.sent.is_(False),
                Reminder.claim_token == token,
            )
            .values(sent=True, sent_at=now or utc_now(), claim_token=None, claimed_until=None)
            .execution_options(synchronize_session=False)
        )
        self.db.commit()
        if result.rowcount != 1:
            logger.warning(f"Reminder {reminder_id} was not marked sent: claim lost")
            return False
        return True

    def release(self, reminder_id: int, token: str) -> None:
        """Give a claim back without marking the reminder sent."""
        self.db.execute(
            update(Reminder)
            .where(Reminder.id == reminder_id, Reminder.claim_token == token)
            .values(claim_token=None, claimed_until=None)
            .execution_options(synchronize_session=False)
        )
        self.db.commit()
