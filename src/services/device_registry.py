"""Device registry for web push subscriptions.

Every mutating operation is a single conditional statement so that several
tabs of the same user registering at once cannot race each other into
duplicate rows or lost updates.
"""

import logging
from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime
from urllib.parse import urlsplit, urlunsplit

from sqlalchemy import delete, func, update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from src.database import dialect_name
from src.exceptions import RegistryUnavailableError
from src.models import PushSubscription
from src.utils.time import to_utc_aware, utc_now

logger = logging.getLogger(__name__)

_UPSERT_DIALECTS = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


@dataclass
class SubscriptionKeys:
    """Encryption keys of a push subscription."""

    p256dh: str
    auth: str


@dataclass
class DedupResult:
    """Outcome of a deduplication pass."""

    deleted_count: int
    duplicate_groups: int
    remaining: int


@dataclass
class RegistrySummary:
    """Read-only aggregate of a user's subscriptions."""

    total: int
    unique_endpoints: int

    @property
    def duplicates(self) -> int:
        return self.total - self.unique_endpoints


def normalize_endpoint(endpoint: str) -> str:
    """Reduce an endpoint to the form used for duplicate detection.

    Push services sometimes hand out the same endpoint with extra query
    parameters or a trailing slash.
    """
    parts = urlsplit(endpoint.strip())
    path = parts.path.rstrip("/")
    return urlunsplit((parts.scheme.lower(), parts.netloc.lower(), path, "", ""))


class DeviceRegistry:
    """Owns the set of push endpoints registered per user."""

    def __init__(self, db: Session) -> None:
        self.db = db

    def register(
        self,
        owner_id: int,
        endpoint: str,
        keys: SubscriptionKeys,
        label: str | None = None,
        now: datetime | None = None,
    ) -> PushSubscription:
        """Register an endpoint, or refresh ``last_used_at`` if already known.

        Implemented as one ``INSERT ... ON CONFLICT DO UPDATE`` keyed by
        ``(user_id, endpoint)``.
        """
        now = now or utc_now()
        insert = self._insert_for_dialect()

        stmt = insert(PushSubscription).values(
            user_id=owner_id,
            endpoint=endpoint,
            p256dh_key=keys.p256dh,
            auth_key=keys.auth,
            device_label=label,
            last_used_at=now,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["user_id", "endpoint"],
            set_={"last_used_at": now, "updated_at": now},
        ).returning(PushSubscription.id)

        try:
            subscription_id = self.db.execute(stmt).scalar_one()
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Failed to register endpoint for user {owner_id}: {e}")
            raise RegistryUnavailableError("Could not store push subscription") from e

        subscription = self.db.get(PushSubscription, subscription_id)
        logger.info(f"Registered subscription {subscription_id} for user {owner_id}")
        return subscription

    def validate(self, owner_id: int, endpoint: str) -> bool:
        """Check that a locally cached endpoint still has a matching row."""
        try:
            row = (
                self.db.query(PushSubscription.id)
                .filter(
                    PushSubscription.user_id == owner_id,
                    PushSubscription.endpoint == endpoint,
                )
                .first()
            )
        except SQLAlchemyError as e:
            self.db.rollback()
            raise RegistryUnavailableError("Could not read push subscriptions") from e
        return row is not None

    def list_for_owner(self, owner_id: int) -> list[PushSubscription]:
        """All subscriptions registered by a user, oldest first."""
        try:
            return (
                self.db.query(PushSubscription)
                .filter(PushSubscription.user_id == owner_id)
                .order_by(PushSubscription.id)
                .all()
            )
        except SQLAlchemyError as e:
            self.db.rollback()
            raise RegistryUnavailableError("Could not read push subscriptions") from e

    def deduplicate(self, owner_id: int) -> DedupResult:
        """Delete all but the most recently used row of each endpoint group."""
        subscriptions = self.list_for_owner(owner_id)

        groups: dict[str, list[PushSubscription]] = defaultdict(list)
        for subscription in subscriptions:
            groups[normalize_endpoint(subscription.endpoint)].append(subscription)

        stale_ids: list[int] = []
        duplicate_groups = 0
        for members in groups.values():
            if len(members) < 2:
                continue
            duplicate_groups += 1
            members.sort(key=lambda s: (to_utc_aware(s.last_used_at), s.id), reverse=True)
            stale_ids.extend(s.id for s in members[1:])

        deleted = 0
        if stale_ids:
            try:
                result = self.db.execute(
                    delete(PushSubscription)
                    .where(
                        PushSubscription.user_id == owner_id,
                        PushSubscription.id.in_(stale_ids),
                    )
                    .execution_options(synchronize_session=False)
                )
                self.db.commit()
            except SQLAlchemyError as e:
                self.db.rollback()
                logger.error(f"Failed to deduplicate subscriptions for user {owner_id}: {e}")
                raise RegistryUnavailableError("Could not delete duplicate subscriptions") from e
            deleted = result.rowcount

        logger.info(
            f"Deduplicated subscriptions for user {owner_id}: "
            f"{deleted} deleted, {len(groups)} endpoints remain"
        )
        return DedupResult(
            deleted_count=deleted, duplicate_groups=duplicate_groups, remaining=len(groups)
        )

    def summary(self, owner_id: int) -> RegistrySummary:
        """Count registered rows and distinct normalized endpoints."""
        subscriptions = self.list_for_owner(owner_id)
        unique = {normalize_endpoint(s.endpoint) for s in subscriptions}
        return RegistrySummary(total=len(subscriptions), unique_endpoints=len(unique))

    def unregister(self, owner_id: int, endpoint: str) -> bool:
        """Delete a user's subscription for an endpoint. Returns True if a row went away."""
        try:
            result = self.db.execute(
                delete(PushSubscription)
                .where(
                    PushSubscription.user_id == owner_id,
                    PushSubscription.endpoint == endpoint,
                )
                .execution_options(synchronize_session=False)
            )
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            raise RegistryUnavailableError("Could not delete push subscription") from e
        return result.rowcount > 0

    def remove(self, subscription_id: int) -> None:
        """Delete a subscription the push service rejected."""
        try:
            self.db.execute(
                delete(PushSubscription)
                .where(PushSubscription.id == subscription_id)
                .execution_options(synchronize_session=False)
            )
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            raise RegistryUnavailableError("Could not delete push subscription") from e
        logger.info(f"Removed rejected subscription {subscription_id}")

    def touch(self, subscription_id: int, now: datetime | None = None) -> None:
        """Record a successful delivery on a subscription."""
        now = now or utc_now()
        try:
            self.db.execute(
                update(PushSubscription)
                .where(PushSubscription.id == subscription_id)
                .values(last_used_at=now, updated_at=func.now())
                .execution_options(synchronize_session=False)
            )
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            raise RegistryUnavailableError("Could not update push subscription") from e

    def _insert_for_dialect(self):
        name = dialect_name(self.db)
        try:
            return _UPSERT_DIALECTS[name]
        except KeyError:
            raise RegistryUnavailableError(f"Upsert not supported on {name}") from None
