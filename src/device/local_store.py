"""Device-local persistence for the reminder snapshot.

The durable store is a single-table SQLite key-value file that survives
restarts; the mirror is process memory, read first because it is cheap.
"""

import logging

from pydantic import ValidationError
from sqlalchemy import Column, DateTime, MetaData, String, Table, Text, create_engine, func, select
from sqlalchemy.dialects.sqlite import insert
from sqlalchemy.exc import SQLAlchemyError

from src.exceptions import StoreUnavailable
from src.schemas.snapshot import LocalSnapshot

logger = logging.getLogger(__name__)

SNAPSHOT_KEY = "pendingReminders"

metadata = MetaData()

local_kv = Table(
    "local_kv",
    metadata,
    Column("key", String(100), primary_key=True),
    Column("value", Text, nullable=False),
    Column("updated_at", DateTime(timezone=True), server_default=func.now(), nullable=False),
)


class DurableStore:
    """Key-value rows in a local SQLite database."""

    def __init__(self, url: str) -> None:
        if not url.startswith("sqlite"):
            raise ValueError("The durable device store must be a sqlite URL")
        self.engine = create_engine(url, connect_args={"check_same_thread": False})
        metadata.create_all(self.engine)

    def get(self, key: str) -> str | None:
        try:
            with self.engine.connect() as conn:
                return conn.execute(select(local_kv.c.value).where(local_kv.c.key == key)).scalar()
        except SQLAlchemyError as e:
            raise StoreUnavailable(f"Could not read {key}") from e

    def put(self, key: str, value: str) -> None:
        stmt = insert(local_kv).values(key=key, value=value)
        stmt = stmt.on_conflict_do_update(
            index_elements=["key"],
            set_={"value": value, "updated_at": func.now()},
        )
        try:
            with self.engine.begin() as conn:
                conn.execute(stmt)
        except SQLAlchemyError as e:
            raise StoreUnavailable(f"Could not write {key}") from e

    def close(self) -> None:
        self.engine.dispose()


class MemoryStore:
    """Fast, non-durable mirror."""

    def __init__(self) -> None:
        self._values: dict[str, str] = {}

    def get(self, key: str) -> str | None:
        return self._values.get(key)

    def put(self, key: str, value: str) -> None:
        self._values[key] = value


class SnapshotStore:
    """Reads and writes the single ``LocalSnapshot`` kept on the device.

    Unreadable or corrupt payloads are reported as absent; they never raise.
    """

    def __init__(
        self,
        durable: DurableStore,
        mirror: MemoryStore | None = None,
        key: str = SNAPSHOT_KEY,
    ) -> None:
        self.durable = durable
        self.mirror = mirror
        self.key = key

    def save(self, snapshot: LocalSnapshot) -> None:
        """Replace the stored snapshot.

        Raises:
            StoreUnavailable: the durable write failed (the mirror is still updated).
        """
        payload = snapshot.model_dump_json()
        if self.mirror is not None:
            self.mirror.put(self.key, payload)
        self.durable.put(self.key, payload)

    def load(self) -> LocalSnapshot | None:
        """Most recent snapshot, mirror first, or None."""
        if self.mirror is not None:
            snapshot = self._decode(self.mirror.get(self.key), "mirror")
            if snapshot is not None:
                return snapshot

        try:
            raw = self.durable.get(self.key)
        except StoreUnavailable as e:
            logger.warning(f"Durable snapshot store unavailable: {e}")
            return None
        return self._decode(raw, "durable store")

    def _decode(self, raw: str | None, source: str) -> LocalSnapshot | None:
        if raw is None:
            return None
        try:
            return LocalSnapshot.model_validate_json(raw)
        except ValidationError:
            logger.warning(f"Ignoring corrupt snapshot in {source}")
            return None
