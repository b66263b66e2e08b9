"""Schemas for reminder snapshots held on the device."""

from datetime import datetime

from pydantic import BaseModel, Field, field_validator

from src.utils.time import to_utc_aware


class SnapshotReminder(BaseModel):
    """One upcoming reminder as the device sees it."""

    id: int
    text: str
    due_time: datetime

    model_config = {"from_attributes": True}

    @field_validator("due_time")
    @classmethod
    def ensure_utc(cls, value: datetime) -> datetime:
        return to_utc_aware(value)


class LocalSnapshot(BaseModel):
    """Full replacement capture of upcoming reminders."""

    captured_at: datetime
    reminders: list[SnapshotReminder] = Field(default_factory=list)

    @field_validator("captured_at")
    @classmethod
    def ensure_utc(cls, value: datetime) -> datetime:
        return to_utc_aware(value)


class UpcomingRemindersResponse(BaseModel):
    """Unsent reminders of the current user within a due-time range."""

    start: datetime
    end: datetime
    reminders: list[SnapshotReminder]
