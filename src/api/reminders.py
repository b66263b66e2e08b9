"""Reminder API endpoints consumed by the device fallback cache."""

from datetime import datetime, timedelta
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Query, status

from src.api.dependencies import get_current_user, get_reminder_store
from src.config import get_settings
from src.models.user import User
from src.schemas.snapshot import SnapshotReminder, UpcomingRemindersResponse
from src.services.reminder_store import ReminderStore
from src.utils.time import to_utc_aware, utc_now

router = APIRouter(prefix="/api/v1/reminders", tags=["reminders"])


@router.get("/upcoming", response_model=UpcomingRemindersResponse)
def get_upcoming_reminders(
    store: Annotated[ReminderStore, Depends(get_reminder_store)],
    current_user: Annotated[User, Depends(get_current_user)],
    start: datetime | None = Query(default=None),
    end: datetime | None = Query(default=None),
) -> UpcomingRemindersResponse:
    """Get unsent reminders due in ``[start, end)``.

    Defaults to now through the configured snapshot lookahead.
    """
    start = to_utc_aware(start) if start else utc_now()
    if end is None:
        end = start + timedelta(hours=get_settings().snapshot_lookahead_hours)
    else:
        end = to_utc_aware(end)

    if end <= start:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="end must be after start",
        )

    reminders = store.upcoming(current_user.id, start, end)
    return UpcomingRemindersResponse(
        start=start,
        end=end,
        reminders=[SnapshotReminder.model_validate(r) for r in reminders],
    )
