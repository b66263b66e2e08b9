"""SQLAlchemy models."""

from src.models.push_subscription import PushSubscription
from src.models.reminder import Reminder
from src.models.user import User

__all__ = [
    "User",
    "Reminder",
    "PushSubscription",
]
