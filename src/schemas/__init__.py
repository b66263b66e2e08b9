"""Pydantic schemas for request/response validation."""

from src.schemas.auth import AuthResponse, UserLogin, UserRegister, UserResponse
from src.schemas.notification import (
    DeduplicationResult,
    PushSubscriptionCreate,
    PushSubscriptionKeys,
    PushSubscriptionResponse,
    RegistrySummaryResponse,
    SubscriptionValidation,
    VapidPublicKeyResponse,
)
from src.schemas.snapshot import LocalSnapshot, SnapshotReminder, UpcomingRemindersResponse
from src.schemas.trigger import SweepResponse

__all__ = [
    "UserRegister",
    "UserLogin",
    "AuthResponse",
    "UserResponse",
    "PushSubscriptionKeys",
    "PushSubscriptionCreate",
    "PushSubscriptionResponse",
    "SubscriptionValidation",
    "DeduplicationResult",
    "RegistrySummaryResponse",
    "VapidPublicKeyResponse",
    "LocalSnapshot",
    "SnapshotReminder",
    "UpcomingRemindersResponse",
    "SweepResponse",
]
