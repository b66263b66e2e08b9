"""Notification-related Pydantic schemas."""

from datetime import datetime

from pydantic import BaseModel, Field


class PushSubscriptionKeys(BaseModel):
    """Encryption keys of a browser push subscription."""

    p256dh: str = Field(..., max_length=200)
    auth: str = Field(..., max_length=100)


class PushSubscriptionCreate(BaseModel):
    """Schema for registering a push subscription."""

    endpoint: str = Field(..., max_length=500)
    keys: PushSubscriptionKeys
    device_label: str | None = Field(None, max_length=100)


class PushSubscriptionResponse(BaseModel):
    """Schema for push subscription response."""

    id: int
    endpoint: str
    device_label: str | None
    created_at: datetime
    last_used_at: datetime

    model_config = {"from_attributes": True}


class SubscriptionValidation(BaseModel):
    """Whether an endpoint is still registered for the current user."""

    endpoint: str
    valid: bool


class DeduplicationResult(BaseModel):
    """Result of removing duplicate registrations."""

    deleted_count: int
    duplicate_groups: int
    remaining: int


class RegistrySummaryResponse(BaseModel):
    """Diagnostic counts of a user's registrations."""

    total: int
    unique_endpoints: int
    duplicates: int


class VapidPublicKeyResponse(BaseModel):
    """Schema for VAPID public key response."""

    public_key: str | None
