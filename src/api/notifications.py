"""Notification API endpoints for push subscriptions."""

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Query, status

from src.api.dependencies import get_current_user, get_device_registry
from src.config import get_settings
from src.exceptions import RegistryUnavailableError
from src.models import PushSubscription
from src.models.user import User
from src.schemas.notification import (
    DeduplicationResult,
    PushSubscriptionCreate,
    PushSubscriptionResponse,
    RegistrySummaryResponse,
    SubscriptionValidation,
    VapidPublicKeyResponse,
)
from src.services.device_registry import DeviceRegistry, SubscriptionKeys

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/notifications", tags=["notifications"])


def _registry_unavailable(e: RegistryUnavailableError) -> HTTPException:
    logger.error(f"Device registry unavailable: {e}")
    return HTTPException(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        detail="Subscription storage temporarily unavailable, retry later",
    )


@router.get("/vapid-public-key", response_model=VapidPublicKeyResponse)
async def get_vapid_public_key() -> VapidPublicKeyResponse:
    """Get the VAPID public key for push notification subscription."""
    settings = get_settings()
    return VapidPublicKeyResponse(public_key=settings.vapid_public_key)


@router.post("/subscribe", response_model=PushSubscriptionResponse)
def subscribe_push(
    subscription: PushSubscriptionCreate,
    registry: Annotated[DeviceRegistry, Depends(get_device_registry)],
    current_user: Annotated[User, Depends(get_current_user)],
) -> PushSubscription:
    """Register this device for push notifications.

    Registering an endpoint that is already known only refreshes its
    last-used time.
    """
    try:
        return registry.register(
            owner_id=current_user.id,
            endpoint=subscription.endpoint,
            keys=SubscriptionKeys(p256dh=subscription.keys.p256dh, auth=subscription.keys.auth),
            label=subscription.device_label,
        )
    except RegistryUnavailableError as e:
        raise _registry_unavailable(e) from e


@router.delete("/subscribe")
def unsubscribe_push(
    endpoint: str,
    registry: Annotated[DeviceRegistry, Depends(get_device_registry)],
    current_user: Annotated[User, Depends(get_current_user)],
) -> dict:
    """Unsubscribe from push notifications."""
    try:
        removed = registry.unregister(current_user.id, endpoint)
    except RegistryUnavailableError as e:
        raise _registry_unavailable(e) from e

    if removed:
        return {"message": "Unsubscribed successfully"}
    return {"message": "Subscription not found"}


@router.get("/subscribe/validate", response_model=SubscriptionValidation)
def validate_subscription(
    registry: Annotated[DeviceRegistry, Depends(get_device_registry)],
    current_user: Annotated[User, Depends(get_current_user)],
    endpoint: str = Query(..., max_length=500),
) -> SubscriptionValidation:
    """Check whether a locally cached subscription is still registered."""
    try:
        valid = registry.validate(current_user.id, endpoint)
    except RegistryUnavailableError as e:
        raise _registry_unavailable(e) from e
    return SubscriptionValidation(endpoint=endpoint, valid=valid)


@router.get("/subscriptions", response_model=list[PushSubscriptionResponse])
def list_subscriptions(
    registry: Annotated[DeviceRegistry, Depends(get_device_registry)],
    current_user: Annotated[User, Depends(get_current_user)],
) -> list[PushSubscription]:
    """List the current user's registered devices."""
    try:
        return registry.list_for_owner(current_user.id)
    except RegistryUnavailableError as e:
        raise _registry_unavailable(e) from e


@router.post("/subscriptions/deduplicate", response_model=DeduplicationResult)
def deduplicate_subscriptions(
    registry: Annotated[DeviceRegistry, Depends(get_device_registry)],
    current_user: Annotated[User, Depends(get_current_user)],
) -> DeduplicationResult:
    """Remove duplicate registrations, keeping the most recently used per endpoint."""
    try:
        result = registry.deduplicate(current_user.id)
    except RegistryUnavailableError as e:
        raise _registry_unavailable(e) from e
    return DeduplicationResult(
        deleted_count=result.deleted_count,
        duplicate_groups=result.duplicate_groups,
        remaining=result.remaining,
    )


@router.get("/subscriptions/summary", response_model=RegistrySummaryResponse)
def subscriptions_summary(
    registry: Annotated[DeviceRegistry, Depends(get_device_registry)],
    current_user: Annotated[User, Depends(get_current_user)],
) -> RegistrySummaryResponse:
    """Diagnostic counts of the current user's registrations."""
    try:
        summary = registry.summary(current_user.id)
    except RegistryUnavailableError as e:
        raise _registry_unavailable(e) from e
    return RegistrySummaryResponse(
        total=summary.total,
        unique_endpoints=summary.unique_endpoints,
        duplicates=summary.duplicates,
    )
