"""FastAPI dependencies for authentication and database."""

import secrets
from typing import Annotated

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from src.config import get_settings
from src.database import get_db
from src.models.user import User
from src.services.auth import decode_access_token
from src.services.delivery_trigger import DeliveryTrigger
from src.services.device_registry import DeviceRegistry
from src.services.reminder_store import ReminderStore

security = HTTPBearer()


def get_current_user(
    credentials: Annotated[HTTPAuthorizationCredentials, Depends(security)],
    db: Annotated[Session, Depends(get_db)],
) -> User:
    """Get the current authenticated user from JWT token."""
    token = credentials.credentials
    payload = decode_access_token(token)

    if payload is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid authentication credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )

    user_id = payload.get("sub")
    if user_id is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid authentication credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )

    user = db.query(User).filter(User.id == int(user_id)).first()
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User not found",
            headers={"WWW-Authenticate": "Bearer"},
        )

    return user


def verify_trigger_secret(
    credentials: Annotated[HTTPAuthorizationCredentials, Depends(security)],
) -> None:
    """Authenticate an external scheduler calling the trigger endpoint."""
    expected = get_settings().trigger_secret
    if not secrets.compare_digest(credentials.credentials.encode(), expected.encode()):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid trigger credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )


def get_device_registry(
    db: Annotated[Session, Depends(get_db)],
) -> DeviceRegistry:
    """Get device registry bound to the request session."""
    return DeviceRegistry(db)


def get_reminder_store(
    db: Annotated[Session, Depends(get_db)],
) -> ReminderStore:
    """Get reminder store bound to the request session."""
    return ReminderStore(db)


def get_delivery_trigger(
    db: Annotated[Session, Depends(get_db)],
) -> DeliveryTrigger:
    """Get delivery trigger with the configured push transport."""
    return DeliveryTrigger(db)
