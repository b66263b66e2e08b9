"""Column mixins shared by the delivery models."""

from sqlalchemy import Column, DateTime, String, func


class TimestampMixin:
    """Server-stamped creation and modification times."""

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )


class ClaimMixin:
    """Short-lived ownership of a row by one in-flight worker.

    A claim is free when ``claimed_until`` is null or in the past, so a worker
    that dies mid-flight releases it by simply not renewing it.
    """

    claim_token = Column(String(36), nullable=True)
    claimed_until = Column(DateTime(timezone=True), nullable=True)
