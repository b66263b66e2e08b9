"""Device subscription model for web push delivery."""

from sqlalchemy import Column, DateTime, ForeignKey, Index, Integer, String, UniqueConstraint, func
from sqlalchemy.orm import relationship

from src.database import Base
from src.models.mixins import TimestampMixin


class PushSubscription(Base, TimestampMixin):
    """One device (browser profile) registered to receive its owner's reminders.

    ``(user_id, endpoint)`` is unique so a repeated registration can only
    refresh ``last_used_at``.
    """

    __tablename__ = "push_subscriptions"
    __table_args__ = (
        UniqueConstraint("user_id", "endpoint", name="uq_user_endpoint"),
        Index("ix_push_subscriptions_user_last_used", "user_id", "last_used_at"),
    )

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    endpoint = Column(String(500), nullable=False)
    p256dh_key = Column(String(200), nullable=False)
    auth_key = Column(String(100), nullable=False)
    device_label = Column(String(100), nullable=True)  # "Desktop", "Mobile", user agent, ...
    last_used_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    # Relationships
    user = relationship("User", back_populates="push_subscriptions")
