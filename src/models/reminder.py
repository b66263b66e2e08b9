"""Reminder model."""

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Index, Integer, String
from sqlalchemy.orm import relationship

from src.database import Base
from src.models.mixins import ClaimMixin, TimestampMixin


class Reminder(Base, TimestampMixin, ClaimMixin):
    """A time-scheduled reminder owned by a user.

    Rows are created by the task-management surface. The delivery trigger is
    the only writer of ``sent`` and the claim columns.
    """

    __tablename__ = "reminders"
    __table_args__ = (Index("ix_reminders_sent_due_time", "sent", "due_time"),)

    id = Column(Integer, primary_key=True, index=True)
    owner_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    list_id = Column(Integer, nullable=True)
    text = Column(String(500), nullable=False)
    due_time = Column(DateTime(timezone=True), nullable=False)
    sent = Column(Boolean, default=False, nullable=False)
    sent_at = Column(DateTime(timezone=True), nullable=True)

    # Relationships
    owner = relationship("User", back_populates="reminders")
