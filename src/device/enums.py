"""Enums used by the device runtime."""

from enum import StrEnum


class DeliveryState(StrEnum):
    """Per-reminder state inside a notification dispatcher."""

    PENDING = "pending"
    ATTEMPTING = "attempting"
    DELIVERED = "delivered"
    SNOOZED = "snoozed"
    SKIPPED = "skipped"

    @property
    def is_terminal(self) -> bool:
        """Check if no further render may happen from this state."""
        return self in (DeliveryState.DELIVERED, DeliveryState.SKIPPED)


class SyncMessageType(StrEnum):
    """Message types on the cross-context sync channel."""

    REQUEST_PENDING_REMINDERS = "REQUEST_PENDING_REMINDERS"
    PENDING_REMINDERS_RESPONSE = "PENDING_REMINDERS_RESPONSE"
    COMPLETE_TASK = "COMPLETE_TASK"
    SNOOZE_TASK = "SNOOZE_TASK"
    TASK_ACTION_RECEIVED = "TASK_ACTION_RECEIVED"

    @property
    def is_task_action(self) -> bool:
        """Check if this message forwards a notification click to the foreground."""
        return self in (SyncMessageType.COMPLETE_TASK, SyncMessageType.SNOOZE_TASK)


class NotificationAction(StrEnum):
    """Actions offered on a rendered notification."""

    COMPLETE = "complete"
    SNOOZE = "snooze"
    OPEN = "open"
    DISMISS = "dismiss"
