"""Parsing of inbound push payloads into renderable notifications."""

import json
import logging
from dataclasses import dataclass, field
from typing import Any

from src.device.enums import NotificationAction

logger = logging.getLogger(__name__)

DEFAULT_TITLE = "Task Reminder"
DEFAULT_BODY = "You have a task reminder"
GENERIC_BODY = "You have a task reminder! Check the app for details."

REMINDER_ACTIONS = (NotificationAction.COMPLETE, NotificationAction.SNOOZE)
GENERIC_ACTIONS = (NotificationAction.OPEN, NotificationAction.DISMISS)

# Older senders used these names for the reminder id
_ID_FIELDS = ("reminder_id", "reminderId", "taskId", "task_id", "item_id")


@dataclass(frozen=True)
class Notification:
    """What the dispatcher asks the notifier to show."""

    title: str
    body: str
    tag: str
    reminder_id: int | None = None
    actions: tuple[NotificationAction, ...] = field(default=REMINDER_ACTIONS)
    require_interaction: bool = True

    @classmethod
    def for_reminder(cls, reminder_id: int, text: str) -> "Notification":
        return cls(
            title=DEFAULT_TITLE,
            body=f"Don't forget: {text}",
            tag=f"task-{reminder_id}",
            reminder_id=reminder_id,
        )

    @classmethod
    def generic(cls) -> "Notification":
        return cls(
            title=DEFAULT_TITLE,
            body=GENERIC_BODY,
            tag="reminder",
            actions=GENERIC_ACTIONS,
        )


def parse_push_payload(raw: bytes | str | None) -> Notification:
    """Turn a push message body into a notification.

    Accepts the flat legacy shape (``title``/``body``/``taskId`` at the top
    level), the nested shape with a ``data`` object, and plain text. Anything
    else degrades to a generic notification.
    """
    if raw is None:
        return Notification.generic()

    if isinstance(raw, bytes):
        try:
            raw = raw.decode("utf-8")
        except UnicodeDecodeError:
            logger.warning("Push payload is not UTF-8, showing generic notification")
            return Notification.generic()

    text = raw.strip()
    if not text:
        return Notification.generic()

    try:
        decoded = json.loads(text)
    except json.JSONDecodeError:
        return Notification(title=DEFAULT_TITLE, body=text, tag="reminder")

    if not isinstance(decoded, dict):
        logger.warning(f"Unexpected push payload type {type(decoded).__name__}")
        return Notification.generic()

    fields: dict[str, Any] = dict(decoded)
    nested = decoded.get("data")
    if isinstance(nested, dict):
        fields.update(nested)

    reminder_id = _reminder_id(fields)
    body = fields.get("body") or fields.get("text") or fields.get("message")
    if reminder_id is None and not body:
        return Notification.generic()

    tag = fields.get("tag") or (f"task-{reminder_id}" if reminder_id is not None else "reminder")
    return Notification(
        title=str(fields.get("title") or DEFAULT_TITLE),
        body=str(body or DEFAULT_BODY),
        tag=str(tag),
        reminder_id=reminder_id,
    )


def _reminder_id(fields: dict[str, Any]) -> int | None:
    for name in _ID_FIELDS:
        value = fields.get(name)
        if value is None or isinstance(value, bool):
            continue
        try:
            return int(value)
        except (TypeError, ValueError):
            logger.warning(f"Ignoring non-numeric {name} in push payload: {value!r}")
    return None
