"""Web push transport built on pywebpush."""

import json
import logging
from dataclasses import asdict, dataclass, field
from typing import Any

from pywebpush import WebPushException, webpush
from requests import RequestException

from src.config import Settings, get_settings
from src.exceptions import TransportRejected, TransportTransient
from src.models import PushSubscription

logger = logging.getLogger(__name__)

# Push services answer these when the endpoint is gone for good
REJECTED_STATUS_CODES = frozenset({404, 410})


@dataclass
class PushPayload:
    """Compact reminder payload sent to every device."""

    title: str
    body: str
    reminder_id: int | None = None
    tag: str = "notification"
    data: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def for_reminder(cls, reminder_id: int, text: str, url: str = "/") -> "PushPayload":
        """Build the payload for a due reminder."""
        tag = f"task-{reminder_id}"
        return cls(
            title="Task Reminder",
            body=f"Don't forget: {text}",
            reminder_id=reminder_id,
            tag=tag,
            data={"reminder_id": reminder_id, "tag": tag, "url": url},
        )

    def to_json(self) -> str:
        return json.dumps(asdict(self))


class WebPushTransport:
    """Sends encrypted push messages to a single endpoint at a time."""

    def __init__(self, settings: Settings | None = None) -> None:
        self.settings = settings or get_settings()
        if not self.available:
            logger.info("VAPID credentials not configured, push disabled")

    @property
    def available(self) -> bool:
        return self.settings.push_configured

    def send(self, subscription: PushSubscription, payload: PushPayload) -> None:
        """Deliver ``payload`` to one subscription.

        Raises:
            TransportRejected: the push service no longer knows the endpoint.
            TransportTransient: any other delivery failure.
        """
        try:
            webpush(
                subscription_info={
                    "endpoint": subscription.endpoint,
                    "keys": {
                        "p256dh": subscription.p256dh_key,
                        "auth": subscription.auth_key,
                    },
                },
                data=payload.to_json(),
                vapid_private_key=self.settings.vapid_private_key,
                vapid_claims={
                    "sub": f"mailto:{self.settings.vapid_email}",
                },
                ttl=self.settings.push_ttl_seconds,
                timeout=self.settings.push_timeout_seconds,
            )
        except WebPushException as e:
            status_code = e.response.status_code if e.response is not None else None
            if status_code in REJECTED_STATUS_CODES:
                raise TransportRejected(str(e), status_code=status_code) from e
            raise TransportTransient(str(e), status_code=status_code) from e
        except RequestException as e:
            raise TransportTransient(str(e)) from e
