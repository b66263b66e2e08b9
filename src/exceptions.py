"""Exception types raised by the reminder delivery subsystem."""


class RegistryUnavailableError(Exception):
    """The subscription table could not be written or read.

    Recoverable: the caller may retry the same registry operation.
    """


class TransportError(Exception):
    """A push delivery attempt to a single endpoint failed."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class TransportRejected(TransportError):
    """The push service no longer accepts the endpoint (404/410)."""


class TransportTransient(TransportError):
    """Delivery failed for a reason that may clear up (timeout, 5xx, 429)."""


class StoreUnavailable(Exception):
    """The device-local durable store could not be read or written."""


class InitializationError(Exception):
    """Device push registration gave up after its final attempt."""

    def __init__(self, message: str, attempts: int) -> None:
        super().__init__(message)
        self.attempts = attempts


class PushPlatformError(Exception):
    """The local push platform refused to create or return a subscription."""
