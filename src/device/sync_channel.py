"""Cross-context sync channel between the foreground and background contexts.

Contexts never share objects: every message crosses the bus as JSON and is
decoded into a fresh ``SyncMessage`` on the receiving side.
"""

import asyncio
import logging
import uuid
from collections.abc import Awaitable, Callable

from pydantic import BaseModel, ValidationError

from src.device.enums import SyncMessageType
from src.schemas.snapshot import LocalSnapshot

logger = logging.getLogger(__name__)


class SyncMessage(BaseModel):
    """Envelope for every message type."""

    type: SyncMessageType
    request_id: str | None = None
    snapshot: LocalSnapshot | None = None
    reminder_id: int | None = None
    snooze_minutes: int | None = None


TaskActionHandler = Callable[[SyncMessage], Awaitable[None]]


class BroadcastBus:
    """Named broadcast channel: a posted message reaches every other port."""

    def __init__(self, name: str = "reminder-data") -> None:
        self.name = name
        self._ports: set["BusPort"] = set()

    def connect(self) -> "BusPort":
        port = BusPort(self)
        self._ports.add(port)
        return port

    def _deliver(self, sender: "BusPort", message: str) -> None:
        for port in self._ports:
            if port is not sender:
                port._queue.put_nowait(message)

    def _detach(self, port: "BusPort") -> None:
        self._ports.discard(port)


class BusPort:
    """One context's connection to a ``BroadcastBus``."""

    def __init__(self, bus: BroadcastBus) -> None:
        self._bus = bus
        self._queue: asyncio.Queue[str] = asyncio.Queue()

    def post(self, message: str) -> None:
        self._bus._deliver(self, message)

    async def receive(self) -> str:
        return await self._queue.get()

    def close(self) -> None:
        self._bus._detach(self)


class SyncChannel:
    """Typed request/response protocol over a bus port.

    A port either serves (foreground) or makes requests (background); the
    two roles are not mixed on one port.
    """

    def __init__(self, port: BusPort, timeout: float = 2.0) -> None:
        self.port = port
        self.timeout = timeout
        # One outstanding request per port; responses share the port queue
        self._request_lock = asyncio.Lock()

    async def request_pending_reminders(self) -> LocalSnapshot | None:
        """Ask the foreground for its snapshot.

        Returns None when nobody answers within the timeout or the answer is
        empty.
        """
        request = SyncMessage(
            type=SyncMessageType.REQUEST_PENDING_REMINDERS, request_id=str(uuid.uuid4())
        )
        async with self._request_lock:
            response = await self._request(request, SyncMessageType.PENDING_REMINDERS_RESPONSE)
        return response.snapshot if response is not None else None

    async def send_task_action(
        self,
        action: SyncMessageType,
        reminder_id: int,
        snooze_minutes: int | None = None,
    ) -> bool:
        """Forward a notification click to the foreground.

        Returns True once a foreground context acknowledged handling it.
        """
        if not action.is_task_action:
            raise ValueError(f"{action} is not a task action")
        request = SyncMessage(
            type=action,
            request_id=str(uuid.uuid4()),
            reminder_id=reminder_id,
            snooze_minutes=snooze_minutes,
        )
        async with self._request_lock:
            ack = await self._request(request, SyncMessageType.TASK_ACTION_RECEIVED)
        return ack is not None

    async def _request(
        self, request: SyncMessage, response_type: SyncMessageType
    ) -> SyncMessage | None:
        self._send(request)

        try:
            async with asyncio.timeout(self.timeout):
                while True:
                    message = self._decode(await self.port.receive())
                    if (
                        message is not None
                        and message.type == response_type
                        and message.request_id == request.request_id
                    ):
                        return message
        except TimeoutError:
            logger.warning(f"No answer to {request.type} within {self.timeout}s")
            return None

    async def serve(
        self,
        provider: Callable[[], LocalSnapshot | None],
        on_task_action: TaskActionHandler | None = None,
    ) -> None:
        """Answer snapshot requests and task actions until cancelled.

        Task actions are only acknowledged when ``on_task_action`` is given
        and returns without raising.
        """
        while True:
            message = self._decode(await self.port.receive())
            if message is None:
                continue

            if message.type == SyncMessageType.REQUEST_PENDING_REMINDERS:
                self._send(
                    SyncMessage(
                        type=SyncMessageType.PENDING_REMINDERS_RESPONSE,
                        request_id=message.request_id,
                        snapshot=provider(),
                    )
                )
                logger.debug(f"Answered snapshot request {message.request_id}")
            elif message.type.is_task_action and on_task_action is not None:
                try:
                    await on_task_action(message)
                except Exception as e:
                    logger.error(
                        f"{message.type} for reminder {message.reminder_id} failed: {e}",
                        exc_info=True,
                    )
                    continue
                self._send(
                    SyncMessage(
                        type=SyncMessageType.TASK_ACTION_RECEIVED,
                        request_id=message.request_id,
                        reminder_id=message.reminder_id,
                    )
                )

    def _send(self, message: SyncMessage) -> None:
        self.port.post(message.model_dump_json())

    def _decode(self, raw: str) -> SyncMessage | None:
        try:
            return SyncMessage.model_validate_json(raw)
        except ValidationError:
            logger.warning("Dropping malformed sync message")
            return None
