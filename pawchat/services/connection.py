"""
Connection Manager.
Owns the single live transport session shared by every chat surface and
fans incoming room events out to explicit per-room subscriptions.
"""

import asyncio
import logging
from typing import Any, Dict, FrozenSet, List, Optional, Set

from pydantic import ValidationError

from pawchat.core.errors import TransportError
from pawchat.core.message import (
    ChatMessage,
    EventName,
    RoomEvent,
    TypingKind,
    TypingSignal,
    to_wire_room_id,
)
from pawchat.services.transport import ITransport

logger = logging.getLogger(__name__)


class RoomSubscription:
    """
    Handle on the live events of one room.
    Iterate it to consume events; cancel() ends the iteration and detaches it.
    """

    def __init__(self, room_id: str, manager: "ConnectionManager") -> None:
        self.room_id = room_id
        self._manager = manager
        self._queue: asyncio.Queue[Optional[RoomEvent]] = asyncio.Queue()
        self._cancelled = False

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def deliver(self, event: RoomEvent) -> None:
        if not self._cancelled:
            self._queue.put_nowait(event)

    def cancel(self) -> None:
        if self._cancelled:
            return
        self._cancelled = True
        # Wake up a pending consumer
        self._queue.put_nowait(None)
        self._manager._detach(self)  # pylint: disable=protected-access

    def __aiter__(self) -> "RoomSubscription":
        return self

    async def __anext__(self) -> RoomEvent:
        event = await self._queue.get()
        if event is None or self._cancelled:
            raise StopAsyncIteration
        return event


class ConnectionManager:
    """
    Single shared connection to the messaging gateway.
    Explicitly constructed and injected; never a module-level singleton.
    """

    def __init__(self, transport: ITransport, url: str, connect_timeout: float = 10.0) -> None:
        self._transport = transport
        self.url = url
        self.connect_timeout = connect_timeout

        self._connect_task: Optional[asyncio.Task[None]] = None
        self._joined_rooms: Set[str] = set()
        self._subscriptions: Dict[str, List[RoomSubscription]] = {}
        self._pending_emits: Set[asyncio.Task[None]] = set()

        self._transport.on("connect", self._on_connect)
        self._transport.on("disconnect", self._on_disconnect)
        self._transport.on(EventName.RECEIVE_MESSAGE.value, self._on_receive_message)
        self._transport.on(EventName.TYPING.value, self._on_typing)
        self._transport.on(EventName.STOP_TYPING.value, self._on_stop_typing)

    @property
    def is_connected(self) -> bool:
        return self._transport.connected

    @property
    def joined_rooms(self) -> FrozenSet[str]:
        return frozenset(self._joined_rooms)

    async def connect(self) -> None:
        """
        Opens the transport once. Safe to call from every mounted surface:
        concurrent callers wait on the same attempt.
        """
        if self._transport.connected:
            return

        if self._connect_task is None or self._connect_task.done():
            self._connect_task = asyncio.create_task(self._open())

        await asyncio.shield(self._connect_task)

    async def _open(self) -> None:
        logger.info("Connecting to chat gateway at %s", self.url)
        await self._transport.connect(self.url, self.connect_timeout)
        logger.info("Connected to chat gateway")

    async def join_room(self, room_id: str) -> None:
        """
        Sends a join intent for a room.
        Membership is server-side session state, so callers re-issue it on every room activation.
        """
        await self.send(EventName.JOIN_CHAT.value, to_wire_room_id(room_id))
        self._joined_rooms.add(room_id)
        logger.info("Joined room %s", room_id)

    def leave_room(self, room_id: str) -> None:
        """
        Drops local interest in a room: cancels its subscriptions and stops
        re-joining it after reconnects. The gateway has no leave event.
        """
        for subscription in list(self._subscriptions.get(room_id, [])):
            subscription.cancel()
        self._joined_rooms.discard(room_id)

    def subscribe(self, room_id: str) -> RoomSubscription:
        """Returns a new event channel for the room."""
        subscription = RoomSubscription(room_id, self)
        self._subscriptions.setdefault(room_id, []).append(subscription)
        return subscription

    async def send(self, event: str, payload: Any) -> None:
        """Emits an event. Raises TransportError when it cannot."""
        if not self._transport.connected:
            raise TransportError("Not connected to the chat gateway")
        await self._transport.emit(event, payload)

    def emit_nowait(self, event: str, payload: Any) -> None:
        """
        Fire-and-forget emit for timer callbacks.
        Failures are logged, never raised.
        """
        task = asyncio.get_running_loop().create_task(self.send(event, payload))
        self._pending_emits.add(task)
        task.add_done_callback(self._emit_done)

    def _emit_done(self, task: "asyncio.Task[None]") -> None:
        self._pending_emits.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.warning("Background emit failed: %s", exc)

    async def close(self) -> None:
        """Cancels every subscription and closes the transport."""
        for subscriptions in list(self._subscriptions.values()):
            for subscription in list(subscriptions):
                subscription.cancel()
        self._joined_rooms.clear()

        for task in list(self._pending_emits):
            task.cancel()

        if self._connect_task is not None and not self._connect_task.done():
            self._connect_task.cancel()

        if self._transport.connected:
            await self._transport.disconnect()
        logger.info("Chat gateway connection closed")

    def _detach(self, subscription: RoomSubscription) -> None:
        subscriptions = self._subscriptions.get(subscription.room_id)
        if not subscriptions:
            return
        if subscription in subscriptions:
            subscriptions.remove(subscription)
        if not subscriptions:
            del self._subscriptions[subscription.room_id]

    def _dispatch(self, event: RoomEvent) -> None:
        for subscription in list(self._subscriptions.get(event.room_id, [])):
            subscription.deliver(event)

    # === Transport handlers ===

    async def _on_connect(self) -> None:
        # A reconnect gets a new server-side socket, so memberships are gone
        for room_id in sorted(self._joined_rooms):
            logger.info("Re-joining room %s after reconnect", room_id)
            try:
                await self._transport.emit(EventName.JOIN_CHAT.value, to_wire_room_id(room_id))
            except TransportError as e:
                logger.warning("Could not re-join room %s: %s", room_id, e)

    async def _on_disconnect(self, *args: Any) -> None:
        logger.warning("Disconnected from chat gateway")

    async def _on_receive_message(self, data: Any) -> None:
        if not isinstance(data, dict):
            logger.error("Could not parse message event: %r", data)
            return
        try:
            message = ChatMessage.from_event(data)
        except ValidationError as e:
            logger.error("Could not parse message event: %s", e)
            return
        self._dispatch(RoomEvent(room_id=message.room_id, message=message))

    async def _on_typing(self, data: Any) -> None:
        self._handle_signal(TypingKind.TYPING, data)

    async def _on_stop_typing(self, data: Any) -> None:
        self._handle_signal(TypingKind.STOP_TYPING, data)

    def _handle_signal(self, kind: TypingKind, data: Any) -> None:
        if not isinstance(data, dict):
            logger.error("Could not parse %s event: %r", kind.value, data)
            return
        try:
            signal = TypingSignal.from_event(kind, data)
        except ValidationError as e:
            logger.error("Could not parse %s event: %s", kind.value, e)
            return
        self._dispatch(RoomEvent(room_id=signal.room_id, signal=signal))
