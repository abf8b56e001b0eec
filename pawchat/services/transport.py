"""
Live transport abstraction.
The chat gateway speaks Socket.IO; everything above this module only sees
ITransport so tests and alternative gateways can plug in.
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable, Optional

import socketio
from socketio import exceptions as sio_exceptions

from pawchat.core.errors import TransportError

logger = logging.getLogger(__name__)

EventHandler = Callable[..., Awaitable[None]]


class ITransport(ABC):
    """
    Abstract interface for a bidirectional event transport.
    """

    @property
    @abstractmethod
    def connected(self) -> bool:
        """True while a transport session is open"""
        pass

    @abstractmethod
    async def connect(self, url: str, timeout: float) -> None:
        """Opens the transport session"""
        pass

    @abstractmethod
    async def emit(self, event: str, data: Any) -> None:
        """Sends an event to the gateway"""
        pass

    @abstractmethod
    def on(self, event: str, handler: EventHandler) -> None:
        """
        Registers a coroutine handler for an incoming event.
        The special `connect` event fires after every (re)connection.
        """
        pass

    @abstractmethod
    async def disconnect(self) -> None:
        """Closes the transport session"""
        pass


class SocketIOTransport(ITransport):
    """Socket.IO client transport. Reconnection is left to python-socketio."""

    def __init__(self, client: Optional[socketio.AsyncClient] = None) -> None:
        self._sio = client or socketio.AsyncClient(reconnection=True)

    @property
    def connected(self) -> bool:
        return bool(self._sio.connected)

    async def connect(self, url: str, timeout: float) -> None:
        try:
            await self._sio.connect(url, wait_timeout=timeout)
        except sio_exceptions.ConnectionError as e:
            raise TransportError(f"Could not connect to {url}: {e}") from e

    async def emit(self, event: str, data: Any) -> None:
        logger.debug("Emitting '%s'", event)
        try:
            await self._sio.emit(event, data)
        except sio_exceptions.SocketIOError as e:
            raise TransportError(f"Emit of '{event}' failed: {e}") from e

    def on(self, event: str, handler: EventHandler) -> None:
        self._sio.on(event, handler)

    async def disconnect(self) -> None:
        await self._sio.disconnect()
