"""
Shared fixtures: an in-memory transport and a manual clock for timers.
"""

# pylint: disable=redefined-outer-name

import asyncio
from typing import Any, Callable, Dict, List, Tuple

import pytest

from pawchat.core.errors import TransportError
from pawchat.core.message import Participant
from pawchat.services.connection import ConnectionManager
from pawchat.services.transport import EventHandler, ITransport


class FakeTransport(ITransport):
    """Records emits and lets tests fire gateway events."""

    def __init__(self) -> None:
        self._connected = False
        self.handlers: Dict[str, EventHandler] = {}
        self.emitted: List[Tuple[str, Any]] = []
        self.connect_calls = 0
        self.fail_emit = False

    @property
    def connected(self) -> bool:
        return self._connected

    async def connect(self, url: str, timeout: float) -> None:
        self.connect_calls += 1
        # Let concurrent callers pile up on the same attempt
        await asyncio.sleep(0)
        self._connected = True
        await self.fire("connect")

    async def emit(self, event: str, data: Any) -> None:
        if self.fail_emit:
            raise TransportError("gateway unreachable")
        self.emitted.append((event, data))

    def on(self, event: str, handler: EventHandler) -> None:
        self.handlers[event] = handler

    async def disconnect(self) -> None:
        self._connected = False

    async def fire(self, event: str, *args: Any) -> None:
        handler = self.handlers.get(event)
        if handler is not None:
            await handler(*args)

    def events(self, name: str) -> List[Any]:
        return [data for event, data in self.emitted if event == name]


class ManualTimer:
    def __init__(self, when: float, callback: Callable[[], None]) -> None:
        self.when = when
        self.callback = callback
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class ManualScheduler:
    """call_later replacement driven by advance()."""

    def __init__(self) -> None:
        self.now = 0.0
        self._timers: List[ManualTimer] = []

    def __call__(self, delay: float, callback: Callable[[], None]) -> ManualTimer:
        timer = ManualTimer(self.now + delay, callback)
        self._timers.append(timer)
        return timer

    @property
    def pending(self) -> int:
        return len([timer for timer in self._timers if not timer.cancelled])

    def advance(self, seconds: float) -> None:
        target = self.now + seconds
        while True:
            due = sorted(
                (timer for timer in self._timers if not timer.cancelled and timer.when <= target),
                key=lambda timer: timer.when,
            )
            if not due:
                break
            timer = due[0]
            self._timers.remove(timer)
            self.now = timer.when
            timer.callback()
        self.now = target


async def drain() -> None:
    """Gives queued tasks and callbacks a chance to run."""
    for _ in range(5):
        await asyncio.sleep(0)


@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def scheduler() -> ManualScheduler:
    return ManualScheduler()


@pytest.fixture
def manager(transport) -> ConnectionManager:
    return ConnectionManager(transport, "http://gateway.test")


@pytest.fixture
def user() -> Participant:
    return Participant(id="7", full_name="Alice", role="Adopter")


@pytest.fixture(name="drain")
def drain_fixture() -> Callable[[], Any]:
    return drain
