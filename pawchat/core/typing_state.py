"""
Typing indicator state machines.

The local side turns keystrokes into a single typing / stop_typing pair per
burst of input. The remote side tracks whether the counterpart is typing.
Both sides run their timers through a call_later style scheduler so they
can be driven by the asyncio loop or by a manual clock.
"""

import asyncio
import logging
from enum import Enum
from functools import partial
from typing import Callable, Dict, FrozenSet, Optional, Protocol

from pawchat.core.message import TypingKind, TypingSignal

logger = logging.getLogger(__name__)


class Cancellable(Protocol):
    """Anything returned by a scheduler (asyncio.TimerHandle fits)."""

    def cancel(self) -> None: ...


Scheduler = Callable[[float, Callable[[], None]], Cancellable]


def loop_scheduler(delay: float, callback: Callable[[], None]) -> Cancellable:
    """Schedules on the running asyncio loop."""
    return asyncio.get_running_loop().call_later(delay, callback)


class LocalTypingState(Enum):
    IDLE = "idle"
    COMPOSING = "composing"


class TypingIndicator:
    """
    Local typing state: idle -> composing -> idle.

    The first keystroke while idle emits `typing` once. Every keystroke
    re-arms the quiet-period timer, and only its expiry emits `stop_typing`.
    """

    def __init__(
        self,
        emit: Callable[[TypingKind], None],
        quiet_period: float = 2.0,
        scheduler: Optional[Scheduler] = None,
    ):
        self._emit = emit
        self.quiet_period = quiet_period
        self._schedule = scheduler or loop_scheduler
        self._timer: Optional[Cancellable] = None
        self.state = LocalTypingState.IDLE

    @property
    def is_composing(self) -> bool:
        return self.state is LocalTypingState.COMPOSING

    def keystroke(self) -> None:
        """Registers local input activity."""
        if self.state is LocalTypingState.IDLE:
            self.state = LocalTypingState.COMPOSING
            self._emit(TypingKind.TYPING)

        self._cancel_timer()
        self._timer = self._schedule(self.quiet_period, self._on_quiet)

    def stop(self) -> None:
        """
        Explicit stop (message submitted).
        Emits `stop_typing` right away and drops the pending deadline.
        """
        self._cancel_timer()
        self.state = LocalTypingState.IDLE
        self._emit(TypingKind.STOP_TYPING)

    def reset(self) -> None:
        """Silently returns to idle, used when the room closes."""
        self._cancel_timer()
        self.state = LocalTypingState.IDLE

    def _on_quiet(self) -> None:
        self._timer = None
        if self.state is LocalTypingState.COMPOSING:
            logger.debug("Typing quiet period elapsed")
            self.state = LocalTypingState.IDLE
            self._emit(TypingKind.STOP_TYPING)

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None


class RemoteTypingTracker:
    """
    Remote typing state: remote_idle -> remote_typing -> remote_idle.

    A sender stops typing on its `stop_typing`, on any message it sends,
    or when no refresh arrives within `timeout` seconds. Signals from the
    local user are ignored.
    """

    def __init__(
        self,
        local_user_id: str,
        timeout: Optional[float] = 5.0,
        scheduler: Optional[Scheduler] = None,
        on_change: Optional[Callable[[bool], None]] = None,
    ):
        self.local_user_id = str(local_user_id)
        self.timeout = timeout
        self._schedule = scheduler or loop_scheduler
        self._on_change = on_change
        # sender_id -> safety timer
        self._typing: Dict[str, Optional[Cancellable]] = {}

    @property
    def is_typing(self) -> bool:
        return bool(self._typing)

    @property
    def typing_senders(self) -> FrozenSet[str]:
        return frozenset(self._typing)

    def handle(self, signal: TypingSignal) -> None:
        """Applies a typing signal received from the transport."""
        if signal.kind is TypingKind.TYPING:
            self.typing_started(signal.sender_id)
        else:
            self.typing_stopped(signal.sender_id)

    def typing_started(self, sender_id: str) -> None:
        if sender_id == self.local_user_id:
            return

        was_typing = self.is_typing
        previous = self._typing.get(sender_id)
        if previous is not None:
            previous.cancel()

        timer = None
        if self.timeout:
            timer = self._schedule(self.timeout, partial(self._expire, sender_id))
        self._typing[sender_id] = timer

        if not was_typing:
            self._notify()

    def typing_stopped(self, sender_id: str) -> None:
        self._clear(sender_id)

    def message_received(self, sender_id: str) -> None:
        """A message implicitly ends typing for its sender."""
        self._clear(sender_id)

    def reset(self) -> None:
        was_typing = self.is_typing
        for timer in self._typing.values():
            if timer is not None:
                timer.cancel()
        self._typing.clear()
        if was_typing:
            self._notify()

    def _expire(self, sender_id: str) -> None:
        if sender_id in self._typing:
            logger.debug("Typing indicator for %s timed out", sender_id)
            self._typing[sender_id] = None
            self._clear(sender_id)

    def _clear(self, sender_id: str) -> None:
        if sender_id == self.local_user_id or sender_id not in self._typing:
            return

        timer = self._typing.pop(sender_id)
        if timer is not None:
            timer.cancel()

        if not self._typing:
            self._notify()

    def _notify(self) -> None:
        if self._on_change is not None:
            self._on_change(self.is_typing)
