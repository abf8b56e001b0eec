"""
Chat session: wires the shared connection, the message store, the typing
machines and the presentation adapter for one open room.
"""

import asyncio
import logging
from typing import Callable, List, Optional

from pawchat.core.errors import AuthExpiredError, ChatAPIError, SendFailedError
from pawchat.core.message import Participant, RoomEvent, TypingKind, TypingSignal
from pawchat.core.typing_state import RemoteTypingTracker, Scheduler, TypingIndicator
from pawchat.services.api_client import ChatAPIClient
from pawchat.services.connection import ConnectionManager, RoomSubscription
from pawchat.services.message_store import MessageStore
from pawchat.services.presentation import DisplayRow, PresentationAdapter, ViewState

logger = logging.getLogger(__name__)


class ChatSession:
    """
    One chat surface (floating widget, inbox pane, quick-chat).
    Any number of sessions may share the same ConnectionManager.
    """

    def __init__(
        self,
        connection: ConnectionManager,
        api: ChatAPIClient,
        user: Participant,
        typing_quiet_period: float = 2.0,
        remote_typing_timeout: Optional[float] = 5.0,
        scheduler: Optional[Scheduler] = None,
        on_notice: Optional[Callable[[str], None]] = None,
        on_update: Optional[Callable[["ChatSession"], None]] = None,
    ) -> None:
        self._connection = connection
        self.user = user
        self.store = MessageStore(api, connection, user)
        self.presenter = PresentationAdapter(user.id)
        self.typing = TypingIndicator(self._emit_typing, typing_quiet_period, scheduler)
        self.remote_typing = RemoteTypingTracker(
            user.id, remote_typing_timeout, scheduler, on_change=lambda _: self._changed()
        )

        self.draft = ""
        self.notices: List[str] = []
        self._on_notice = on_notice
        self._on_update = on_update

        self._subscription: Optional[RoomSubscription] = None
        self._pump_task: Optional[asyncio.Task[None]] = None

    @property
    def room_id(self) -> Optional[str]:
        return self.store.room_id

    @property
    def is_remote_typing(self) -> bool:
        return self.remote_typing.is_typing

    def rows(self) -> List[DisplayRow]:
        return self.presenter.rows(self.store.messages)

    def view_state(self) -> ViewState:
        return self.presenter.view_state(self.store)

    async def open(self, room_id: str) -> None:
        """
        Activates a room: drops the previous one, joins, subscribes and loads history.
        Transport failures propagate; history failures become a notice.
        """
        await self.close()
        self.store.reset(room_id)
        self.presenter.reset()

        await self._connection.connect()
        await self._connection.join_room(room_id)

        self._subscription = self._connection.subscribe(room_id)
        self._pump_task = asyncio.create_task(self._pump(self._subscription))

        try:
            await self.store.load_history(room_id)
        except AuthExpiredError:
            self._notify("Your session has expired, please login again.")
        except ChatAPIError:
            self._notify("Could not load messages.")
        self._changed()

    async def close(self) -> None:
        """Leaves the active room view. The shared connection stays up."""
        if self.typing.is_composing:
            self.typing.stop()
        else:
            self.typing.reset()
        self.remote_typing.reset()

        if self._subscription is not None:
            self._subscription.cancel()
            self._subscription = None

        if self._pump_task is not None:
            self._pump_task.cancel()
            try:
                await self._pump_task
            except asyncio.CancelledError:
                pass
            self._pump_task = None

        self.draft = ""

    def input_changed(self, text: str) -> None:
        """Local keystroke: updates the draft and the typing state."""
        self.draft = text
        if text or self.typing.is_composing:
            self.typing.keystroke()

    async def submit(self) -> bool:
        """
        Sends the draft. The draft is cleared before the send and is not
        restored on failure. The message shows up once the gateway echoes it.
        """
        body = self.draft
        if not body.strip() or self.room_id is None:
            return False

        self.typing.stop()
        self.draft = ""

        try:
            await self.store.send(body)
        except SendFailedError as e:
            logger.warning("Send failed in room %s: %s", self.room_id, e)
            self._notify("Failed to send message")
            return False
        return True

    async def _pump(self, subscription: RoomSubscription) -> None:
        async for event in subscription:
            try:
                self._apply(event)
            # pylint: disable=broad-exception-caught
            except Exception as e:
                logger.error("Could not apply event in room %s: %s", subscription.room_id, e)

    def _apply(self, event: RoomEvent) -> None:
        if event.message is not None:
            self.remote_typing.message_received(event.message.sender_id)
            if self.store.apply_incoming(event.message):
                self._changed()
        elif event.signal is not None:
            self.remote_typing.handle(event.signal)

    def _emit_typing(self, kind: TypingKind) -> None:
        if self.room_id is None:
            return
        signal = TypingSignal(room_id=self.room_id, sender_id=self.user.id, kind=kind)
        self._connection.emit_nowait(kind.value, signal.to_event())

    def _notify(self, notice: str) -> None:
        self.notices.append(notice)
        if self._on_notice is not None:
            self._on_notice(notice)

    def _changed(self) -> None:
        if self._on_update is not None:
            self._on_update(self)
