"""
Message Store.
The authoritative, render-ready message list of the open room.
"""

import logging
from typing import List, Optional, Set

from pawchat.core.errors import ChatAPIError, SendFailedError, TransportError
from pawchat.core.message import ChatMessage, EventName, Participant, utc_now
from pawchat.services.api_client import ChatAPIClient
from pawchat.services.connection import ConnectionManager

logger = logging.getLogger(__name__)


class MessageStore:
    """
    Append-only log of one room.

    Live messages are kept in arrival order, not sent_at order. A message is
    only ever skipped when it carries a gateway id that is already listed.
    """

    def __init__(self, api: ChatAPIClient, connection: ConnectionManager, user: Participant) -> None:
        self._api = api
        self._connection = connection
        self.user = user

        self.room_id: Optional[str] = None
        self.is_loading = False
        self.load_error: Optional[ChatAPIError] = None
        self._messages: List[ChatMessage] = []
        self._seen_ids: Set[str] = set()
        # Live messages received while history is in flight
        self._pending: List[ChatMessage] = []
        # Bumped by reset(); only the latest load may install its result
        self._generation = 0

    @property
    def messages(self) -> List[ChatMessage]:
        return list(self._messages)

    def __len__(self) -> int:
        return len(self._messages)

    def reset(self, room_id: Optional[str]) -> None:
        """Discards the current list and targets another room."""
        self._generation += 1
        self.room_id = room_id
        self.is_loading = False
        self.load_error = None
        self._messages = []
        self._seen_ids = set()
        self._pending = []

    async def load_history(self, room_id: str) -> List[ChatMessage]:
        """
        Fetches persisted messages for the room and installs them, followed by
        any live message that arrived during the fetch.
        On failure the error is recorded and re-raised; nothing is retried.
        """
        self.reset(room_id)
        generation = self._generation
        self.is_loading = True
        try:
            history = await self._api.get_history(room_id)
        except ChatAPIError as e:
            logger.warning("Could not load history for room %s: %s", room_id, e)
            if generation == self._generation:
                self.load_error = e
                # Keep what arrived live while the request was in flight
                self._flush_pending()
            raise

        if generation != self._generation:
            # Superseded by a room switch or a newer load
            return history

        for message in history:
            self._append(message)
        self._flush_pending()

        logger.info("Loaded %d messages for room %s", len(history), room_id)
        return self.messages

    def apply_incoming(self, message: ChatMessage) -> bool:
        """
        Appends a live message. Returns False when it was not added
        (other room, or a gateway id already listed).
        """
        if message.room_id != self.room_id:
            logger.debug("Ignoring message for inactive room %s", message.room_id)
            return False

        if self.is_loading:
            self._pending.append(message)
            return True

        return self._append(message)

    async def send(self, body: str) -> ChatMessage:
        """
        Publishes a message stamped with the local clock and user.
        Nothing is inserted locally: the gateway echoes it back to the room.
        """
        if self.room_id is None:
            raise SendFailedError("No room is open")
        if not body.strip():
            raise ValueError("Cannot send an empty message")

        message = ChatMessage(
            room_id=self.room_id,
            sender_id=self.user.id,
            body=body,
            sent_at=utc_now(),
            sender_display_name=self.user.full_name or None,
        )
        try:
            await self._connection.send(EventName.SEND_MESSAGE.value, message.to_event())
        except TransportError as e:
            raise SendFailedError(f"Failed to send message: {e}") from e
        return message

    def _flush_pending(self) -> None:
        live = self._pending
        self._pending = []
        self.is_loading = False
        for message in live:
            self._append(message)

    def _append(self, message: ChatMessage) -> bool:
        if message.message_id is not None:
            if message.message_id in self._seen_ids:
                return False
            self._seen_ids.add(message.message_id)
        self._messages.append(message)
        return True
