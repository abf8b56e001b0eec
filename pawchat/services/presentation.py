"""
Presentation Adapter.
Maps store state to display rows and tracks when the view should follow
the latest message.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, tzinfo
from enum import Enum
from typing import Iterable, List, Optional, Tuple

from pawchat.core.message import ChatMessage, ChatSummary
from pawchat.services.message_store import MessageStore


class Alignment(Enum):
    LEFT = "left"
    RIGHT = "right"


class ViewState(Enum):
    LOADING = "loading"
    EMPTY = "empty"
    MESSAGES = "messages"


@dataclass(frozen=True)
class DisplayRow:
    body: str
    sender_name: str
    is_mine: bool
    alignment: Alignment
    time_label: str


def format_time_label(value: datetime, tz: Optional[tzinfo] = None) -> str:
    """HH:MM in the given (default: local) timezone."""
    return value.astimezone(tz).strftime("%H:%M")


def format_inbox_date(
    value: Optional[datetime], now: Optional[datetime] = None, tz: Optional[tzinfo] = None
) -> str:
    """
    Inbox timestamp: HH:MM for today, 'Yesterday', otherwise the date.
    """
    if value is None:
        return ""

    local = value.astimezone(tz)
    today = (now or datetime.now(tz)).astimezone(tz).date()

    if local.date() == today:
        return local.strftime("%H:%M")
    if local.date() == today - timedelta(days=1):
        return "Yesterday"
    return local.strftime("%d/%m/%Y")


def filter_chats(chats: Iterable[ChatSummary], term: str) -> List[ChatSummary]:
    """Case-insensitive search on the counterpart's name or the pet name."""
    needle = term.strip().lower()
    if not needle:
        return list(chats)
    return [
        chat
        for chat in chats
        if needle in chat.other_participant.full_name.lower() or needle in chat.pet_name.lower()
    ]


class PresentationAdapter:
    """Stateless mapping, apart from the scroll anchor."""

    def __init__(self, local_user_id: str, tz: Optional[tzinfo] = None) -> None:
        self.local_user_id = str(local_user_id)
        self.tz = tz
        self._anchor: Optional[Tuple[int, bool]] = None

    def row(self, message: ChatMessage) -> DisplayRow:
        is_mine = message.sender_id == self.local_user_id
        return DisplayRow(
            body=message.body,
            sender_name="You" if is_mine else (message.sender_display_name or message.sender_id),
            is_mine=is_mine,
            alignment=Alignment.RIGHT if is_mine else Alignment.LEFT,
            time_label=format_time_label(message.sent_at, self.tz),
        )

    def rows(self, messages: Iterable[ChatMessage]) -> List[DisplayRow]:
        return [self.row(message) for message in messages]

    @staticmethod
    def view_state(store: MessageStore) -> ViewState:
        if len(store) == 0:
            return ViewState.LOADING if store.is_loading else ViewState.EMPTY
        return ViewState.MESSAGES

    def should_scroll(self, message_count: int, remote_typing: bool) -> bool:
        """True when the list length or the typing overlay changed since last asked."""
        anchor = (message_count, remote_typing)
        if anchor == self._anchor:
            return False
        self._anchor = anchor
        return True

    def reset(self) -> None:
        self._anchor = None
