"""
End-to-end tests of a ChatSession over the in-memory transport.
"""

# pylint: disable=redefined-outer-name
# pylint: disable=protected-access

from unittest.mock import AsyncMock, MagicMock

import pytest

from pawchat.core.errors import AuthExpiredError, ChatAPIError
from pawchat.services.presentation import Alignment, ViewState
from pawchat.services.session import ChatSession


@pytest.fixture
def mock_api():
    api = MagicMock()
    api.get_history = AsyncMock(return_value=[])
    return api


@pytest.fixture
def session(manager, mock_api, user, scheduler):
    return ChatSession(manager, mock_api, user, scheduler=scheduler)


@pytest.mark.asyncio
async def test_send_and_echo_scenario(session, transport, drain):
    """Room 42, empty history: 'hi' is rendered once the gateway echoes it."""
    await session.open("42")
    assert session.view_state() is ViewState.EMPTY
    assert ("join_chat", 42) in transport.emitted

    session.input_changed("hi")
    assert await session.submit()

    # Input cleared at once, nothing rendered before the echo
    assert session.draft == ""
    assert session.rows() == []

    payload = transport.events("send_message")[-1]
    assert payload["roomId"] == 42
    assert payload["senderId"] == "7"
    assert payload["message"] == "hi"

    await transport.fire("receive_message", dict(payload))
    await drain()

    rows = session.rows()
    assert len(rows) == 1
    assert rows[0].body == "hi"
    assert rows[0].is_mine
    assert rows[0].alignment is Alignment.RIGHT

    await session.close()


@pytest.mark.asyncio
async def test_typing_signals_are_emitted(session, transport, scheduler, drain):
    await session.open("42")

    session.input_changed("h")
    session.input_changed("he")
    await drain()
    assert transport.events("typing") == [{"roomId": 42, "senderId": "7"}]

    scheduler.advance(2)
    await drain()
    assert transport.events("stop_typing") == [{"roomId": 42, "senderId": "7"}]


@pytest.mark.asyncio
async def test_submit_stops_typing_once(session, transport, scheduler, drain):
    await session.open("42")

    session.input_changed("hello")
    await session.submit()
    scheduler.advance(5)
    await drain()

    assert len(transport.events("stop_typing")) == 1


@pytest.mark.asyncio
async def test_blank_draft_is_not_sent(session, transport):
    await session.open("42")

    session.input_changed("   ")
    assert not await session.submit()
    assert transport.events("send_message") == []


@pytest.mark.asyncio
async def test_remote_typing_cleared_by_message(session, transport, drain):
    await session.open("42")

    await transport.fire("typing", {"roomId": "42", "senderId": 9})
    await drain()
    assert session.is_remote_typing

    await transport.fire(
        "receive_message",
        {"roomId": "42", "senderId": 9, "message": "Sure", "timestamp": "2025-03-01T10:00:00.000Z"},
    )
    await drain()
    assert not session.is_remote_typing
    assert [row.body for row in session.rows()] == ["Sure"]


@pytest.mark.asyncio
async def test_own_typing_echo_is_ignored(session, transport, drain):
    await session.open("42")

    await transport.fire("typing", {"roomId": "42", "senderId": "7"})
    await drain()

    assert not session.is_remote_typing


@pytest.mark.asyncio
async def test_room_switch_cancels_previous_subscription(session, transport, mock_api, drain):
    await session.open("1")
    first = session._subscription

    await session.open("2")

    assert first.cancelled
    assert session.room_id == "2"
    assert mock_api.get_history.await_count == 2

    await transport.fire(
        "receive_message",
        {"roomId": "1", "senderId": 9, "message": "stale", "timestamp": "2025-03-01T10:00:00.000Z"},
    )
    await drain()
    assert session.rows() == []


@pytest.mark.asyncio
async def test_history_failure_becomes_notice(session, mock_api):
    notices = []
    session._on_notice = notices.append
    mock_api.get_history.side_effect = ChatAPIError("Failed to fetch messages", status_code=500)

    await session.open("42")

    assert notices == ["Could not load messages."]
    assert session.store.load_error is not None
    assert session.view_state() is ViewState.EMPTY


@pytest.mark.asyncio
async def test_auth_expiry_notice(session, mock_api):
    mock_api.get_history.side_effect = AuthExpiredError()

    await session.open("42")

    assert session.notices == ["Your session has expired, please login again."]


@pytest.mark.asyncio
async def test_send_failure_notice_keeps_draft_cleared(session, transport):
    await session.open("42")
    transport.fail_emit = True

    session.input_changed("hi")
    assert not await session.submit()

    assert session.draft == ""
    assert session.notices == ["Failed to send message"]


@pytest.mark.asyncio
async def test_sessions_share_one_connection(manager, mock_api, user, scheduler, transport, drain):
    widget = ChatSession(manager, mock_api, user, scheduler=scheduler)
    inbox = ChatSession(manager, mock_api, user, scheduler=scheduler)

    await widget.open("42")
    await inbox.open("42")

    await transport.fire(
        "receive_message",
        {"roomId": "42", "senderId": 9, "message": "both", "timestamp": "2025-03-01T10:00:00.000Z"},
    )
    await drain()

    assert transport.connect_calls == 1
    assert [row.body for row in widget.rows()] == ["both"]
    assert [row.body for row in inbox.rows()] == ["both"]


@pytest.mark.asyncio
async def test_update_callback(manager, mock_api, user, scheduler, transport, drain):
    updates = []
    session = ChatSession(manager, mock_api, user, scheduler=scheduler, on_update=updates.append)

    await session.open("42")
    await transport.fire("typing", {"roomId": "42", "senderId": 9})
    await drain()

    assert len(updates) >= 2
    assert updates[-1] is session
