"""
Main entry point.
Builds the composition root (one shared gateway connection per client) and
runs a console chat front-end on top of it.
"""

import argparse
import asyncio
import logging
import sys
from typing import Any, Callable, List, Optional

import httpx

from pawchat.config.settings import Settings, settings
from pawchat.core.errors import ChatClientError
from pawchat.core.message import Participant
from pawchat.services.api_client import ChatAPIClient
from pawchat.services.connection import ConnectionManager
from pawchat.services.credentials import CredentialStore
from pawchat.services.presentation import DisplayRow, ViewState, filter_chats, format_inbox_date
from pawchat.services.session import ChatSession
from pawchat.services.transport import ITransport, SocketIOTransport

logger = logging.getLogger(__name__)


class ChatClient:
    """
    Composition root. Owns the credential store, the REST client and the
    single ConnectionManager every session shares.
    """

    def __init__(
        self,
        config: Settings = settings,
        transport: Optional[ITransport] = None,
        http_transport: Optional[httpx.AsyncBaseTransport] = None,
        on_unauthorized: Optional[Callable[[], None]] = None,
    ) -> None:
        self.settings = config
        self.credentials = CredentialStore(config.credentials_file)
        self.api = ChatAPIClient(
            config.api_base_url,
            self.credentials,
            timeout=config.request_timeout,
            on_unauthorized=on_unauthorized,
            transport=http_transport,
        )
        self.connection = ConnectionManager(
            transport or SocketIOTransport(), config.socket_url, config.connect_timeout
        )
        self._sessions: List[ChatSession] = []

    async def __aenter__(self) -> "ChatClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    def session(
        self,
        on_notice: Optional[Callable[[str], None]] = None,
        on_update: Optional[Callable[[ChatSession], None]] = None,
    ) -> ChatSession:
        """Creates a chat surface for the signed-in user."""
        user = self.credentials.user
        if user is None:
            raise ChatClientError("No signed-in user. Store credentials first.")

        chat_session = ChatSession(
            self.connection,
            self.api,
            user,
            typing_quiet_period=self.settings.typing_quiet_period,
            remote_typing_timeout=self.settings.remote_typing_timeout,
            on_notice=on_notice,
            on_update=on_update,
        )
        self._sessions.append(chat_session)
        return chat_session

    async def aclose(self) -> None:
        for chat_session in self._sessions:
            await chat_session.close()
        self._sessions.clear()
        await self.connection.close()
        await self.api.aclose()


class ConsoleView:
    """Prints new rows and the typing overlay whenever the session changes."""

    def __init__(self) -> None:
        self._printed = 0
        self._typing_shown = False

    def render(self, chat_session: ChatSession) -> None:
        if not chat_session.presenter.should_scroll(len(chat_session.store), chat_session.is_remote_typing):
            return

        rows = chat_session.rows()
        for row in rows[self._printed :]:
            print(self.format_row(row))
        self._printed = len(rows)

        if chat_session.is_remote_typing and not self._typing_shown:
            print("  ... typing")
        self._typing_shown = chat_session.is_remote_typing

    @staticmethod
    def format_row(row: DisplayRow) -> str:
        line = f"[{row.time_label}] {row.sender_name}: {row.body}"
        return line.rjust(80) if row.is_mine else line


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(description="PawChat - marketplace chat client")
    target = parser.add_mutually_exclusive_group()
    target.add_argument("--room", help="Chat room id to open")
    target.add_argument("--pet", type=int, help="Start (or resume) the chat about a pet")
    target.add_argument("--inbox", action="store_true", help="List conversations")
    parser.add_argument("--search", default="", help="Filter the inbox by name or pet")
    parser.add_argument("--token", help="Store a bearer token before running")
    parser.add_argument("--user-id", help="Id of the user the token belongs to")
    parser.add_argument("--name", default="", help="Display name of that user")
    parser.add_argument(
        "--log-level",
        default=None,
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Log level (default: from settings)",
    )
    return parser.parse_args(argv)


async def print_inbox(client: ChatClient, search: str) -> None:
    chats = filter_chats(await client.api.list_chats(), search)
    if not chats:
        print("No conversations found.")
        return

    for chat in chats:
        other = chat.other_participant
        preview = chat.last_message.text if chat.last_message else "Started a conversation"
        print(
            f"{chat.id:>6}  {other.full_name} ({other.role}) - {chat.pet_name}"
            f"  {format_inbox_date(chat.updated_at)}  {preview}"
        )


async def chat_loop(client: ChatClient, room_id: str) -> None:
    view = ConsoleView()
    chat_session = client.session(on_notice=lambda notice: print(f"! {notice}"), on_update=view.render)
    await chat_session.open(room_id)

    if chat_session.view_state() is ViewState.EMPTY:
        print("No messages yet. Say hello to start the conversation!")

    while True:
        line = await asyncio.to_thread(sys.stdin.readline)
        if not line:
            break
        chat_session.input_changed(line.rstrip("\n"))
        await chat_session.submit()


async def run(args: argparse.Namespace, config: Settings = settings) -> int:
    async with ChatClient(config) as client:
        if args.token:
            if not args.user_id:
                raise ChatClientError("--user-id is required with --token")
            client.credentials.save(args.token, Participant(id=args.user_id, full_name=args.name))
            logger.info("Credentials stored in %s", client.credentials.path)

        if args.inbox:
            await print_inbox(client, args.search)
            return 0

        if args.pet is not None:
            room_id = await client.api.initiate_chat(args.pet)
        elif args.room:
            room_id = args.room
        else:
            return 0

        await chat_loop(client, room_id)
    return 0


def cli(argv: Optional[List[str]] = None) -> int:
    """Console entry point."""
    args = parse_args(argv)

    logging.basicConfig(
        level=args.log_level or settings.log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    try:
        return asyncio.run(run(args))
    except ChatClientError as e:
        logger.error("%s", e)
        return 1
    except KeyboardInterrupt:
        return 130


if __name__ == "__main__":
    sys.exit(cli())
