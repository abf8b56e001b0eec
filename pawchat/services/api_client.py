"""
REST client for the chat endpoints of the marketplace API.
"""

import logging
from typing import Any, Callable, Generator, List, Optional

import httpx
from pydantic import ValidationError

from pawchat.core.errors import AuthExpiredError, ChatAPIError
from pawchat.core.message import ChatMessage, ChatSummary
from pawchat.services.credentials import CredentialStore

logger = logging.getLogger(__name__)


class BearerAuth(httpx.Auth):
    """Adds the stored bearer token to every request."""

    def __init__(self, credentials: CredentialStore) -> None:
        self._credentials = credentials

    def auth_flow(self, request: httpx.Request) -> Generator[httpx.Request, httpx.Response, None]:
        token = self._credentials.token
        if token:
            request.headers["Authorization"] = f"Bearer {token}"
        yield request


class ChatAPIClient:
    """
    Thin async wrapper over GET /chat/{id}, POST /chat/initiate and GET /chat.
    Responses come wrapped as {success, data, message}.
    """

    def __init__(
        self,
        base_url: str,
        credentials: CredentialStore,
        timeout: float = 10.0,
        on_unauthorized: Optional[Callable[[], None]] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._credentials = credentials
        self._on_unauthorized = on_unauthorized
        self._client = httpx.AsyncClient(
            base_url=base_url,
            auth=BearerAuth(credentials),
            timeout=timeout,
            headers={"Content-Type": "application/json"},
            event_hooks={"response": [self._check_unauthorized]},
            transport=transport,
        )

    async def __aenter__(self) -> "ChatAPIClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def get_history(self, room_id: str) -> List[ChatMessage]:
        """
        Fetches the persisted messages of a room, oldest first.
        A new conversation yields an empty list.
        """
        data = await self._request("GET", f"/chat/{room_id}")
        records = (data or {}).get("messages") or []

        messages = []
        for record in records:
            try:
                messages.append(ChatMessage.from_history(room_id, record))
            except ValidationError as e:
                logger.warning("Skipping malformed history record in room %s: %s", room_id, e)
        return messages

    async def initiate_chat(self, pet_id: int) -> str:
        """Opens (or reuses) the room about a pet and returns its id."""
        data = await self._request("POST", "/chat/initiate", json={"petId": pet_id})
        if not data or data.get("chatId") is None:
            raise ChatAPIError("Chat initiation returned no chat id")
        return str(data["chatId"])

    async def list_chats(self) -> List[ChatSummary]:
        """Returns the inbox of the signed-in user."""
        data = await self._request("GET", "/chat")
        try:
            return [ChatSummary.model_validate(item) for item in data or []]
        except ValidationError as e:
            raise ChatAPIError(f"Malformed chat list: {e}") from e

    async def _request(self, method: str, url: str, **kwargs: Any) -> Any:
        try:
            response = await self._client.request(method, url, **kwargs)
        except httpx.HTTPError as e:
            raise ChatAPIError(f"{method} {url} failed: {e}") from e

        if response.is_error:
            raise ChatAPIError(self._error_message(response), status_code=response.status_code)

        try:
            body = response.json()
        except ValueError as e:
            raise ChatAPIError(f"{method} {url} returned invalid JSON") from e

        if not isinstance(body, dict):
            return body
        if body.get("success") is False:
            raise ChatAPIError(body.get("message") or "Request failed", status_code=response.status_code)
        return body.get("data")

    @staticmethod
    def _error_message(response: httpx.Response) -> str:
        try:
            body = response.json()
        except ValueError:
            body = None
        if isinstance(body, dict) and body.get("message"):
            return str(body["message"])
        return f"Request failed with status {response.status_code}"

    async def _check_unauthorized(self, response: httpx.Response) -> None:
        # Any unauthorized answer means the token is gone for good
        if response.status_code == httpx.codes.UNAUTHORIZED:
            logger.warning("API rejected the stored token, clearing credentials")
            self._credentials.clear()
            if self._on_unauthorized is not None:
                self._on_unauthorized()
            raise AuthExpiredError()
