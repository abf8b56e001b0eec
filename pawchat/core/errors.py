"""Exceptions raised by the chat client."""

from typing import Optional


class ChatClientError(Exception):
    """Base class for every error raised by pawchat."""


class ChatAPIError(ChatClientError):
    """A REST call to the chat API failed."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class AuthExpiredError(ChatAPIError):
    """The API rejected the stored token. Credentials have been cleared."""

    def __init__(self, message: str = "Session expired, please login again."):
        super().__init__(message, status_code=401)


class TransportError(ChatClientError):
    """The live transport is unavailable or refused an emit."""


class SendFailedError(TransportError):
    """A chat message could not be handed to the transport."""
