"""
Persistent credential storage.
Keeps the bearer token and the signed-in user between runs.
"""

import logging
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, ValidationError

from pawchat.core.message import Participant

logger = logging.getLogger(__name__)


class StoredCredentials(BaseModel):
    token: Optional[str] = None
    user: Optional[Participant] = None


class CredentialStore:
    """Handles the credentials file."""

    def __init__(self, path: Path):
        self.path = Path(path)

    def load(self) -> StoredCredentials:
        """Missing or unreadable files read as empty credentials."""
        try:
            raw = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return StoredCredentials()
        except OSError as e:
            logger.warning("Could not read credentials from %s: %s", self.path, e)
            return StoredCredentials()

        try:
            return StoredCredentials.model_validate_json(raw)
        except ValidationError as e:
            logger.warning("Ignoring corrupt credentials file %s: %s", self.path, e)
            return StoredCredentials()

    @property
    def token(self) -> Optional[str]:
        return self.load().token

    @property
    def user(self) -> Optional[Participant]:
        return self.load().user

    def save(self, token: str, user: Participant) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        credentials = StoredCredentials(token=token, user=user)
        self.path.write_text(credentials.model_dump_json(by_alias=True), encoding="utf-8")
        self.path.chmod(0o600)

    def clear(self) -> None:
        """Removes stored token and user."""
        self.path.unlink(missing_ok=True)
        logger.info("Stored credentials cleared")
