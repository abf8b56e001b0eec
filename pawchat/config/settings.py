"""Global client settings"""

from pathlib import Path
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Centralized configuration.
    Reads configs from PAWCHAT_* env variables.
    """

    app_name: str = "PawChat"

    api_base_url: str = "http://localhost:5000/api"
    socket_url: str = "http://localhost:5000"

    # Seconds
    request_timeout: float = 10.0
    connect_timeout: float = 10.0
    typing_quiet_period: float = 2.0
    # None or 0 keeps a remote indicator until its sender stops or sends
    remote_typing_timeout: Optional[float] = 5.0

    credentials_file: Path = Path.home() / ".pawchat" / "credentials.json"

    log_level: str = "INFO"

    model_config = SettingsConfigDict(env_prefix="PAWCHAT_", env_file=".env", extra="ignore")


settings = Settings()
