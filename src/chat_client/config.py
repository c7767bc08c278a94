from __future__ import annotations

from typing import Literal

from pydantic import ConfigDict
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    API_BASE_URL: str = "http://localhost:4000"
    HTTP_TIMEOUT: float = 30.0

    SOCKET_URL: str = "http://localhost:4000"
    SOCKET_TRANSPORTS: list[str] = ["websocket"]

    SIGNIN_PATH: str = "/api/v1/user/signin"
    SIGNIN_ROLE: str = "admin"
    REFRESH_PATH: str = "/api/v1/new-access-token"
    CONVERSATIONS_PATH: str = "/api/v1/message"
    CHAT_HISTORY_PATH: str = "/api/v1/message/{user_id}/chat-history"

    CREDENTIAL_BACKEND: Literal["memory", "redis"] = "memory"
    REDIS_URL: str = "redis://localhost:6379/0"
    CREDENTIAL_KEY_PREFIX: str = "chat_client:"

    DISPLAY_TIMEZONE: str | None = None
    VIEWER_ID: str | None = None

    SIGNIN_EMAIL: str | None = None
    SIGNIN_PASSWORD: str | None = None

    LOG_LEVEL: str = "INFO"

    model_config = ConfigDict(
        env_file=".env",
        extra="ignore",
    )


settings = Settings()
