from __future__ import annotations

from pydantic import ConfigDict, model_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    API_BASE_URL: str = "http://localhost:3000/api"
    HTTP_TIMEOUT_SECONDS: float = 30.0

    REDIS_URL: str = "redis://localhost:6379/0"
    CHANNEL_PREFIX: str = ""

    JWT_SECRET: str = ""
    JWT_ALGORITHM: str = "HS256"

    CORS_ORIGINS: list[str] = ["*"]

    PAGE_SIZE: int = 50
    MESSAGE_MAX_LENGTH: int = 500
    RECONCILE_WINDOW_SECONDS: float = 30.0

    TYPING_REFRESH_SECONDS: float = 2.0
    TYPING_IDLE_SECONDS: float = 3.0
    TYPING_EXPIRY_SECONDS: float = 5.0

    BIND_RETRY_DELAY_SECONDS: float = 1.0

    WS_HEARTBEAT_SECONDS: int = 30

    @model_validator(mode="after")
    def _typing_policy(self) -> Settings:
        # expiry must outlast one lost refresh
        if self.TYPING_EXPIRY_SECONDS <= 2 * self.TYPING_REFRESH_SECONDS:
            raise ValueError(
                "TYPING_EXPIRY_SECONDS must exceed two TYPING_REFRESH_SECONDS intervals"
            )
        return self

    def conversation_channel(self, conversation_id: int) -> str:
        return f"{self.CHANNEL_PREFIX}conversation-{conversation_id}"

    def presence_channel(self, conversation_id: int) -> str:
        return f"{self.CHANNEL_PREFIX}private-conversation-{conversation_id}"

    model_config = ConfigDict(
        env_file=".env",
        extra="ignore",
    )


settings = Settings()  # type: ignore[call-arg]
