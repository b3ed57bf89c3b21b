"""Application configuration loaded from environment variables."""

from __future__ import annotations
from dataclasses import dataclass, field
import os

from .engine_core.state import CARD_VALUES


def _split(raw: str | None) -> list[str]:
    if raw is None:
        return []
    return [chunk.strip() for chunk in raw.split(",") if chunk.strip()]


@dataclass
class Settings:
    """
    Runtime settings.

    Environment variables:
        POKERSYNC_ENV                 development | production
        ALLOWED_ORIGINS               Comma-separated CORS origins ("*" for any)
        POKERSYNC_CARD_VALUES         Comma-separated deck (default Fibonacci + "?")
        POKERSYNC_SESSION_MAX_AGE     Seconds before an idle session is reaped
        POKERSYNC_CHANNEL_QUEUE_SIZE  Outbound messages buffered per channel
        POKERSYNC_LOG_LEVEL           Logging level name
    """
    environment: str = "development"
    allowed_origins: list[str] = field(default_factory=lambda: ["*"])
    card_values: tuple[str, ...] = CARD_VALUES
    session_max_age_seconds: int = 3600
    channel_queue_size: int = 256
    log_level: str = "INFO"

    @classmethod
    def from_env(cls, environ: dict[str, str] | None = None) -> Settings:
        env = os.environ if environ is None else environ
        card_values = tuple(_split(env.get("POKERSYNC_CARD_VALUES"))) or CARD_VALUES
        return cls(
            environment=env.get("POKERSYNC_ENV", "development"),
            allowed_origins=_split(env.get("ALLOWED_ORIGINS", "*")) or ["*"],
            card_values=card_values,
            session_max_age_seconds=int(env.get("POKERSYNC_SESSION_MAX_AGE", "3600")),
            channel_queue_size=int(env.get("POKERSYNC_CHANNEL_QUEUE_SIZE", "256")),
            log_level=env.get("POKERSYNC_LOG_LEVEL", "INFO").upper(),
        )
