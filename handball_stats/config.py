"""Application configuration via pydantic-settings."""
from __future__ import annotations

import logging
from functools import lru_cache

from pydantic import computed_field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # SQLite file; relative paths resolve from the project root
    database_path: str = "data/handball.db"

    # CORS - comma-separated origins (env var: CORS_ORIGINS)
    cors_origins: str = "http://localhost:3000,http://127.0.0.1:3000"

    @computed_field
    @property
    def cors_origins_list(self) -> list[str]:
        """Parse CORS origins as a list."""
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]

    log_level: str = "INFO"

    # Mailjet (env vars: MJ_APIKEY_PUBLIC, MJ_APIKEY_PRIVATE)
    mj_apikey_public: str = ""
    mj_apikey_private: str = ""
    mailjet_api_url: str = "https://api.mailjet.com/v3.1/send"
    mail_sender_email: str = "coaching@handball-stats.local"
    mail_sender_name: str = "HandBall Coaching"
    mail_timeout_seconds: float = 10.0

    # Live match clock period
    live_tick_seconds: float = 1.0


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


def configure_logging(level: str | None = None) -> None:
    """Root logging setup for the API process and CLI tools."""
    logging.basicConfig(
        level=(level or get_settings().log_level).upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
