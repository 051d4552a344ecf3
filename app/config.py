"""Application configuration models."""

from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import Field, HttpUrl, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Settings loaded from environment variables or a .env file."""

    app_name: str = Field(default="FlixMap", alias="APP_NAME")
    server_host: str = Field(default="0.0.0.0", alias="HOST")
    server_port: int = Field(default=3000, alias="PORT")

    tmdb_api_key: str | None = Field(default=None, alias="TMDB_API_KEY")
    tmdb_api_url: HttpUrl = Field(
        default="https://api.themoviedb.org/3", alias="TMDB_API_URL"
    )
    flixhq_base_url: HttpUrl = Field(
        default="https://flixhq.to", alias="FLIXHQ_BASE_URL"
    )
    http_timeout_seconds: float = Field(
        default=20.0, alias="HTTP_TIMEOUT", gt=0, le=300
    )

    admin_secret: str | None = Field(default=None, alias="ADMIN_SECRET")

    crawl_delay_seconds: float = Field(default=1.2, alias="CRAWL_DELAY", ge=0)
    crawl_retry_interval_seconds: float = Field(
        default=5.0, alias="CRAWL_RETRY_INTERVAL", ge=0
    )
    crawl_failure_pause_seconds: float = Field(
        default=2.0, alias="CRAWL_FAILURE_PAUSE", ge=0
    )
    crawl_min_popularity: float = Field(
        default=0.6, alias="CRAWL_MIN_POPULARITY", ge=0
    )

    database_url: str = Field(
        default="sqlite+aiosqlite:///./flixmap.db", alias="DATABASE_URL"
    )

    environment: Literal["development", "production"] = Field(
        default="development", alias="ENVIRONMENT"
    )

    @field_validator("tmdb_api_key", "admin_secret", mode="before")
    @classmethod
    def _strip_blank(cls, value: object) -> object:
        """Treat blank secrets as missing."""

        if isinstance(value, str):
            stripped = value.strip()
            return stripped or None
        return value

    @property
    def provider_base_url(self) -> str:
        """Return the FlixHQ base URL without a trailing slash."""

        return str(self.flixhq_base_url).rstrip("/")

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")


@lru_cache
def get_settings() -> Settings:
    """Return a cached settings instance."""

    return Settings()  # type: ignore[call-arg]


settings = get_settings()
