"""Application configuration models."""

from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


DEFAULT_PLACEHOLDER_IMAGE = (
    "https://placehold.co/300x450?text=No+Image+Found&font=roboto"
)


class Settings(BaseSettings):
    """Settings loaded from environment variables or a .env file."""

    app_name: str = Field(default="TitleDeck", alias="APP_NAME")
    server_host: str = Field(default="0.0.0.0", alias="HOST")
    server_port: int = Field(default=3000, alias="PORT")

    upstream_api_url: str = Field(
        default="https://api.imdbapi.dev", alias="UPSTREAM_API_URL"
    )
    upstream_timeout_seconds: float = Field(
        default=20.0, alias="UPSTREAM_TIMEOUT", gt=0, le=300
    )

    episodes_page_size: int = Field(
        default=12, alias="EPISODES_PAGE_SIZE", ge=1, le=250
    )
    grouping_max_pages: int = Field(
        default=50, alias="GROUPING_MAX_PAGES", ge=1, le=1_000
    )

    view_ttl_seconds: int = Field(default=1_800, alias="VIEW_TTL", ge=60)
    max_views: int = Field(default=256, alias="MAX_VIEWS", ge=1, le=10_000)

    placeholder_image_url: str = Field(
        default=DEFAULT_PLACEHOLDER_IMAGE, alias="PLACEHOLDER_IMAGE_URL"
    )

    environment: Literal["development", "production"] = Field(
        default="development", alias="ENVIRONMENT"
    )

    @field_validator("upstream_api_url", mode="before")
    @classmethod
    def _strip_trailing_slashes(cls, value: object) -> str:
        """Drop trailing slashes so request paths can be appended directly."""

        if value is None:
            raise ValueError("UPSTREAM_API_URL must not be empty")
        cleaned = str(value).strip().rstrip("/")
        if not cleaned:
            raise ValueError("UPSTREAM_API_URL must not be empty")
        if not cleaned.startswith(("http://", "https://")):
            raise ValueError("UPSTREAM_API_URL must be an http(s) URL")
        return cleaned

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")


@lru_cache
def get_settings() -> Settings:
    """Return a cached settings instance."""

    return Settings()  # type: ignore[call-arg]


settings = get_settings()
