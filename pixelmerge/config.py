from __future__ import annotations

from pydantic import AnyHttpUrl, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    PERSONALIZATION_SECRET: str
    RENDER_CACHE_DB_URL: str = "sqlite:///./pixelmerge.db"

    RENDERER_BASE_URL: AnyHttpUrl | None = None
    RENDERER_BEARER_TOKEN: str | None = None
    RENDERER_TIMEOUT_SECONDS: float = 20.0

    MEDIA_STORAGE_BUCKET: str | None = None
    MEDIA_STORAGE_ENDPOINT: str | None = None
    MEDIA_STORAGE_ACCESS_KEY: str | None = None
    MEDIA_STORAGE_SECRET_KEY: str | None = None
    MEDIA_STORAGE_REGION: str | None = None
    MEDIA_STORAGE_PREFIX: str | None = None
    MEDIA_STORAGE_FORCE_PATH_STYLE: bool = True
    MEDIA_STORAGE_USE_SSL: bool = True
    MEDIA_PUBLIC_BASE_URL: AnyHttpUrl | None = None

    RENDER_CREDITS_ENABLED: bool = False
    RENDER_COST_CREDITS: int = 1

    @field_validator("PERSONALIZATION_SECRET")
    @classmethod
    def validate_secret(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("PERSONALIZATION_SECRET must not be empty")
        return value

    @field_validator("RENDER_COST_CREDITS")
    @classmethod
    def validate_cost(cls, value: int) -> int:
        if value < 0:
            raise ValueError("RENDER_COST_CREDITS must be >= 0")
        return value

    @property
    def renderer_base_url(self) -> str | None:
        if self.RENDERER_BASE_URL is None:
            return None
        return str(self.RENDERER_BASE_URL).rstrip("/")

    @property
    def media_public_base_url(self) -> str | None:
        if self.MEDIA_PUBLIC_BASE_URL is None:
            return None
        return str(self.MEDIA_PUBLIC_BASE_URL).rstrip("/")

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")


settings = Settings()
