from __future__ import annotations
"""Application configuration using Pydantic Settings."""

from functools import lru_cache

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """VideoProxy application settings.

    Loaded from environment variables or .env file.
    """

    # --- Application ---
    APP_NAME: str = "VideoProxy"
    DEBUG: bool = False
    CORS_ORIGINS: str = "http://localhost:3000,http://127.0.0.1:3000"

    # --- Server ---
    HOST: str = "0.0.0.0"
    PORT: int = 3000
    HTTPS_PORT: int = 3443
    SSL_CERT_PATH: str = ""
    SSL_KEY_PATH: str = ""

    # --- Storage ---
    VIDEOS_DIR: str = "videos"
    UPLOADS_DIR: str = "uploads"
    REFERENCES_DIR: str = "references"
    VIDEO_HISTORY_LIMIT: int = Field(
        default=20,
        validation_alias=AliasChoices("VIDEO_HISTORY_LIMIT", "SORA_VIDEO_HISTORY_LIMIT"),
    )

    # --- Shared HTTP client ---
    HTTP_TIMEOUT: float = 60.0

    # --- OpenAI Sora (Provider A) ---
    OPENAI_API_KEY: str = ""
    OPENAI_BASE_URL: str = Field(
        default="https://api.openai.com/v1",
        validation_alias=AliasChoices("OPENAI_VIDEOS_BASE_URL", "OPENAI_BASE_URL"),
    )
    OPENAI_VIDEO_MODEL: str = "sora-2"
    OPENAI_POLL_INTERVAL_MS: int = 5000
    OPENAI_POLL_TIMEOUT_MS: int = 5 * 60 * 1000
    OPENAI_POLL_RETRY_ERRORS: bool = False

    # --- Google Gemini Veo (Provider B) ---
    GEMINI_API_KEY: str = ""
    GEMINI_BASE_URL: str = "https://generativelanguage.googleapis.com/v1beta"
    GEMINI_VIDEO_MODEL: str = "veo-3.1-generate-preview"
    GEMINI_POLL_INTERVAL_MS: int = 10000
    GEMINI_POLL_TIMEOUT_MS: int = 10 * 60 * 1000
    GEMINI_POLL_RETRY_ERRORS: bool = True

    @field_validator("OPENAI_BASE_URL", "GEMINI_BASE_URL")
    @classmethod
    def _strip_trailing_slash(cls, value: str) -> str:
        return value.strip().rstrip("/")

    @property
    def cors_origin_list(self) -> list[str]:
        return [o.strip() for o in self.CORS_ORIGINS.split(",") if o.strip()]

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
        "populate_by_name": True,
    }


@lru_cache
def get_settings() -> Settings:
    """Get cached application settings singleton."""
    return Settings()
