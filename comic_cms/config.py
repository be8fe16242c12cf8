"""
Configuration and settings for the comic CMS.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Literal, Optional

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Environment-backed settings for the FastAPI service."""

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    api_prefix: str = Field(default="/api")

    # Database (Postgres expected)
    database_url: Optional[str] = Field(default=None, env="DATABASE_URL")

    # S3-compatible object storage
    storage_endpoint: Optional[str] = Field(default=None, env="STORAGE_ENDPOINT")
    storage_region: Optional[str] = Field(default=None, env="STORAGE_REGION")
    storage_bucket: Optional[str] = Field(default=None, env="STORAGE_BUCKET")
    storage_public_base_url: Optional[str] = Field(
        default=None, env="STORAGE_PUBLIC_BASE_URL"
    )
    aws_access_key_id: Optional[str] = Field(
        default=None, env="AWS_ACCESS_KEY_ID"
    )
    aws_secret_access_key: Optional[str] = Field(
        default=None, env="AWS_SECRET_ACCESS_KEY"
    )

    # Development toggles
    use_in_memory_backends: bool = Field(
        default=False,
        validation_alias=AliasChoices(
            "use_in_memory_backends", "COMIC_CMS_USE_IN_MEMORY_BACKENDS"
        ),
    )

    # Comic identifiers
    comic_id_style: Literal["uuid", "short"] = Field(
        default="uuid", env="COMIC_ID_STYLE"
    )
    short_comic_id_length: int = Field(default=8, ge=4, le=32)

    # Editor
    autosave: bool = Field(
        default=True,
        validation_alias=AliasChoices("autosave", "COMIC_CMS_AUTOSAVE"),
    )
    max_editor_sessions: int = Field(default=1000, ge=1, env="MAX_EDITOR_SESSIONS")

    log_level: str = Field(default="INFO", env="LOG_LEVEL")


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached settings instance."""
    return Settings()
