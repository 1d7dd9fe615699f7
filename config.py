"""
Environment-backed settings for the admin-services API.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    # MongoDB
    mongodb_uri: Optional[str] = Field(default=None)
    db_name: str = Field(default="metainfosci_db")

    # HTTP server
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=5000)

    # Optional static bearer token for the insights upsert endpoint
    platform_insights_token: Optional[str] = Field(default=None)

    bcrypt_rounds: int = Field(default=12)
    log_level: str = Field(default="INFO")


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached settings instance."""
    return Settings()
