"""
Configuration and settings for the site backend.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from shared import constants


class Settings(BaseSettings):
    """Environment-backed settings for the FastAPI service."""

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    api_prefix: str = Field(default="/api")
    site_name: str = Field(default="Park Himmelrych")
    log_level: str = Field(default="INFO")

    # Firebase project
    firebase_project_id: Optional[str] = Field(default=None)
    firebase_storage_bucket: Optional[str] = Field(default=None)
    # Web API key, needed for password sign-in through the Identity Toolkit API.
    firebase_api_key: Optional[str] = Field(default=None)
    # Service account JSON; application default credentials are used if unset.
    google_application_credentials: Optional[str] = Field(default=None)

    # Development toggles
    use_in_memory_backends: bool = Field(default=False)

    # Login rate limiting (Redis when configured, in-memory otherwise)
    redis_url: Optional[str] = Field(default=None)
    rate_limit_key_prefix: str = Field(default="himmelrych:login")
    login_base_delay_seconds: int = Field(
        default=constants.LOGIN_BASE_DELAY_SECONDS, ge=1
    )
    login_max_attempts: int = Field(default=constants.LOGIN_MAX_ATTEMPTS, ge=1)
    login_reset_after_seconds: int = Field(
        default=constants.LOGIN_RESET_AFTER_SECONDS, ge=1
    )

    # Sessions
    session_cookie_name: str = Field(default="session")
    # Firebase session cookies are valid for 5 minutes up to 14 days.
    session_max_age_days: int = Field(default=5, ge=1, le=14)
    session_cookie_secure: bool = Field(default=True)
    require_admin_flag: bool = Field(default=False)
    # Comma separated proxy addresses whose X-Forwarded-For header is trusted.
    forwarded_allow_ips: str = Field(default="127.0.0.1")

    # Content
    default_map_url: str = Field(default=constants.DEFAULT_MAP_URL)
    privacy_document_name: str = Field(default=constants.PRIVACY_DOCUMENT_NAME)
    max_image_size_bytes: int = Field(default=constants.MAX_IMAGE_SIZE_BYTES)
    max_document_size_bytes: int = Field(
        default=constants.MAX_DOCUMENT_SIZE_BYTES
    )

    @property
    def firebase_configured(self) -> bool:
        return bool(self.firebase_project_id and self.firebase_storage_bucket)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached settings instance."""
    return Settings()
