"""
Environment-backed settings for the marketplace storage service.
"""
from functools import lru_cache
from typing import Literal, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """All settings can be overridden via environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Database
    database_url: str = Field(default="mongodb://localhost:27017")
    database_name: str = Field(default="marketplace")
    server_selection_timeout_ms: int = Field(default=10000, ge=1)
    socket_timeout_ms: int = Field(default=45000, ge=1)

    # Bootstrap administrator
    admin_username: str = Field(default="admin")
    admin_email: str = Field(default="admin@example.com")
    admin_full_name: str = Field(default="Admin User")
    admin_password: Optional[str] = Field(default=None)

    # Logging
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(default="INFO")
    log_json: bool = Field(default=True)

    port: int = Field(default=8000, ge=1, le=65535)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached settings instance."""
    return Settings()
