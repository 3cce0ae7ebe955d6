"""
Weather Station - Configuration
All settings loaded from environment variables (with .env fallback)
"""

from functools import lru_cache
from typing import Annotated, Literal
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",  # Fallback for local development
        env_file_encoding="utf-8",
        extra="ignore",
    )

    app_name: str = "Weather Station API"
    app_version: str = "1.0.0"
    log_level: str = "INFO"

    # Database
    database_url: str = "sqlite+aiosqlite:///./wxstation.db"

    # Timezone used for human-readable timestamps
    tz: str = "UTC"

    # CORS allow-list (comma-separated in env)
    cors_origins: Annotated[list[str], NoDecode] = Field(
        default_factory=lambda: [
            "https://andesaware.com",
            "https://www.andesaware.com",
        ]
    )

    # Device credentials
    ecowitt_passkey: str = ""  # Ecowitt protocol "passkey"
    station_id: str = ""  # Wunderground protocol "ID"
    station_key: str = ""  # Wunderground protocol "PASSWORD"
    require_auth: bool = False
    redact_credentials: bool = True

    # Read endpoints
    stale_after_seconds: int = Field(default=120, ge=1)
    default_history_hours: float = Field(default=24, gt=0)

    # GitHub archive store
    github_token: str = ""
    github_repo: str = ""  # "owner/name"
    github_branch: str = "main"
    github_api_url: str = "https://api.github.com"

    # Archival
    archive_policy: Literal["partition", "append"] = "partition"
    archive_dir: str = "archives/ecowitt"
    archive_filename: str = "ecowitt_history.csv"
    archive_window_minutes: int = Field(default=60, ge=1)
    archive_delay_seconds: int = Field(default=60, ge=0)
    archive_trigger_token: str = ""

    # Outbound HTTP
    http_timeout: float = Field(default=10.0, gt=0)
    http_retries: int = Field(default=1, ge=0)

    @field_validator("cors_origins", mode="before")
    @classmethod
    def _split_origins(cls, value):
        if isinstance(value, str):
            return [origin.strip() for origin in value.split(",") if origin.strip()]
        return value

    @field_validator("tz")
    @classmethod
    def _known_zone(cls, value: str) -> str:
        try:
            ZoneInfo(value)
        except (ZoneInfoNotFoundError, ValueError):
            return "UTC"
        return value

    @property
    def archive_enabled(self) -> bool:
        """Archive store is usable only with a repository and a token."""
        return bool(self.github_repo and self.github_token)

    @property
    def archive_path(self) -> str:
        """Single-file destination used by the append policy."""
        return f"{self.archive_dir.rstrip('/')}/{self.archive_filename}"


@lru_cache
def get_settings() -> Settings:
    return Settings()
