"""Application configuration via environment variables."""

from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="MOVIERANK_",
        env_file=".env",
        env_file_encoding="utf-8",
    )

    # Database
    db_path: Path = Field(
        default=Path.home() / ".config" / "movierank" / "movierank.db",
        description="Path to SQLite database file",
    )

    # Comparison sessions
    session_idle_timeout_seconds: int = Field(
        default=900,  # 15 minutes
        gt=0,
        description="Idle time after which an unanswered comparison session is abandoned",
    )
    session_retention_seconds: int = Field(
        default=86400,  # 1 day
        gt=0,
        description="How long finished sessions are kept before the sweep deletes them",
    )


def get_settings() -> Settings:
    """Get application settings."""
    return Settings()
