"""Application configuration."""
from functools import lru_cache
import logging
from pathlib import Path

from pydantic import field_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # App
    app_name: str = "Use Your Benefits"
    debug: bool = False
    log_level: str = "INFO"
    cors_origins: list[str] = ["http://localhost:5173", "http://localhost:3000"]

    # Database
    database_url: str = "sqlite:///./data/benefits.db"

    # User-state document store
    store_key: str = "use-your-benefits"

    # Reminders
    reminder_days: int = 30

    # Paths
    base_dir: Path = Path(__file__).parent
    configs_dir: Path = base_dir / "configs" / "cards"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, value: str) -> str:
        """Reject log levels the logging module does not know."""
        level = value.upper()
        if not isinstance(logging.getLevelName(level), int):
            raise ValueError(f"Unknown LOG_LEVEL: {value}")
        return level

    @field_validator("store_key")
    @classmethod
    def validate_store_key(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("STORE_KEY must not be empty.")
        return value.strip()


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
