from __future__ import annotations

import os
from pathlib import Path
from typing import List, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False)
    """Application runtime configuration."""

    app_name: str = "fieldpunch"
    environment: str = "development"
    host: str = os.getenv("FP_HOST", "127.0.0.1")
    port: int = int(os.getenv("FP_PORT", "8080"))
    log_level: str = os.getenv("FP_LOG_LEVEL", "INFO")
    cors_origins: List[str] = Field(
        default_factory=lambda: [
            origin.strip()
            for origin in os.getenv("FP_CORS_ORIGINS", "http://127.0.0.1:5173,http://localhost:5173").split(",")
            if origin.strip()
        ]
    )

    sqlite_path: Path = Path(os.getenv("FP_SQLITE_PATH", "./data/fieldpunch.db"))
    export_dir: Path = Path(os.getenv("FP_EXPORT_DIR", "./data/exports"))

    timezone: str = os.getenv("FP_TIMEZONE", "America/Toronto")

    # Username of an admin account created on startup when the user table is empty
    bootstrap_admin: Optional[str] = os.getenv("FP_BOOTSTRAP_ADMIN")

    max_punch_hours: float = float(os.getenv("FP_MAX_PUNCH_HOURS", "24"))
    min_break_minutes: int = int(os.getenv("FP_MIN_BREAK_MINUTES", "1"))
    max_break_minutes: int = int(os.getenv("FP_MAX_BREAK_MINUTES", "480"))

    @field_validator("cors_origins", mode="before")
    @classmethod
    def _split_origins(cls, value: str | List[str]) -> List[str]:
        if isinstance(value, list):
            return value
        if not value:
            return []
        return [origin.strip() for origin in value.split(",") if origin.strip()]

    @field_validator("log_level")
    @classmethod
    def _normalize_log_level(cls, value: str) -> str:
        return value.strip().upper() or "INFO"


settings = Settings()

# Ensure essential directories exist
settings.sqlite_path.parent.mkdir(parents=True, exist_ok=True)
settings.export_dir.mkdir(parents=True, exist_ok=True)
