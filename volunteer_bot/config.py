"""
Volunteer Bot — Centralized configuration.

Loads all settings from .env and validates required keys.
This module is the foundation for every other module in the project.
"""

from __future__ import annotations

import os
import sys
from pathlib import Path

from dotenv import load_dotenv
from pydantic import BaseModel, field_validator

# Load .env from project root (one level up from volunteer_bot/config.py)
_ENV_PATH = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(_ENV_PATH)

_DEFAULT_TASK_TEMPLATES = "Setup,Registration desk,Food & drinks,Photography,Cleanup"


class Settings(BaseModel):
    """Application settings loaded from environment variables."""

    # Telegram
    BOT_TOKEN: str

    # Admin authentication (/admin_login <secret>); empty disables admin login
    ADMIN_SECRET: str = ""

    # SQLite
    DATABASE_PATH: str = "data/volunteers.db"

    # Maintenance job
    MAINTENANCE_INTERVAL_MINUTES: int = 60
    INACTIVITY_THRESHOLD_DAYS: int = 30
    PROMOTION_MIN_TENURE_DAYS: int = 60
    PROMOTION_MIN_COMPLETED_TASKS: int = 5

    # Event wizard
    FINALIZE_CONFIRM_TIMEOUT_SECONDS: int = 300
    TASK_TEMPLATES: list[str] = []

    @field_validator("TASK_TEMPLATES", mode="before")
    @classmethod
    def parse_templates(cls, v: str | list[str]) -> list[str]:
        if isinstance(v, list):
            return v
        if isinstance(v, str) and v.strip():
            return [t.strip() for t in v.split(",") if t.strip()]
        return []

    @field_validator(
        "MAINTENANCE_INTERVAL_MINUTES",
        "INACTIVITY_THRESHOLD_DAYS",
        "PROMOTION_MIN_TENURE_DAYS",
        "PROMOTION_MIN_COMPLETED_TASKS",
        "FINALIZE_CONFIRM_TIMEOUT_SECONDS",
        mode="before",
    )
    @classmethod
    def parse_positive_int(cls, v: str | int) -> int:
        value = int(v)
        if value < 1:
            raise ValueError("must be a positive integer")
        return value


def _load_settings() -> Settings:
    """Load settings from environment, validating required keys."""
    token = os.getenv("BOT_TOKEN", "")

    if not token or token.startswith("your-"):
        print("ERROR: BOT_TOKEN is missing or not set in .env", file=sys.stderr)
        sys.exit(1)

    return Settings(
        BOT_TOKEN=token,
        ADMIN_SECRET=os.getenv("ADMIN_SECRET", ""),
        DATABASE_PATH=os.getenv("DATABASE_PATH", "data/volunteers.db"),
        MAINTENANCE_INTERVAL_MINUTES=os.getenv("MAINTENANCE_INTERVAL_MINUTES", "60"),
        INACTIVITY_THRESHOLD_DAYS=os.getenv("INACTIVITY_THRESHOLD_DAYS", "30"),
        PROMOTION_MIN_TENURE_DAYS=os.getenv("PROMOTION_MIN_TENURE_DAYS", "60"),
        PROMOTION_MIN_COMPLETED_TASKS=os.getenv("PROMOTION_MIN_COMPLETED_TASKS", "5"),
        FINALIZE_CONFIRM_TIMEOUT_SECONDS=os.getenv("FINALIZE_CONFIRM_TIMEOUT_SECONDS", "300"),
        TASK_TEMPLATES=os.getenv("TASK_TEMPLATES", _DEFAULT_TASK_TEMPLATES),
    )


# Singleton, imported by all other modules as:
#   from volunteer_bot.config import settings
settings = _load_settings()
