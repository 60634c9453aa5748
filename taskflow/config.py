"""
TaskFlow — Centralized configuration.

Loads all settings from .env and validates them.
Remote features are optional: empty Firebase keys mean the app runs
purely on the Local Cache.
"""

from __future__ import annotations

import os
import sys
from pathlib import Path

from dotenv import load_dotenv
from pydantic import BaseModel, field_validator

# Load .env from project root (one level up from taskflow/config.py)
_ENV_PATH = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(_ENV_PATH)


class Settings(BaseModel):
    """Application settings loaded from environment variables."""

    # Local Cache (SQLite key/value file)
    LOCAL_CACHE_PATH: str = "data/taskflow.db"

    # Cloud mirror: Firestore (only needed for durable identities)
    FIREBASE_CREDENTIALS_PATH: str = ""
    FIREBASE_PROJECT_ID: str = ""

    # Sharing: Realtime Database REST endpoint
    FIREBASE_DATABASE_URL: str = ""
    FIREBASE_DATABASE_AUTH: str = ""

    REMOTE_TIMEOUT_SECONDS: float = 10.0

    # Share URLs: <origin>/<locale>/<app>?share=<code>&type=<type>
    SHARE_ORIGIN: str = "http://localhost:3000"
    SHARE_LOCALE: str = "en"
    SHARE_APP_PATH: str = "taskflow"

    # Reminders
    REMINDER_INTERVAL_SECONDS: float = 60.0
    REMINDER_STARTUP_DELAY_SECONDS: float = 1.0
    REMINDER_DEDUPE_TTL_SECONDS: float = 3600.0

    # Telegram delivery of reminders (optional)
    TELEGRAM_BOT_TOKEN: str = ""
    TELEGRAM_CHAT_ID: int | None = None

    LOG_LEVEL: str = "INFO"

    @field_validator(
        "REMOTE_TIMEOUT_SECONDS",
        "REMINDER_INTERVAL_SECONDS",
        "REMINDER_STARTUP_DELAY_SECONDS",
        "REMINDER_DEDUPE_TTL_SECONDS",
        mode="before",
    )
    @classmethod
    def parse_seconds(cls, v: str | float) -> float:
        return float(v)

    @field_validator("TELEGRAM_CHAT_ID", mode="before")
    @classmethod
    def parse_chat_id(cls, v: str | int | None) -> int | None:
        if v is None or isinstance(v, int):
            return v
        if isinstance(v, str) and v.strip():
            return int(v.strip())
        return None

    @field_validator("FIREBASE_DATABASE_URL", "SHARE_ORIGIN", mode="before")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return (v or "").strip().rstrip("/")

    @property
    def firestore_configured(self) -> bool:
        return bool(self.FIREBASE_CREDENTIALS_PATH and self.FIREBASE_PROJECT_ID)

    @property
    def sharing_configured(self) -> bool:
        return bool(self.FIREBASE_DATABASE_URL)


def _load_settings() -> Settings:
    """Load settings from environment, validating the keys that must make sense."""
    database_url = os.getenv("FIREBASE_DATABASE_URL", "")
    interval = os.getenv("REMINDER_INTERVAL_SECONDS", "60")

    if database_url and not database_url.startswith("https://"):
        print("ERROR: FIREBASE_DATABASE_URL must start with https://", file=sys.stderr)
        sys.exit(1)

    try:
        if float(interval) <= 0:
            raise ValueError(interval)
    except ValueError:
        print("ERROR: REMINDER_INTERVAL_SECONDS must be a positive number", file=sys.stderr)
        sys.exit(1)

    return Settings(
        LOCAL_CACHE_PATH=os.getenv("LOCAL_CACHE_PATH", "data/taskflow.db"),
        FIREBASE_CREDENTIALS_PATH=os.getenv("FIREBASE_CREDENTIALS_PATH", ""),
        FIREBASE_PROJECT_ID=os.getenv("FIREBASE_PROJECT_ID", ""),
        FIREBASE_DATABASE_URL=database_url,
        FIREBASE_DATABASE_AUTH=os.getenv("FIREBASE_DATABASE_AUTH", ""),
        REMOTE_TIMEOUT_SECONDS=os.getenv("REMOTE_TIMEOUT_SECONDS", "10"),
        SHARE_ORIGIN=os.getenv("SHARE_ORIGIN", "http://localhost:3000"),
        SHARE_LOCALE=os.getenv("SHARE_LOCALE", "en"),
        SHARE_APP_PATH=os.getenv("SHARE_APP_PATH", "taskflow"),
        REMINDER_INTERVAL_SECONDS=interval,
        REMINDER_STARTUP_DELAY_SECONDS=os.getenv("REMINDER_STARTUP_DELAY_SECONDS", "1"),
        REMINDER_DEDUPE_TTL_SECONDS=os.getenv("REMINDER_DEDUPE_TTL_SECONDS", "3600"),
        TELEGRAM_BOT_TOKEN=os.getenv("TELEGRAM_BOT_TOKEN", ""),
        TELEGRAM_CHAT_ID=os.getenv("TELEGRAM_CHAT_ID", ""),
        LOG_LEVEL=os.getenv("LOG_LEVEL", "INFO"),
    )


# Singleton, imported by factories as:
#   from taskflow.config import settings
settings = _load_settings()
