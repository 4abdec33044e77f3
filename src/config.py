"""
Smart Check-ins — Centralized configuration.

Loads all settings from .env and validates required keys.
This module is the foundation for every other module in the project.
"""

from __future__ import annotations

import os
import sys
from pathlib import Path
from typing import TYPE_CHECKING, Literal

from dotenv import load_dotenv
from pydantic import BaseModel, field_validator

from src.core.gating import time_to_minutes

if TYPE_CHECKING:
    from src.core.gating import GatingConfig
    from src.core.snooze import SnoozePolicy

# Load .env from project root (two levels up from src/config.py)
_ENV_PATH = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(_ENV_PATH)


def _normalize_hhmm(value: str) -> str:
    minutes = time_to_minutes(value)
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


class Settings(BaseModel):
    """Application settings loaded from environment variables."""

    # Telegram
    TELEGRAM_BOT_TOKEN: str
    TELEGRAM_CHAT_ID: int = 0

    # LLM: provider-agnostic (anthropic, gemini, openai, cohere)
    LLM_PROVIDER: str = "anthropic"
    LLM_MODEL: str = ""          # empty → smart default per provider
    LLM_API_KEY: str

    # Microsoft Graph (app-only access to one mailbox)
    MS_CLIENT_ID: str = ""
    MS_CLIENT_SECRET: str = ""
    MS_TENANT_ID: str = "common"
    GRAPH_USER_ID: str = ""      # user id or UPN of the monitored mailbox

    # SQLite
    DATABASE_PATH: str = "data/checkins.db"

    # Security
    ALLOWED_USER_IDS: list[int] = []

    # Scheduling
    TIMEZONE: str = "America/New_York"
    CHECKIN_INTERVAL_MINUTES: int = 30
    HISTORY_LIMIT: int = 50
    LOG_LEVEL: str = "INFO"

    # Gating
    COOLDOWN_MINUTES: int = 120
    QUIET_HOURS_START: str = "22:00"
    QUIET_HOURS_END: str = "07:00"
    FOCUS_HOURS_START: str = "07:00"
    FOCUS_HOURS_END: str = "10:00"
    PICKUP_TIMES: list[str] = []
    PICKUP_REMINDER_MINUTES: int = 30
    WEEKEND_MODE: Literal["quiet", "reduced", "normal"] = "reduced"
    WEEKEND_URGENCY_THRESHOLD: int = 7

    # Snooze durations
    SNOOZE_ITEM_MINUTES: int = 120
    SNOOZE_ALL_MINUTES: int = 60

    # Voice calls (not implemented yet)
    VOICE_PHONE_NUMBER: str = ""

    @field_validator("ALLOWED_USER_IDS", mode="before")
    @classmethod
    def parse_user_ids(cls, v: str | list[int]) -> list[int]:
        if isinstance(v, list):
            return v
        if isinstance(v, str) and v.strip():
            return [int(uid.strip()) for uid in v.split(",") if uid.strip()]
        return []

    @field_validator("PICKUP_TIMES", mode="before")
    @classmethod
    def parse_pickup_times(cls, v: str | list[str]) -> list[str]:
        if isinstance(v, str):
            v = [t for t in v.split(",") if t.strip()]
        return [_normalize_hhmm(t) for t in v]

    @field_validator(
        "QUIET_HOURS_START", "QUIET_HOURS_END", "FOCUS_HOURS_START", "FOCUS_HOURS_END",
    )
    @classmethod
    def parse_window_bound(cls, v: str) -> str:
        return _normalize_hhmm(v)

    @field_validator("WEEKEND_MODE", mode="before")
    @classmethod
    def parse_weekend_mode(cls, v: str) -> str:
        return v.strip().lower()

    @field_validator("TELEGRAM_CHAT_ID", mode="before")
    @classmethod
    def parse_chat_id(cls, v: str | int) -> int:
        if isinstance(v, str) and not v.strip():
            return 0
        return int(v)

    def gating_config(self) -> GatingConfig:
        """Build the static gating policy from these settings."""
        from src.core.gating import GatingConfig, TimeWindow

        return GatingConfig(
            cooldown_minutes=self.COOLDOWN_MINUTES,
            quiet_hours=TimeWindow(self.QUIET_HOURS_START, self.QUIET_HOURS_END),
            focus_hours=TimeWindow(self.FOCUS_HOURS_START, self.FOCUS_HOURS_END),
            weekend_mode=self.WEEKEND_MODE,
            weekend_urgency_threshold=self.WEEKEND_URGENCY_THRESHOLD,
            pickup_times=tuple(self.PICKUP_TIMES),
            pickup_reminder_minutes=self.PICKUP_REMINDER_MINUTES,
            timezone=self.TIMEZONE,
        )

    def snooze_policy(self) -> SnoozePolicy:
        from src.core.snooze import SnoozePolicy

        return SnoozePolicy(
            item_minutes=self.SNOOZE_ITEM_MINUTES,
            all_minutes=self.SNOOZE_ALL_MINUTES,
        )


def _load_settings() -> Settings:
    """Load settings from environment, validating required keys."""
    token = os.getenv("TELEGRAM_BOT_TOKEN", "")
    llm_api_key = os.getenv("LLM_API_KEY", "")

    if not token or token.startswith("your-"):
        print("ERROR: TELEGRAM_BOT_TOKEN is missing or not set in .env", file=sys.stderr)
        sys.exit(1)

    if not llm_api_key or llm_api_key.startswith("your-"):
        print("ERROR: LLM_API_KEY is missing or not set in .env", file=sys.stderr)
        sys.exit(1)

    return Settings(
        TELEGRAM_BOT_TOKEN=token,
        TELEGRAM_CHAT_ID=os.getenv("TELEGRAM_CHAT_ID", ""),
        LLM_PROVIDER=os.getenv("LLM_PROVIDER", "anthropic"),
        LLM_MODEL=os.getenv("LLM_MODEL", ""),
        LLM_API_KEY=llm_api_key,
        MS_CLIENT_ID=os.getenv("MS_CLIENT_ID", ""),
        MS_CLIENT_SECRET=os.getenv("MS_CLIENT_SECRET", ""),
        MS_TENANT_ID=os.getenv("MS_TENANT_ID", "common"),
        GRAPH_USER_ID=os.getenv("GRAPH_USER_ID", ""),
        DATABASE_PATH=os.getenv("DATABASE_PATH", "data/checkins.db"),
        ALLOWED_USER_IDS=os.getenv("ALLOWED_USER_IDS", ""),
        TIMEZONE=os.getenv("TIMEZONE", "America/New_York"),
        CHECKIN_INTERVAL_MINUTES=os.getenv("CHECKIN_INTERVAL_MINUTES", "30"),
        HISTORY_LIMIT=os.getenv("HISTORY_LIMIT", "50"),
        LOG_LEVEL=os.getenv("LOG_LEVEL", "INFO"),
        COOLDOWN_MINUTES=os.getenv("COOLDOWN_MINUTES", "120"),
        QUIET_HOURS_START=os.getenv("QUIET_HOURS_START", "22:00"),
        QUIET_HOURS_END=os.getenv("QUIET_HOURS_END", "07:00"),
        FOCUS_HOURS_START=os.getenv("FOCUS_HOURS_START", "07:00"),
        FOCUS_HOURS_END=os.getenv("FOCUS_HOURS_END", "10:00"),
        PICKUP_TIMES=os.getenv("PICKUP_TIMES", ""),
        PICKUP_REMINDER_MINUTES=os.getenv("PICKUP_REMINDER_MINUTES", "30"),
        WEEKEND_MODE=os.getenv("WEEKEND_MODE", "reduced"),
        WEEKEND_URGENCY_THRESHOLD=os.getenv("WEEKEND_URGENCY_THRESHOLD", "7"),
        SNOOZE_ITEM_MINUTES=os.getenv("SNOOZE_ITEM_MINUTES", "120"),
        SNOOZE_ALL_MINUTES=os.getenv("SNOOZE_ALL_MINUTES", "60"),
        VOICE_PHONE_NUMBER=os.getenv("VOICE_PHONE_NUMBER", ""),
    )


# Singleton, imported by all other modules as:
#   from src.config import settings
settings = _load_settings()
