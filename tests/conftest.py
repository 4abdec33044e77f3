"""Shared test fixtures and configuration.

Sets up fake environment variables so src.config doesn't sys.exit(),
and provides common fixtures like a temp DB and a fixed clock.
"""

import os

# Patch env vars BEFORE any src imports
os.environ.setdefault("TELEGRAM_BOT_TOKEN", "fake-token-for-tests")
os.environ.setdefault("LLM_API_KEY", "fake-llm-key-for-tests")
os.environ.setdefault("LLM_PROVIDER", "gemini")
os.environ.setdefault("ALLOWED_USER_IDS", "12345")
os.environ.setdefault("TELEGRAM_CHAT_ID", "12345")
os.environ.setdefault("DATABASE_PATH", ":memory:")
os.environ.setdefault("TIMEZONE", "UTC")

from datetime import datetime, timezone

import pytest


@pytest.fixture
def tmp_db_path(tmp_path):
    """Return a temporary SQLite DB path."""
    return str(tmp_path / "test_checkins.db")


@pytest.fixture
def checkin_db(tmp_db_path):
    """Return a CheckinDB instance backed by a temp file."""
    from src.data.db import CheckinDB
    return CheckinDB(db_path=tmp_db_path)


@pytest.fixture
def weekday_afternoon():
    """Wednesday 2025-01-15 14:00 UTC: outside every default window."""
    return datetime(2025, 1, 15, 14, 0, tzinfo=timezone.utc)
