"""Data source ports — abstract interfaces for the three fetchers.

Core modules depend on these protocols, never on a specific provider.
Every fetch either returns a list or raises SourceError.
"""

from __future__ import annotations

from typing import Protocol

from src.data.models import CalendarEvent, EmailMessage, TodoTask


class SourceError(Exception):
    """Raised when a data source cannot be fetched."""


class MailSource(Protocol):
    async def fetch(self) -> list[EmailMessage]: ...

    async def check_sent_reply(self, conversation_id: str) -> bool: ...


class CalendarSource(Protocol):
    async def fetch(self) -> list[CalendarEvent]: ...


class TaskSource(Protocol):
    async def fetch(self) -> list[TodoTask]: ...
