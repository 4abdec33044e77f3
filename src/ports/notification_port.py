"""Notification port — abstract interface for delivering check-ins to the user.

Core modules depend on this protocol, never on a specific messaging provider.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from src.core.decision import DecisionResult


class NotificationPort(Protocol):
    """Abstract notification interface used by the orchestrator."""

    async def send_decision(self, decision: DecisionResult) -> None:
        """Full TEXT/CALL notification with action buttons."""
        ...

    async def send_silent(self, decision: DecisionResult) -> None:
        """Low-priority NONE summary carrying the reasoning."""
        ...

    async def send_plain(self, text: str) -> None:
        """Unformatted text, used for error notices."""
        ...
