"""
Smart Check-ins — Data Models.

Collected items (emails, events, tasks) are re-fetched fresh every cycle.
Everything else here is local state that only Smart Check-ins manages and
that survives restarts in SQLite.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from src.core.decision import DecisionResult
    from src.core.gating import GatingResult

SOURCE_TYPES = ("email", "task", "calendar")


@dataclass
class PartnershipInfo:
    """A known partner organisation, matched by sender domain."""

    id: int
    domain: str
    company_name: str
    last_contact: str | None = None
    quote_amount: float | None = None
    contact_count: int = 0
    status: str = "active"


@dataclass
class EmailMessage:
    """An unread inbox message, plus enrichment added during the cycle."""

    id: str
    conversation_id: str
    subject: str
    sender_name: str
    sender_address: str
    received_at: str                       # ISO datetime
    body_preview: str = ""
    is_read: bool = False
    has_reply: bool | None = None          # None = not checked
    partnership: PartnershipInfo | None = None
    last_notified: str | None = None       # from EmailTracking


@dataclass
class CalendarEvent:
    id: str
    subject: str
    start: str                             # ISO datetime (local wall clock)
    end: str
    is_all_day: bool = False
    location: str | None = None


@dataclass
class TodoTask:
    id: str
    list_id: str
    list_name: str
    title: str
    due: str | None = None                 # ISO datetime
    importance: str = "normal"             # "low" | "normal" | "high"
    status: str = "notStarted"


@dataclass
class MemoryEntry:
    """Free-form user context ("prefers calls before noon")."""

    id: int
    key: str
    value: str
    category: str = "general"
    updated_at: str = ""


@dataclass
class CheckinLogEntry:
    """One logged check-in. The newest row is the cooldown reference point."""

    id: int
    timestamp: str
    decision: str
    urgency: int
    summary: str
    sources_available: list[str] = field(default_factory=list)


@dataclass
class SnoozedItem:
    id: int
    source_type: str                       # "email" | "task" | "calendar"
    source_id: str
    snooze_until: str
    created_at: str = ""


@dataclass
class EmailTracking:
    """Per-conversation state used to avoid re-notifying about a thread."""

    id: int
    conversation_id: str
    first_seen: str
    last_notified: str | None = None
    reply_detected: bool = False


@dataclass
class SourceOutcome:
    """Result of fetching one data source during a cycle."""

    name: str
    ok: bool
    count: int = 0
    error: str = ""


@dataclass
class CollectedContext:
    """Everything the decision engine sees for one cycle."""

    emails: list[EmailMessage] = field(default_factory=list)
    calendar: list[CalendarEvent] = field(default_factory=list)
    tasks: list[TodoTask] = field(default_factory=list)
    partnerships: list[PartnershipInfo] = field(default_factory=list)
    memory: list[MemoryEntry] = field(default_factory=list)
    recent_checkins: list[CheckinLogEntry] = field(default_factory=list)
    collected_at: str = ""
    sources_available: list[str] = field(default_factory=list)
    source_errors: list[str] = field(default_factory=list)
    outcomes: list[SourceOutcome] = field(default_factory=list)


@dataclass
class CycleResult:
    """Record of one orchestration run."""

    cycle_id: str
    started_at: str
    completed_at: str
    gating_result: GatingResult
    context: CollectedContext | None = None
    decision: DecisionResult | None = None
    action_taken: str = ""
