"""
Smart Check-ins — Snooze state machine.

Per tracked item: active -> snoozed (future snooze_until) -> active again,
either when the expiry passes or on an explicit un-snooze. Expiry is lazy:
rows are only deleted by the orchestrator's sweep, so every check compares
snooze_until against the current time.

Action strings come from the decision engine's action buttons and are either
a bare verb ("snooze_all") or "verb:id" ("snooze_email:AAQkAD...").
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from src.data.db import CheckinDB
    from src.data.models import CollectedContext

logger = logging.getLogger(__name__)

# Verbs whose id refers to a snoozable item, and the item type they refer to
ITEM_VERBS = {
    "snooze_email": "email",
    "snooze_task": "task",
    "snooze_event": "calendar",
    "mark_read": "email",
}


@dataclass(frozen=True)
class SnoozePolicy:
    """Snooze durations, in minutes."""

    item_minutes: int = 120
    all_minutes: int = 60


def parse_action(action: str) -> tuple[str, str | None]:
    """Split "verb:id" into (verb, id); bare verbs return (verb, None)."""
    verb, sep, item_id = action.partition(":")
    if not sep or not item_id:
        return verb, None
    return verb, item_id


def referenced_items(actions: list[str] | tuple[str, ...]) -> list[tuple[str, str]]:
    """Distinct (source_type, source_id) pairs referenced by action strings."""
    seen: list[tuple[str, str]] = []
    for action in actions:
        verb, item_id = parse_action(action)
        source_type = ITEM_VERBS.get(verb)
        if source_type and item_id and (source_type, item_id) not in seen:
            seen.append((source_type, item_id))
    return seen


def snooze_one(
    db: CheckinDB,
    source_type: str,
    source_id: str,
    now: datetime,
    policy: SnoozePolicy,
) -> datetime:
    """Snooze a single item for the per-item duration. Returns the expiry."""
    until = now + timedelta(minutes=policy.item_minutes)
    db.snooze_item(source_type, source_id, until, now=now)
    return until


def snooze_all(
    db: CheckinDB,
    actions: list[str] | tuple[str, ...],
    now: datetime,
    policy: SnoozePolicy,
) -> tuple[datetime, int]:
    """Snooze every item a notification referenced, for the snooze-all duration.

    Returns (expiry, number of items snoozed).
    """
    until = now + timedelta(minutes=policy.all_minutes)
    items = referenced_items(actions)
    for source_type, source_id in items:
        db.snooze_item(source_type, source_id, until, now=now)
    logger.info("Snoozed %d item(s) until %s", len(items), until.isoformat())
    return until, len(items)


def filter_snoozed(
    context: CollectedContext, db: CheckinDB, now: datetime,
) -> tuple[CollectedContext, int]:
    """Drop items with an active snooze from the context.

    Returns (filtered context, number of items removed).
    """
    emails = [e for e in context.emails if not db.is_snoozed("email", e.conversation_id, now)]
    calendar = [ev for ev in context.calendar if not db.is_snoozed("calendar", ev.id, now)]
    tasks = [t for t in context.tasks if not db.is_snoozed("task", t.id, now)]

    removed = (
        len(context.emails) - len(emails)
        + len(context.calendar) - len(calendar)
        + len(context.tasks) - len(tasks)
    )
    if removed:
        logger.info("Filtered %d snoozed item(s) out of the context", removed)
    return replace(context, emails=emails, calendar=calendar, tasks=tasks), removed
