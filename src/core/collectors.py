"""
Smart Check-ins — Data collection.

Fires all remote fetches at once and waits for every one of them to settle.
A failing source never aborts the others: it is recorded as a failure and
the cycle continues with whatever did arrive.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING, Any, Awaitable

from src.data.db import to_db_timestamp, utcnow
from src.data.models import CollectedContext, SourceOutcome

if TYPE_CHECKING:
    from src.data.db import CheckinDB
    from src.ports.source_port import CalendarSource, MailSource, TaskSource

logger = logging.getLogger(__name__)

RECENT_CHECKINS_LIMIT = 5


@dataclass
class DataSources:
    """The three remote fetchers consulted every cycle."""

    mail: MailSource
    calendar: CalendarSource
    tasks: TaskSource


async def settle_all(named: dict[str, Awaitable[Any]]) -> dict[str, Any]:
    """Await every awaitable; map each name to its value or its exception.

    Never short-circuits on the first failure.
    """
    names = list(named)
    results = await asyncio.gather(*named.values(), return_exceptions=True)
    settled: dict[str, Any] = {}
    for name, result in zip(names, results):
        if isinstance(result, BaseException) and not isinstance(result, Exception):
            raise result
        settled[name] = result
    return settled


async def collect_context(
    sources: DataSources,
    db: CheckinDB,
    now: datetime | None = None,
) -> CollectedContext:
    """Fetch all sources in parallel, then read local context from the DB."""
    started = time.monotonic()
    settled = await settle_all({
        "email": sources.mail.fetch(),
        "calendar": sources.calendar.fetch(),
        "tasks": sources.tasks.fetch(),
    })

    context = CollectedContext(collected_at=to_db_timestamp(now or utcnow()))
    for name, result in settled.items():
        if isinstance(result, Exception):
            message = str(result) or result.__class__.__name__
            logger.warning("Source %s failed: %s", name, message)
            context.source_errors.append(f"{name}: {message}")
            context.outcomes.append(SourceOutcome(name=name, ok=False, error=message))
            continue
        items = list(result or [])
        context.sources_available.append(name)
        context.outcomes.append(SourceOutcome(name=name, ok=True, count=len(items)))
        if name == "email":
            context.emails = items
        elif name == "calendar":
            context.calendar = items
        else:
            context.tasks = items

    # Local data: synchronous, expected to be available
    try:
        context.partnerships = db.get_all_partnerships()
        context.memory = db.get_all_memory()
        context.recent_checkins = db.get_recent_checkins(RECENT_CHECKINS_LIMIT)
        context.sources_available.append("local_db")
    except Exception as exc:
        logger.error("Local DB read failed: %s", exc)
        context.source_errors.append(f"local_db: {exc}")
        context.outcomes.append(SourceOutcome(name="local_db", ok=False, error=str(exc)))

    logger.info(
        "Data collection complete in %.2fs: %d emails, %d events, %d tasks (available=%s, errors=%s)",
        time.monotonic() - started,
        len(context.emails),
        len(context.calendar),
        len(context.tasks),
        context.sources_available,
        context.source_errors,
    )
    return context
