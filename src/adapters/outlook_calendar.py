"""Outlook/365 calendar adapter — implements CalendarSource via Microsoft Graph.

Reads the calendar view for now through the next 3 days, in the user's
timezone. All Microsoft-specific logic lives here; core modules depend on
the CalendarSource protocol.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from zoneinfo import ZoneInfo

from kiota_abstractions.base_request_configuration import RequestConfiguration
from msgraph import GraphServiceClient
from msgraph.generated.models.event import Event
from msgraph.generated.users.item.calendar_view.calendar_view_request_builder import (
    CalendarViewRequestBuilder,
)

from src.data.models import CalendarEvent
from src.ports.source_port import SourceError

logger = logging.getLogger(__name__)

_LOOKAHEAD_DAYS = 3
_MAX_EVENTS = 50


def _normalize_event(event: Event) -> CalendarEvent:
    """Convert a Graph Event object to a CalendarEvent."""
    return CalendarEvent(
        id=event.id or "",
        subject=event.subject or "(no title)",
        start=(event.start.date_time or "") if event.start else "",
        end=(event.end.date_time or "") if event.end else "",
        is_all_day=bool(event.is_all_day),
        location=(event.location.display_name or None) if event.location else None,
    )


class OutlookCalendarAdapter:
    """Microsoft Outlook/365 implementation of CalendarSource."""

    def __init__(self, client: GraphServiceClient, user_id: str, timezone: str) -> None:
        self._client = client
        self._user_id = user_id
        self._timezone = timezone

    async def fetch(self) -> list[CalendarEvent]:
        now = datetime.now(ZoneInfo(self._timezone))
        end = now + timedelta(days=_LOOKAHEAD_DAYS)

        query = CalendarViewRequestBuilder.CalendarViewRequestBuilderGetQueryParameters(
            start_date_time=now.isoformat(timespec="seconds"),
            end_date_time=end.isoformat(timespec="seconds"),
            select=["id", "subject", "start", "end", "isAllDay", "location"],
            orderby=["start/dateTime"],
            top=_MAX_EVENTS,
        )
        config = RequestConfiguration(query_parameters=query)
        config.headers.add("Prefer", f'outlook.timezone="{self._timezone}"')

        try:
            result = await self._client.users.by_user_id(self._user_id).calendar_view.get(
                request_configuration=config,
            )
        except Exception as exc:
            logger.error("Outlook API error (fetch calendar): %s", exc)
            raise SourceError(f"Failed to fetch calendar events: {exc}") from exc

        events = [_normalize_event(ev) for ev in (result.value if result else None) or []]
        logger.info("Fetched %d calendar event(s) through %s", len(events), end.date().isoformat())
        return events
