"""
Smart Check-ins — Decision prompt.

System prompt describing the decision rules and the JSON reply contract,
plus the per-cycle user prompt rendering everything that was collected.
"""

from __future__ import annotations

import re
from datetime import datetime
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from src.data.models import CalendarEvent, CollectedContext, EmailMessage, TodoTask

SYSTEM_PROMPT = """\
You are Smart Check-ins, an assistant that watches a busy professional's
Outlook email, calendar and Microsoft To Do tasks, and decides whether the
user should be interrupted right now.

## Decision options
1. NONE: nothing needs attention. Do not bother the user.
2. TEXT: something needs attention. A Telegram message is sent.
3. CALL: truly urgent and time-critical (meeting in <15 minutes that needs
   prep, client emergency, deadline about to be missed). Rare.

## Principles
- Default to NONE. Escalate only for a genuine reason.
- Time-sensitivity drives urgency: deadlines today, meetings starting soon,
  partner emails waiting days for a reply.
- Avoid nagging: check the recent check-in history and do not repeat an
  item unless something changed. Threads the user marked handled stay quiet
  unless new mail arrived.
- If some data sources failed, say so in your reasoning and be cautious.
- Never classify an income opportunity (speaking invitation, paid gig,
  recruiter, collaboration) as NONE; surface it as TEXT, urgency 5 or more.

## Urgency (integer 1-10)
1-2 routine, 3-4 mildly interesting, 5-6 handle today, 7-8 within hours,
9-10 time-critical.

## Action buttons (2-4 for TEXT/CALL, none for NONE)
- snooze_email:<conversationId>
- snooze_task:<taskId>
- snooze_event:<eventId>
- mark_read:<conversationId>   (mark the thread handled)
- snooze_all
- force_check
Always include at least one snooze option when notifying.

## Style
summary: phone-sized, most important first, "• " bullets (max 4), include
times for events and senders for emails, under 400 characters.
reasoning: 3-6 short "• " bullets: what you looked at, why this decision,
what you deprioritized. Always write reasoning, even for NONE.

## Reply format
Reply with ONLY a JSON object, no prose:
{"decision": "NONE|TEXT|CALL", "urgency": <1-10>, "summary": "...",
 "reasoning": "...", "action_buttons": ["..."],
 "spoken_briefing": "<only for CALL, under 500 characters, else null>"}
"""


def build_user_prompt(context: CollectedContext, now: datetime) -> str:
    """Render the collected context as the user message."""
    parts: list[str] = [f"## Current Time\n{now.strftime('%A, %B %d %Y, %H:%M %Z').strip()}"]

    if context.recent_checkins:
        parts.append("\n## Recent Check-in History")
        for checkin in context.recent_checkins:
            parts.append(
                f"- {checkin.timestamp}: {checkin.decision} (urgency {checkin.urgency}) "
                f"{checkin.summary}"
            )

    parts.append("\n## Data Sources")
    parts.append(f"Available: {', '.join(context.sources_available) or 'none'}")
    if context.source_errors:
        parts.append(f"Errors: {'; '.join(context.source_errors)}")

    parts.append(f"\n## Unread Emails ({len(context.emails)})")
    if not context.emails:
        parts.append("No unread emails.")
    parts.extend(_format_email(e, now) for e in context.emails)

    parts.append(f"\n## Calendar Events ({len(context.calendar)})")
    if not context.calendar:
        parts.append("No upcoming events in the next 3 days.")
    parts.extend(_format_event(ev, now) for ev in context.calendar)

    parts.append(f"\n## Open Tasks ({len(context.tasks)})")
    if not context.tasks:
        parts.append("No open tasks.")
    parts.extend(_format_task(t, now) for t in context.tasks)

    if context.partnerships:
        parts.append("\n## Known Partners")
        for p in context.partnerships:
            quote = f", quote: ${p.quote_amount:,.0f}" if p.quote_amount else ""
            parts.append(
                f"- {p.company_name} ({p.domain}): {p.contact_count} interactions, "
                f"last contact {p.last_contact}, status: {p.status}{quote}"
            )

    if context.memory:
        parts.append("\n## User Context")
        parts.extend(f"- {m.key}: {m.value}" for m in context.memory)

    parts.append("\n---\nBased on all of the above, reply with the JSON decision object.")
    return "\n".join(parts)


# Graph returns 7-digit fractional seconds
_LONG_FRACTION = re.compile(r"(\.\d{6})\d+")


def _parse_iso(value: str | None) -> datetime | None:
    if not value:
        return None
    try:
        return datetime.fromisoformat(_LONG_FRACTION.sub(r"\1", value.replace("Z", "+00:00")))
    except ValueError:
        return None


def _minutes_until(target: datetime, now: datetime) -> int:
    if (target.tzinfo is None) != (now.tzinfo is None):
        target = target.replace(tzinfo=now.tzinfo)
    return round((target - now).total_seconds() / 60)


def time_ago(received: str | None, now: datetime) -> str:
    parsed = _parse_iso(received)
    if parsed is None:
        return "?"
    minutes = -_minutes_until(parsed, now)
    if minutes < 60:
        return f"{minutes}m"
    hours = round(minutes / 60)
    if hours < 24:
        return f"{hours}h"
    return f"{round(hours / 24)}d"


def _format_email(email: EmailMessage, now: datetime) -> str:
    sender = email.sender_name or email.sender_address
    line = f'- {sender} <{email.sender_address}>: "{email.subject}" ({time_ago(email.received_at, now)} ago)'
    if email.body_preview:
        line += f"\n  Preview: {email.body_preview[:150].replace(chr(10), ' ')}"
    if email.has_reply is True:
        line += "\n  You already replied to this thread"
    elif email.has_reply is False:
        line += "\n  No reply from you yet"
    if email.partnership:
        line += f"\n  Known partner: {email.partnership.company_name} ({email.partnership.status})"
    if email.last_notified:
        line += f"\n  Marked handled at {email.last_notified}"
    line += f"\n  [conversationId: {email.conversation_id}]"
    return line


def _format_event(event: CalendarEvent, now: datetime) -> str:
    start = _parse_iso(event.start)
    if event.is_all_day:
        when = "All day"
    elif start is None:
        when = event.start or "unknown time"
    else:
        minutes = _minutes_until(start, now)
        if minutes < 0:
            when = f"Started {abs(minutes)} min ago"
        elif minutes < 60:
            when = f"Starts in {minutes} min"
        else:
            when = start.strftime("%a %b %d %H:%M")
    line = f"- {event.subject}: {when}"
    if event.location:
        line += f" ({event.location})"
    line += f"\n  [eventId: {event.id}]"
    return line


def _format_task(task: TodoTask, now: datetime) -> str:
    marker = {"high": "HIGH", "normal": "normal", "low": "low"}.get(task.importance, task.importance)
    line = f"- [{marker}] {task.title} (list: {task.list_name})"
    due = _parse_iso(task.due)
    if due is not None:
        days = round(_minutes_until(due, now) / 1440)
        if days < 0:
            line += f", OVERDUE by {abs(days)} day(s)"
        elif days == 0:
            line += ", DUE TODAY"
        elif days == 1:
            line += ", due tomorrow"
        else:
            line += f", due in {days} days"
    line += f"\n  [taskId: {task.id}]"
    return line
