"""
Smart Check-ins — Telegram message formatting.

Pure text builders: no Telegram API calls here.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from telegram.helpers import escape_markdown

from src.core.snooze import parse_action

if TYPE_CHECKING:
    from src.core.decision import DecisionResult
    from src.data.models import CycleResult, SnoozedItem

_BUTTON_LABELS = {
    "snooze_all": "⏰ Snooze All",
    "force_check": "⚡ Check Again",
    "snooze_email": "⏰ Snooze Email",
    "snooze_task": "⏰ Snooze Task",
    "snooze_event": "⏰ Snooze Event",
    "mark_read": "✅ Mark Handled",
}


def urgency_emoji(urgency: int) -> str:
    if urgency >= 8:
        return "🔴"
    if urgency >= 5:
        return "🟠"
    return "🟢"


def format_decision_notification(result: DecisionResult) -> str:
    """TEXT / CALL notification body."""
    lines = [
        f"{urgency_emoji(result.urgency)} *Smart Check-in* | {result.decision.value} "
        f"(urgency {result.urgency})",
        "",
        escape_markdown(result.summary),
    ]
    if result.reasoning:
        lines += ["", f"_{escape_markdown(result.reasoning)}_"]
    return "\n".join(lines)


def format_none_decision(result: DecisionResult) -> str:
    """Quiet 'all clear' summary, always carrying the reasoning."""
    title = "⚠️ *Smart Check-in* | Engine unavailable" if result.is_fallback \
        else "🟢 *Smart Check-in* | All clear"
    return "\n".join([title, "", f"_{escape_markdown(result.reasoning or result.summary)}_"])


def button_label(action: str, item_minutes: int = 120, all_minutes: int = 60) -> str:
    verb, _ = parse_action(action)
    label = _BUTTON_LABELS.get(verb)
    if label is None:
        return action[:40]
    if verb == "snooze_all":
        return f"{label} ({_duration(all_minutes)})"
    if verb.startswith("snooze_"):
        return f"{label} ({_duration(item_minutes)})"
    return label


def _duration(minutes: int) -> str:
    if minutes % 60 == 0:
        return f"{minutes // 60}hr"
    return f"{minutes}min"


def format_uptime(seconds: float) -> str:
    minutes = int(seconds // 60)
    hours, days = minutes // 60, minutes // 1440
    if days > 0:
        return f"{days}d {hours % 24}h {minutes % 60}m"
    if hours > 0:
        return f"{hours}h {minutes % 60}m"
    return f"{minutes}m"


def format_status_message(
    *,
    uptime: str,
    db_size: str,
    paused: bool,
    running: bool,
    last_checkin: str | None,
    last_decision: str | None,
    last_cycle: CycleResult | None,
    interval_minutes: int,
    snoozed_count: int,
) -> str:
    lines = [
        "🤖 *Smart Check-ins Status*",
        "",
        f"⏱ Uptime: {uptime}",
        f"💾 Database: {db_size}",
        f"⏯ State: {'paused' if paused else 'active'}{' (cycle running)' if running else ''}",
        f"🕐 Last check-in: {last_checkin or 'None yet'}",
        f"📋 Last decision: {last_decision or 'N/A'}",
        f"🔁 Interval: every {interval_minutes} min",
        f"😴 Snoozed items: {snoozed_count}",
    ]
    if last_cycle is not None:
        lines += [
            "",
            "*Last cycle:*",
            f"  {escape_markdown(last_cycle.cycle_id)} at {last_cycle.completed_at}",
            f"  {escape_markdown(last_cycle.action_taken or last_cycle.gating_result.reason)}",
        ]
        if last_cycle.context is not None:
            for outcome in last_cycle.context.outcomes:
                mark = "✅" if outcome.ok else "❌"
                detail = f"{outcome.count} item(s)" if outcome.ok else escape_markdown(outcome.error)
                lines.append(f"  {mark} {outcome.name}: {detail}")
    return "\n".join(lines)


def format_snoozed_list(items: list[SnoozedItem]) -> str:
    if not items:
        return "Nothing is snoozed."
    lines = ["😴 Snoozed items:"]
    for item in items:
        lines.append(f"• {item.source_type} {item.source_id[:24]} until {item.snooze_until}")
    return "\n".join(lines)

