"""
Smart Check-ins — Telegram Bot.

Telegram is the only user interface: check-in notifications go out through
it, and every control (pause, force, snooze buttons) comes back through it.
The check-in scheduler also lives on the bot's job queue.

Security-first: unauthorized users are silently ignored.
"""

from __future__ import annotations

import logging
import os
from functools import wraps
from typing import TYPE_CHECKING, Any, Callable, Coroutine

from telegram import Update
from telegram.ext import (
    Application,
    ApplicationBuilder,
    CallbackQueryHandler,
    CommandHandler,
    ContextTypes,
)

from src.bot.messages import (
    format_snoozed_list,
    format_status_message,
    format_uptime,
)
from src.config import settings
from src.core.snooze import ITEM_VERBS, parse_action, snooze_all, snooze_one
from src.data.db import utcnow
from src.data.models import SOURCE_TYPES

if TYPE_CHECKING:
    from src.bot.callback_store import CallbackStore
    from src.core.collectors import DataSources
    from src.core.orchestrator import CycleOrchestrator, DecideFn
    from src.core.snooze import SnoozePolicy
    from src.data.db import CheckinDB

logger = logging.getLogger(__name__)

STARTUP_DELAY_SECONDS = 10


# ---------------------------------------------------------------------------
# Security: silent-ignore decorator
# ---------------------------------------------------------------------------


def authorized_only(
    func: Callable[..., Coroutine[Any, Any, None]],
) -> Callable[..., Coroutine[Any, Any, None]]:
    """Decorator that silently ignores updates from unauthorized users.

    Does NOT send any response to strangers: the bot must not reveal
    its existence to unauthorized users.
    """

    @wraps(func)
    async def wrapper(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        user = update.effective_user
        if user is None or user.id not in settings.ALLOWED_USER_IDS:
            uid = user.id if user else "unknown"
            logger.warning("Unauthorized access attempt from user_id=%s", uid)
            return  # Silent ignore
        return await func(update, context)

    return wrapper


def _start_cycle(context: ContextTypes.DEFAULT_TYPE) -> None:
    """Run a bypassed cycle in the background so the handler returns at once."""
    orchestrator: CycleOrchestrator = context.bot_data["orchestrator"]
    context.application.create_task(
        orchestrator.run_cycle(bypass_gating=True), update=None,
    )


# ---------------------------------------------------------------------------
# Command handlers
# ---------------------------------------------------------------------------


@authorized_only
async def cmd_start(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /start — welcome message."""
    await update.message.reply_text(
        "Welcome to *Smart Check-ins*!\n\n"
        "Every so often I look at your unread mail, calendar and To Do lists "
        "and decide whether anything needs you right now:\n"
        "• Nothing urgent: a silent summary\n"
        "• Something needs attention: a notification with snooze buttons\n"
        "• Something urgent: a notification plus a call\n\n"
        "Quiet hours, focus hours and a cooldown keep me from nagging.\n"
        "Type /help for the full command list.",
        parse_mode="Markdown",
    )


@authorized_only
async def cmd_help(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /help — list available commands."""
    await update.message.reply_text(
        "*Available commands:*\n"
        "/status — Uptime, last check-in and source health\n"
        "/force — Run a check-in now (skips quiet hours and cooldown)\n"
        "/pause — Stop scheduled check-ins\n"
        "/resume — Resume scheduled check-ins\n"
        "/snoozed — List snoozed items\n"
        "/unsnooze <type> <id> — Un-snooze an item (email, task, calendar)\n"
        "/partner <domain> <name> — Track a partner company\n"
        "/remember <key> <value> — Save context for future check-ins\n"
        "/help — Show this message",
        parse_mode="Markdown",
    )


@authorized_only
async def cmd_status(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /status — show orchestrator and database state."""
    orchestrator: CycleOrchestrator = context.bot_data["orchestrator"]
    db: CheckinDB = context.bot_data["db"]
    session = orchestrator.session

    try:
        recent = db.get_recent_checkins(1)
        snoozed = db.list_snoozed()
        size = os.path.getsize(db.path) if os.path.exists(db.path) else 0
    except Exception as exc:
        logger.error("/status error: %s", exc)
        await update.message.reply_text("Couldn't read the check-in database. Please try again.")
        return

    last = recent[0] if recent else None
    text = format_status_message(
        uptime=format_uptime((utcnow() - session.started_at).total_seconds()),
        db_size=f"{size / 1024:.1f} KB",
        paused=session.paused,
        running=session.running,
        last_checkin=last.timestamp if last else None,
        last_decision=f"{last.decision} (urgency {last.urgency})" if last else None,
        last_cycle=session.last_result,
        interval_minutes=settings.CHECKIN_INTERVAL_MINUTES,
        snoozed_count=len(snoozed),
    )
    await update.message.reply_text(text, parse_mode="Markdown")


@authorized_only
async def cmd_force(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /force — run a cycle now, bypassing gating."""
    orchestrator: CycleOrchestrator = context.bot_data["orchestrator"]
    if orchestrator.session.running:
        await update.message.reply_text("A check-in is already running, hang on.")
        return
    _start_cycle(context)
    await update.message.reply_text("⚡ Running a check-in now...")


@authorized_only
async def cmd_pause(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    orchestrator: CycleOrchestrator = context.bot_data["orchestrator"]
    orchestrator.session.paused = True
    logger.info("Check-ins paused by user")
    await update.message.reply_text("⏸ Check-ins paused. Use /resume to turn them back on.")


@authorized_only
async def cmd_resume(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    orchestrator: CycleOrchestrator = context.bot_data["orchestrator"]
    orchestrator.session.paused = False
    logger.info("Check-ins resumed by user")
    await update.message.reply_text("▶️ Check-ins resumed.")


@authorized_only
async def cmd_snoozed(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /snoozed — list active snoozes."""
    db: CheckinDB = context.bot_data["db"]
    try:
        items = db.list_snoozed()
    except Exception as exc:
        logger.error("/snoozed error: %s", exc)
        await update.message.reply_text("Couldn't load snoozed items. Please try again.")
        return
    await update.message.reply_text(format_snoozed_list(items))


@authorized_only
async def cmd_unsnooze(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /unsnooze <type> <id>."""
    args = context.args or []
    if len(args) != 2 or args[0].lower() not in SOURCE_TYPES:
        await update.message.reply_text(
            "Usage: /unsnooze <email|task|calendar> <id>\nUse /snoozed to see IDs."
        )
        return

    db: CheckinDB = context.bot_data["db"]
    source_type, source_id = args[0].lower(), args[1]
    if db.unsnooze_item(source_type, source_id):
        await update.message.reply_text(f"🔔 Un-snoozed {source_type} {source_id[:24]}.")
    else:
        await update.message.reply_text("That item isn't snoozed.")


@authorized_only
async def cmd_partner(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /partner <domain> <company name> — add or refresh a partnership."""
    args = context.args or []
    if len(args) < 2 or "." not in args[0]:
        await update.message.reply_text("Usage: /partner <domain> <company name>\nExample: /partner acme.com Acme Inc")
        return

    db: CheckinDB = context.bot_data["db"]
    try:
        partner = db.upsert_partnership(args[0], " ".join(args[1:]))
    except Exception as exc:
        logger.error("/partner error: %s", exc)
        await update.message.reply_text("Couldn't save the partnership. Please try again.")
        return
    await update.message.reply_text(
        f"🤝 Tracking {partner.company_name} ({partner.domain}). "
        "Their emails will get reply checks."
    )


@authorized_only
async def cmd_remember(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /remember <key> <value> — store free-form context."""
    args = context.args or []
    if len(args) < 2:
        await update.message.reply_text("Usage: /remember <key> <value>\nExample: /remember calls mornings only")
        return

    db: CheckinDB = context.bot_data["db"]
    try:
        db.set_memory(args[0], " ".join(args[1:]))
    except Exception as exc:
        logger.error("/remember error: %s", exc)
        await update.message.reply_text("Couldn't save that. Please try again.")
        return
    await update.message.reply_text(f"🧠 Got it: {args[0]}")


# ---------------------------------------------------------------------------
# Inline button callbacks
# ---------------------------------------------------------------------------


@authorized_only
async def handle_action_callback(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle taps on notification buttons (snooze, mark handled, check again)."""
    query = update.callback_query
    db: CheckinDB = context.bot_data["db"]
    callbacks: CallbackStore = context.bot_data["callbacks"]
    policy: SnoozePolicy = context.bot_data["snooze_policy"]

    try:
        action = callbacks.decode(query.data or "")
        verb, item_id = parse_action(action)
        now = utcnow()

        if verb == "force_check":
            _start_cycle(context)
            reply = "⚡ Checking again..."
        elif verb == "snooze_all":
            actions = callbacks.actions_for(query.message.message_id) if query.message else ()
            _, count = snooze_all(db, actions, now, policy)
            reply = f"⏰ Snoozed {count} item(s) for {policy.all_minutes} min"
        elif verb == "mark_read" and item_id:
            db.mark_email_notified(item_id, now)
            reply = "✅ Marked as handled"
        elif verb in ITEM_VERBS and item_id:
            snooze_one(db, ITEM_VERBS[verb], item_id, now, policy)
            reply = f"⏰ Snoozed for {policy.item_minutes} min"
        else:
            raise ValueError(f"Unknown action: {action!r}")
    except Exception as exc:
        logger.error("Action callback error (%s): %s", query.data, exc)
        await query.answer("❌ Action failed")
        return

    logger.info("Action callback handled: %s", action)
    await query.answer(reply)


# ---------------------------------------------------------------------------
# Scheduled jobs
# ---------------------------------------------------------------------------


async def _checkin_job(context: ContextTypes.DEFAULT_TYPE) -> None:
    orchestrator: CycleOrchestrator = context.bot_data["orchestrator"]
    await orchestrator.run_cycle()


async def _startup_checkin_job(context: ContextTypes.DEFAULT_TYPE) -> None:
    orchestrator: CycleOrchestrator = context.bot_data["orchestrator"]
    await orchestrator.run_cycle(bypass_gating=True)


def _setup_checkin_jobs(app: Application) -> None:
    """Register the startup run and the repeating check-in job."""
    interval = settings.CHECKIN_INTERVAL_MINUTES * 60
    app.job_queue.run_once(_startup_checkin_job, when=STARTUP_DELAY_SECONDS, name="checkin_startup")
    app.job_queue.run_repeating(
        _checkin_job,
        interval=interval,
        first=interval,
        name="checkin",
    )
    logger.info(
        "Check-ins scheduled every %d min (first run in %ds)",
        settings.CHECKIN_INTERVAL_MINUTES,
        STARTUP_DELAY_SECONDS,
    )


# ---------------------------------------------------------------------------
# App builder
# ---------------------------------------------------------------------------


def _default_sources(db: CheckinDB):
    from src.adapters.outlook_calendar import OutlookCalendarAdapter
    from src.adapters.outlook_mail import OutlookMailAdapter
    from src.adapters.outlook_tasks import OutlookTasksAdapter
    from src.core.collectors import DataSources
    from src.core.enrichment import EmailEnricher
    from src.integrations.ms_auth import build_graph_client

    client = build_graph_client()
    mail = OutlookMailAdapter(client, settings.GRAPH_USER_ID)
    sources = DataSources(
        mail=mail,
        calendar=OutlookCalendarAdapter(client, settings.GRAPH_USER_ID, settings.TIMEZONE),
        tasks=OutlookTasksAdapter(client, settings.GRAPH_USER_ID),
    )
    return sources, EmailEnricher(db, mail)


def build_app(
    db: CheckinDB | None = None,
    sources: DataSources | None = None,
    decide: DecideFn | None = None,
) -> Application:
    """Build and configure the Telegram Application with all handlers.

    Args:
        db: Check-in store. Defaults to CheckinDB at settings.DATABASE_PATH.
        sources: Mail/calendar/task fetchers. Defaults to the Outlook adapters.
        decide: Decision engine callable. Defaults to the configured LLM.
    """
    from src.adapters.telegram_notifier import TelegramNotifier
    from src.bot.callback_store import CallbackStore
    from src.core.orchestrator import CycleOrchestrator, CycleSession
    from src.data.db import CheckinDB

    app = ApplicationBuilder().token(settings.TELEGRAM_BOT_TOKEN).build()

    if db is None:
        db = CheckinDB()

    enricher = None
    if sources is None:
        sources, enricher = _default_sources(db)

    if decide is None:
        from src.core.engine import DecisionClient
        from src.core.llm import LLMClient
        decide = DecisionClient(LLMClient.from_settings(), timezone=settings.TIMEZONE)

    callbacks = CallbackStore()
    policy = settings.snooze_policy()
    notifier = TelegramNotifier(app.bot, settings.TELEGRAM_CHAT_ID, callbacks, policy)
    orchestrator = CycleOrchestrator(
        db=db,
        sources=sources,
        decide=decide,
        notifier=notifier,
        gating_config=settings.gating_config(),
        enricher=enricher,
        session=CycleSession.with_history_limit(settings.HISTORY_LIMIT),
        voice_phone_number=settings.VOICE_PHONE_NUMBER,
    )

    # Shared objects for handler access
    app.bot_data["db"] = db
    app.bot_data["notifier"] = notifier
    app.bot_data["orchestrator"] = orchestrator
    app.bot_data["callbacks"] = callbacks
    app.bot_data["snooze_policy"] = policy

    # Commands
    app.add_handler(CommandHandler("start", cmd_start))
    app.add_handler(CommandHandler("help", cmd_help))
    app.add_handler(CommandHandler("status", cmd_status))
    app.add_handler(CommandHandler("force", cmd_force))
    app.add_handler(CommandHandler("pause", cmd_pause))
    app.add_handler(CommandHandler("resume", cmd_resume))
    app.add_handler(CommandHandler("snoozed", cmd_snoozed))
    app.add_handler(CommandHandler("unsnooze", cmd_unsnooze))
    app.add_handler(CommandHandler("partner", cmd_partner))
    app.add_handler(CommandHandler("remember", cmd_remember))

    # Notification buttons
    app.add_handler(CallbackQueryHandler(
        handle_action_callback,
        pattern=r"^((se|st|sv|mr):.+|snooze_all|force_check)$",
    ))

    _setup_checkin_jobs(app)

    logger.info("Telegram bot application built with %d handlers", len(app.handlers[0]))
    return app


def main() -> None:
    """Entry point: build the app and start polling."""
    logger.info("Starting Smart Check-ins bot...")
    app = build_app()
    app.run_polling()


if __name__ == "__main__":
    main()
