"""Tests for src.bot.telegram_bot — Telegram command and callback handlers.

Handlers are called directly with mocked Update/Context objects; the DB is
a real temp-file CheckinDB and the orchestrator is mocked.
"""

import pytest
from datetime import timedelta
from unittest.mock import AsyncMock, MagicMock

from src.bot.callback_store import CallbackStore
from src.bot.telegram_bot import (
    cmd_force,
    cmd_partner,
    cmd_pause,
    cmd_remember,
    cmd_resume,
    cmd_snoozed,
    cmd_start,
    cmd_status,
    cmd_unsnooze,
    handle_action_callback,
)
from src.core.orchestrator import CycleSession
from src.core.snooze import SnoozePolicy
from src.data.db import utcnow

AUTHORIZED = 12345
STRANGER = 99999


def _update(user_id=AUTHORIZED):
    update = MagicMock()
    update.effective_user.id = user_id
    update.message.reply_text = AsyncMock()
    update.callback_query.answer = AsyncMock()
    update.callback_query.message.message_id = 77
    return update


def _context(db, args=None):
    orchestrator = MagicMock()
    orchestrator.session = CycleSession()
    orchestrator.run_cycle = MagicMock(return_value="cycle-coroutine")
    context = MagicMock()
    context.args = args or []
    context.bot_data = {
        "db": db,
        "orchestrator": orchestrator,
        "callbacks": CallbackStore(),
        "snooze_policy": SnoozePolicy(item_minutes=120, all_minutes=60),
    }
    return context


def _reply_text(update):
    return update.message.reply_text.await_args.args[0]


class TestAuthorization:
    @pytest.mark.asyncio
    async def test_stranger_is_ignored(self, checkin_db):
        update = _update(STRANGER)
        await cmd_start(update, _context(checkin_db))
        update.message.reply_text.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_stranger_cannot_press_buttons(self, checkin_db):
        update = _update(STRANGER)
        update.callback_query.data = "snooze_all"
        await handle_action_callback(update, _context(checkin_db))
        update.callback_query.answer.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_authorized_user_gets_reply(self, checkin_db):
        update = _update()
        await cmd_start(update, _context(checkin_db))
        assert "Smart Check-ins" in _reply_text(update)


class TestCommands:
    @pytest.mark.asyncio
    async def test_pause_and_resume(self, checkin_db):
        context = _context(checkin_db)
        session = context.bot_data["orchestrator"].session

        await cmd_pause(_update(), context)
        assert session.paused is True

        await cmd_resume(_update(), context)
        assert session.paused is False

    @pytest.mark.asyncio
    async def test_force_starts_bypassed_cycle(self, checkin_db):
        update, context = _update(), _context(checkin_db)

        await cmd_force(update, context)

        context.bot_data["orchestrator"].run_cycle.assert_called_once_with(bypass_gating=True)
        context.application.create_task.assert_called_once()
        assert "Running a check-in" in _reply_text(update)

    @pytest.mark.asyncio
    async def test_force_while_running(self, checkin_db):
        update, context = _update(), _context(checkin_db)
        context.bot_data["orchestrator"].session.running = True

        await cmd_force(update, context)

        context.application.create_task.assert_not_called()
        assert "already running" in _reply_text(update)

    @pytest.mark.asyncio
    async def test_status(self, checkin_db):
        checkin_db.record_checkin("TEXT", 6, "Reply to Dana", ["email"])
        update = _update()

        await cmd_status(update, _context(checkin_db))

        text = _reply_text(update)
        assert "Smart Check-ins Status" in text
        assert "TEXT (urgency 6)" in text
        assert "State: active" in text

    @pytest.mark.asyncio
    async def test_snoozed_and_unsnooze(self, checkin_db):
        checkin_db.snooze_item("task", "t-1", utcnow() + timedelta(hours=1))
        context = _context(checkin_db)

        update = _update()
        await cmd_snoozed(update, context)
        assert "task t-1" in _reply_text(update)

        update = _update()
        context.args = ["task", "t-1"]
        await cmd_unsnooze(update, context)
        assert "Un-snoozed" in _reply_text(update)
        assert checkin_db.list_snoozed() == []

    @pytest.mark.asyncio
    async def test_unsnooze_usage(self, checkin_db):
        update = _update()
        await cmd_unsnooze(update, _context(checkin_db, args=["sms", "x"]))
        assert _reply_text(update).startswith("Usage")

    @pytest.mark.asyncio
    async def test_unsnooze_not_snoozed(self, checkin_db):
        update = _update()
        await cmd_unsnooze(update, _context(checkin_db, args=["email", "conv-9"]))
        assert "isn't snoozed" in _reply_text(update)

    @pytest.mark.asyncio
    async def test_partner(self, checkin_db):
        update = _update()
        await cmd_partner(update, _context(checkin_db, args=["acme.com", "Acme", "Inc"]))
        assert checkin_db.get_partnership_by_domain("acme.com").company_name == "Acme Inc"
        assert "Acme Inc" in _reply_text(update)

    @pytest.mark.asyncio
    async def test_partner_usage(self, checkin_db):
        update = _update()
        await cmd_partner(update, _context(checkin_db, args=["acme"]))
        assert _reply_text(update).startswith("Usage")

    @pytest.mark.asyncio
    async def test_remember(self, checkin_db):
        update = _update()
        await cmd_remember(update, _context(checkin_db, args=["calls", "mornings", "only"]))
        [entry] = checkin_db.get_all_memory()
        assert (entry.key, entry.value) == ("calls", "mornings only")


class TestActionCallback:
    @pytest.mark.asyncio
    async def test_snooze_email_button(self, checkin_db):
        update, context = _update(), _context(checkin_db)
        update.callback_query.data = context.bot_data["callbacks"].encode("snooze_email:conv-1")

        await handle_action_callback(update, context)

        assert checkin_db.is_snoozed("email", "conv-1")
        assert "120 min" in update.callback_query.answer.await_args.args[0]

    @pytest.mark.asyncio
    async def test_snooze_event_button(self, checkin_db):
        update, context = _update(), _context(checkin_db)
        update.callback_query.data = context.bot_data["callbacks"].encode("snooze_event:ev-1")

        await handle_action_callback(update, context)

        assert checkin_db.is_snoozed("calendar", "ev-1")

    @pytest.mark.asyncio
    async def test_snooze_all_uses_message_actions(self, checkin_db):
        update, context = _update(), _context(checkin_db)
        callbacks = context.bot_data["callbacks"]
        callbacks.remember_message(77, ("snooze_email:conv-1", "snooze_task:t-1", "snooze_all"))
        update.callback_query.data = "snooze_all"

        await handle_action_callback(update, context)

        assert checkin_db.is_snoozed("email", "conv-1")
        assert checkin_db.is_snoozed("task", "t-1")
        assert "2 item(s)" in update.callback_query.answer.await_args.args[0]

    @pytest.mark.asyncio
    async def test_mark_read_button(self, checkin_db):
        update, context = _update(), _context(checkin_db)
        update.callback_query.data = context.bot_data["callbacks"].encode("mark_read:conv-1")

        await handle_action_callback(update, context)

        assert checkin_db.get_email_tracking("conv-1").last_notified is not None

    @pytest.mark.asyncio
    async def test_force_check_button(self, checkin_db):
        update, context = _update(), _context(checkin_db)
        update.callback_query.data = "force_check"

        await handle_action_callback(update, context)

        context.bot_data["orchestrator"].run_cycle.assert_called_once_with(bypass_gating=True)

    @pytest.mark.asyncio
    async def test_failure_answers_action_failed(self):
        db = MagicMock()
        db.snooze_item.side_effect = RuntimeError("database is locked")
        update, context = _update(), _context(db)
        update.callback_query.data = "st:t-1"

        await handle_action_callback(update, context)

        update.callback_query.answer.assert_awaited_once_with("❌ Action failed")
