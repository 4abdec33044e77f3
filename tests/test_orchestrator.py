"""Tests for src.core.orchestrator — the check-in cycle pipeline.

The DB is a real temp-file CheckinDB; sources, the decision engine and the
notifier are mocked.
"""

import asyncio
import re

import pytest
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock, patch

from src.core.collectors import DataSources
from src.core.decision import Decision
from src.core.gating import GatingConfig, GatingStatus
from src.core.orchestrator import (
    ALREADY_RUNNING,
    PAUSED,
    CycleOrchestrator,
    CycleSession,
    generate_cycle_id,
)
from src.core.voice import VoiceCallResult
from src.data.models import CalendarEvent, EmailMessage, TodoTask
from src.ports.source_port import SourceError

WEDNESDAY = datetime(2025, 1, 15, 14, 0, tzinfo=timezone.utc)
SATURDAY = datetime(2025, 1, 18, 14, 0, tzinfo=timezone.utc)


def _decision(kind="TEXT", urgency=6, **extra):
    raw = {
        "decision": kind,
        "urgency": urgency,
        "summary": "• Dana asked for the signed quote",
        "reasoning": "• Acme is an active partner",
        "action_buttons": ["snooze_email:conv-1", "snooze_all"] if kind != "NONE" else [],
    }
    raw.update(extra)
    return raw


def _sources(calendar_error=None):
    email = EmailMessage(
        id="m1", conversation_id="conv-1", subject="Quote", sender_name="Dana",
        sender_address="dana@acme.com", received_at="2025-01-15T10:00:00+00:00",
    )
    event = CalendarEvent(id="ev-1", subject="Standup", start="2025-01-15T15:00:00", end="2025-01-15T15:15:00")
    task = TodoTask(id="t-1", list_id="l-1", list_name="Work", title="Invoice")
    calendar_fetch = (
        AsyncMock(side_effect=calendar_error) if calendar_error
        else AsyncMock(return_value=[event])
    )
    return DataSources(
        mail=MagicMock(fetch=AsyncMock(return_value=[email])),
        calendar=MagicMock(fetch=calendar_fetch),
        tasks=MagicMock(fetch=AsyncMock(return_value=[task])),
    )


def _notifier():
    notifier = MagicMock()
    notifier.send_decision = AsyncMock()
    notifier.send_silent = AsyncMock()
    notifier.send_plain = AsyncMock()
    return notifier


def _build(db, *, decide=None, notifier=None, now=WEDNESDAY, sources=None,
           gating_config=None, **kwargs):
    return CycleOrchestrator(
        db=db,
        sources=sources or _sources(),
        decide=decide or AsyncMock(return_value=_decision()),
        notifier=notifier or _notifier(),
        gating_config=gating_config or GatingConfig(timezone="UTC"),
        clock=lambda: now,
        **kwargs,
    )


class TestCycleId:
    def test_format(self):
        cycle_id = generate_cycle_id(WEDNESDAY)
        assert re.fullmatch(r"cyc_20250115_140000_[a-z0-9]{4}", cycle_id)

    def test_unique(self):
        assert len({generate_cycle_id(WEDNESDAY) for _ in range(50)}) > 1


class TestCycleSession:
    def test_history_limit(self):
        session = CycleSession.with_history_limit(3)
        assert session.history.maxlen == 3
        assert session.paused is False
        assert session.running is False


class TestHappyPath:
    @pytest.mark.asyncio
    async def test_text_decision_notifies_and_logs(self, checkin_db):
        notifier = _notifier()
        orch = _build(checkin_db, notifier=notifier)

        result = await orch.run_cycle()

        assert result.gating_result.status is GatingStatus.PROCEED
        assert result.decision.decision is Decision.TEXT
        assert result.action_taken == "Sent TEXT notification (urgency 6)"
        notifier.send_decision.assert_awaited_once_with(result.decision)
        notifier.send_silent.assert_not_awaited()

        [entry] = checkin_db.get_recent_checkins()
        assert entry.decision == "TEXT"
        assert entry.urgency == 6
        assert entry.sources_available == ["email", "calendar", "tasks", "local_db"]
        assert checkin_db.get_last_cycle_timestamp() == WEDNESDAY

    @pytest.mark.asyncio
    async def test_result_stored_in_session(self, checkin_db):
        orch = _build(checkin_db)
        result = await orch.run_cycle()
        assert orch.session.last_result is result
        assert list(orch.session.history) == [result]
        assert orch.session.running is False

    @pytest.mark.asyncio
    async def test_none_decision_sent_silently(self, checkin_db):
        notifier = _notifier()
        orch = _build(checkin_db, notifier=notifier, decide=AsyncMock(return_value=_decision("NONE", 2)))

        result = await orch.run_cycle()

        assert result.action_taken == "No action needed"
        notifier.send_silent.assert_awaited_once()
        notifier.send_decision.assert_not_awaited()
        assert checkin_db.get_recent_checkins()[0].decision == "NONE"

    @pytest.mark.asyncio
    async def test_call_decision_places_voice_call(self, checkin_db):
        voice = AsyncMock(return_value=VoiceCallResult(success=False))
        notifier = _notifier()
        decide = AsyncMock(return_value=_decision("CALL", 9, spoken_briefing="Board call in 10 minutes"))
        orch = _build(checkin_db, notifier=notifier, decide=decide, voice=voice, voice_phone_number="+15550100")

        result = await orch.run_cycle()

        notifier.send_decision.assert_awaited_once()
        voice.assert_awaited_once_with("Board call in 10 minutes", "+15550100")
        assert result.action_taken == "Sent CALL notification (urgency 9); voice call unavailable"

    @pytest.mark.asyncio
    async def test_voice_failure_does_not_fail_cycle(self, checkin_db):
        voice = AsyncMock(side_effect=RuntimeError("no provider"))
        decide = AsyncMock(return_value=_decision("CALL", 9, spoken_briefing="Hi"))
        orch = _build(checkin_db, decide=decide, voice=voice)

        result = await orch.run_cycle()

        assert result.action_taken.endswith("voice call unavailable")
        assert len(checkin_db.get_recent_checkins()) == 1

    @pytest.mark.asyncio
    async def test_enricher_runs_on_collected_emails(self, checkin_db):
        enricher = MagicMock()
        enricher.enrich = AsyncMock(side_effect=lambda emails: emails)
        orch = _build(checkin_db, enricher=enricher)

        await orch.run_cycle()

        enricher.enrich.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_enricher_failure_keeps_raw_emails(self, checkin_db):
        enricher = MagicMock()
        enricher.enrich = AsyncMock(side_effect=RuntimeError("boom"))
        decide = AsyncMock(return_value=_decision())
        orch = _build(checkin_db, enricher=enricher, decide=decide)

        result = await orch.run_cycle()

        assert result.action_taken.startswith("Sent TEXT")
        context = decide.await_args.args[0]
        assert len(context.emails) == 1


class TestGating:
    @pytest.mark.asyncio
    async def test_cooldown_blocks_before_collection(self, checkin_db):
        checkin_db.record_checkin("NONE", 2, "earlier", [], at=WEDNESDAY - timedelta(minutes=30))
        sources = _sources()
        decide = AsyncMock(return_value=_decision())
        notifier = _notifier()
        orch = _build(checkin_db, sources=sources, decide=decide, notifier=notifier)

        result = await orch.run_cycle()

        assert result.gating_result.is_blocked
        assert result.action_taken == (
            "Blocked: Cooldown: last check-in was 30 minutes ago (minimum: 120 minutes)."
        )
        assert result.context is None
        sources.mail.fetch.assert_not_awaited()
        decide.assert_not_awaited()
        notifier.send_silent.assert_not_awaited()
        assert len(checkin_db.get_recent_checkins()) == 1
        assert orch.session.history[-1] is result

    @pytest.mark.asyncio
    async def test_quiet_hours_block(self, checkin_db):
        orch = _build(checkin_db, now=WEDNESDAY.replace(hour=23))
        result = await orch.run_cycle()
        assert result.gating_result.reason.startswith("Quiet hours")

    @pytest.mark.asyncio
    async def test_completed_cycle_moves_cooldown_pointer(self, checkin_db):
        orch = _build(checkin_db)
        await orch.run_cycle()
        second = await orch.run_cycle()
        assert second.gating_result.reason.startswith("Cooldown: last check-in was 0 minutes ago")

    @pytest.mark.asyncio
    async def test_bypass_skips_gating(self, checkin_db):
        decide = AsyncMock(return_value=_decision())
        orch = _build(checkin_db, decide=decide, now=WEDNESDAY.replace(hour=23))

        with patch("src.core.orchestrator.evaluate") as mock_evaluate:
            result = await orch.run_cycle(bypass_gating=True)

        mock_evaluate.assert_not_called()
        decide.assert_awaited_once()
        assert result.gating_result.status is GatingStatus.PROCEED

    @pytest.mark.asyncio
    async def test_paused_session_skips_everything(self, checkin_db):
        decide = AsyncMock(return_value=_decision())
        orch = _build(checkin_db, decide=decide)
        orch.session.paused = True

        result = await orch.run_cycle(bypass_gating=True)

        assert result.gating_result.reason == PAUSED
        decide.assert_not_awaited()
        assert orch.session.history[-1] is result


class TestSingleFlight:
    @pytest.mark.asyncio
    async def test_second_call_returns_blocked_immediately(self, checkin_db):
        entered = asyncio.Event()
        release = asyncio.Event()

        async def slow_decide(context):
            entered.set()
            await release.wait()
            return _decision()

        decide = AsyncMock(side_effect=slow_decide)
        sources, notifier = _sources(), _notifier()
        orch = _build(checkin_db, decide=decide, sources=sources, notifier=notifier)
        first = asyncio.create_task(orch.run_cycle(bypass_gating=True))
        await entered.wait()

        assert orch.session.running is True
        second = await orch.run_cycle(bypass_gating=True)
        assert second.gating_result.is_blocked
        assert second.gating_result.reason == ALREADY_RUNNING
        assert sources.mail.fetch.await_count == 1
        assert sources.calendar.fetch.await_count == 1
        assert sources.tasks.fetch.await_count == 1
        assert decide.await_count == 1
        notifier.send_plain.assert_not_awaited()

        release.set()
        result = await first

        assert result.decision.decision is Decision.TEXT
        assert orch.session.running is False
        assert list(orch.session.history) == [result]
        assert len(checkin_db.get_recent_checkins()) == 1

    @pytest.mark.asyncio
    async def test_running_flag_released_after_error(self, checkin_db):
        notifier = _notifier()
        notifier.send_decision.side_effect = RuntimeError("Telegram down")
        orch = _build(checkin_db, notifier=notifier)

        await orch.run_cycle()

        assert orch.session.running is False


class TestFailures:
    @pytest.mark.asyncio
    async def test_decision_engine_failure_becomes_fallback(self, checkin_db):
        notifier = _notifier()
        orch = _build(checkin_db, notifier=notifier, decide=AsyncMock(side_effect=TimeoutError("LLM timed out")))

        result = await orch.run_cycle()

        assert result.decision.decision is Decision.NONE
        assert result.decision.urgency == 0
        assert result.action_taken == "No action: decision engine unavailable"
        notifier.send_silent.assert_awaited_once_with(result.decision)
        [entry] = checkin_db.get_recent_checkins()
        assert entry.decision == "NONE"
        assert entry.urgency == 0

    @pytest.mark.asyncio
    async def test_invalid_payload_becomes_fallback(self, checkin_db):
        orch = _build(checkin_db, decide=AsyncMock(return_value=_decision("MAYBE", 15)))
        result = await orch.run_cycle()
        assert result.decision.is_fallback
        assert result.decision.decision is Decision.NONE

    @pytest.mark.asyncio
    async def test_huge_urgency_becomes_fallback_and_is_logged(self, checkin_db):
        notifier = _notifier()
        orch = _build(checkin_db, notifier=notifier, decide=AsyncMock(return_value=_decision("TEXT", 10 ** 400)))

        result = await orch.run_cycle()

        assert result.decision.is_fallback
        assert result.action_taken == "No action: decision engine unavailable"
        notifier.send_silent.assert_awaited_once_with(result.decision)
        notifier.send_plain.assert_not_awaited()
        [entry] = checkin_db.get_recent_checkins()
        assert (entry.decision, entry.urgency) == ("NONE", 0)

    @pytest.mark.asyncio
    async def test_primary_notification_failure(self, checkin_db):
        notifier = _notifier()
        notifier.send_decision.side_effect = RuntimeError("Telegram down")
        orch = _build(checkin_db, notifier=notifier)

        result = await orch.run_cycle()

        assert result.action_taken == "Error: Telegram down"
        notifier.send_plain.assert_awaited_once()
        text = notifier.send_plain.await_args.args[0]
        assert text.startswith("⚠️ Smart Check-in Error")
        assert "Telegram down" in text
        assert orch.session.last_result is result

    @pytest.mark.asyncio
    async def test_error_notice_failure_is_swallowed(self, checkin_db):
        notifier = _notifier()
        notifier.send_decision.side_effect = RuntimeError("Telegram down")
        notifier.send_plain.side_effect = RuntimeError("still down")
        orch = _build(checkin_db, notifier=notifier)

        result = await orch.run_cycle()

        assert result.action_taken == "Error: Telegram down"

    @pytest.mark.asyncio
    async def test_silent_notification_failure_is_swallowed(self, checkin_db):
        notifier = _notifier()
        notifier.send_silent.side_effect = RuntimeError("Telegram down")
        orch = _build(checkin_db, notifier=notifier, decide=AsyncMock(return_value=_decision("NONE", 1)))

        result = await orch.run_cycle()

        assert result.action_taken == "No action needed"
        notifier.send_plain.assert_not_awaited()
        assert len(checkin_db.get_recent_checkins()) == 1

    @pytest.mark.asyncio
    async def test_source_failure_forwarded_to_decision(self, checkin_db):
        decide = AsyncMock(return_value=_decision("NONE", 2))
        orch = _build(
            checkin_db,
            decide=decide,
            sources=_sources(calendar_error=SourceError("Failed to fetch calendar events: 503")),
        )

        result = await orch.run_cycle()

        context = decide.await_args.args[0]
        assert context.source_errors == ["calendar: Failed to fetch calendar events: 503"]
        assert "calendar" not in checkin_db.get_recent_checkins()[0].sources_available
        assert result.context is context


class TestSnoozeIntegration:
    @pytest.mark.asyncio
    async def test_snoozed_items_hidden_from_decision(self, checkin_db):
        checkin_db.snooze_item("email", "conv-1", WEDNESDAY + timedelta(hours=1), now=WEDNESDAY)
        decide = AsyncMock(return_value=_decision("NONE", 1))
        orch = _build(checkin_db, decide=decide)

        await orch.run_cycle()

        context = decide.await_args.args[0]
        assert context.emails == []
        assert len(context.tasks) == 1

    @pytest.mark.asyncio
    async def test_expired_snoozes_are_purged(self, checkin_db):
        checkin_db.snooze_item("task", "t-1", WEDNESDAY - timedelta(minutes=5), now=WEDNESDAY)
        decide = AsyncMock(return_value=_decision("NONE", 1))
        orch = _build(checkin_db, decide=decide)

        await orch.run_cycle()

        assert checkin_db.purge_expired_snoozes(WEDNESDAY) == 0
        assert len(decide.await_args.args[0].tasks) == 1


class TestWeekendReduced:
    @pytest.mark.asyncio
    async def test_low_urgency_downgraded_to_silent(self, checkin_db):
        notifier = _notifier()
        orch = _build(checkin_db, notifier=notifier, now=SATURDAY,
                      decide=AsyncMock(return_value=_decision("TEXT", 5)))

        result = await orch.run_cycle()

        assert result.decision.decision is Decision.NONE
        assert result.decision.urgency == 5
        assert result.decision.action_buttons == ()
        assert "Weekend mode" in result.decision.reasoning
        notifier.send_silent.assert_awaited_once()
        notifier.send_decision.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_threshold_urgency_still_notifies(self, checkin_db):
        notifier = _notifier()
        orch = _build(checkin_db, notifier=notifier, now=SATURDAY,
                      decide=AsyncMock(return_value=_decision("TEXT", 7)))

        await orch.run_cycle()

        notifier.send_decision.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_weekday_not_affected(self, checkin_db):
        notifier = _notifier()
        orch = _build(checkin_db, notifier=notifier, decide=AsyncMock(return_value=_decision("TEXT", 3)))

        await orch.run_cycle()

        notifier.send_decision.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_normal_mode_not_affected(self, checkin_db):
        notifier = _notifier()
        orch = _build(
            checkin_db, notifier=notifier, now=SATURDAY,
            gating_config=GatingConfig(timezone="UTC", weekend_mode="normal"),
            decide=AsyncMock(return_value=_decision("TEXT", 3)),
        )

        await orch.run_cycle()

        notifier.send_decision.assert_awaited_once()
