"""
Smart Check-ins — Cycle Orchestrator.

Runs one check-in cycle: gate -> collect -> enrich -> decide -> notify -> log.

Guarantees:
- Single-flight: a call made while a cycle is in progress returns BLOCKED
  immediately and does no work. Overlapping ticks are dropped, not queued.
- Never raises: every failure becomes a CycleResult, and the user gets a
  best-effort plain-text notice.
- A failed reasoning call becomes the fallback NONE decision and the cycle
  carries on, so the failure is both delivered and logged.

All mutable state (pause flag, running flag, history) lives on a
CycleSession owned by whoever builds the orchestrator.
"""

from __future__ import annotations

import logging
import secrets
import string
from collections import deque
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Mapping

from src.core.collectors import collect_context
from src.core.decision import Decision, DecisionResult, fallback_decision, validate
from src.core.gating import GatingConfig, GatingResult, evaluate, is_weekend
from src.core.snooze import filter_snoozed
from src.core.voice import VoiceCallResult, initiate_voice_call
from src.data.db import to_db_timestamp, utcnow
from src.data.models import CycleResult

if TYPE_CHECKING:
    from src.core.collectors import DataSources
    from src.core.enrichment import EmailEnricher
    from src.data.db import CheckinDB
    from src.data.models import CollectedContext
    from src.ports.notification_port import NotificationPort

logger = logging.getLogger(__name__)

ALREADY_RUNNING = "previous cycle still running"
PAUSED = "paused by user"
DEFAULT_HISTORY_LIMIT = 50

DecideFn = Callable[["CollectedContext"], Awaitable[Mapping[str, Any]]]
VoiceFn = Callable[[str, str], Awaitable[VoiceCallResult]]

_ID_ALPHABET = string.ascii_lowercase + string.digits


def generate_cycle_id(now: datetime) -> str:
    """cyc_YYYYMMDD_HHMMSS_xxxx, unique per cycle."""
    suffix = "".join(secrets.choice(_ID_ALPHABET) for _ in range(4))
    return f"cyc_{now.strftime('%Y%m%d_%H%M%S')}_{suffix}"


@dataclass
class CycleSession:
    """Process-wide state shared by the scheduler and manual triggers."""

    paused: bool = False
    running: bool = False
    started_at: datetime = field(default_factory=utcnow)
    last_result: CycleResult | None = None
    history: deque[CycleResult] = field(
        default_factory=lambda: deque(maxlen=DEFAULT_HISTORY_LIMIT),
    )

    @classmethod
    def with_history_limit(cls, limit: int) -> CycleSession:
        return cls(history=deque(maxlen=max(1, limit)))


class CycleOrchestrator:
    """Sequences the five pipeline stages for one user."""

    def __init__(
        self,
        *,
        db: CheckinDB,
        sources: DataSources,
        decide: DecideFn,
        notifier: NotificationPort,
        gating_config: GatingConfig,
        enricher: EmailEnricher | None = None,
        session: CycleSession | None = None,
        clock: Callable[[], datetime] = utcnow,
        voice: VoiceFn = initiate_voice_call,
        voice_phone_number: str = "",
    ) -> None:
        self._db = db
        self._sources = sources
        self._decide = decide
        self._notifier = notifier
        self._config = gating_config
        self._enricher = enricher
        self._clock = clock
        self._voice = voice
        self._voice_phone_number = voice_phone_number
        self.session = session if session is not None else CycleSession()

    # ------------------------------------------------------------------
    # Entry point
    # ------------------------------------------------------------------

    async def run_cycle(self, bypass_gating: bool = False) -> CycleResult:
        """Run one cycle. Never raises."""
        session = self.session
        if session.running:
            logger.warning("Cycle already in progress, skipping")
            stamp = to_db_timestamp(self._clock())
            return CycleResult(
                cycle_id=generate_cycle_id(self._clock()),
                started_at=stamp,
                completed_at=stamp,
                gating_result=GatingResult.blocked(ALREADY_RUNNING),
                action_taken="Skipped: previous cycle still running",
            )

        session.running = True
        started = self._clock()
        cycle_id = generate_cycle_id(started)
        logger.info("Starting check-in cycle %s (bypass_gating=%s)", cycle_id, bypass_gating)

        try:
            if session.paused:
                logger.info("Cycle %s skipped: paused by user", cycle_id)
                result = self._finish(cycle_id, started, GatingResult.blocked(PAUSED),
                                      action_taken="Skipped: paused by user")
            else:
                result = await self._run_pipeline(cycle_id, started, bypass_gating)
        except Exception as exc:
            logger.exception("Cycle %s failed", cycle_id)
            await self._send_error_notice(cycle_id, exc)
            result = self._finish(cycle_id, started, GatingResult.proceed(),
                                  action_taken=f"Error: {exc}")
        finally:
            session.running = False

        session.last_result = result
        session.history.append(result)
        return result

    # ------------------------------------------------------------------
    # Pipeline
    # ------------------------------------------------------------------

    async def _run_pipeline(
        self, cycle_id: str, started: datetime, bypass_gating: bool,
    ) -> CycleResult:
        # a. Gating
        if bypass_gating:
            logger.info("Cycle %s: gating bypassed", cycle_id)
            gating = GatingResult.proceed()
        else:
            gating = evaluate(self._config, started, self._db.get_last_cycle_timestamp)
        if gating.is_blocked:
            logger.info("Cycle %s blocked by gating: %s", cycle_id, gating.reason)
            return self._finish(cycle_id, started, gating, action_taken=f"Blocked: {gating.reason}")

        # b. Collect (settle-all fan-out)
        context = await collect_context(self._sources, self._db, now=started)

        # c. Enrich (best-effort)
        context.emails = await self._enrich(context)

        # d. Snooze sweep, then hide snoozed items from the reasoning step
        now = self._clock()
        purged = self._db.purge_expired_snoozes(now)
        if purged:
            logger.debug("Purged %d expired snooze(s)", purged)
        context, _ = filter_snoozed(context, self._db, now)

        # e. Decide
        decision = await self._make_decision(context)
        decision = self._apply_weekend_threshold(decision, now)

        # f. Notify (exactly one message)
        action_taken = await self._dispatch(decision)

        # g. Log; the new row is the cooldown reference point
        self._db.record_checkin(
            decision.decision.value,
            decision.urgency,
            decision.summary,
            context.sources_available,
            at=self._clock(),
        )

        result = self._finish(
            cycle_id, started, gating,
            context=context, decision=decision, action_taken=action_taken,
        )
        logger.info(
            "Cycle %s complete: %s (urgency %d) in %.1fs",
            cycle_id,
            decision.decision.value,
            decision.urgency,
            (self._clock() - started).total_seconds(),
        )
        return result

    async def _enrich(self, context: CollectedContext) -> list:
        if self._enricher is None or not context.emails:
            return context.emails
        try:
            return await self._enricher.enrich(context.emails)
        except Exception as exc:
            logger.warning("Enrichment failed, using raw emails: %s", exc)
            return context.emails

    async def _make_decision(self, context: CollectedContext) -> DecisionResult:
        try:
            raw = await self._decide(context)
        except Exception as exc:
            logger.error("Decision engine failed: %s", exc)
            return fallback_decision(exc)
        return validate(raw)

    def _apply_weekend_threshold(self, decision: DecisionResult, now: datetime) -> DecisionResult:
        """In weekend 'reduced' mode, hold back notifications below the threshold."""
        config = self._config
        if config.weekend_mode != "reduced" or not decision.notifies:
            return decision
        if not is_weekend(config.localize(now)):
            return decision
        if decision.urgency >= config.weekend_urgency_threshold:
            return decision

        logger.info(
            "Weekend: %s urgency %d below threshold %d, delivering silently",
            decision.decision.value, decision.urgency, config.weekend_urgency_threshold,
        )
        note = (
            f"• Weekend mode: {decision.decision.value} at urgency {decision.urgency} "
            f"is below the weekend threshold ({config.weekend_urgency_threshold})"
        )
        return replace(
            decision,
            decision=Decision.NONE,
            reasoning=f"{decision.reasoning}\n{note}".strip(),
            action_buttons=(),
            spoken_briefing=None,
        )

    async def _dispatch(self, decision: DecisionResult) -> str:
        if decision.decision is Decision.NONE:
            await self._send_silent(decision)
            if decision.is_fallback:
                return "No action: decision engine unavailable"
            return "No action needed"

        if decision.decision is Decision.TEXT:
            await self._notifier.send_decision(decision)
            return f"Sent TEXT notification (urgency {decision.urgency})"

        if decision.decision is Decision.CALL:
            await self._notifier.send_decision(decision)
            action = f"Sent CALL notification (urgency {decision.urgency})"
            if decision.spoken_briefing:
                call = await self._place_call(decision.spoken_briefing)
                action += "; voice call placed" if call.success else "; voice call unavailable"
            return action

        raise ValueError(f"Unhandled decision kind: {decision.decision!r}")

    async def _place_call(self, briefing: str) -> VoiceCallResult:
        try:
            return await self._voice(briefing, self._voice_phone_number)
        except Exception as exc:
            logger.error("Voice call failed: %s", exc)
            return VoiceCallResult(success=False)

    # ------------------------------------------------------------------
    # Best-effort delivery paths
    # ------------------------------------------------------------------

    async def _send_silent(self, decision: DecisionResult) -> None:
        try:
            await self._notifier.send_silent(decision)
        except Exception as exc:
            logger.error("Failed to send silent summary: %s", exc)

    async def _send_error_notice(self, cycle_id: str, exc: Exception) -> None:
        try:
            await self._notifier.send_plain(
                f"⚠️ Smart Check-in Error\n\nCycle {cycle_id} failed: {exc}"
            )
        except Exception as notice_exc:
            logger.error("Failed to send error notification: %s", notice_exc)

    def _finish(
        self,
        cycle_id: str,
        started: datetime,
        gating: GatingResult,
        *,
        context: CollectedContext | None = None,
        decision: DecisionResult | None = None,
        action_taken: str = "",
    ) -> CycleResult:
        return CycleResult(
            cycle_id=cycle_id,
            started_at=to_db_timestamp(started),
            completed_at=to_db_timestamp(self._clock()),
            gating_result=gating,
            context=context,
            decision=decision,
            action_taken=action_taken,
        )
