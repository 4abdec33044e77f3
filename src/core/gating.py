"""
Smart Check-ins — Gating Engine.

Decides, before any data is collected, whether a check-in cycle may reach
the reasoning step at all. Rules are evaluated in strict precedence order
and the first rule that blocks wins:

    1. Focus hours      (absolute)
    2. Quiet hours      (absolute)
    3. Weekend quiet mode
    4. Pickup windows
    5. Cooldown since the last logged check-in

No I/O: the only external read is the last-cycle timestamp, obtained through
a callable so it happens lazily, and only when the cooldown rule is reached.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Callable
from zoneinfo import ZoneInfo

logger = logging.getLogger(__name__)

WEEKEND_MODES = ("quiet", "reduced", "normal")


def time_to_minutes(value: str) -> int:
    """Convert "HH:MM" to minutes since midnight.

    Raises ValueError on malformed input.
    """
    parts = value.strip().split(":")
    if len(parts) != 2 or not all(p.isdigit() for p in parts):
        raise ValueError(f"Expected HH:MM, got {value!r}")
    hour, minute = int(parts[0]), int(parts[1])
    if not (0 <= hour <= 23 and 0 <= minute <= 59):
        raise ValueError(f"Hour/minute out of range: {value!r}")
    return hour * 60 + minute


def is_in_window(current: int, start: int, end: int) -> bool:
    """True if `current` (minutes since midnight) falls in [start, end).

    Windows with start > end wrap past midnight (e.g. 22:00-07:00).
    """
    if start <= end:
        return start <= current < end
    return current >= start or current < end


@dataclass(frozen=True)
class TimeWindow:
    """A recurring daily wall-clock window, HH:MM bounds."""

    start: str
    end: str

    def __post_init__(self) -> None:
        time_to_minutes(self.start)
        time_to_minutes(self.end)

    def contains(self, current_minutes: int) -> bool:
        return is_in_window(
            current_minutes, time_to_minutes(self.start), time_to_minutes(self.end),
        )

    def __str__(self) -> str:
        return f"{self.start}-{self.end}"


@dataclass(frozen=True)
class GatingConfig:
    """Static gating policy, loaded once at startup."""

    cooldown_minutes: int = 120
    quiet_hours: TimeWindow = field(default_factory=lambda: TimeWindow("22:00", "07:00"))
    focus_hours: TimeWindow = field(default_factory=lambda: TimeWindow("07:00", "10:00"))
    weekend_mode: str = "reduced"
    weekend_urgency_threshold: int = 7
    pickup_times: tuple[str, ...] = ()
    pickup_reminder_minutes: int = 30
    timezone: str = "America/New_York"

    def __post_init__(self) -> None:
        if self.weekend_mode not in WEEKEND_MODES:
            raise ValueError(
                f"weekend_mode must be one of {WEEKEND_MODES}, got {self.weekend_mode!r}"
            )
        for pickup in self.pickup_times:
            time_to_minutes(pickup)
        if self.cooldown_minutes < 0 or self.pickup_reminder_minutes < 0:
            raise ValueError("Durations must be non-negative")
        ZoneInfo(self.timezone)

    def localize(self, now: datetime) -> datetime:
        """Express `now` in the configured timezone (naive means already local)."""
        if now.tzinfo is None:
            return now
        return now.astimezone(ZoneInfo(self.timezone))


class GatingStatus(str, Enum):
    PROCEED = "PROCEED"
    BLOCKED = "BLOCKED"


@dataclass(frozen=True)
class GatingResult:
    """Outcome of a gating check: PROCEED, or BLOCKED with a reason."""

    status: GatingStatus
    reason: str = ""

    @classmethod
    def proceed(cls) -> GatingResult:
        return cls(GatingStatus.PROCEED)

    @classmethod
    def blocked(cls, reason: str) -> GatingResult:
        return cls(GatingStatus.BLOCKED, reason)

    @property
    def is_blocked(self) -> bool:
        return self.status is GatingStatus.BLOCKED


def is_weekend(local_now: datetime) -> bool:
    return local_now.weekday() >= 5


def evaluate(
    config: GatingConfig,
    now: datetime,
    get_last_cycle_at: Callable[[], datetime | None] = lambda: None,
) -> GatingResult:
    """Run the gating rules against `now`. Never raises."""
    local_now = config.localize(now)
    current = local_now.hour * 60 + local_now.minute

    # 1. Focus hours: no override
    if config.focus_hours.contains(current):
        logger.debug("Blocked: focus hours at %s", local_now.strftime("%H:%M"))
        return GatingResult.blocked(
            f"Focus hours ({config.focus_hours}). Zero interruptions."
        )

    # 2. Quiet hours: no override
    if config.quiet_hours.contains(current):
        logger.debug("Blocked: quiet hours at %s", local_now.strftime("%H:%M"))
        return GatingResult.blocked(
            f"Quiet hours ({config.quiet_hours}). Notifications held until morning."
        )

    # 3. Weekend quiet mode
    if is_weekend(local_now) and config.weekend_mode == "quiet":
        logger.debug("Blocked: weekend quiet mode")
        return GatingResult.blocked("Weekend quiet mode. All notifications paused.")

    # 4. Pickup windows
    for pickup in config.pickup_times:
        minutes_until = time_to_minutes(pickup) - current - local_now.second / 60
        if 0 <= minutes_until <= config.pickup_reminder_minutes:
            logger.debug("Blocked: pickup window %s (%.1f min away)", pickup, minutes_until)
            return GatingResult.blocked(
                f"Pickup window ({pickup}). Only gentle reminders allowed."
            )

    # 5. Cooldown
    try:
        last_cycle_at = get_last_cycle_at()
    except Exception as exc:
        logger.error("Could not read last check-in timestamp: %s", exc)
        last_cycle_at = None

    if last_cycle_at is not None:
        elapsed = _minutes_between(last_cycle_at, now)
        if elapsed < config.cooldown_minutes:
            logger.debug(
                "Blocked: cooldown (%.1f of %d minutes)", elapsed, config.cooldown_minutes,
            )
            return GatingResult.blocked(
                f"Cooldown: last check-in was {int(elapsed + 0.5)} minutes ago "
                f"(minimum: {config.cooldown_minutes} minutes)."
            )

    logger.debug("Gating passed, proceeding to decision engine")
    return GatingResult.proceed()


def _minutes_between(earlier: datetime, later: datetime) -> float:
    # Mixed naive/aware values: treat the naive side as matching the other
    if (earlier.tzinfo is None) != (later.tzinfo is None):
        if earlier.tzinfo is None:
            earlier = earlier.replace(tzinfo=later.tzinfo)
        else:
            later = later.replace(tzinfo=earlier.tzinfo)
    return (later - earlier).total_seconds() / 60
