"""
Smart Check-ins — Decision contract.

The reasoning step is an external, unreliable collaborator: its output is
validated here before anything downstream sees it. Every path out of this
module yields a well-formed DecisionResult.

JSON contract expected from the LLM:
{
    "decision": "TEXT",
    "urgency": 6,
    "summary": "• Dana (Acme) asked for the signed quote, no reply yet",
    "reasoning": "• Looked at 4 unread emails\n• Acme is an active partner",
    "action_buttons": ["snooze_email:AAQk...", "mark_read:AAQk...", "snooze_all"],
    "spoken_briefing": null
}
"""

from __future__ import annotations

import json
import logging
import math
from dataclasses import dataclass
from enum import Enum
from typing import Any, Mapping

from pydantic import AliasChoices, BaseModel, Field, ValidationError

logger = logging.getLogger(__name__)

MIN_URGENCY = 1
MAX_URGENCY = 10
FALLBACK_URGENCY = 0  # sentinel: the engine never produced a usable answer


class Decision(str, Enum):
    NONE = "NONE"
    TEXT = "TEXT"
    CALL = "CALL"


class DecisionError(Exception):
    """Raised when the reasoning call fails or returns an unusable payload."""


@dataclass(frozen=True)
class DecisionResult:
    """A validated decision, safe to notify and log."""

    decision: Decision
    urgency: int
    summary: str
    reasoning: str
    action_buttons: tuple[str, ...] = ()
    spoken_briefing: str | None = None

    @property
    def is_fallback(self) -> bool:
        return self.urgency == FALLBACK_URGENCY

    @property
    def notifies(self) -> bool:
        """True for decisions that interrupt the user (TEXT / CALL)."""
        if self.decision is Decision.NONE:
            return False
        if self.decision in (Decision.TEXT, Decision.CALL):
            return True
        raise ValueError(f"Unhandled decision kind: {self.decision!r}")


class _RawDecision(BaseModel):
    """Shape check for the LLM payload; accepts snake_case or camelCase keys."""

    decision: str
    urgency: Any
    summary: str
    reasoning: str
    action_buttons: list[Any] | None = Field(
        default=None,
        validation_alias=AliasChoices("action_buttons", "actionButtons"),
    )
    spoken_briefing: str | None = Field(
        default=None,
        validation_alias=AliasChoices("spoken_briefing", "spokenBriefing"),
    )


def clamp_urgency(value: Any) -> int:
    """Round to the nearest integer (half up) and clamp into [1, 10].

    Raises DecisionError for values that are not finite numbers.
    """
    if isinstance(value, bool):
        raise DecisionError(f"Urgency must be a number, got {value!r}")
    try:
        number = float(value)
    except (TypeError, ValueError) as exc:
        raise DecisionError(f"Urgency must be a number, got {value!r}") from exc
    except OverflowError as exc:
        raise DecisionError("Urgency is too large to be a number") from exc
    if not math.isfinite(number):
        raise DecisionError(f"Urgency must be finite, got {value!r}")
    rounded = math.floor(number + 0.5)
    return max(MIN_URGENCY, min(MAX_URGENCY, rounded))


def fallback_decision(error: BaseException | str) -> DecisionResult:
    """The deterministic NONE / urgency-0 result used when reasoning fails."""
    message = str(error) or error.__class__.__name__
    return DecisionResult(
        decision=Decision.NONE,
        urgency=FALLBACK_URGENCY,
        summary=f"Decision engine unavailable: {message}",
        reasoning=f"• Could not evaluate this check-in: {message}",
        action_buttons=(),
    )


def validate(raw: Mapping[str, Any] | None) -> DecisionResult:
    """Validate and sanitize a raw decision payload.

    Never raises: anything unusable becomes the fallback decision.
    """
    try:
        return _validate_strict(raw)
    except DecisionError as exc:
        logger.warning("Rejected decision payload: %s", exc)
        return fallback_decision(exc)


def _validate_strict(raw: Mapping[str, Any] | None) -> DecisionResult:
    if not isinstance(raw, Mapping):
        raise DecisionError(f"Expected an object, got {type(raw).__name__}")

    try:
        parsed = _RawDecision.model_validate(dict(raw))
    except ValidationError as exc:
        fields = ", ".join(
            ".".join(str(p) for p in err["loc"]) for err in exc.errors()
        )
        raise DecisionError(f"Malformed decision payload ({fields})") from exc

    try:
        kind = Decision(parsed.decision)
    except ValueError as exc:
        raise DecisionError(f"Unknown decision kind {parsed.decision!r}") from exc

    urgency = clamp_urgency(parsed.urgency)
    buttons = tuple(
        b.strip() for b in (parsed.action_buttons or [])
        if isinstance(b, str) and b.strip()
    )
    briefing = parsed.spoken_briefing if kind is Decision.CALL else None

    return DecisionResult(
        decision=kind,
        urgency=urgency,
        summary=parsed.summary.strip(),
        reasoning=parsed.reasoning.strip(),
        action_buttons=buttons,
        spoken_briefing=briefing or None,
    )


def _clean_llm_response(raw_text: str) -> str:
    """Remove markdown code block delimiters from LLM's raw response."""
    cleaned_text = raw_text.strip()
    if cleaned_text.startswith("```json"):
        cleaned_text = cleaned_text.removeprefix("```json")
    elif cleaned_text.startswith("```"):
        cleaned_text = cleaned_text.removeprefix("```")
    if cleaned_text.endswith("```"):
        cleaned_text = cleaned_text.removesuffix("```")
    return cleaned_text.strip()


def parse_decision_json(raw: str) -> dict:
    """Parse the LLM's text response into a JSON object.

    Raises DecisionError when the body is not a JSON object.
    """
    text = _clean_llm_response(raw)
    if not text.startswith("{"):
        start, end = text.find("{"), text.rfind("}")
        if start != -1 and end > start:
            text = text[start:end + 1]
    try:
        data = json.loads(text)
    except json.JSONDecodeError as exc:
        raise DecisionError(f"LLM returned invalid JSON: {exc}") from exc
    if not isinstance(data, dict):
        raise DecisionError(f"Expected a JSON object, got {type(data).__name__}")
    return data
