"""
Smart Check-ins — Decision engine client.

Sends the collected context to the LLM and returns the raw JSON object it
answered with. Validation lives in src.core.decision; this module only
raises DecisionError (or the provider's own exception) when no usable JSON
came back.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from typing import TYPE_CHECKING
from zoneinfo import ZoneInfo

from src.core.decision import DecisionError, parse_decision_json
from src.core.prompt import SYSTEM_PROMPT, build_user_prompt

if TYPE_CHECKING:
    from src.core.llm import LLMClient
    from src.data.models import CollectedContext

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 60.0


class DecisionClient:
    """Callable wrapper: `await client(context) -> dict`."""

    def __init__(
        self,
        llm: LLMClient,
        timezone: str = "UTC",
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        max_tokens: int = 1024,
    ) -> None:
        self._llm = llm
        self._tz = ZoneInfo(timezone)
        self._timeout = timeout
        self._max_tokens = max_tokens

    async def __call__(self, context: CollectedContext) -> dict:
        now = datetime.now(self._tz)
        user_prompt = build_user_prompt(context, now)
        logger.info(
            "Requesting decision: %d emails, %d events, %d tasks",
            len(context.emails), len(context.calendar), len(context.tasks),
        )
        try:
            raw = await asyncio.wait_for(
                self._llm.complete(SYSTEM_PROMPT, user_prompt, max_tokens=self._max_tokens),
                timeout=self._timeout,
            )
        except asyncio.TimeoutError as exc:
            raise DecisionError(f"LLM call timed out after {self._timeout:.0f}s") from exc

        if not raw:
            raise DecisionError("LLM returned an empty response")
        logger.debug("LLM decision response: %s", raw)
        return parse_decision_json(raw)
