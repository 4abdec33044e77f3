"""Voice calls for CALL decisions.

Not implemented yet: every call reports failure so the orchestrator falls
back to the Telegram notification alone.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

logger = logging.getLogger(__name__)


@dataclass
class VoiceCallResult:
    success: bool
    call_id: str | None = None


async def initiate_voice_call(briefing: str, phone_number: str) -> VoiceCallResult:
    logger.warning("Voice calls not implemented; skipping call to %s", phone_number or "(unset)")
    return VoiceCallResult(success=False)
