"""
Smart Check-ins — Email enrichment.

Annotates collected emails with what the local DB knows about the sender
(known partner?) and the thread (already replied? already handled?).
Best-effort: a failure only degrades the annotation of that one email.
"""

from __future__ import annotations

import logging
import re
from datetime import datetime
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from src.data.db import CheckinDB
    from src.data.models import EmailMessage
    from src.ports.source_port import MailSource

logger = logging.getLogger(__name__)

_DOMAIN_RE = re.compile(r"@([^@\s>]+)$")


def extract_domain(address: str) -> str | None:
    """Return the lowercased domain of an email address, or None."""
    match = _DOMAIN_RE.search(address.strip())
    return match.group(1).lower() if match else None


class EmailEnricher:
    """Adds partnership, reply and tracking info to emails."""

    def __init__(self, db: CheckinDB, mail: MailSource) -> None:
        self._db = db
        self._mail = mail

    async def enrich(
        self, emails: list[EmailMessage], now: datetime | None = None,
    ) -> list[EmailMessage]:
        for email in emails:
            try:
                await self._enrich_one(email, now)
            except Exception as exc:
                logger.warning(
                    "Enrichment failed for conversation %s: %s", email.conversation_id, exc,
                )

        logger.info(
            "Email enrichment complete: %d total, %d from partners, %d replied",
            len(emails),
            sum(1 for e in emails if e.partnership),
            sum(1 for e in emails if e.has_reply is True),
        )
        return emails

    async def _enrich_one(self, email: EmailMessage, now: datetime | None) -> None:
        tracking = self._db.track_email(email.conversation_id, now=now)
        if tracking is not None:
            email.last_notified = tracking.last_notified
            if tracking.reply_detected:
                email.has_reply = True

        domain = extract_domain(email.sender_address)
        if domain:
            email.partnership = self._db.get_partnership_by_domain(domain)

        # Reply check only for partner mail
        if email.partnership is None or email.has_reply:
            return
        try:
            email.has_reply = await self._mail.check_sent_reply(email.conversation_id)
        except Exception as exc:
            logger.warning(
                "Failed to check reply status for %s: %s", email.conversation_id, exc,
            )
            email.has_reply = None
            return
        if email.has_reply:
            self._db.mark_email_replied(email.conversation_id)
