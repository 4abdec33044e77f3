"""Outlook mail adapter — implements MailSource via Microsoft Graph.

Fetches unread inbox mail from the last 7 days and checks the Sent Items
folder for replies in a conversation.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone

from kiota_abstractions.base_request_configuration import RequestConfiguration
from msgraph import GraphServiceClient
from msgraph.generated.models.message import Message
from msgraph.generated.users.item.mail_folders.item.messages.messages_request_builder import (
    MessagesRequestBuilder,
)

from src.data.models import EmailMessage
from src.ports.source_port import SourceError

logger = logging.getLogger(__name__)

_LOOKBACK_DAYS = 7
_MAX_MESSAGES = 50


def _normalize_message(msg: Message) -> EmailMessage:
    """Convert a Graph Message to an EmailMessage."""
    sender = msg.from_.email_address if msg.from_ and msg.from_.email_address else None
    received = msg.received_date_time
    return EmailMessage(
        id=msg.id or "",
        conversation_id=msg.conversation_id or msg.id or "",
        subject=msg.subject or "(no subject)",
        sender_name=(sender.name if sender else "") or "",
        sender_address=(sender.address if sender else "") or "",
        received_at=received.isoformat() if isinstance(received, datetime) else str(received or ""),
        body_preview=msg.body_preview or "",
        is_read=bool(msg.is_read),
    )


class OutlookMailAdapter:
    """Microsoft Outlook/365 implementation of MailSource."""

    def __init__(self, client: GraphServiceClient, user_id: str) -> None:
        self._client = client
        self._user_id = user_id

    def _folder(self, folder: str):
        return self._client.users.by_user_id(self._user_id).mail_folders.by_mail_folder_id(folder)

    async def fetch(self) -> list[EmailMessage]:
        since = datetime.now(timezone.utc) - timedelta(days=_LOOKBACK_DAYS)
        query = MessagesRequestBuilder.MessagesRequestBuilderGetQueryParameters(
            filter=f"isRead eq false and receivedDateTime ge {since.strftime('%Y-%m-%dT%H:%M:%SZ')}",
            select=["id", "conversationId", "subject", "from", "receivedDateTime", "bodyPreview", "isRead"],
            orderby=["receivedDateTime desc"],
            top=_MAX_MESSAGES,
        )
        try:
            result = await self._folder("inbox").messages.get(
                request_configuration=RequestConfiguration(query_parameters=query),
            )
        except Exception as exc:
            logger.error("Outlook API error (fetch mail): %s", exc)
            raise SourceError(f"Failed to fetch unread emails: {exc}") from exc

        emails = [_normalize_message(m) for m in (result.value if result else None) or []]
        logger.info("Fetched %d unread email(s)", len(emails))
        return emails

    async def check_sent_reply(self, conversation_id: str) -> bool:
        """True if Sent Items holds a message in this conversation."""
        safe_id = conversation_id.replace("'", "''")
        query = MessagesRequestBuilder.MessagesRequestBuilderGetQueryParameters(
            filter=f"conversationId eq '{safe_id}'",
            select=["id"],
            top=1,
        )
        try:
            result = await self._folder("sentitems").messages.get(
                request_configuration=RequestConfiguration(query_parameters=query),
            )
        except Exception as exc:
            logger.error("Outlook API error (check reply): %s", exc)
            raise SourceError(f"Failed to check sent items: {exc}") from exc
        return bool(result and result.value)
