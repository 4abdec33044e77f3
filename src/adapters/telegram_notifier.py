"""Telegram notification adapter — implements NotificationPort.

Wraps a telegram.Bot instance and sends to the single configured chat.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from telegram import Bot, InlineKeyboardButton, InlineKeyboardMarkup
from telegram.constants import ParseMode

from src.bot.messages import button_label, format_decision_notification, format_none_decision

if TYPE_CHECKING:
    from src.bot.callback_store import CallbackStore
    from src.core.decision import DecisionResult
    from src.core.snooze import SnoozePolicy

logger = logging.getLogger(__name__)


class TelegramNotifier:
    """Telegram implementation of NotificationPort."""

    def __init__(
        self,
        bot: Bot,
        chat_id: int,
        callback_store: CallbackStore,
        snooze_policy: SnoozePolicy,
    ) -> None:
        self._bot = bot
        self._chat_id = chat_id
        self._callbacks = callback_store
        self._policy = snooze_policy

    def build_keyboard(self, actions: tuple[str, ...]) -> InlineKeyboardMarkup | None:
        if not actions:
            return None
        rows = [
            [InlineKeyboardButton(
                button_label(action, self._policy.item_minutes, self._policy.all_minutes),
                callback_data=self._callbacks.encode(action),
            )]
            for action in actions
        ]
        return InlineKeyboardMarkup(rows)

    async def send_decision(self, decision: DecisionResult) -> None:
        message = await self._bot.send_message(
            chat_id=self._chat_id,
            text=format_decision_notification(decision),
            parse_mode=ParseMode.MARKDOWN,
            reply_markup=self.build_keyboard(decision.action_buttons),
        )
        self._callbacks.remember_message(message.message_id, decision.action_buttons)
        logger.info(
            "Decision notification sent: %s with %d button(s)",
            decision.decision.value, len(decision.action_buttons),
        )

    async def send_silent(self, decision: DecisionResult) -> None:
        await self._bot.send_message(
            chat_id=self._chat_id,
            text=format_none_decision(decision),
            parse_mode=ParseMode.MARKDOWN,
            disable_notification=True,
        )
        logger.info("NONE decision summary sent (silent)")

    async def send_plain(self, text: str) -> None:
        await self._bot.send_message(chat_id=self._chat_id, text=text)
        logger.debug("Plain notification sent")
