"""Short ids for Telegram callback data.

Telegram limits callback_data to 64 bytes while Graph ids run past 100
characters. Long action strings are mapped to "<code>:<8-char hash>" and
resolved back when the button is pressed.
"""

from __future__ import annotations

import hashlib
from collections import OrderedDict

from src.core.snooze import parse_action

# action verb -> 2-char callback prefix
VERB_CODES = {
    "snooze_email": "se",
    "snooze_task": "st",
    "snooze_event": "sv",
    "mark_read": "mr",
}
_CODE_VERBS = {code: verb for verb, code in VERB_CODES.items()}

MAX_CALLBACK_BYTES = 64
MAX_MESSAGES = 300
MAX_IDS = 3000


def _put(entries: OrderedDict, key, value, limit: int) -> None:
    """Insert as newest, dropping the oldest entries past `limit`."""
    entries[key] = value
    entries.move_to_end(key)
    while len(entries) > limit:
        entries.popitem(last=False)


class CallbackStore:
    """In-memory short-hash <-> full-id map, one per bot application.

    Both maps are bounded; buttons on very old notifications stop resolving.
    """

    def __init__(self, max_messages: int = MAX_MESSAGES, max_ids: int = MAX_IDS) -> None:
        self._ids: OrderedDict[str, str] = OrderedDict()
        self._message_actions: OrderedDict[int, tuple[str, ...]] = OrderedDict()
        self._max_messages = max_messages
        self._max_ids = max_ids

    def shorten_id(self, full_id: str) -> str:
        short = hashlib.sha256(full_id.encode("utf-8")).hexdigest()[:8]
        _put(self._ids, short, full_id, self._max_ids)
        return short

    def resolve_id(self, short_id: str) -> str:
        """Return the full id, or the input itself when it is unknown."""
        return self._ids.get(short_id, short_id)

    def encode(self, action: str) -> str:
        """Action string -> callback_data that fits Telegram's limit."""
        verb, item_id = parse_action(action)
        code = VERB_CODES.get(verb)
        if code and item_id:
            return f"{code}:{self.shorten_id(item_id)}"
        return action.encode("utf-8")[:MAX_CALLBACK_BYTES].decode("utf-8", "ignore")

    def decode(self, data: str) -> str:
        """callback_data -> original action string."""
        code, sep, short = data.partition(":")
        verb = _CODE_VERBS.get(code)
        if sep and verb:
            return f"{verb}:{self.resolve_id(short)}"
        return data

    def remember_message(self, message_id: int, actions: tuple[str, ...]) -> None:
        """Keep the full action list of a sent notification (for snooze_all)."""
        _put(self._message_actions, message_id, tuple(actions), self._max_messages)

    def actions_for(self, message_id: int) -> tuple[str, ...]:
        return self._message_actions.get(message_id, ())
