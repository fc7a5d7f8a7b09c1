from __future__ import annotations

import threading
import time
from collections import OrderedDict
from typing import Callable

DEFAULT_SENT_MESSAGE_TTL_SECONDS = 24 * 60 * 60
DEFAULT_SENT_MESSAGE_MAX_ENTRIES = 5000


class SentMessageCache:
    """Remembers message ids the bot sent, per chat.

    Telegram reaction updates do not carry the reacted message's author, so
    `own` reaction notifications consult this cache instead.
    """

    def __init__(
        self,
        *,
        ttl_seconds: float = DEFAULT_SENT_MESSAGE_TTL_SECONDS,
        max_entries: int = DEFAULT_SENT_MESSAGE_MAX_ENTRIES,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._ttl_seconds = ttl_seconds
        self._max_entries = max_entries
        self._clock = clock
        self._entries: "OrderedDict[tuple[str, str], float]" = OrderedDict()
        self._lock = threading.Lock()

    def record(self, chat_id: object, message_id: object) -> None:
        key = (str(chat_id), str(message_id))
        with self._lock:
            self._entries[key] = self._clock() + self._ttl_seconds
            self._entries.move_to_end(key)
            while len(self._entries) > self._max_entries:
                self._entries.popitem(last=False)

    def was_sent_by_bot(self, chat_id: object, message_id: object) -> bool:
        key = (str(chat_id), str(message_id))
        with self._lock:
            expires_at = self._entries.get(key)
            if expires_at is None:
                return False
            if expires_at <= self._clock():
                del self._entries[key]
                return False
            return True

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
