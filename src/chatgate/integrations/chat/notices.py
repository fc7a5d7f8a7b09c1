from __future__ import annotations

import threading
from typing import Optional


class NoticeTracker:
    """Remembers which senders already received the not-authorized notice."""

    def __init__(self) -> None:
        self._sent: set[tuple[str, str, str]] = set()
        self._lock = threading.Lock()

    def should_notify(
        self, channel: str, location_id: str, sender_id: Optional[str]
    ) -> bool:
        """Return True once per (channel, location, sender) and record it."""

        if not sender_id:
            return False
        key = (channel, location_id, sender_id)
        with self._lock:
            if key in self._sent:
                return False
            self._sent.add(key)
            return True

    def reset(self) -> None:
        with self._lock:
            self._sent.clear()


PAIRING_NOTICE = (
    "This bot only answers paired accounts. "
    "Ask the owner to approve your {channel} id: {sender_id}"
)


def pairing_notice(channel: str, sender_id: str) -> str:
    return PAIRING_NOTICE.format(channel=channel.capitalize(), sender_id=sender_id)
