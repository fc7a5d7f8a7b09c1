"""In-process system event queue.

Adapters enqueue short text notices (reactions, edits) keyed by session and
deduplicated by context key so retried platform deliveries surface once.
"""

from __future__ import annotations

import logging
import threading
from collections import OrderedDict
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Dict, List, Optional, Protocol

from ...core.logging_utils import log_event

logger = logging.getLogger(__name__)

DEFAULT_DEDUPE_CAPACITY = 2048
DEFAULT_MAX_PENDING_PER_SESSION = 20


@dataclass(frozen=True)
class SystemEvent:
    text: str
    session_key: str
    context_key: Optional[str]
    created_at: str


class EnqueueSystemEvent(Protocol):
    def __call__(
        self, text: str, *, session_key: str, context_key: Optional[str] = None
    ) -> bool: ...


class SystemEventQueue:
    def __init__(
        self,
        *,
        dedupe_capacity: int = DEFAULT_DEDUPE_CAPACITY,
        max_pending_per_session: int = DEFAULT_MAX_PENDING_PER_SESSION,
    ) -> None:
        if dedupe_capacity <= 0:
            raise ValueError("dedupe_capacity must be positive")
        if max_pending_per_session <= 0:
            raise ValueError("max_pending_per_session must be positive")
        self._dedupe_capacity = dedupe_capacity
        self._max_pending = max_pending_per_session
        self._seen: "OrderedDict[str, None]" = OrderedDict()
        self._pending: Dict[str, List[SystemEvent]] = {}
        self._lock = threading.Lock()

    def _remember(self, context_key: str) -> bool:
        if context_key in self._seen:
            self._seen.move_to_end(context_key)
            return False
        self._seen[context_key] = None
        while len(self._seen) > self._dedupe_capacity:
            self._seen.popitem(last=False)
        return True

    def enqueue(
        self, text: str, *, session_key: str, context_key: Optional[str] = None
    ) -> bool:
        """Queue `text` for `session_key`; False when it was a duplicate."""

        cleaned = (text or "").strip()
        if not cleaned or not session_key:
            return False
        with self._lock:
            if context_key and not self._remember(context_key):
                log_event(
                    logger,
                    logging.DEBUG,
                    "chat.system_event.duplicate",
                    session_key=session_key,
                    context_key=context_key,
                )
                return False
            pending = self._pending.setdefault(session_key, [])
            pending.append(
                SystemEvent(
                    text=cleaned,
                    session_key=session_key,
                    context_key=context_key,
                    created_at=datetime.now(timezone.utc).isoformat(),
                )
            )
            if len(pending) > self._max_pending:
                del pending[: len(pending) - self._max_pending]
        log_event(
            logger,
            logging.INFO,
            "chat.system_event.enqueued",
            session_key=session_key,
            context_key=context_key,
        )
        return True

    __call__ = enqueue

    def peek(self, session_key: str) -> list[SystemEvent]:
        with self._lock:
            return list(self._pending.get(session_key, []))

    def drain(self, session_key: str) -> list[SystemEvent]:
        with self._lock:
            return self._pending.pop(session_key, [])

    def clear(self) -> None:
        with self._lock:
            self._seen.clear()
            self._pending.clear()
