"""Shared error hierarchy.

Adapter-layer errors compose these types so retry and severity behavior stays
consistent across platforms.
"""

from __future__ import annotations

from typing import Optional


class ChatgateError(Exception):
    """Base error for the package."""

    recoverable: bool = True
    severity: str = "error"

    def __init__(self, message: str, *, user_message: Optional[str] = None) -> None:
        super().__init__(message)
        self.user_message = user_message


class TransientError(ChatgateError):
    """Retryable failure (network, locked database, rate limit)."""

    recoverable = True
    severity = "warning"


class PermanentError(ChatgateError):
    """Non-retryable failure (invalid config, malformed input)."""

    recoverable = False
    severity = "error"
