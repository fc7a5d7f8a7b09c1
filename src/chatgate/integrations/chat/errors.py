"""Adapter-layer error hierarchy for platform chat integrations.

Composes the shared core error types so retry and severity behavior stays
consistent across adapters.
"""

from __future__ import annotations

from typing import Optional

from ...core.exceptions import ChatgateError, TransientError


class ChatAdapterError(ChatgateError):
    """Base chat adapter error."""


class PairingStoreError(ChatAdapterError, TransientError):
    """The pairing allowlist store could not be read or written."""

    def __init__(self, message: str, *, user_message: Optional[str] = None) -> None:
        if user_message is None:
            user_message = "Pairing store unavailable."
        super().__init__(message, user_message=user_message)
