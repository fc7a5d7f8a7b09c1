"""Core runtime primitives."""

from .exceptions import ChatgateError, PermanentError, TransientError
from .logging_utils import log_event, setup_logging

__all__ = [
    "ChatgateError",
    "PermanentError",
    "TransientError",
    "log_event",
    "setup_logging",
]
