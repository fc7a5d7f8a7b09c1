"""Telegram adapter for the chat access gate."""

from .constants import TELEGRAM_CHANNEL, TELEGRAM_GENERAL_TOPIC_ID
from .handlers import TelegramEventHandler, TelegramTransport, describe_location
from .normalize import (
    TelegramCallbackQuery,
    TelegramChat,
    TelegramMessage,
    TelegramReaction,
    normalize_identity,
    normalize_location,
    parse_callback_query,
    parse_message,
    parse_reaction,
    sender_label,
)
from .sent_messages import SentMessageCache

__all__ = [
    "SentMessageCache",
    "TELEGRAM_CHANNEL",
    "TELEGRAM_GENERAL_TOPIC_ID",
    "TelegramCallbackQuery",
    "TelegramChat",
    "TelegramEventHandler",
    "TelegramMessage",
    "TelegramReaction",
    "TelegramTransport",
    "describe_location",
    "normalize_identity",
    "normalize_location",
    "parse_callback_query",
    "parse_message",
    "parse_reaction",
    "sender_label",
]
