from __future__ import annotations

TELEGRAM_CHANNEL = "telegram"

# Bot API chat types.
TELEGRAM_CHAT_PRIVATE = "private"
TELEGRAM_CHAT_GROUP = "group"
TELEGRAM_CHAT_SUPERGROUP = "supergroup"
TELEGRAM_CHAT_CHANNEL = "channel"

# The General topic of a forum supergroup always has thread id 1.
TELEGRAM_GENERAL_TOPIC_ID = "1"

TELEGRAM_REACTION_TYPE_EMOJI = "emoji"

TELEGRAM_EVENT_REACTION_ADD = "reaction:add"
TELEGRAM_EVENT_MESSAGE_EDITED = "message:edited"
