from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from .models import MentionSignal


@dataclass(frozen=True)
class MentionContext:
    """Shared mention context for group messages, filled by each adapter."""

    text: str
    bot_username: Optional[str] = None
    bot_id: Optional[str] = None
    mentioned_ids: tuple[str, ...] = ()
    reply_to_is_bot: bool = False
    reply_to_username: Optional[str] = None
    reply_to_message_id: Optional[str] = None
    thread_id: Optional[str] = None


def is_control_command(text: Optional[str]) -> bool:
    return bool(text and text.lstrip().startswith("/"))


def _explicit_mention(context: MentionContext) -> bool:
    text = context.text or ""
    lowered = text.lower()
    if context.bot_username:
        username = context.bot_username.lstrip("@").lower()
        if f"@{username}" in lowered:
            return True
    if context.bot_id:
        if context.bot_id in context.mentioned_ids:
            return True
        if f"<@{context.bot_id}>" in text or f"<@!{context.bot_id}>" in text:
            return True
    return False


def _reply_to_bot(context: MentionContext) -> bool:
    # Forum clients set reply_to_message_id == thread_id on every message in
    # a topic; that is the topic root, not a reply to the bot.
    implicit_topic_reply = (
        context.thread_id is not None
        and context.reply_to_message_id is not None
        and context.reply_to_message_id == context.thread_id
    )
    if implicit_topic_reply:
        return False
    if context.reply_to_is_bot:
        return True
    return bool(
        context.bot_username
        and context.reply_to_username
        and context.reply_to_username.lstrip("@").lower()
        == context.bot_username.lstrip("@").lower()
    )


def detect_mention(context: MentionContext) -> MentionSignal:
    """Return the mention facts used by the access engine's mention gate.

    A reply to a bot-authored message counts as an implicit mention.
    """

    return MentionSignal(
        was_mentioned=_explicit_mention(context),
        is_reply_to_bot=_reply_to_bot(context),
    )
