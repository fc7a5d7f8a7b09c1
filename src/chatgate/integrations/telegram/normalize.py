"""Telegram Bot API update normalization.

Turns raw update dicts into the platform-agnostic identity and location
models. Missing optional fields become `None`; a payload without a chat or
message id normalizes to `None` so callers can treat it as denied.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping, Optional

from ...core.coercion import coerce_id, coerce_text
from ..chat.models import LocationKind, NormalizedIdentity, NormalizedLocation
from .constants import (
    TELEGRAM_CHAT_CHANNEL,
    TELEGRAM_CHAT_GROUP,
    TELEGRAM_CHAT_PRIVATE,
    TELEGRAM_CHAT_SUPERGROUP,
    TELEGRAM_GENERAL_TOPIC_ID,
    TELEGRAM_REACTION_TYPE_EMOJI,
)

_CHAT_KINDS: dict[str, LocationKind] = {
    TELEGRAM_CHAT_PRIVATE: "direct",
    TELEGRAM_CHAT_GROUP: "group",
    TELEGRAM_CHAT_SUPERGROUP: "group",
    TELEGRAM_CHAT_CHANNEL: "channel",
}


@dataclass(frozen=True)
class TelegramChat:
    id: str
    type: str
    title: Optional[str] = None
    is_forum: bool = False

    @property
    def kind(self) -> LocationKind:
        return _CHAT_KINDS.get(self.type, "group")


@dataclass(frozen=True)
class TelegramMessage:
    message_id: str
    chat: TelegramChat
    sender: Optional[NormalizedIdentity]
    text: str
    thread_id: Optional[str] = None
    reply_to_message_id: Optional[str] = None
    reply_to_user_id: Optional[str] = None
    reply_to_username: Optional[str] = None
    reply_to_is_bot: bool = False
    mentioned_ids: tuple[str, ...] = ()
    is_edited: bool = False


@dataclass(frozen=True)
class TelegramReaction:
    message_id: str
    chat: TelegramChat
    user: Optional[NormalizedIdentity]
    old_emoji: tuple[str, ...] = ()
    new_emoji: tuple[str, ...] = ()


@dataclass(frozen=True)
class TelegramCallbackQuery:
    callback_id: str
    sender: Optional[NormalizedIdentity]
    data: Optional[str] = None
    chat: Optional[TelegramChat] = None
    message_id: Optional[str] = None
    thread_id: Optional[str] = None


def _mapping(value: Any) -> Mapping[str, Any]:
    return value if isinstance(value, Mapping) else {}


def display_name(user: Mapping[str, Any]) -> Optional[str]:
    parts = [
        part
        for part in (
            coerce_text(user.get("first_name")),
            coerce_text(user.get("last_name")),
        )
        if part
    ]
    if parts:
        return " ".join(parts)
    return None


def normalize_identity(user: Any) -> Optional[NormalizedIdentity]:
    payload = _mapping(user)
    user_id = coerce_id(payload.get("id"))
    if user_id is None:
        return None
    username = coerce_text(payload.get("username"))
    if username:
        username = username.lstrip("@") or None
    return NormalizedIdentity(
        id=user_id,
        display_name=display_name(payload),
        username=username,
        tag=f"@{username}" if username else None,
        is_bot=payload.get("is_bot") is True,
    )


def sender_label(identity: NormalizedIdentity) -> str:
    """`Ada (@ada_bot)`, `Ada`, or the bare id when no name is known."""

    name = identity.display_name or identity.username or identity.id
    if identity.username and identity.display_name:
        return f"{name} (@{identity.username})"
    return name


def parse_chat(chat: Any) -> Optional[TelegramChat]:
    payload = _mapping(chat)
    chat_id = coerce_id(payload.get("id"))
    if chat_id is None:
        return None
    return TelegramChat(
        id=chat_id,
        type=coerce_text(payload.get("type")) or TELEGRAM_CHAT_GROUP,
        title=coerce_text(payload.get("title")),
        is_forum=payload.get("is_forum") is True,
    )


def resolve_topic_id(chat: TelegramChat, thread_id: Optional[str]) -> Optional[str]:
    """Topic id used for scope lookup and session keys.

    Forum messages without a thread id belong to the General topic. Thread
    ids in ordinary groups are reply threads, not topics, and are ignored.
    Private chats keep their thread id as a DM thread.
    """

    if chat.is_forum:
        return thread_id or TELEGRAM_GENERAL_TOPIC_ID
    if chat.kind == "direct":
        return thread_id
    return None


def normalize_location(
    chat: TelegramChat,
    *,
    thread_id: Optional[str] = None,
    sender: Optional[NormalizedIdentity] = None,
    topic_known: bool = True,
) -> NormalizedLocation:
    """Build the location for `chat`.

    `topic_known=False` marks event types that structurally carry no thread
    id (reactions); the topic is then left unset and session keys fall back
    to the default topic.
    """

    name = chat.title
    if chat.kind == "direct" and sender is not None:
        name = sender.display_name or sender.username
    return NormalizedLocation(
        kind=chat.kind,
        id=chat.id,
        name=name,
        is_forum_or_threaded=chat.is_forum,
        topic_or_thread_id=(
            resolve_topic_id(chat, thread_id) if topic_known else None
        ),
    )


def _mentioned_ids(message: Mapping[str, Any]) -> tuple[str, ...]:
    ids: list[str] = []
    for key in ("entities", "caption_entities"):
        entities = message.get(key)
        if not isinstance(entities, list):
            continue
        for entity in entities:
            entity = _mapping(entity)
            if entity.get("type") != "text_mention":
                continue
            user_id = coerce_id(_mapping(entity.get("user")).get("id"))
            if user_id and user_id not in ids:
                ids.append(user_id)
    return tuple(ids)


def parse_message(
    payload: Any,
    *,
    bot_id: Optional[str] = None,
    bot_username: Optional[str] = None,
    is_edited: bool = False,
) -> Optional[TelegramMessage]:
    message = _mapping(payload)
    chat = parse_chat(message.get("chat"))
    message_id = coerce_id(message.get("message_id"))
    if chat is None or message_id is None:
        return None
    reply = _mapping(message.get("reply_to_message"))
    reply_from = _mapping(reply.get("from"))
    reply_user_id = coerce_id(reply_from.get("id"))
    reply_username = coerce_text(reply_from.get("username"))
    reply_to_is_bot = bool(bot_id and reply_user_id == bot_id)
    if not reply_to_is_bot and bot_username and reply_username:
        reply_to_is_bot = (
            reply_username.lstrip("@").lower() == bot_username.lstrip("@").lower()
        )
    text = message.get("text")
    if not isinstance(text, str):
        text = message.get("caption")
    return TelegramMessage(
        message_id=message_id,
        chat=chat,
        sender=normalize_identity(message.get("from")),
        text=text if isinstance(text, str) else "",
        thread_id=coerce_id(message.get("message_thread_id")),
        reply_to_message_id=coerce_id(reply.get("message_id")),
        reply_to_user_id=reply_user_id,
        reply_to_username=reply_username,
        reply_to_is_bot=reply_to_is_bot,
        mentioned_ids=_mentioned_ids(message),
        is_edited=is_edited,
    )


def _emoji_list(value: Any) -> tuple[str, ...]:
    if not isinstance(value, list):
        return ()
    emoji: list[str] = []
    for item in value:
        item = _mapping(item)
        if item.get("type") != TELEGRAM_REACTION_TYPE_EMOJI:
            continue
        token = item.get("emoji")
        if isinstance(token, str) and token:
            emoji.append(token)
    return tuple(emoji)


def parse_reaction(payload: Any) -> Optional[TelegramReaction]:
    reaction = _mapping(payload)
    chat = parse_chat(reaction.get("chat"))
    message_id = coerce_id(reaction.get("message_id"))
    if chat is None or message_id is None:
        return None
    return TelegramReaction(
        message_id=message_id,
        chat=chat,
        user=normalize_identity(reaction.get("user")),
        old_emoji=_emoji_list(reaction.get("old_reaction")),
        new_emoji=_emoji_list(reaction.get("new_reaction")),
    )


def parse_callback_query(payload: Any) -> Optional[TelegramCallbackQuery]:
    query = _mapping(payload)
    callback_id = coerce_id(query.get("id"))
    if callback_id is None:
        return None
    message = _mapping(query.get("message"))
    data = query.get("data")
    return TelegramCallbackQuery(
        callback_id=callback_id,
        sender=normalize_identity(query.get("from")),
        data=data if isinstance(data, str) else None,
        chat=parse_chat(message.get("chat")),
        message_id=coerce_id(message.get("message_id")),
        thread_id=coerce_id(message.get("message_thread_id")),
    )
