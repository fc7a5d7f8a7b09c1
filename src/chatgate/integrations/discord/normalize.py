"""Discord gateway payload normalization."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping, Optional

from ...core.coercion import coerce_id, coerce_text
from ..chat.models import NormalizedIdentity, NormalizedLocation
from .channel_cache import DiscordChannelInfo


@dataclass(frozen=True)
class DiscordGuild:
    id: str
    name: Optional[str] = None


@dataclass(frozen=True)
class DiscordMessage:
    message_id: str
    channel_id: str
    author: Optional[NormalizedIdentity]
    content: str = ""
    guild: Optional[DiscordGuild] = None
    mentioned_ids: tuple[str, ...] = ()
    reply_to_message_id: Optional[str] = None
    reply_to_author_id: Optional[str] = None
    edited_timestamp: Optional[str] = None


@dataclass(frozen=True)
class DiscordReaction:
    message_id: str
    channel_id: str
    user: Optional[NormalizedIdentity]
    emoji: str
    guild: Optional[DiscordGuild] = None
    message_author_id: Optional[str] = None


def _mapping(value: Any) -> Mapping[str, Any]:
    return value if isinstance(value, Mapping) else {}


def _as_id(value: object) -> Optional[str]:
    return coerce_id(value)


def format_user_tag(user: Mapping[str, Any]) -> Optional[str]:
    """`name#1234` for legacy discriminators, else the bare username."""

    username = coerce_text(user.get("username"))
    discriminator = coerce_text(str(user.get("discriminator") or ""))
    if username and discriminator and discriminator.strip("0"):
        return f"{username}#{discriminator}"
    return username or _as_id(user.get("id"))


def normalize_identity(user: Any) -> Optional[NormalizedIdentity]:
    payload = _mapping(user)
    user_id = _as_id(payload.get("id"))
    if user_id is None:
        return None
    username = coerce_text(payload.get("username"))
    return NormalizedIdentity(
        id=user_id,
        display_name=coerce_text(payload.get("global_name")) or username,
        username=username,
        tag=format_user_tag(payload),
        is_bot=payload.get("bot") is True,
    )


def identity_label(identity: NormalizedIdentity) -> str:
    return identity.tag or identity.username or identity.id


def format_reaction_emoji(emoji: Any) -> str:
    payload = _mapping(emoji)
    name = coerce_text(payload.get("name"))
    emoji_id = _as_id(payload.get("id"))
    if emoji_id:
        return f"{name or 'emoji'}:{emoji_id}"
    return name or "emoji"


def _guild(payload: Mapping[str, Any]) -> Optional[DiscordGuild]:
    guild = _mapping(payload.get("guild"))
    guild_id = _as_id(payload.get("guild_id")) or _as_id(guild.get("id"))
    if guild_id is None:
        return None
    return DiscordGuild(id=guild_id, name=coerce_text(guild.get("name")))


def _author(payload: Mapping[str, Any]) -> Optional[NormalizedIdentity]:
    author = payload.get("author")
    if author is None:
        author = _mapping(payload.get("member")).get("user")
    return normalize_identity(author)


def parse_message(payload: Any) -> Optional[DiscordMessage]:
    """Parse MESSAGE_CREATE / MESSAGE_UPDATE dispatch data.

    Update events may nest the message under `message` and carry the event
    channel separately; both shapes are accepted.
    """

    data = _mapping(payload)
    message = _mapping(data.get("message")) or data
    message_id = _as_id(message.get("id"))
    channel_id = _as_id(message.get("channel_id")) or _as_id(data.get("channel_id"))
    if message_id is None or channel_id is None:
        return None
    mentions = message.get("mentions")
    mentioned_ids: list[str] = []
    if isinstance(mentions, list):
        for user in mentions:
            user_id = _as_id(_mapping(user).get("id"))
            if user_id and user_id not in mentioned_ids:
                mentioned_ids.append(user_id)
    referenced = _mapping(message.get("referenced_message"))
    reference = _mapping(message.get("message_reference"))
    content = message.get("content")
    return DiscordMessage(
        message_id=message_id,
        channel_id=channel_id,
        author=_author(message),
        content=content if isinstance(content, str) else "",
        guild=_guild(data) or _guild(message),
        mentioned_ids=tuple(mentioned_ids),
        reply_to_message_id=_as_id(referenced.get("id"))
        or _as_id(reference.get("message_id")),
        reply_to_author_id=_as_id(_mapping(referenced.get("author")).get("id")),
        edited_timestamp=coerce_text(message.get("edited_timestamp"))
        or coerce_text(data.get("edited_timestamp")),
    )


def parse_reaction(payload: Any) -> Optional[DiscordReaction]:
    """Parse MESSAGE_REACTION_ADD / MESSAGE_REACTION_REMOVE dispatch data."""

    data = _mapping(payload)
    message_id = _as_id(data.get("message_id"))
    channel_id = _as_id(data.get("channel_id"))
    if message_id is None or channel_id is None:
        return None
    user = data.get("user")
    if user is None:
        user = _mapping(data.get("member")).get("user")
    identity = normalize_identity(user)
    if identity is None:
        user_id = _as_id(data.get("user_id"))
        identity = NormalizedIdentity(id=user_id) if user_id else None
    return DiscordReaction(
        message_id=message_id,
        channel_id=channel_id,
        user=identity,
        emoji=format_reaction_emoji(data.get("emoji")),
        guild=_guild(data),
        message_author_id=_as_id(data.get("message_author_id")),
    )


def build_location(
    channel_id: str,
    info: Optional[DiscordChannelInfo],
    *,
    guild: Optional[DiscordGuild] = None,
    parent: Optional[DiscordChannelInfo] = None,
) -> NormalizedLocation:
    """Normalize a Discord channel into a location.

    Guild channels nest under the guild; a thread's container is its parent
    channel and the thread id becomes the nested id.
    """

    if info is not None and info.is_dm:
        return NormalizedLocation(kind="direct", id=channel_id)
    if info is not None and info.is_group_dm:
        return NormalizedLocation(kind="group", id=channel_id, name=info.name)
    guild_id = guild.id if guild else (info.guild_id if info else None)
    guild_name = guild.name if guild else None
    if info is not None and info.is_thread and info.parent_id:
        return NormalizedLocation(
            kind="channel",
            id=info.parent_id,
            name=parent.name if parent else None,
            parent_id=guild_id,
            parent_name=guild_name,
            is_forum_or_threaded=True,
            topic_or_thread_id=channel_id,
            topic_name=info.name,
        )
    return NormalizedLocation(
        kind="channel",
        id=channel_id,
        name=info.name if info else None,
        parent_id=guild_id,
        parent_name=guild_name,
        is_forum_or_threaded=bool(info and info.is_threaded_parent),
    )
