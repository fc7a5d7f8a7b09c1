"""Discord adapter for the chat access gate."""

from .channel_cache import ChannelInfoCache, DiscordChannelInfo
from .constants import DISCORD_CHANNEL, DISCORD_THREAD_CHANNEL_TYPES
from .handlers import DiscordEventHandler, DiscordTransport, describe_location
from .normalize import (
    DiscordGuild,
    DiscordMessage,
    DiscordReaction,
    build_location,
    format_reaction_emoji,
    format_user_tag,
    normalize_identity,
    parse_message,
    parse_reaction,
)

__all__ = [
    "ChannelInfoCache",
    "DISCORD_CHANNEL",
    "DISCORD_THREAD_CHANNEL_TYPES",
    "DiscordChannelInfo",
    "DiscordEventHandler",
    "DiscordGuild",
    "DiscordMessage",
    "DiscordReaction",
    "DiscordTransport",
    "build_location",
    "describe_location",
    "format_reaction_emoji",
    "format_user_tag",
    "normalize_identity",
    "parse_message",
    "parse_reaction",
]
