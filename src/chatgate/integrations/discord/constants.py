from __future__ import annotations

DISCORD_CHANNEL = "discord"

# Channel types (https://discord.com/developers/docs/resources/channel#channel-object-channel-types).
DISCORD_CHANNEL_GUILD_TEXT = 0
DISCORD_CHANNEL_DM = 1
DISCORD_CHANNEL_GROUP_DM = 3
DISCORD_CHANNEL_GUILD_ANNOUNCEMENT = 5
DISCORD_CHANNEL_ANNOUNCEMENT_THREAD = 10
DISCORD_CHANNEL_PUBLIC_THREAD = 11
DISCORD_CHANNEL_PRIVATE_THREAD = 12
DISCORD_CHANNEL_GUILD_FORUM = 15
DISCORD_CHANNEL_GUILD_MEDIA = 16

DISCORD_THREAD_CHANNEL_TYPES = frozenset(
    {
        DISCORD_CHANNEL_ANNOUNCEMENT_THREAD,
        DISCORD_CHANNEL_PUBLIC_THREAD,
        DISCORD_CHANNEL_PRIVATE_THREAD,
    }
)
DISCORD_THREADED_PARENT_TYPES = frozenset(
    {DISCORD_CHANNEL_GUILD_FORUM, DISCORD_CHANNEL_GUILD_MEDIA}
)

DISCORD_EVENT_REACTION_ADD = "reaction:add"
DISCORD_EVENT_MESSAGE_EDITED = "message:edited"

DISCORD_CHANNEL_INFO_TTL_SECONDS = 5 * 60
DISCORD_CHANNEL_INFO_NEGATIVE_TTL_SECONDS = 30
