"""Per-process cache of Discord channel metadata.

Channel type, name and parent id are needed for every gated event but change
rarely. Lookups go through an injected async fetcher; failed lookups are
cached briefly so a missing channel does not trigger a fetch per event.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Mapping, Optional

from ...core.coercion import coerce_id, coerce_int, coerce_text
from ...core.logging_utils import log_event
from .constants import (
    DISCORD_CHANNEL_DM,
    DISCORD_CHANNEL_GROUP_DM,
    DISCORD_CHANNEL_INFO_NEGATIVE_TTL_SECONDS,
    DISCORD_CHANNEL_INFO_TTL_SECONDS,
    DISCORD_THREAD_CHANNEL_TYPES,
    DISCORD_THREADED_PARENT_TYPES,
)

ChannelFetcher = Callable[[str], Awaitable[Optional[Mapping[str, Any]]]]


@dataclass(frozen=True)
class DiscordChannelInfo:
    id: str
    type: Optional[int] = None
    name: Optional[str] = None
    parent_id: Optional[str] = None
    guild_id: Optional[str] = None

    @classmethod
    def from_payload(cls, channel_id: str, payload: Mapping[str, Any]) -> "DiscordChannelInfo":
        return cls(
            id=coerce_id(payload.get("id")) or channel_id,
            type=coerce_int(payload.get("type")),
            name=coerce_text(payload.get("name")),
            parent_id=coerce_id(payload.get("parent_id")),
            guild_id=coerce_id(payload.get("guild_id")),
        )

    @property
    def is_dm(self) -> bool:
        return self.type == DISCORD_CHANNEL_DM

    @property
    def is_group_dm(self) -> bool:
        return self.type == DISCORD_CHANNEL_GROUP_DM

    @property
    def is_thread(self) -> bool:
        return self.type in DISCORD_THREAD_CHANNEL_TYPES

    @property
    def is_threaded_parent(self) -> bool:
        return self.type in DISCORD_THREADED_PARENT_TYPES


class ChannelInfoCache:
    def __init__(
        self,
        fetcher: ChannelFetcher,
        *,
        ttl_seconds: float = DISCORD_CHANNEL_INFO_TTL_SECONDS,
        negative_ttl_seconds: float = DISCORD_CHANNEL_INFO_NEGATIVE_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self._fetcher = fetcher
        self._ttl_seconds = ttl_seconds
        self._negative_ttl_seconds = negative_ttl_seconds
        self._clock = clock
        self._logger = logger or logging.getLogger(__name__)
        self._entries: dict[str, tuple[float, Optional[DiscordChannelInfo]]] = {}

    async def get(self, channel_id: Optional[str]) -> Optional[DiscordChannelInfo]:
        if not channel_id:
            return None
        now = self._clock()
        cached = self._entries.get(channel_id)
        if cached is not None and cached[0] > now:
            return cached[1]
        try:
            payload = await self._fetcher(channel_id)
        except Exception as exc:
            log_event(
                self._logger,
                logging.WARNING,
                "discord.channel_info.fetch_failed",
                channel_id=channel_id,
                exc=exc,
            )
            payload = None
        if not isinstance(payload, Mapping):
            self._entries[channel_id] = (now + self._negative_ttl_seconds, None)
            return None
        info = DiscordChannelInfo.from_payload(channel_id, payload)
        self._entries[channel_id] = (now + self._ttl_seconds, info)
        return info

    def invalidate(self, channel_id: str) -> None:
        self._entries.pop(channel_id, None)

    def clear(self) -> None:
        self._entries.clear()
