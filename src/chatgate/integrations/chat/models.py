"""Normalized chat-domain models used by the access and routing core.

This module lives in the adapter layer (`integrations/chat`) and intentionally
contains platform-agnostic identity, location and decision types. Platform
adapters build these from raw payloads; nothing here is persisted.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal, Optional

LocationKind = Literal["direct", "group", "channel"]
PolicyMode = Literal["open", "allowlist", "pairing", "disabled"]
ReactionMode = Literal["off", "own", "all", "allowlist"]
DecisionReason = Literal[
    "open", "allowlisted", "not-allowlisted", "disabled", "no-mention"
]

LOCATION_KINDS: tuple[str, ...] = ("direct", "group", "channel")
POLICY_MODES: tuple[str, ...] = ("open", "allowlist", "pairing", "disabled")
REACTION_MODES: tuple[str, ...] = ("off", "own", "all", "allowlist")

DEFAULT_DM_POLICY: PolicyMode = "pairing"
DEFAULT_GROUP_POLICY: PolicyMode = "open"
DEFAULT_REACTION_MODE: ReactionMode = "own"
DEFAULT_REQUIRE_MENTION = True

WILDCARD = "*"


@dataclass(frozen=True)
class NormalizedIdentity:
    """Sender identity normalized from a platform payload."""

    id: str
    display_name: Optional[str] = None
    username: Optional[str] = None
    tag: Optional[str] = None
    is_bot: bool = False


@dataclass(frozen=True)
class NormalizedLocation:
    """Where an event happened.

    `id` is the conversation container (Telegram chat, Discord channel; for a
    Discord thread, its parent channel). `topic_or_thread_id` names the nested
    forum topic or thread inside it. `parent_id` is the enclosing group for
    platforms that nest channels inside a server (Discord guild).
    """

    kind: LocationKind
    id: str
    name: Optional[str] = None
    parent_id: Optional[str] = None
    parent_name: Optional[str] = None
    is_forum_or_threaded: bool = False
    topic_or_thread_id: Optional[str] = None
    topic_name: Optional[str] = None

    @property
    def is_direct(self) -> bool:
        return self.kind == "direct"

    @property
    def is_nested(self) -> bool:
        return self.topic_or_thread_id is not None


@dataclass(frozen=True)
class PolicyScope:
    """Configuration fragment attachable at any nesting level.

    `None` means "inherit from the parent scope".
    """

    policy: Optional[PolicyMode] = None
    allow_from: Optional[tuple[str, ...]] = None
    require_mention: Optional[bool] = None
    reaction_notifications: Optional[ReactionMode] = None
    enabled: Optional[bool] = None


@dataclass(frozen=True)
class EffectivePolicy:
    """Fully resolved scope for one concrete location."""

    policy: PolicyMode
    allow_from: tuple[str, ...]
    require_mention: bool
    reaction_notifications: ReactionMode
    group_matched: bool = False


@dataclass(frozen=True)
class AccessDecision:
    allowed: bool
    reason: DecisionReason
    notify_user: bool = False

    @classmethod
    def allow(cls, reason: DecisionReason) -> "AccessDecision":
        return cls(allowed=True, reason=reason)

    @classmethod
    def deny(
        cls, reason: DecisionReason, *, notify_user: bool = False
    ) -> "AccessDecision":
        return cls(allowed=False, reason=reason, notify_user=notify_user)


@dataclass(frozen=True)
class RouteKey:
    session_key: str
    context_key: str


@dataclass(frozen=True)
class MentionSignal:
    """Mention facts for group messages, computed by the adapter."""

    was_mentioned: bool = False
    is_reply_to_bot: bool = False

    @property
    def satisfied(self) -> bool:
        return self.was_mentioned or self.is_reply_to_bot


@dataclass(frozen=True)
class InboundTurn:
    """An admitted message or button press handed to the agent backend."""

    channel: str
    agent_id: str
    session_key: str
    text: str
    sender: NormalizedIdentity
    location: NormalizedLocation
    message_id: Optional[str] = None
    was_mentioned: bool = False
    is_command: bool = False
    callback_data: Optional[str] = None
