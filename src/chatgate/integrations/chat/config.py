"""Layered channel policy configuration.

Parses the `channels`, `agents` and `session` sections of a chatgate config
document into frozen dataclasses. Structural problems raise `ConfigError`;
unknown policy values are dropped (logged) so resolution falls back to the
inherited value or the documented default.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping, Optional

from ...core.coercion import coerce_string_ids, coerce_text
from ...core.config import (
    ConfigError,
    config_bool,
    config_section,
    config_value,
    load_yaml_dict,
)
from ...core.logging_utils import log_event
from .allowlist import normalize_allowlist
from .models import (
    POLICY_MODES,
    REACTION_MODES,
    PolicyMode,
    PolicyScope,
    ReactionMode,
)

logger = logging.getLogger(__name__)

DEFAULT_AGENT_ID = "main"
DEFAULT_ACCOUNT_ID = "default"
DM_SCOPES = ("main", "per-peer", "per-channel-peer", "per-account-channel-peer")
DEFAULT_DM_SCOPE = "per-channel-peer"
INLINE_BUTTON_SCOPES = ("off", "dm", "group", "all", "allowlist")
DEFAULT_INLINE_BUTTON_SCOPE = "allowlist"
SLUG_MATCHING_CHANNELS = frozenset({"discord"})


def _parse_choice(value: Any, choices: tuple[str, ...], *, key: str) -> Any:
    if value is None:
        return None
    token = str(value).strip().lower()
    if token in choices:
        return token
    log_event(
        logger,
        logging.WARNING,
        "chat.config.invalid_value",
        key=key,
        value=value,
        allowed=list(choices),
    )
    return None


def _parse_allow_from(value: Any, *, key: str) -> Optional[tuple[str, ...]]:
    if value is None:
        return None
    if isinstance(value, Mapping):
        raise ConfigError(f"{key} must be a list of identifiers")
    return normalize_allowlist(coerce_string_ids(value))


def parse_policy_scope(
    raw: Mapping[str, Any],
    *,
    path: str,
    policy_keys: tuple[str, ...] = ("policy", "group_policy", "groupPolicy"),
) -> PolicyScope:
    policy_raw = None
    for key in policy_keys:
        if key in raw:
            policy_raw = raw[key]
            break
    allow_from = config_value(raw, "allow_from", "users")
    enabled = config_value(raw, "enabled")
    if enabled is None and "allow" in raw:
        enabled = raw["allow"]
    return PolicyScope(
        policy=_parse_choice(policy_raw, POLICY_MODES, key=f"{path}.policy"),
        allow_from=_parse_allow_from(allow_from, key=f"{path}.allow_from"),
        require_mention=config_bool(
            config_value(raw, "require_mention"), key=f"{path}.require_mention"
        ),
        reaction_notifications=_parse_choice(
            config_value(raw, "reaction_notifications"),
            REACTION_MODES,
            key=f"{path}.reaction_notifications",
        ),
        enabled=config_bool(enabled, key=f"{path}.enabled"),
    )


@dataclass(frozen=True)
class ScopeEntry:
    """A configured group/guild or topic/thread/channel entry."""

    key: str
    scope: PolicyScope
    slug: Optional[str] = None
    children: Mapping[str, "ScopeEntry"] = field(default_factory=dict)

    @classmethod
    def from_raw(cls, key: str, raw: Any, *, path: str) -> "ScopeEntry":
        if raw is None:
            raw = {}
        if not isinstance(raw, Mapping):
            raise ConfigError(f"{path} must be a mapping")
        children_raw = config_section(raw, "topics", "channels", path=path)
        children = {
            str(child_key).strip(): cls.from_raw(
                str(child_key).strip(),
                child_raw,
                path=f"{path}.topics.{child_key}",
            )
            for child_key, child_raw in children_raw.items()
            if str(child_key).strip()
        }
        return cls(
            key=key,
            scope=parse_policy_scope(raw, path=path),
            slug=coerce_text(raw.get("slug")),
            children=children,
        )


@dataclass(frozen=True)
class DirectMessageConfig:
    enabled: bool = True
    group_enabled: bool = False
    group_channels: tuple[str, ...] = ()


@dataclass(frozen=True)
class ChannelPolicyConfig:
    """Channel-level policy (`channels.<name>`)."""

    name: str
    account_id: str = DEFAULT_ACCOUNT_ID
    dm_policy: Optional[PolicyMode] = None
    group_policy: Optional[PolicyMode] = None
    allow_from: Optional[tuple[str, ...]] = None
    group_allow_from: Optional[tuple[str, ...]] = None
    require_mention: Optional[bool] = None
    reaction_notifications: Optional[ReactionMode] = None
    enabled: Optional[bool] = None
    inline_buttons: str = DEFAULT_INLINE_BUTTON_SCOPE
    allow_bots: bool = False
    slug_matching: bool = False
    dm: DirectMessageConfig = field(default_factory=DirectMessageConfig)
    groups: Mapping[str, ScopeEntry] = field(default_factory=dict)

    @classmethod
    def from_raw(cls, name: str, raw: Any) -> "ChannelPolicyConfig":
        path = f"channels.{name}"
        cfg: Mapping[str, Any] = raw if isinstance(raw, Mapping) else {}
        if raw is not None and not isinstance(raw, Mapping):
            raise ConfigError(f"{path} must be a mapping")
        dm_raw = config_section(cfg, "dm", path=path)
        groups_raw = config_section(cfg, "groups", "guilds", path=path)
        groups = {
            str(key).strip(): ScopeEntry.from_raw(
                str(key).strip(), entry_raw, path=f"{path}.groups.{key}"
            )
            for key, entry_raw in groups_raw.items()
            if str(key).strip()
        }
        dm_policy = config_value(cfg, "dm_policy")
        if dm_policy is None:
            dm_policy = dm_raw.get("policy")
        allow_from = config_value(cfg, "allow_from")
        if allow_from is None:
            allow_from = config_value(dm_raw, "allow_from")
        slug_matching = config_bool(
            config_value(cfg, "slug_matching"), key=f"{path}.slug_matching"
        )
        inline_buttons = _parse_choice(
            config_value(
                config_section(cfg, "capabilities", path=path), "inline_buttons"
            )
            or config_value(cfg, "inline_buttons"),
            INLINE_BUTTON_SCOPES,
            key=f"{path}.inline_buttons",
        )
        return cls(
            name=name,
            account_id=coerce_text(config_value(cfg, "account", "account_id"))
            or DEFAULT_ACCOUNT_ID,
            dm_policy=_parse_choice(dm_policy, POLICY_MODES, key=f"{path}.dm_policy"),
            group_policy=_parse_choice(
                config_value(cfg, "group_policy"),
                POLICY_MODES,
                key=f"{path}.group_policy",
            ),
            allow_from=_parse_allow_from(allow_from, key=f"{path}.allow_from"),
            group_allow_from=_parse_allow_from(
                config_value(cfg, "group_allow_from"), key=f"{path}.group_allow_from"
            ),
            require_mention=config_bool(
                config_value(cfg, "require_mention"), key=f"{path}.require_mention"
            ),
            reaction_notifications=_parse_choice(
                config_value(cfg, "reaction_notifications"),
                REACTION_MODES,
                key=f"{path}.reaction_notifications",
            ),
            enabled=config_bool(config_value(cfg, "enabled"), key=f"{path}.enabled"),
            inline_buttons=inline_buttons or DEFAULT_INLINE_BUTTON_SCOPE,
            allow_bots=bool(
                config_bool(config_value(cfg, "allow_bots"), key=f"{path}.allow_bots")
            ),
            slug_matching=(
                slug_matching
                if slug_matching is not None
                else name in SLUG_MATCHING_CHANNELS
            ),
            dm=DirectMessageConfig(
                enabled=config_bool(
                    config_value(dm_raw, "enabled"), key=f"{path}.dm.enabled"
                )
                is not False,
                group_enabled=bool(
                    config_bool(
                        config_value(dm_raw, "group_enabled"),
                        key=f"{path}.dm.group_enabled",
                    )
                ),
                group_channels=tuple(
                    coerce_string_ids(config_value(dm_raw, "group_channels"))
                ),
            ),
            groups=groups,
        )

    def channel_scope(self, *, direct: bool) -> PolicyScope:
        if direct:
            return PolicyScope(
                policy=self.dm_policy,
                allow_from=self.allow_from,
                reaction_notifications=self.reaction_notifications,
                enabled=False if not self.dm.enabled else self.enabled,
            )
        allow_from = (
            self.group_allow_from
            if self.group_allow_from is not None
            else self.allow_from
        )
        return PolicyScope(
            policy=self.group_policy,
            allow_from=allow_from,
            require_mention=self.require_mention,
            reaction_notifications=self.reaction_notifications,
            enabled=self.enabled,
        )


@dataclass(frozen=True)
class ChannelDefaults:
    """Global default scope (`channels.defaults`)."""

    dm_policy: Optional[PolicyMode] = None
    group_policy: Optional[PolicyMode] = None
    require_mention: Optional[bool] = None
    reaction_notifications: Optional[ReactionMode] = None

    @classmethod
    def from_raw(cls, raw: Mapping[str, Any]) -> "ChannelDefaults":
        path = "channels.defaults"
        return cls(
            dm_policy=_parse_choice(
                config_value(raw, "dm_policy"), POLICY_MODES, key=f"{path}.dm_policy"
            ),
            group_policy=_parse_choice(
                config_value(raw, "group_policy"),
                POLICY_MODES,
                key=f"{path}.group_policy",
            ),
            require_mention=config_bool(
                config_value(raw, "require_mention"), key=f"{path}.require_mention"
            ),
            reaction_notifications=_parse_choice(
                config_value(raw, "reaction_notifications"),
                REACTION_MODES,
                key=f"{path}.reaction_notifications",
            ),
        )

    def scope(self, *, direct: bool) -> PolicyScope:
        return PolicyScope(
            policy=(self.dm_policy if direct else self.group_policy),
            require_mention=None if direct else self.require_mention,
            reaction_notifications=self.reaction_notifications,
        )


@dataclass(frozen=True)
class AgentBinding:
    agent_id: str
    channel: Optional[str] = None
    account_id: Optional[str] = None
    peer_kind: Optional[str] = None
    peer_id: Optional[str] = None
    group_id: Optional[str] = None

    @classmethod
    def from_raw(cls, raw: Any, *, index: int) -> "AgentBinding":
        path = f"agents.bindings[{index}]"
        if not isinstance(raw, Mapping):
            raise ConfigError(f"{path} must be a mapping")
        agent_id = coerce_text(config_value(raw, "agent", "agent_id"))
        if not agent_id:
            raise ConfigError(f"{path}.agent must be a non-empty string")
        peer = config_section(raw, "peer", path=path)
        peer_kind = coerce_text(peer.get("kind"))
        if peer_kind and peer_kind.lower() in {"dm", "direct", "private"}:
            peer_kind = "direct"
        return cls(
            agent_id=agent_id,
            channel=coerce_text(raw.get("channel")),
            account_id=coerce_text(config_value(raw, "account", "account_id")),
            peer_kind=peer_kind.lower() if peer_kind else None,
            peer_id=coerce_string_ids(peer.get("id"))[0] if peer.get("id") else None,
            group_id=(
                coerce_string_ids(config_value(raw, "group", "guild"))[0]
                if config_value(raw, "group", "guild") is not None
                else None
            ),
        )


@dataclass(frozen=True)
class ChatConfig:
    """The configuration snapshot consumed by the decision core."""

    channels: Mapping[str, ChannelPolicyConfig] = field(default_factory=dict)
    defaults: ChannelDefaults = field(default_factory=ChannelDefaults)
    default_agent_id: str = DEFAULT_AGENT_ID
    bindings: tuple[AgentBinding, ...] = ()
    dm_scope: str = DEFAULT_DM_SCOPE

    @classmethod
    def from_raw(cls, raw: Any) -> "ChatConfig":
        if raw is None:
            raw = {}
        if not isinstance(raw, Mapping):
            raise ConfigError("config root must be a mapping")
        channels_raw = config_section(raw, "channels", path="config")
        defaults_raw = channels_raw.pop("defaults", None) or {}
        if not isinstance(defaults_raw, Mapping):
            raise ConfigError("channels.defaults must be a mapping")
        channels = {
            str(name).strip().lower(): ChannelPolicyConfig.from_raw(
                str(name).strip().lower(), channel_raw
            )
            for name, channel_raw in channels_raw.items()
            if str(name).strip()
        }
        agents_raw = config_section(raw, "agents", path="config")
        bindings_raw = agents_raw.get("bindings") or []
        if not isinstance(bindings_raw, list):
            raise ConfigError("agents.bindings must be a list")
        session_raw = config_section(raw, "session", path="config")
        dm_scope = _parse_choice(
            config_value(session_raw, "dm_scope"), DM_SCOPES, key="session.dm_scope"
        )
        return cls(
            channels=channels,
            defaults=ChannelDefaults.from_raw(defaults_raw),
            default_agent_id=coerce_text(agents_raw.get("default"))
            or DEFAULT_AGENT_ID,
            bindings=tuple(
                AgentBinding.from_raw(item, index=index)
                for index, item in enumerate(bindings_raw)
            ),
            dm_scope=dm_scope or DEFAULT_DM_SCOPE,
        )

    def channel(self, name: str) -> ChannelPolicyConfig:
        key = (name or "").strip().lower()
        existing = self.channels.get(key)
        if existing is not None:
            return existing
        return ChannelPolicyConfig(name=key, slug_matching=key in SLUG_MATCHING_CHANNELS)


def load_chat_config(path: Path) -> ChatConfig:
    return ChatConfig.from_raw(load_yaml_dict(path))
