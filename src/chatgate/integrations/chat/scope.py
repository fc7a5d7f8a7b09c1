"""Scope resolution: global defaults -> channel -> group/guild -> topic/thread.

Each layer is a `PolicyScope`; the layers are folded left to right by
`fold_scopes`. Fields set in a later scope override the accumulated value,
`allow_from` included: a nested allowlist replaces the parent's instead of
merging with it. Pairing-store identifiers are merged later by the caller.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Mapping, Optional, Sequence

from .allowlist import normalize_slug
from .config import ChannelPolicyConfig, ChatConfig, ScopeEntry
from .models import (
    DEFAULT_DM_POLICY,
    DEFAULT_GROUP_POLICY,
    DEFAULT_REACTION_MODE,
    DEFAULT_REQUIRE_MENTION,
    POLICY_MODES,
    REACTION_MODES,
    WILDCARD,
    EffectivePolicy,
    LocationKind,
    NormalizedLocation,
    PolicyScope,
)
from .route_keys import default_topic_id


@dataclass(frozen=True)
class ScopeKey:
    """Lookup key for one configuration level: an id plus an optional name."""

    id: Optional[str]
    name: Optional[str] = None


@dataclass(frozen=True)
class ScopePath:
    group: Optional[ScopeKey]
    nested: tuple[ScopeKey, ...] = ()


@dataclass(frozen=True)
class ResolvedScopes:
    scopes: tuple[PolicyScope, ...]
    group_entry: Optional[ScopeEntry] = None
    nested_entries: tuple[ScopeEntry, ...] = ()


def scope_path_for(
    location: NormalizedLocation, channel: Optional[str] = None
) -> ScopePath:
    """Derive the group and nested lookup keys for `location`.

    Server-style platforms (a `parent_id` is present) key the group by the
    server and nest channel then thread. Chat-style platforms key the group by
    the chat and nest the topic. A threaded container event without a topic
    id is looked up under the channel's default topic, the same one its
    session key uses.
    """

    if location.is_direct:
        return ScopePath(group=None)
    topic: Optional[ScopeKey] = None
    if location.topic_or_thread_id:
        topic = ScopeKey(location.topic_or_thread_id, location.topic_name)
    elif location.is_forum_or_threaded and channel:
        topic = ScopeKey(default_topic_id(channel))
    if location.parent_id:
        nested = [ScopeKey(location.id, location.name)]
        if topic is not None:
            nested.append(topic)
        return ScopePath(
            group=ScopeKey(location.parent_id, location.parent_name),
            nested=tuple(nested),
        )
    return ScopePath(
        group=ScopeKey(location.id, location.name),
        nested=(topic,) if topic is not None else (),
    )


def match_entry(
    entries: Mapping[str, ScopeEntry],
    key: ScopeKey,
    *,
    slug_matching: bool,
    allow_wildcard: bool = True,
) -> Optional[ScopeEntry]:
    """Find the entry for `key`: exact id, then name slug, then `"*"`."""

    if not entries:
        return None
    if key.id and key.id in entries:
        return entries[key.id]
    if slug_matching and key.name:
        slug = normalize_slug(key.name)
        if slug:
            for entry_key, entry in entries.items():
                if entry_key == WILDCARD:
                    continue
                if entry.slug and normalize_slug(entry.slug) == slug:
                    return entry
                if normalize_slug(entry_key) == slug:
                    return entry
    if allow_wildcard:
        return entries.get(WILDCARD)
    return None


def collect_scopes(
    config: ChatConfig, channel: str, location: NormalizedLocation
) -> ResolvedScopes:
    channel_cfg: ChannelPolicyConfig = config.channel(channel)
    direct = location.is_direct
    scopes: list[PolicyScope] = [
        config.defaults.scope(direct=direct),
        channel_cfg.channel_scope(direct=direct),
    ]
    path = scope_path_for(location, channel)
    if path.group is None:
        return ResolvedScopes(scopes=tuple(scopes))

    group_entry = match_entry(
        channel_cfg.groups, path.group, slug_matching=channel_cfg.slug_matching
    )
    if group_entry is None:
        return ResolvedScopes(scopes=tuple(scopes))
    scopes.append(group_entry.scope)

    nested_entries: list[ScopeEntry] = []
    for depth, nested_key in enumerate(path.nested):
        entry = match_entry(
            group_entry.children,
            nested_key,
            slug_matching=channel_cfg.slug_matching,
            allow_wildcard=depth == 0,
        )
        if entry is None:
            continue
        nested_entries.append(entry)
        scopes.append(entry.scope)
    return ResolvedScopes(
        scopes=tuple(scopes),
        group_entry=group_entry,
        nested_entries=tuple(nested_entries),
    )


def base_policy(kind: LocationKind) -> EffectivePolicy:
    if kind == "direct":
        return EffectivePolicy(
            policy=DEFAULT_DM_POLICY,
            allow_from=(),
            require_mention=False,
            reaction_notifications=DEFAULT_REACTION_MODE,
        )
    return EffectivePolicy(
        policy=DEFAULT_GROUP_POLICY,
        allow_from=(),
        require_mention=DEFAULT_REQUIRE_MENTION,
        reaction_notifications=DEFAULT_REACTION_MODE,
    )


def fold_scopes(
    scopes: Iterable[PolicyScope],
    *,
    kind: LocationKind,
    group_matched: bool = False,
) -> EffectivePolicy:
    base = base_policy(kind)
    policy = base.policy
    allow_from: Sequence[str] = base.allow_from
    require_mention = base.require_mention
    reactions = base.reaction_notifications
    enabled = True
    for scope in scopes:
        if scope.policy is not None and scope.policy in POLICY_MODES:
            policy = scope.policy
        if scope.allow_from is not None:
            allow_from = scope.allow_from
        if scope.require_mention is not None and kind != "direct":
            require_mention = scope.require_mention
        if (
            scope.reaction_notifications is not None
            and scope.reaction_notifications in REACTION_MODES
        ):
            reactions = scope.reaction_notifications
        if scope.enabled is not None:
            enabled = scope.enabled
    if not enabled:
        policy = "disabled"
    return EffectivePolicy(
        policy=policy,
        allow_from=tuple(allow_from),
        require_mention=require_mention,
        reaction_notifications=reactions,
        group_matched=group_matched,
    )


def resolve_effective_policy(
    config: ChatConfig, channel: str, location: NormalizedLocation
) -> EffectivePolicy:
    """Resolve the effective policy for `location` on `channel`. Pure."""

    resolved = collect_scopes(config, channel, location)
    return fold_scopes(
        resolved.scopes,
        kind=location.kind,
        group_matched=resolved.group_entry is not None,
    )
