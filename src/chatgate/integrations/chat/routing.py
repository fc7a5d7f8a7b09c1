from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from .config import AgentBinding, ChatConfig
from .models import NormalizedLocation
from .route_keys import build_session_key


@dataclass(frozen=True)
class AgentRoute:
    agent_id: str
    session_key: str
    account_id: str
    matched_by: str


def _peer_kind(location: NormalizedLocation) -> str:
    return "direct" if location.is_direct else location.kind


def _binding_matches_scope(
    binding: AgentBinding, *, channel: str, account_id: str
) -> bool:
    if binding.channel and binding.channel.lower() != channel:
        return False
    if binding.account_id and binding.account_id != account_id:
        return False
    return True


def _match_binding(
    bindings: tuple[AgentBinding, ...],
    *,
    channel: str,
    account_id: str,
    location: NormalizedLocation,
    peer_id: str,
) -> tuple[Optional[AgentBinding], str]:
    scoped = [
        binding
        for binding in bindings
        if _binding_matches_scope(binding, channel=channel, account_id=account_id)
    ]
    kind = _peer_kind(location)
    candidates = [(peer_id, "binding.peer")]
    if location.topic_or_thread_id:
        candidates = [
            (location.topic_or_thread_id, "binding.peer"),
            (peer_id, "binding.peer.parent"),
        ]
    for candidate, matched_by in candidates:
        for binding in scoped:
            if binding.peer_id != candidate:
                continue
            if not binding.peer_kind or binding.peer_kind == kind:
                return binding, matched_by
    if location.parent_id:
        for binding in scoped:
            if binding.group_id and binding.group_id == location.parent_id:
                return binding, "binding.group"
    for binding in scoped:
        if not binding.peer_id and not binding.group_id:
            return binding, (
                "binding.account" if binding.account_id else "binding.channel"
            )
    return None, "default"


def resolve_agent_route(
    config: ChatConfig,
    *,
    channel: str,
    location: NormalizedLocation,
    peer_id: Optional[str] = None,
    account_id: Optional[str] = None,
) -> AgentRoute:
    """Pick the agent for an inbound event and compose its session key.

    Bindings are tried most specific first: exact peer, the parent container
    of a topic/thread, the enclosing group (guild), then channel/account-wide
    bindings. Without a match the default agent owns the conversation.
    """

    channel_key = (channel or "").strip().lower()
    account = account_id or config.channel(channel_key).account_id
    peer = peer_id or location.id
    binding, matched_by = _match_binding(
        config.bindings,
        channel=channel_key,
        account_id=account,
        location=location,
        peer_id=peer if location.is_direct else location.id,
    )
    agent_id = binding.agent_id if binding is not None else config.default_agent_id
    return AgentRoute(
        agent_id=agent_id,
        session_key=build_session_key(
            agent_id=agent_id,
            channel=channel_key,
            location=location,
            peer_id=peer,
            account_id=account,
            dm_scope=config.dm_scope,
        ),
        account_id=account,
        matched_by=matched_by,
    )
