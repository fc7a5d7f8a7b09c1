"""Session and context key construction.

Session keys join an event to a logical agent conversation and are stable
for the lifetime of that conversation. Context keys identify one physical
event and feed the system-event queue's dedup.

Session key grammar::

    agent:<agent>:main[:thread:<id>]                      (dm_scope=main)
    agent:<agent>:dm:<peer>[:thread:<id>]                 (dm_scope=per-peer)
    agent:<agent>:<channel>[:<account>]:dm:<peer>[:thread:<id>]
    agent:<agent>:<channel>[:<account>]:<group|channel>:<id>[:topic|thread:<id>]

The account segment is omitted for the default account.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from .config import DEFAULT_ACCOUNT_ID, DEFAULT_DM_SCOPE
from .models import NormalizedLocation, RouteKey

SESSION_KEY_PREFIX = "agent"
DM_TOKEN = "dm"
TOPIC_TOKEN = "topic"
THREAD_TOKEN = "thread"
MAIN_TOKEN = "main"
PEER_KIND_TOKENS = (DM_TOKEN, "group", "channel")
DEFAULT_TOPIC_IDS = {"telegram": "1"}
FALLBACK_DEFAULT_TOPIC_ID = "general"


def _token(value: Optional[str]) -> str:
    return (value or "").strip().replace(":", "_").lower()


def _id_token(value: Optional[str]) -> str:
    return (value or "").strip().replace(":", "_")


def default_topic_id(channel: str) -> str:
    """Topic used when a threaded container event carries no topic id.

    Telegram's General forum topic is always id 1.
    """
    return DEFAULT_TOPIC_IDS.get(_token(channel), FALLBACK_DEFAULT_TOPIC_ID)


@dataclass(frozen=True)
class SessionKeyParts:
    agent_id: str
    kind: str
    peer_id: Optional[str] = None
    channel: Optional[str] = None
    account_id: Optional[str] = None
    topic_id: Optional[str] = None
    thread_id: Optional[str] = None

    @property
    def location_kind(self) -> str:
        return "direct" if self.kind in (DM_TOKEN, MAIN_TOKEN) else self.kind


def _nested_suffix(channel: str, location: NormalizedLocation) -> str:
    nested_token = THREAD_TOKEN if location.parent_id else TOPIC_TOKEN
    if location.topic_or_thread_id:
        return f":{nested_token}:{_id_token(location.topic_or_thread_id)}"
    if location.is_forum_or_threaded:
        return f":{nested_token}:{default_topic_id(channel)}"
    return ""


def build_session_key(
    *,
    agent_id: str,
    channel: str,
    location: NormalizedLocation,
    peer_id: Optional[str] = None,
    account_id: Optional[str] = None,
    dm_scope: str = DEFAULT_DM_SCOPE,
) -> str:
    agent = _token(agent_id) or MAIN_TOKEN
    channel_token = _token(channel)
    account = _token(account_id) or DEFAULT_ACCOUNT_ID
    account_segment = "" if account == DEFAULT_ACCOUNT_ID else f":{account}"
    base = f"{SESSION_KEY_PREFIX}:{agent}"

    if location.is_direct:
        peer = _id_token(peer_id or location.id)
        if dm_scope == "main":
            key = f"{base}:{MAIN_TOKEN}"
        elif dm_scope == "per-peer":
            key = f"{base}:{DM_TOKEN}:{peer}"
        elif dm_scope == "per-account-channel-peer":
            key = f"{base}:{channel_token}:{account}:{DM_TOKEN}:{peer}"
        else:
            key = f"{base}:{channel_token}{account_segment}:{DM_TOKEN}:{peer}"
        if location.topic_or_thread_id:
            key = f"{key}:{THREAD_TOKEN}:{_id_token(location.topic_or_thread_id)}"
        return key

    key = (
        f"{base}:{channel_token}{account_segment}:{location.kind}:"
        f"{_id_token(location.id)}"
    )
    return key + _nested_suffix(channel, location)


def parse_session_key(session_key: str) -> Optional[SessionKeyParts]:
    """Recover the location kind and ids from a session key, for display."""

    parts = (session_key or "").split(":")
    if len(parts) < 3 or parts[0] != SESSION_KEY_PREFIX:
        return None
    agent_id, rest = parts[1], parts[2:]
    topic_id: Optional[str] = None
    thread_id: Optional[str] = None
    if len(rest) >= 2 and rest[-2] in (TOPIC_TOKEN, THREAD_TOKEN):
        if rest[-2] == TOPIC_TOKEN:
            topic_id = rest[-1]
        else:
            thread_id = rest[-1]
        rest = rest[:-2]
    if rest == [MAIN_TOKEN]:
        return SessionKeyParts(
            agent_id=agent_id, kind=MAIN_TOKEN, thread_id=thread_id
        )
    kind_index = next(
        (index for index, token in enumerate(rest) if token in PEER_KIND_TOKENS),
        None,
    )
    if kind_index is None or kind_index + 1 >= len(rest):
        return None
    prefix = rest[:kind_index]
    channel = prefix[0] if prefix else None
    account: Optional[str] = None
    if len(prefix) > 1:
        account = prefix[1]
    elif channel:
        account = DEFAULT_ACCOUNT_ID
    return SessionKeyParts(
        agent_id=agent_id,
        kind=rest[kind_index],
        peer_id=":".join(rest[kind_index + 1 :]),
        channel=channel,
        account_id=account,
        topic_id=topic_id,
        thread_id=thread_id,
    )


def build_context_key(
    channel: str,
    event_kind: str,
    location_id: str,
    message_id: str,
    actor_id: Optional[str] = None,
    *,
    scope: Optional[str] = None,
    detail: Optional[str] = None,
) -> str:
    """`<channel>:<eventKind>:<locationId>:<messageId>[:<actorId>]`.

    `scope` qualifies the location (topic id, or `main`); `detail`
    distinguishes several events carried by one update (one per emoji).
    """

    segments = [_token(channel), event_kind, _id_token(location_id)]
    if scope:
        segments.append(_id_token(scope))
    segments.append(_id_token(message_id))
    if actor_id:
        segments.append(_id_token(actor_id))
    if detail:
        segments.append(detail)
    return ":".join(segments)


def build_route_key(
    *,
    agent_id: str,
    channel: str,
    location: NormalizedLocation,
    event_kind: str,
    message_id: str,
    peer_id: Optional[str] = None,
    actor_id: Optional[str] = None,
    account_id: Optional[str] = None,
    dm_scope: str = DEFAULT_DM_SCOPE,
    context_scope: Optional[str] = None,
    detail: Optional[str] = None,
) -> RouteKey:
    return RouteKey(
        session_key=build_session_key(
            agent_id=agent_id,
            channel=channel,
            location=location,
            peer_id=peer_id,
            account_id=account_id,
            dm_scope=dm_scope,
        ),
        context_key=build_context_key(
            channel,
            event_kind,
            location.id,
            message_id,
            actor_id,
            scope=context_scope,
            detail=detail,
        ),
    )
