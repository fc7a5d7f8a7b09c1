from __future__ import annotations

import pytest

from chatgate.integrations.chat.models import NormalizedLocation
from chatgate.integrations.chat.route_keys import (
    build_context_key,
    build_route_key,
    build_session_key,
    default_topic_id,
    parse_session_key,
)

FORUM = NormalizedLocation(
    kind="group", id="-1001234567890", is_forum_or_threaded=True
)


def test_forum_message_without_topic_uses_general_topic() -> None:
    key = build_session_key(agent_id="main", channel="telegram", location=FORUM)
    assert key == "agent:main:telegram:group:-1001234567890:topic:1"


def test_explicit_topic_id_is_kept() -> None:
    location = NormalizedLocation(
        kind="group",
        id="-1001234567890",
        is_forum_or_threaded=True,
        topic_or_thread_id="42",
    )
    key = build_session_key(agent_id="main", channel="telegram", location=location)
    assert key.endswith(":group:-1001234567890:topic:42")


def test_regular_group_has_no_topic_segment() -> None:
    key = build_session_key(
        agent_id="main",
        channel="telegram",
        location=NormalizedLocation(kind="group", id="5678"),
    )
    assert key == "agent:main:telegram:group:5678"
    assert ":topic:" not in key


def test_discord_thread_uses_thread_token() -> None:
    location = NormalizedLocation(
        kind="channel", id="c-1", parent_id="g-1", topic_or_thread_id="t-9"
    )
    key = build_session_key(agent_id="main", channel="discord", location=location)
    assert key == "agent:main:discord:channel:c-1:thread:t-9"


@pytest.mark.parametrize(
    ("dm_scope", "expected"),
    [
        ("main", "agent:main:main"),
        ("per-peer", "agent:main:dm:42"),
        ("per-channel-peer", "agent:main:telegram:dm:42"),
        ("per-account-channel-peer", "agent:main:telegram:default:dm:42"),
    ],
)
def test_dm_scopes(dm_scope: str, expected: str) -> None:
    key = build_session_key(
        agent_id="main",
        channel="telegram",
        location=NormalizedLocation(kind="direct", id="42"),
        dm_scope=dm_scope,
    )
    assert key == expected


def test_dm_thread_suffix_and_account_segment() -> None:
    location = NormalizedLocation(kind="direct", id="1234", topic_or_thread_id="99")
    assert (
        build_session_key(
            agent_id="main", channel="telegram", location=location, dm_scope="main"
        )
        == "agent:main:main:thread:99"
    )
    assert (
        build_session_key(
            agent_id="Ops",
            channel="Telegram",
            location=location,
            account_id="work",
        )
        == "agent:ops:telegram:work:dm:1234:thread:99"
    )


def test_session_keys_are_deterministic() -> None:
    first = build_session_key(agent_id="main", channel="telegram", location=FORUM)
    second = build_session_key(agent_id="main", channel="telegram", location=FORUM)
    assert first == second


def test_parse_session_key_recovers_location() -> None:
    parts = parse_session_key("agent:main:telegram:group:-1001234567890:topic:1")
    assert parts is not None
    assert parts.kind == "group"
    assert parts.peer_id == "-1001234567890"
    assert parts.topic_id == "1"
    assert parts.channel == "telegram"
    assert parts.account_id == "default"

    dm = parse_session_key("agent:main:main:thread:99")
    assert dm is not None
    assert dm.location_kind == "direct"
    assert dm.thread_id == "99"

    assert parse_session_key("not-a-key") is None


def test_context_keys() -> None:
    assert (
        build_context_key("telegram", "message:edited", "1234", "88", scope="main")
        == "telegram:message:edited:1234:main:88"
    )
    assert (
        build_context_key(
            "telegram", "reaction:add", "5678", "100", "9", detail="👍"
        )
        == "telegram:reaction:add:5678:100:9:👍"
    )


def test_route_key_pairs_session_and_context() -> None:
    route = build_route_key(
        agent_id="main",
        channel="discord",
        location=NormalizedLocation(kind="direct", id="dm-1"),
        peer_id="u-1",
        event_kind="message:edited",
        message_id="msg-1",
    )
    assert route.session_key == "agent:main:discord:dm:u-1"
    assert route.context_key == "discord:message:edited:dm-1:msg-1"


def test_default_topic_id_per_channel() -> None:
    assert default_topic_id("telegram") == "1"
    assert default_topic_id("discord") == "general"
