from __future__ import annotations

import logging
from typing import Any, Optional

import pytest

from chatgate.integrations.chat.access import NOT_AUTHORIZED_NOTICE
from chatgate.integrations.chat.config import ChatConfig
from chatgate.integrations.chat.models import InboundTurn
from chatgate.integrations.chat.pairing_store import InMemoryPairingStore
from chatgate.integrations.chat.system_events import SystemEventQueue
from chatgate.integrations.telegram.handlers import TelegramEventHandler

BOT_ID = "999"
BOT_USERNAME = "CarBot"
FORUM_ID = -1001234567890


class _FakeTransport:
    def __init__(self, *, fail_answer: bool = False) -> None:
        self.messages: list[tuple[str, str]] = []
        self.answered: list[str] = []
        self._fail_answer = fail_answer

    async def send_message(
        self, chat_id: str, text: str, *, thread_id: Optional[str] = None
    ) -> None:
        self.messages.append((chat_id, text))

    async def answer_callback_query(
        self, callback_query_id: str, *, text: Optional[str] = None
    ) -> None:
        if self._fail_answer:
            raise RuntimeError("telegram unavailable")
        self.answered.append(callback_query_id)


class _Harness:
    def __init__(
        self,
        raw_config: dict[str, Any],
        *,
        store: Optional[dict[str, list[str]]] = None,
        fail_answer: bool = False,
    ) -> None:
        self.transport = _FakeTransport(fail_answer=fail_answer)
        self.events = SystemEventQueue()
        self.turns: list[InboundTurn] = []
        self.handler = TelegramEventHandler(
            ChatConfig.from_raw(raw_config),
            transport=self.transport,
            enqueue_system_event=self.events,
            on_turn=self._record_turn,
            pairing_store=InMemoryPairingStore(store or {}),
            bot_id=BOT_ID,
            bot_username=BOT_USERNAME,
        )

    async def _record_turn(self, turn: InboundTurn) -> None:
        self.turns.append(turn)


def _user(user_id: int = 123, **extra: Any) -> dict[str, Any]:
    return {"id": user_id, "is_bot": False, "first_name": "Ada", **extra}


def _message(
    *,
    chat_id: int = -100123456789,
    chat_type: str = "supergroup",
    is_forum: bool = False,
    user_id: int = 123,
    text: str = "hello",
    message_id: int = 1,
    thread_id: Optional[int] = None,
    reply_from: Optional[dict[str, Any]] = None,
) -> dict[str, Any]:
    chat: dict[str, Any] = {"id": chat_id, "type": chat_type}
    if chat_type != "private":
        chat["title"] = "Ops"
    if is_forum:
        chat["is_forum"] = True
    payload: dict[str, Any] = {
        "message_id": message_id,
        "chat": chat,
        "from": _user(user_id),
        "text": text,
    }
    if thread_id is not None:
        payload["message_thread_id"] = thread_id
    if reply_from is not None:
        payload["reply_to_message"] = {"message_id": 42, "from": reply_from}
    return payload


def _reaction(
    *,
    chat_id: int = 5678,
    chat_type: str = "supergroup",
    is_forum: bool = False,
    message_id: int = 100,
    user: Optional[dict[str, Any]] = None,
    old: tuple[str, ...] = (),
    new: tuple[str, ...] = ("👍",),
) -> dict[str, Any]:
    chat: dict[str, Any] = {"id": chat_id, "type": chat_type, "title": "Ops"}
    if is_forum:
        chat["is_forum"] = True
    return {
        "message_reaction": {
            "chat": chat,
            "message_id": message_id,
            "user": user or _user(9, username="ada"),
            "date": 1736380800,
            "old_reaction": [{"type": "emoji", "emoji": item} for item in old],
            "new_reaction": [{"type": "emoji", "emoji": item} for item in new],
        }
    }


@pytest.mark.anyio
async def test_group_reply_to_bot_is_accepted_without_mention() -> None:
    harness = _Harness({})
    outcome = await harness.handler.handle_update(
        {
            "message": _message(
                text="following up",
                reply_from={"id": int(BOT_ID), "is_bot": True, "username": BOT_USERNAME},
            )
        }
    )
    assert outcome is not None and outcome.allowed
    assert len(harness.turns) == 1
    assert harness.turns[0].was_mentioned is True
    assert harness.turns[0].session_key == "agent:main:telegram:group:-100123456789"


@pytest.mark.anyio
async def test_group_message_without_mention_is_dropped_silently() -> None:
    harness = _Harness({})
    outcome = await harness.handler.handle_update({"message": _message()})
    assert outcome is not None
    assert outcome.decision.reason == "no-mention"
    assert harness.turns == []
    assert harness.transport.messages == []


@pytest.mark.anyio
async def test_forum_topic_inherits_group_allowlist() -> None:
    harness = _Harness(
        {
            "channels": {
                "telegram": {
                    "groupPolicy": "allowlist",
                    "groups": {
                        str(FORUM_ID): {
                            "requireMention": False,
                            "allowFrom": ["123456789"],
                            "topics": {"99": {}},
                        }
                    },
                }
            }
        }
    )
    outcome = await harness.handler.handle_update(
        {
            "message": _message(
                chat_id=FORUM_ID, is_forum=True, user_id=123456789, thread_id=99
            )
        }
    )
    assert outcome is not None and outcome.allowed
    assert outcome.session_key == f"agent:main:telegram:group:{FORUM_ID}:topic:99"


@pytest.mark.anyio
async def test_forum_topic_allow_from_is_preferred() -> None:
    harness = _Harness(
        {
            "channels": {
                "telegram": {
                    "group_policy": "allowlist",
                    "groups": {
                        str(FORUM_ID): {
                            "require_mention": False,
                            "allow_from": ["123"],
                            "topics": {"99": {"allow_from": ["777"]}},
                        }
                    },
                }
            }
        }
    )
    denied = await harness.handler.handle_update(
        {"message": _message(chat_id=FORUM_ID, is_forum=True, user_id=123, thread_id=99)}
    )
    allowed = await harness.handler.handle_update(
        {"message": _message(chat_id=FORUM_ID, is_forum=True, user_id=777, thread_id=99)}
    )
    assert denied is not None and denied.decision.reason == "not-allowlisted"
    assert allowed is not None and allowed.allowed


@pytest.mark.anyio
async def test_per_group_open_policy_overrides_channel_allowlist() -> None:
    harness = _Harness(
        {
            "channels": {
                "telegram": {
                    "groupPolicy": "allowlist",
                    "groups": {
                        "-100123456789": {"groupPolicy": "open", "requireMention": False}
                    },
                }
            }
        }
    )
    outcome = await harness.handler.handle_update({"message": _message(user_id=555)})
    assert outcome is not None and outcome.allowed


@pytest.mark.anyio
async def test_control_command_blocked_for_unpaired_sender_in_open_group() -> None:
    harness = _Harness(
        {"channels": {"telegram": {"groups": {"*": {"requireMention": True}}}}},
        store={"telegram": ["123456789"]},
    )
    blocked = await harness.handler.handle_update(
        {"message": _message(user_id=555, text="/status")}
    )
    allowed = await harness.handler.handle_update(
        {"message": _message(user_id=123456789, text="/status")}
    )
    assert blocked is not None and not blocked.allowed
    assert blocked.decision.reason == "not-allowlisted"
    assert harness.transport.messages == []
    assert allowed is not None and allowed.allowed
    assert allowed.is_command
    assert [turn.is_command for turn in harness.turns] == [True]


@pytest.mark.anyio
async def test_dm_thread_command_uses_thread_session_key() -> None:
    harness = _Harness(
        {"session": {"dm_scope": "main"}}, store={"telegram": ["1234"]}
    )
    outcome = await harness.handler.handle_update(
        {
            "message": _message(
                chat_id=1234,
                chat_type="private",
                user_id=1234,
                text="/status",
                thread_id=99,
            )
        }
    )
    assert outcome is not None and outcome.allowed
    assert outcome.session_key == "agent:main:main:thread:99"


@pytest.mark.anyio
async def test_unpaired_dm_command_gets_not_authorized_notice_once() -> None:
    harness = _Harness({})
    for _ in range(2):
        outcome = await harness.handler.handle_update(
            {
                "message": _message(
                    chat_id=1234, chat_type="private", user_id=1234, text="/status"
                )
            }
        )
        assert outcome is not None and not outcome.allowed
    assert harness.transport.messages == [("1234", NOT_AUTHORIZED_NOTICE)]
    assert harness.turns == []


@pytest.mark.anyio
async def test_unpaired_dm_message_gets_pairing_notice() -> None:
    harness = _Harness({})
    await harness.handler.handle_update(
        {"message": _message(chat_id=1234, chat_type="private", user_id=1234)}
    )
    assert harness.transport.messages == [
        (
            "1234",
            "This bot only answers paired accounts. "
            "Ask the owner to approve your Telegram id: 1234",
        )
    ]


@pytest.mark.anyio
async def test_paired_dm_message_reaches_agent() -> None:
    harness = _Harness({}, store={"telegram": ["1234"]})
    outcome = await harness.handler.handle_update(
        {"message": _message(chat_id=1234, chat_type="private", user_id=1234)}
    )
    assert outcome is not None and outcome.allowed
    assert harness.turns[0].session_key == "agent:main:telegram:dm:1234"


@pytest.mark.anyio
async def test_edited_message_enqueues_system_event() -> None:
    harness = _Harness({"channels": {"telegram": {"dmPolicy": "open"}}})
    payload = _message(chat_id=1234, chat_type="private", user_id=1234, message_id=88)
    payload["from"]["username"] = "ada"
    payload["edit_date"] = 1736380900
    outcome = await harness.handler.handle_update({"edited_message": payload})

    assert outcome is not None
    assert outcome.context_keys == ("telegram:message:edited:1234:main:88",)
    events = harness.events.peek("agent:main:telegram:dm:1234")
    assert [event.text for event in events] == [
        "Telegram message edited in DM with Ada (@ada)."
    ]
    assert harness.turns == []

    duplicate = await harness.handler.handle_update({"edited_message": payload})
    assert duplicate is not None and duplicate.context_keys == ()


@pytest.mark.anyio
async def test_edited_message_in_group_skips_mention_gate() -> None:
    harness = _Harness({})
    outcome = await harness.handler.handle_update(
        {"edited_message": _message(message_id=7)}
    )
    assert outcome is not None and outcome.allowed
    events = harness.events.peek("agent:main:telegram:group:-100123456789")
    assert events[0].text == "Telegram message edited in Ops (id:-100123456789)."


@pytest.mark.anyio
async def test_edit_without_sender_in_open_group_is_denied() -> None:
    harness = _Harness({})
    payload = _message(chat_id=-100, message_id=5)
    del payload["from"]
    outcome = await harness.handler.handle_update({"edited_message": payload})

    assert outcome is not None and not outcome.allowed
    assert outcome.decision.reason == "not-allowlisted"
    assert outcome.context_keys == ()
    assert harness.events.peek("agent:main:telegram:group:-100") == []


@pytest.mark.anyio
async def test_edit_from_unpaired_dm_sender_is_denied() -> None:
    harness = _Harness({})
    outcome = await harness.handler.handle_update(
        {"edited_message": _message(chat_id=1234, chat_type="private", user_id=1234)}
    )
    assert outcome is not None and not outcome.allowed
    assert harness.events.peek("agent:main:telegram:dm:1234") == []
    assert harness.transport.messages == []


@pytest.mark.anyio
async def test_reaction_off_mode_skips() -> None:
    harness = _Harness({"channels": {"telegram": {"reactionNotifications": "off"}}})
    harness.handler.sent_messages.record(5678, 100)
    outcome = await harness.handler.handle_update(_reaction())
    assert outcome is not None and outcome.context_keys == ()
    assert harness.events.peek("agent:main:telegram:group:5678") == []


@pytest.mark.anyio
async def test_reaction_own_mode_notifies_for_bot_messages_only() -> None:
    harness = _Harness({})
    harness.handler.sent_messages.record(5678, 100)

    outcome = await harness.handler.handle_update(_reaction())
    await harness.handler.handle_update(_reaction(message_id=101))

    assert outcome is not None
    assert outcome.context_keys == ("telegram:reaction:add:5678:100:9:👍",)
    events = harness.events.peek("agent:main:telegram:group:5678")
    assert [event.text for event in events] == [
        "Telegram reaction added: 👍 by Ada (@ada) on msg 100"
    ]


@pytest.mark.anyio
async def test_reaction_all_mode_notifies_for_any_message() -> None:
    harness = _Harness({"channels": {"telegram": {"reaction_notifications": "all"}}})
    await harness.handler.handle_update(_reaction(message_id=101))
    assert len(harness.events.peek("agent:main:telegram:group:5678")) == 1


@pytest.mark.anyio
async def test_reaction_from_bot_is_ignored() -> None:
    harness = _Harness({"channels": {"telegram": {"reaction_notifications": "all"}}})
    await harness.handler.handle_update(
        _reaction(user={"id": 77, "is_bot": True, "first_name": "Other"})
    )
    assert harness.events.peek("agent:main:telegram:group:5678") == []


@pytest.mark.anyio
async def test_reaction_removal_is_ignored() -> None:
    harness = _Harness({"channels": {"telegram": {"reaction_notifications": "all"}}})
    await harness.handler.handle_update(_reaction(old=("👍",), new=()))
    assert harness.events.peek("agent:main:telegram:group:5678") == []


@pytest.mark.anyio
async def test_reaction_with_multiple_new_emoji_enqueues_each() -> None:
    harness = _Harness({"channels": {"telegram": {"reaction_notifications": "all"}}})
    outcome = await harness.handler.handle_update(
        _reaction(old=("👍",), new=("👍", "🔥", "🎉"))
    )
    assert outcome is not None
    assert outcome.context_keys == (
        "telegram:reaction:add:5678:100:9:🔥",
        "telegram:reaction:add:5678:100:9:🎉",
    )
    texts = [
        event.text for event in harness.events.peek("agent:main:telegram:group:5678")
    ]
    assert texts == [
        "Telegram reaction added: 🔥 by Ada (@ada) on msg 100",
        "Telegram reaction added: 🎉 by Ada (@ada) on msg 100",
    ]


@pytest.mark.anyio
async def test_forum_reaction_routes_to_general_topic() -> None:
    harness = _Harness({"channels": {"telegram": {"reaction_notifications": "all"}}})
    outcome = await harness.handler.handle_update(_reaction(is_forum=True))
    assert outcome is not None
    assert outcome.session_key == "agent:main:telegram:group:5678:topic:1"


@pytest.mark.anyio
async def test_forum_reaction_follows_general_topic_overrides() -> None:
    harness = _Harness(
        {
            "channels": {
                "telegram": {
                    "reaction_notifications": "all",
                    "groups": {"5678": {"topics": {"1": {"enabled": False}}}},
                }
            }
        }
    )
    harness.handler.sent_messages.record(5678, 100)
    outcome = await harness.handler.handle_update(_reaction(is_forum=True))

    assert outcome is not None and outcome.decision.reason == "disabled"
    assert harness.events.peek("agent:main:telegram:group:5678:topic:1") == []


@pytest.mark.anyio
async def test_forum_reaction_uses_general_topic_reaction_mode() -> None:
    harness = _Harness(
        {
            "channels": {
                "telegram": {
                    "reaction_notifications": "all",
                    "groups": {
                        "5678": {"topics": {"1": {"reaction_notifications": "off"}}}
                    },
                }
            }
        }
    )
    outcome = await harness.handler.handle_update(_reaction(is_forum=True))
    assert outcome is not None and outcome.context_keys == ()
    assert harness.events.peek("agent:main:telegram:group:5678:topic:1") == []


@pytest.mark.anyio
async def test_regular_group_reaction_has_no_topic_segment() -> None:
    harness = _Harness({"channels": {"telegram": {"reaction_notifications": "all"}}})
    outcome = await harness.handler.handle_update(_reaction())
    assert outcome is not None and outcome.session_key is not None
    assert ":topic:" not in outcome.session_key


@pytest.mark.anyio
async def test_reaction_in_disabled_group_is_skipped() -> None:
    harness = _Harness(
        {
            "channels": {
                "telegram": {
                    "reaction_notifications": "all",
                    "groups": {"5678": {"enabled": False}},
                }
            }
        }
    )
    outcome = await harness.handler.handle_update(_reaction())
    assert outcome is not None and outcome.decision.reason == "disabled"


@pytest.mark.anyio
async def test_dm_reaction_from_unpaired_user_is_skipped() -> None:
    harness = _Harness({"channels": {"telegram": {"reaction_notifications": "all"}}})
    outcome = await harness.handler.handle_update(
        _reaction(chat_id=9, chat_type="private")
    )
    assert outcome is not None and not outcome.allowed
    assert harness.events.peek("agent:main:telegram:dm:9") == []


@pytest.mark.anyio
async def test_callback_blocked_by_group_allowlist_is_still_answered() -> None:
    harness = _Harness(
        {
            "channels": {
                "telegram": {
                    "groupPolicy": "allowlist",
                    "groups": {"-100123456789": {"allowFrom": ["999"]}},
                }
            }
        }
    )
    outcome = await harness.handler.handle_update(
        {
            "callback_query": {
                "id": "cb-1",
                "data": "cmd:noop",
                "from": _user(123),
                "message": {
                    "message_id": 10,
                    "chat": {"id": -100123456789, "type": "supergroup"},
                },
            }
        }
    )
    assert outcome is not None and not outcome.allowed
    assert harness.transport.answered == ["cb-1"]
    assert harness.turns == []


@pytest.mark.anyio
async def test_callback_in_dm_scope_becomes_turn() -> None:
    harness = _Harness({"channels": {"telegram": {"capabilities": {"inlineButtons": "dm"}}}})
    outcome = await harness.handler.handle_update(
        {
            "callback_query": {
                "id": "cb-2",
                "data": "approve:1",
                "from": _user(1234),
                "message": {"message_id": 5, "chat": {"id": 1234, "type": "private"}},
            }
        }
    )
    assert outcome is not None and outcome.allowed
    assert harness.transport.answered == ["cb-2"]
    assert harness.turns[0].callback_data == "approve:1"


@pytest.mark.anyio
async def test_callback_answer_failure_is_logged(
    caplog: pytest.LogCaptureFixture,
) -> None:
    caplog.set_level(logging.WARNING)
    harness = _Harness({}, fail_answer=True)
    outcome = await harness.handler.handle_update(
        {
            "callback_query": {
                "id": "cb-3",
                "from": _user(1),
                "message": {"message_id": 5, "chat": {"id": 1, "type": "private"}},
            }
        }
    )
    assert outcome is not None and not outcome.allowed
    assert "telegram.callback.answer_failed" in caplog.text


@pytest.mark.anyio
async def test_turn_handler_failure_is_contained(
    caplog: pytest.LogCaptureFixture,
) -> None:
    caplog.set_level(logging.ERROR)
    harness = _Harness({}, store={"telegram": ["1234"]})

    async def _explode(_turn: InboundTurn) -> None:
        raise RuntimeError("backend down")

    harness.handler._on_turn = _explode
    outcome = await harness.handler.handle_update(
        {"message": _message(chat_id=1234, chat_type="private", user_id=1234)}
    )
    assert outcome is None
    assert "chat.gate.unexpected_error" in caplog.text


@pytest.mark.anyio
async def test_unknown_update_is_ignored() -> None:
    harness = _Harness({})
    assert await harness.handler.handle_update({"update_id": 1, "poll": {}}) is None
