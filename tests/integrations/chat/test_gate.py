from __future__ import annotations

import logging

import pytest

from chatgate.integrations.chat.gate import (
    DENY_ON_ERROR,
    GateOutcome,
    GuardedEvaluator,
    denied_outcome,
    guarded,
)
from chatgate.integrations.chat.models import AccessDecision, NormalizedLocation
from chatgate.integrations.chat.notices import NoticeTracker, pairing_notice
from chatgate.integrations.chat.routing import AgentRoute


def _explode(*_args: object) -> AccessDecision:
    raise RuntimeError("boom")


async def _explode_async() -> AccessDecision:
    raise RuntimeError("boom")


def test_guarded_returns_result_when_no_error() -> None:
    assert guarded(lambda value: value * 2, 21, fallback=0) == 42


def test_guarded_logs_and_falls_back(caplog: pytest.LogCaptureFixture) -> None:
    caplog.set_level(logging.ERROR)
    evaluator = GuardedEvaluator("telegram", logger=logging.getLogger("test.gate"))
    assert evaluator.call(_explode, "x", fallback=DENY_ON_ERROR) is DENY_ON_ERROR
    assert "chat.gate.unexpected_error" in caplog.text
    assert '"channel": "telegram"' in caplog.text


@pytest.mark.anyio
async def test_guarded_async_falls_back() -> None:
    evaluator = GuardedEvaluator("discord")
    result = await evaluator.call_async(_explode_async, fallback=DENY_ON_ERROR)
    assert result == AccessDecision.deny("not-allowlisted")


def test_outcome_exposes_session_key_and_dict() -> None:
    location = NormalizedLocation(kind="group", id="-1")
    outcome = GateOutcome(
        decision=AccessDecision.allow("open"),
        location=location,
        route=AgentRoute(
            agent_id="main",
            session_key="agent:main:telegram:group:-1",
            account_id="default",
            matched_by="default",
        ),
        context_keys=("telegram:reaction:add:-1:5:9:👍",),
    )
    assert outcome.allowed
    assert outcome.session_key == "agent:main:telegram:group:-1"
    payload = outcome.as_dict()
    assert payload["reason"] == "open"
    assert payload["location"]["id"] == "-1"
    assert payload["identity"] is None
    assert payload["context_keys"] == ["telegram:reaction:add:-1:5:9:👍"]


def test_denied_outcome_defaults() -> None:
    outcome = denied_outcome()
    assert not outcome.allowed
    assert outcome.decision.reason == "not-allowlisted"
    assert outcome.session_key is None


def test_notice_is_sent_once_per_sender_and_location() -> None:
    tracker = NoticeTracker()
    assert tracker.should_notify("telegram", "1", "7")
    assert not tracker.should_notify("telegram", "1", "7")
    assert tracker.should_notify("telegram", "2", "7")
    assert tracker.should_notify("discord", "1", "7")
    assert not tracker.should_notify("telegram", "1", None)
    tracker.reset()
    assert tracker.should_notify("telegram", "1", "7")


def test_pairing_notice_text() -> None:
    assert pairing_notice("telegram", "42") == (
        "This bot only answers paired accounts. "
        "Ask the owner to approve your Telegram id: 42"
    )
