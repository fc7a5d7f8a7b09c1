from __future__ import annotations

from chatgate.integrations.chat.models import NormalizedIdentity
from chatgate.integrations.chat.reactions import (
    added_reactions,
    normalize_reaction_mode,
    reactions_to_notify,
    should_notify_reaction,
)

HUMAN = NormalizedIdentity(id="9", username="ada")
BOT = NormalizedIdentity(id="10", is_bot=True)


def test_own_mode_only_notifies_for_bot_authored_messages() -> None:
    assert reactions_to_notify(
        "own", HUMAN, old=[], new=["👍"], message_author_is_bot=True
    ) == ["👍"]
    assert (
        reactions_to_notify(
            "own", HUMAN, old=[], new=["👍"], message_author_is_bot=False
        )
        == []
    )


def test_all_mode_notifies_for_any_message() -> None:
    assert reactions_to_notify(
        "all", HUMAN, old=[], new=["🔥"], message_author_is_bot=False
    ) == ["🔥"]


def test_off_mode_never_notifies() -> None:
    assert not should_notify_reaction("off", HUMAN, message_author_is_bot=True)


def test_bot_reactors_are_ignored_in_every_mode() -> None:
    for mode in ("own", "all", "allowlist"):
        assert not should_notify_reaction(
            mode, BOT, message_author_is_bot=True, allowlist=["*"]
        )


def test_allowlist_mode_checks_the_reactor() -> None:
    assert should_notify_reaction(
        "allowlist", HUMAN, message_author_is_bot=False, allowlist=["@ada"]
    )
    assert not should_notify_reaction(
        "allowlist", HUMAN, message_author_is_bot=True, allowlist=["1"]
    )


def test_removal_only_transition_yields_nothing() -> None:
    assert added_reactions(["👍"], []) == []
    assert (
        reactions_to_notify(
            "all", HUMAN, old=["👍", "🔥"], new=["🔥"], message_author_is_bot=True
        )
        == []
    )


def test_multiple_additions_keep_order_and_dedupe() -> None:
    assert added_reactions(["👍"], ["👍", "🔥", "🎉", "🔥"]) == ["🔥", "🎉"]


def test_unknown_mode_falls_back_to_own() -> None:
    assert normalize_reaction_mode("LOUD") == "own"
    assert normalize_reaction_mode(" All ") == "all"
