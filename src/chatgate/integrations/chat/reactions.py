from __future__ import annotations

from typing import Iterable, Optional, Sequence

from .allowlist import AllowlistInput, allowlist_matches
from .models import (
    DEFAULT_REACTION_MODE,
    REACTION_MODES,
    NormalizedIdentity,
    ReactionMode,
)


def normalize_reaction_mode(value: Optional[str]) -> ReactionMode:
    token = (value or "").strip().lower()
    if token in REACTION_MODES:
        return token  # type: ignore[return-value]
    return DEFAULT_REACTION_MODE


def should_notify_reaction(
    mode: Optional[str],
    reactor: Optional[NormalizedIdentity],
    *,
    message_author_is_bot: bool,
    allowlist: AllowlistInput = None,
) -> bool:
    """Decide whether one added reaction should become a system event.

    Bot reactors are excluded in every mode.
    """

    if reactor is None or reactor.is_bot:
        return False
    resolved = normalize_reaction_mode(mode)
    if resolved == "off":
        return False
    if resolved == "all":
        return True
    if resolved == "own":
        return message_author_is_bot
    return allowlist_matches(allowlist, reactor)


def added_reactions(old: Iterable[str], new: Sequence[str]) -> list[str]:
    """Emoji present in `new` but not in `old`, in `new` order, deduplicated.

    A removal-only transition yields an empty list.
    """

    previous = {item for item in old if item}
    added: list[str] = []
    for item in new:
        if not item or item in previous or item in added:
            continue
        added.append(item)
    return added


def reactions_to_notify(
    mode: Optional[str],
    reactor: Optional[NormalizedIdentity],
    *,
    old: Iterable[str],
    new: Sequence[str],
    message_author_is_bot: bool,
    allowlist: AllowlistInput = None,
) -> list[str]:
    added = added_reactions(old, new)
    if not added:
        return []
    if not should_notify_reaction(
        mode,
        reactor,
        message_author_is_bot=message_author_is_bot,
        allowlist=allowlist,
    ):
        return []
    return added
