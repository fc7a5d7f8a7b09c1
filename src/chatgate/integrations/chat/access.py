"""Access decision engine.

Combines an effective policy, the sender identity and a pairing-store
snapshot into an allow/deny decision. No I/O and no side effects: notices,
logging and replies belong to the caller.
"""

from __future__ import annotations

from typing import Iterable, Optional

from .allowlist import allowlist_matches, merge_allowlists, store_contains
from .models import (
    AccessDecision,
    EffectivePolicy,
    MentionSignal,
    NormalizedIdentity,
    NormalizedLocation,
)

NOT_AUTHORIZED_NOTICE = "You are not authorized to use this command."


def _admit(
    policy: EffectivePolicy,
    identity: Optional[NormalizedIdentity],
    location: NormalizedLocation,
    store_allow_from: Iterable[str],
) -> AccessDecision:
    if policy.policy == "disabled":
        return AccessDecision.deny("disabled")
    if identity is None or not identity.id:
        return AccessDecision.deny("not-allowlisted")
    if policy.policy == "open":
        return AccessDecision.allow("open")
    if policy.policy == "pairing" and location.is_direct:
        if store_contains(store_allow_from, identity.id):
            return AccessDecision.allow("allowlisted")
        return AccessDecision.deny("not-allowlisted", notify_user=True)
    # "allowlist", and "pairing" outside direct chats.
    effective = merge_allowlists(policy.allow_from, store_allow_from)
    if allowlist_matches(effective, identity):
        return AccessDecision.allow("allowlisted")
    return AccessDecision.deny("not-allowlisted")


def decide_access(
    policy: EffectivePolicy,
    identity: Optional[NormalizedIdentity],
    location: NormalizedLocation,
    *,
    store_allow_from: Optional[Iterable[str]] = None,
    mention: Optional[MentionSignal] = None,
) -> AccessDecision:
    """Evaluate the decision table top to bottom.

    The mention requirement is layered on top of an admitting policy: a
    group message that passes the policy but neither mentions the bot nor
    replies to it is denied with `no-mention`.
    """

    snapshot = tuple(store_allow_from or ())
    decision = _admit(policy, identity, location, snapshot)
    if not decision.allowed:
        return decision
    if location.is_direct or not policy.require_mention:
        return decision
    signal = mention or MentionSignal()
    if not signal.satisfied:
        return AccessDecision.deny("no-mention")
    return decision


def is_command_authorized(
    policy: EffectivePolicy,
    identity: Optional[NormalizedIdentity],
    decision: AccessDecision,
    *,
    store_allow_from: Optional[Iterable[str]] = None,
) -> bool:
    """Control commands also need allowlist membership when any list exists.

    Open groups admit anyone to talk, but when an allowlist is configured or
    the pairing store has entries, only those senders may run commands.
    """

    if not decision.allowed or identity is None:
        return False
    effective = merge_allowlists(policy.allow_from, store_allow_from or ())
    if not effective:
        return True
    return allowlist_matches(effective, identity)
