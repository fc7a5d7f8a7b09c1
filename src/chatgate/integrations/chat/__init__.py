"""Platform-agnostic access policy and session routing (adapter layer)."""

from .access import NOT_AUTHORIZED_NOTICE, decide_access, is_command_authorized
from .allowlist import (
    allowlist_matches,
    merge_allowlists,
    normalize_allowlist,
    normalize_slug,
)
from .config import (
    AgentBinding,
    ChannelPolicyConfig,
    ChatConfig,
    ScopeEntry,
    load_chat_config,
)
from .errors import ChatAdapterError, PairingStoreError
from .gate import (
    GateOutcome,
    GuardedEvaluator,
    denied_outcome,
    guarded,
    guarded_async,
)
from .models import (
    AccessDecision,
    EffectivePolicy,
    InboundTurn,
    MentionSignal,
    NormalizedIdentity,
    NormalizedLocation,
    PolicyScope,
    RouteKey,
)
from .notices import NoticeTracker, pairing_notice
from .pairing_store import (
    InMemoryPairingStore,
    PairingStore,
    SQLitePairingStore,
    read_channel_allow_from,
)
from .reactions import added_reactions, reactions_to_notify, should_notify_reaction
from .route_keys import (
    build_context_key,
    build_route_key,
    build_session_key,
    default_topic_id,
    parse_session_key,
)
from .routing import AgentRoute, resolve_agent_route
from .scope import fold_scopes, resolve_effective_policy
from .system_events import SystemEvent, SystemEventQueue
from .turn_policy import MentionContext, detect_mention, is_control_command

__all__ = [
    "AccessDecision",
    "AgentBinding",
    "AgentRoute",
    "ChannelPolicyConfig",
    "ChatAdapterError",
    "ChatConfig",
    "EffectivePolicy",
    "GateOutcome",
    "GuardedEvaluator",
    "InMemoryPairingStore",
    "InboundTurn",
    "MentionContext",
    "MentionSignal",
    "NOT_AUTHORIZED_NOTICE",
    "NormalizedIdentity",
    "NormalizedLocation",
    "NoticeTracker",
    "PairingStore",
    "PairingStoreError",
    "PolicyScope",
    "RouteKey",
    "SQLitePairingStore",
    "ScopeEntry",
    "SystemEvent",
    "SystemEventQueue",
    "added_reactions",
    "allowlist_matches",
    "build_context_key",
    "build_route_key",
    "build_session_key",
    "decide_access",
    "denied_outcome",
    "default_topic_id",
    "detect_mention",
    "fold_scopes",
    "guarded",
    "guarded_async",
    "is_command_authorized",
    "is_control_command",
    "load_chat_config",
    "merge_allowlists",
    "normalize_allowlist",
    "normalize_slug",
    "pairing_notice",
    "parse_session_key",
    "reactions_to_notify",
    "read_channel_allow_from",
    "resolve_agent_route",
    "resolve_effective_policy",
    "should_notify_reaction",
]
