"""Guarded evaluation boundary for adapter handlers.

Access evaluation must never raise into a platform event loop; unexpected
errors are logged and replaced by a fallback so the adapter still finishes
its platform obligations (callback answers, acks).
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from typing import Any, Awaitable, Callable, Optional, TypeVar

from ...core.logging_utils import log_event
from .models import (
    AccessDecision,
    DecisionReason,
    EffectivePolicy,
    NormalizedIdentity,
    NormalizedLocation,
)
from .routing import AgentRoute

T = TypeVar("T")

DENY_ON_ERROR = AccessDecision.deny("not-allowlisted")


def guarded(
    func: Callable[..., T],
    *args: Any,
    fallback: T,
    logger: Optional[logging.Logger] = None,
    context: Optional[dict[str, Any]] = None,
    **kwargs: Any,
) -> T:
    try:
        return func(*args, **kwargs)
    except Exception as exc:
        log_event(
            logger or logging.getLogger(__name__),
            logging.ERROR,
            "chat.gate.unexpected_error",
            operation=getattr(func, "__name__", repr(func)),
            exc=exc,
            **(context or {}),
        )
        return fallback


async def guarded_async(
    func: Callable[..., Awaitable[T]],
    *args: Any,
    fallback: T,
    logger: Optional[logging.Logger] = None,
    context: Optional[dict[str, Any]] = None,
    **kwargs: Any,
) -> T:
    try:
        return await func(*args, **kwargs)
    except Exception as exc:
        log_event(
            logger or logging.getLogger(__name__),
            logging.ERROR,
            "chat.gate.unexpected_error",
            operation=getattr(func, "__name__", repr(func)),
            exc=exc,
            **(context or {}),
        )
        return fallback


class GuardedEvaluator:
    """Binds a logger and channel name for repeated guarded calls."""

    def __init__(self, channel: str, *, logger: Optional[logging.Logger] = None):
        self._channel = channel
        self._logger = logger or logging.getLogger(__name__)

    def call(self, func: Callable[..., T], *args: Any, fallback: T, **kwargs: Any) -> T:
        return guarded(
            func,
            *args,
            fallback=fallback,
            logger=self._logger,
            context={"channel": self._channel},
            **kwargs,
        )

    async def call_async(
        self,
        func: Callable[..., Awaitable[T]],
        *args: Any,
        fallback: T,
        **kwargs: Any,
    ) -> T:
        return await guarded_async(
            func,
            *args,
            fallback=fallback,
            logger=self._logger,
            context={"channel": self._channel},
            **kwargs,
        )


@dataclass(frozen=True)
class GateOutcome:
    """What an adapter decided for one inbound event."""

    decision: AccessDecision
    location: Optional[NormalizedLocation] = None
    identity: Optional[NormalizedIdentity] = None
    policy: Optional[EffectivePolicy] = None
    route: Optional[AgentRoute] = None
    is_command: bool = False
    was_mentioned: bool = False
    context_keys: tuple[str, ...] = ()

    @property
    def allowed(self) -> bool:
        return self.decision.allowed

    @property
    def session_key(self) -> Optional[str]:
        return self.route.session_key if self.route is not None else None

    def as_dict(self) -> dict[str, Any]:
        return {
            "allowed": self.decision.allowed,
            "reason": self.decision.reason,
            "notify_user": self.decision.notify_user,
            "is_command": self.is_command,
            "was_mentioned": self.was_mentioned,
            "policy": asdict(self.policy) if self.policy is not None else None,
            "location": asdict(self.location) if self.location is not None else None,
            "identity": asdict(self.identity) if self.identity is not None else None,
            "route": asdict(self.route) if self.route is not None else None,
            "context_keys": list(self.context_keys),
        }


def denied_outcome(
    reason: DecisionReason = "not-allowlisted",
    *,
    location: Optional[NormalizedLocation] = None,
    identity: Optional[NormalizedIdentity] = None,
) -> GateOutcome:
    return GateOutcome(
        decision=AccessDecision.deny(reason), location=location, identity=identity
    )
