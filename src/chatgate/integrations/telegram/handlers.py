"""Telegram update handling: access gate, routing and system events.

The handler owns the platform side effects (notices, callback answers,
system-event enqueues) around the pure decision core. Every entry point is
wrapped in the guarded boundary so an unexpected error is logged instead of
surfacing into the update loop.
"""

from __future__ import annotations

import dataclasses
import logging
from typing import Any, Awaitable, Callable, Mapping, Optional, Protocol, Sequence

from ...core.logging_utils import log_event
from ..chat.access import NOT_AUTHORIZED_NOTICE, decide_access, is_command_authorized
from ..chat.allowlist import merge_allowlists
from ..chat.config import ChatConfig
from ..chat.gate import GateOutcome, GuardedEvaluator, denied_outcome
from ..chat.models import (
    AccessDecision,
    EffectivePolicy,
    InboundTurn,
    NormalizedIdentity,
    NormalizedLocation,
)
from ..chat.notices import NoticeTracker, pairing_notice
from ..chat.pairing_store import PairingStore, read_channel_allow_from
from ..chat.reactions import reactions_to_notify
from ..chat.route_keys import build_context_key
from ..chat.routing import AgentRoute, resolve_agent_route
from ..chat.scope import resolve_effective_policy
from ..chat.system_events import EnqueueSystemEvent
from ..chat.turn_policy import MentionContext, detect_mention, is_control_command
from .constants import (
    TELEGRAM_CHANNEL,
    TELEGRAM_EVENT_MESSAGE_EDITED,
    TELEGRAM_EVENT_REACTION_ADD,
)
from .normalize import (
    TelegramCallbackQuery,
    TelegramChat,
    TelegramMessage,
    normalize_location,
    parse_callback_query,
    parse_message,
    parse_reaction,
    sender_label,
)
from .sent_messages import SentMessageCache

TurnHandler = Callable[[InboundTurn], Awaitable[None]]


class TelegramTransport(Protocol):
    async def send_message(
        self, chat_id: str, text: str, *, thread_id: Optional[str] = None
    ) -> Any: ...

    async def answer_callback_query(
        self, callback_query_id: str, *, text: Optional[str] = None
    ) -> Any: ...


def describe_location(
    chat: TelegramChat, sender: Optional[NormalizedIdentity]
) -> str:
    if chat.kind == "direct":
        if sender is None:
            return "DM"
        return f"DM with {sender_label(sender)}"
    title = chat.title or chat.kind
    return f"{title} (id:{chat.id})"


def _without_mention(policy: EffectivePolicy) -> EffectivePolicy:
    return dataclasses.replace(policy, require_mention=False)


class TelegramEventHandler:
    def __init__(
        self,
        config: ChatConfig,
        *,
        transport: TelegramTransport,
        enqueue_system_event: EnqueueSystemEvent,
        on_turn: Optional[TurnHandler] = None,
        pairing_store: Optional[PairingStore] = None,
        bot_id: Optional[str] = None,
        bot_username: Optional[str] = None,
        sent_messages: Optional[SentMessageCache] = None,
        notices: Optional[NoticeTracker] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self._config = config
        self._transport = transport
        self._enqueue_system_event = enqueue_system_event
        self._on_turn = on_turn
        self._pairing_store = pairing_store
        self._bot_id = bot_id
        self._bot_username = bot_username
        self._sent_messages = sent_messages or SentMessageCache()
        self._notices = notices or NoticeTracker()
        self._logger = logger or logging.getLogger(__name__)
        self._gate = GuardedEvaluator(TELEGRAM_CHANNEL, logger=self._logger)

    @property
    def sent_messages(self) -> SentMessageCache:
        return self._sent_messages

    async def handle_update(self, update: Mapping[str, Any]) -> Optional[GateOutcome]:
        if "message" in update:
            return await self._gate.call_async(
                self.handle_message, update["message"], fallback=None
            )
        if "edited_message" in update:
            return await self._gate.call_async(
                self.handle_edited_message, update["edited_message"], fallback=None
            )
        if "message_reaction" in update:
            return await self._gate.call_async(
                self.handle_reaction, update["message_reaction"], fallback=None
            )
        if "callback_query" in update:
            return await self.handle_callback_query(update["callback_query"])
        log_event(
            self._logger,
            logging.DEBUG,
            "telegram.update.ignored",
            update_id=update.get("update_id"),
            keys=sorted(str(key) for key in update.keys()),
        )
        return None

    async def _store_allow_from(self) -> list[str]:
        return await read_channel_allow_from(self._pairing_store, TELEGRAM_CHANNEL)

    def _route(
        self, location: NormalizedLocation, sender: Optional[NormalizedIdentity]
    ) -> AgentRoute:
        return resolve_agent_route(
            self._config,
            channel=TELEGRAM_CHANNEL,
            location=location,
            peer_id=sender.id if sender is not None and location.is_direct else None,
        )

    def evaluate_message(
        self, message: TelegramMessage, store_allow_from: Sequence[str]
    ) -> GateOutcome:
        """Decide admission for a new message. No I/O."""

        location = normalize_location(
            message.chat, thread_id=message.thread_id, sender=message.sender
        )
        policy = resolve_effective_policy(self._config, TELEGRAM_CHANNEL, location)
        is_command = is_control_command(message.text)
        mention = detect_mention(
            MentionContext(
                text=message.text,
                bot_username=self._bot_username,
                bot_id=self._bot_id,
                mentioned_ids=message.mentioned_ids,
                reply_to_is_bot=message.reply_to_is_bot,
                reply_to_username=message.reply_to_username,
                reply_to_message_id=message.reply_to_message_id,
                thread_id=message.thread_id,
            )
        )
        # Control commands are explicit affordances and skip the mention gate.
        decision = decide_access(
            _without_mention(policy) if is_command else policy,
            message.sender,
            location,
            store_allow_from=store_allow_from,
            mention=mention,
        )
        if (
            decision.allowed
            and is_command
            and not is_command_authorized(
                policy,
                message.sender,
                decision,
                store_allow_from=store_allow_from,
            )
        ):
            decision = AccessDecision.deny(
                "not-allowlisted", notify_user=location.is_direct
            )
        if (
            not decision.allowed
            and decision.reason == "not-allowlisted"
            and is_command
            and location.is_direct
        ):
            decision = dataclasses.replace(decision, notify_user=True)
        route = self._route(location, message.sender) if decision.allowed else None
        return GateOutcome(
            decision=decision,
            location=location,
            identity=message.sender,
            policy=policy,
            route=route,
            is_command=is_command,
            was_mentioned=location.is_direct or mention.satisfied,
        )

    async def handle_message(self, payload: Any) -> Optional[GateOutcome]:
        message = parse_message(
            payload, bot_id=self._bot_id, bot_username=self._bot_username
        )
        if message is None:
            log_event(self._logger, logging.DEBUG, "telegram.message.unparsed")
            return denied_outcome()
        store_allow_from = await self._store_allow_from()
        outcome = self._gate.call(
            self.evaluate_message,
            message,
            store_allow_from,
            fallback=denied_outcome(identity=message.sender),
        )
        log_event(
            self._logger,
            logging.INFO,
            "telegram.message.gate",
            chat_id=message.chat.id,
            thread_id=message.thread_id,
            message_id=message.message_id,
            user_id=message.sender.id if message.sender else None,
            allowed=outcome.allowed,
            reason=outcome.decision.reason,
            is_command=outcome.is_command,
            session_key=outcome.session_key,
        )
        if not outcome.allowed:
            if outcome.decision.notify_user:
                await self._send_notice(message, outcome)
            return outcome
        if (
            self._on_turn is not None
            and outcome.route is not None
            and message.sender is not None
            and outcome.location is not None
        ):
            await self._on_turn(
                InboundTurn(
                    channel=TELEGRAM_CHANNEL,
                    agent_id=outcome.route.agent_id,
                    session_key=outcome.route.session_key,
                    text=message.text,
                    sender=message.sender,
                    location=outcome.location,
                    message_id=message.message_id,
                    was_mentioned=outcome.was_mentioned,
                    is_command=outcome.is_command,
                )
            )
        return outcome

    async def _send_notice(self, message: TelegramMessage, outcome: GateOutcome) -> None:
        sender = message.sender
        if sender is None:
            return
        if not self._notices.should_notify(TELEGRAM_CHANNEL, message.chat.id, sender.id):
            return
        text = (
            NOT_AUTHORIZED_NOTICE
            if outcome.is_command
            else pairing_notice(TELEGRAM_CHANNEL, sender.id)
        )
        await self._transport.send_message(message.chat.id, text)
        log_event(
            self._logger,
            logging.INFO,
            "telegram.notice.sent",
            chat_id=message.chat.id,
            user_id=sender.id,
            is_command=outcome.is_command,
        )

    async def handle_edited_message(self, payload: Any) -> Optional[GateOutcome]:
        message = parse_message(
            payload,
            bot_id=self._bot_id,
            bot_username=self._bot_username,
            is_edited=True,
        )
        if message is None:
            return denied_outcome()
        if message.sender is not None and message.sender.is_bot:
            return denied_outcome(identity=message.sender)
        location = normalize_location(
            message.chat, thread_id=message.thread_id, sender=message.sender
        )
        store_allow_from = await self._store_allow_from()
        policy = resolve_effective_policy(self._config, TELEGRAM_CHANNEL, location)
        # Edits never carry a fresh mention; only the admission policy applies.
        decision = decide_access(
            _without_mention(policy),
            message.sender,
            location,
            store_allow_from=store_allow_from,
        )
        if not decision.allowed:
            log_event(
                self._logger,
                logging.INFO,
                "telegram.edit.denied",
                chat_id=message.chat.id,
                message_id=message.message_id,
                reason=decision.reason,
            )
            return GateOutcome(
                decision=decision,
                location=location,
                identity=message.sender,
                policy=policy,
            )
        route = self._route(location, message.sender)
        context_key = build_context_key(
            TELEGRAM_CHANNEL,
            TELEGRAM_EVENT_MESSAGE_EDITED,
            message.chat.id,
            message.message_id,
            scope=location.topic_or_thread_id or "main",
        )
        text = (
            "Telegram message edited in "
            f"{describe_location(message.chat, message.sender)}."
        )
        enqueued = self._enqueue_system_event(
            text, session_key=route.session_key, context_key=context_key
        )
        return GateOutcome(
            decision=decision,
            location=location,
            identity=message.sender,
            policy=policy,
            route=route,
            context_keys=(context_key,) if enqueued else (),
        )

    async def handle_reaction(self, payload: Any) -> Optional[GateOutcome]:
        reaction = parse_reaction(payload)
        if reaction is None or reaction.user is None:
            return denied_outcome()
        # Reaction updates carry no thread id; forum reactions land in the
        # default topic session.
        location = normalize_location(
            reaction.chat, sender=reaction.user, topic_known=False
        )
        policy = resolve_effective_policy(self._config, TELEGRAM_CHANNEL, location)
        if policy.policy == "disabled":
            return denied_outcome("disabled", location=location, identity=reaction.user)
        store_allow_from = await self._store_allow_from()
        if location.is_direct:
            decision = decide_access(
                policy, reaction.user, location, store_allow_from=store_allow_from
            )
            if not decision.allowed:
                return GateOutcome(
                    decision=decision,
                    location=location,
                    identity=reaction.user,
                    policy=policy,
                )
        emoji = reactions_to_notify(
            policy.reaction_notifications,
            reaction.user,
            old=reaction.old_emoji,
            new=reaction.new_emoji,
            message_author_is_bot=self._sent_messages.was_sent_by_bot(
                reaction.chat.id, reaction.message_id
            ),
            allowlist=merge_allowlists(policy.allow_from, store_allow_from),
        )
        if not emoji:
            log_event(
                self._logger,
                logging.DEBUG,
                "telegram.reaction.skipped",
                chat_id=reaction.chat.id,
                message_id=reaction.message_id,
                mode=policy.reaction_notifications,
            )
            return GateOutcome(
                decision=AccessDecision.allow("open"),
                location=location,
                identity=reaction.user,
                policy=policy,
            )
        route = self._route(location, reaction.user)
        actor = sender_label(reaction.user)
        context_keys: list[str] = []
        for item in emoji:
            context_key = build_context_key(
                TELEGRAM_CHANNEL,
                TELEGRAM_EVENT_REACTION_ADD,
                reaction.chat.id,
                reaction.message_id,
                reaction.user.id,
                detail=item,
            )
            text = (
                f"Telegram reaction added: {item} by {actor} "
                f"on msg {reaction.message_id}"
            )
            if self._enqueue_system_event(
                text, session_key=route.session_key, context_key=context_key
            ):
                context_keys.append(context_key)
        log_event(
            self._logger,
            logging.INFO,
            "telegram.reaction.notified",
            chat_id=reaction.chat.id,
            message_id=reaction.message_id,
            count=len(context_keys),
            session_key=route.session_key,
        )
        return GateOutcome(
            decision=AccessDecision.allow("open"),
            location=location,
            identity=reaction.user,
            policy=policy,
            route=route,
            context_keys=tuple(context_keys),
        )

    def evaluate_callback(
        self, query: TelegramCallbackQuery, store_allow_from: Sequence[str]
    ) -> GateOutcome:
        if query.chat is None:
            return denied_outcome(identity=query.sender)
        location = normalize_location(
            query.chat, thread_id=query.thread_id, sender=query.sender
        )
        policy = resolve_effective_policy(self._config, TELEGRAM_CHANNEL, location)
        scope = self._config.channel(TELEGRAM_CHANNEL).inline_buttons
        if scope == "off" or policy.policy == "disabled" or query.sender is None:
            decision = AccessDecision.deny("disabled")
        elif scope == "dm" and not location.is_direct:
            decision = AccessDecision.deny("disabled")
        elif scope == "group" and location.is_direct:
            decision = AccessDecision.deny("disabled")
        elif scope in ("dm", "group", "all"):
            decision = AccessDecision.allow("open")
        else:
            decision = decide_access(
                _without_mention(policy),
                query.sender,
                location,
                store_allow_from=store_allow_from,
            )
        route = self._route(location, query.sender) if decision.allowed else None
        return GateOutcome(
            decision=decision,
            location=location,
            identity=query.sender,
            policy=policy,
            route=route,
        )

    async def handle_callback_query(self, payload: Any) -> Optional[GateOutcome]:
        query = parse_callback_query(payload)
        if query is None:
            return denied_outcome()
        outcome: Optional[GateOutcome] = None
        try:
            store_allow_from = await self._store_allow_from()
            outcome = self._gate.call(
                self.evaluate_callback,
                query,
                store_allow_from,
                fallback=denied_outcome(identity=query.sender),
            )
            log_event(
                self._logger,
                logging.INFO,
                "telegram.callback.gate",
                callback_id=query.callback_id,
                chat_id=query.chat.id if query.chat else None,
                user_id=query.sender.id if query.sender else None,
                allowed=outcome.allowed,
                reason=outcome.decision.reason,
            )
            if (
                outcome.allowed
                and self._on_turn is not None
                and outcome.route is not None
                and query.sender is not None
                and outcome.location is not None
            ):
                await self._gate.call_async(
                    self._on_turn,
                    InboundTurn(
                        channel=TELEGRAM_CHANNEL,
                        agent_id=outcome.route.agent_id,
                        session_key=outcome.route.session_key,
                        text=query.data or "",
                        sender=query.sender,
                        location=outcome.location,
                        message_id=query.message_id,
                        callback_data=query.data,
                    ),
                    fallback=None,
                )
        finally:
            await self._answer_callback(query.callback_id)
        return outcome

    async def _answer_callback(self, callback_id: str) -> None:
        try:
            await self._transport.answer_callback_query(callback_id)
        except Exception as exc:
            log_event(
                self._logger,
                logging.WARNING,
                "telegram.callback.answer_failed",
                callback_id=callback_id,
                exc=exc,
            )
