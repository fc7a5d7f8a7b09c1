"""Discord gateway event handling: access gate, routing and system events."""

from __future__ import annotations

import dataclasses
import logging
from typing import Any, Awaitable, Callable, Mapping, Optional, Protocol, Sequence

from ...core.logging_utils import log_event
from ..chat.access import NOT_AUTHORIZED_NOTICE, decide_access, is_command_authorized
from ..chat.allowlist import allowlist_matches, normalize_slug
from ..chat.config import ChatConfig
from ..chat.gate import GateOutcome, GuardedEvaluator, denied_outcome
from ..chat.models import (
    AccessDecision,
    EffectivePolicy,
    InboundTurn,
    MentionSignal,
    NormalizedIdentity,
    NormalizedLocation,
)
from ..chat.notices import NoticeTracker, pairing_notice
from ..chat.pairing_store import PairingStore, read_channel_allow_from
from ..chat.reactions import reactions_to_notify
from ..chat.route_keys import build_context_key
from ..chat.routing import AgentRoute, resolve_agent_route
from ..chat.scope import ResolvedScopes, collect_scopes, fold_scopes
from ..chat.system_events import EnqueueSystemEvent
from ..chat.turn_policy import MentionContext, detect_mention, is_control_command
from .channel_cache import ChannelInfoCache, DiscordChannelInfo
from .constants import (
    DISCORD_CHANNEL,
    DISCORD_EVENT_MESSAGE_EDITED,
    DISCORD_EVENT_REACTION_ADD,
)
from .normalize import (
    DiscordGuild,
    DiscordMessage,
    DiscordReaction,
    build_location,
    format_user_tag,
    identity_label,
    parse_message,
    parse_reaction,
)

TurnHandler = Callable[[InboundTurn], Awaitable[None]]
MessageFetcher = Callable[[str, str], Awaitable[Optional[Mapping[str, Any]]]]


class DiscordTransport(Protocol):
    async def send_message(self, channel_id: str, text: str) -> Any: ...


@dataclasses.dataclass(frozen=True)
class _Resolved:
    location: NormalizedLocation
    info: Optional[DiscordChannelInfo]
    parent: Optional[DiscordChannelInfo]


def describe_location(
    location: NormalizedLocation,
    *,
    guild: Optional[DiscordGuild],
    channel_name: Optional[str],
    channel_id: str,
) -> str:
    if location.is_direct:
        return "DM"
    if location.parent_id is None:
        return "Group DM"
    guild_label = guild.name if guild and guild.name else "Guild"
    return f"{guild_label} #{channel_name or channel_id}"


def _entry_users(resolved: ResolvedScopes) -> tuple[str, ...]:
    """The innermost guild/channel `users` list, if any entry sets one."""

    users: tuple[str, ...] = ()
    entries = [resolved.group_entry, *resolved.nested_entries]
    for entry in entries:
        if entry is not None and entry.scope.allow_from is not None:
            users = entry.scope.allow_from
    return users


class DiscordEventHandler:
    def __init__(
        self,
        config: ChatConfig,
        *,
        channel_cache: ChannelInfoCache,
        enqueue_system_event: EnqueueSystemEvent,
        on_turn: Optional[TurnHandler] = None,
        transport: Optional[DiscordTransport] = None,
        pairing_store: Optional[PairingStore] = None,
        bot_user_id: Optional[str] = None,
        fetch_message: Optional[MessageFetcher] = None,
        notices: Optional[NoticeTracker] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self._config = config
        self._channel_cache = channel_cache
        self._enqueue_system_event = enqueue_system_event
        self._on_turn = on_turn
        self._transport = transport
        self._pairing_store = pairing_store
        self._bot_user_id = bot_user_id
        self._fetch_message = fetch_message
        self._notices = notices or NoticeTracker()
        self._logger = logger or logging.getLogger(__name__)
        self._gate = GuardedEvaluator(DISCORD_CHANNEL, logger=self._logger)

    async def handle_dispatch(
        self, event_type: str, data: Mapping[str, Any]
    ) -> Optional[GateOutcome]:
        """Route one gateway dispatch (`t`, `d`) to its handler."""

        if event_type == "MESSAGE_CREATE":
            return await self._gate.call_async(
                self.handle_message, data, fallback=None
            )
        if event_type == "MESSAGE_UPDATE":
            return await self._gate.call_async(
                self.handle_message_update, data, fallback=None
            )
        if event_type == "MESSAGE_REACTION_ADD":
            return await self._gate.call_async(
                self.handle_reaction, data, action="added", fallback=None
            )
        if event_type == "MESSAGE_REACTION_REMOVE":
            return await self._gate.call_async(
                self.handle_reaction, data, action="removed", fallback=None
            )
        return None

    def _ignore_author(self, author: Optional[NormalizedIdentity]) -> bool:
        if author is None:
            return True
        if self._bot_user_id and author.id == self._bot_user_id:
            return True
        return author.is_bot and not self._config.channel(DISCORD_CHANNEL).allow_bots

    async def _resolve_location(
        self, channel_id: str, guild: Optional[DiscordGuild]
    ) -> Optional[_Resolved]:
        info = await self._channel_cache.get(channel_id)
        if info is None and guild is None:
            return None
        parent = None
        if info is not None and info.is_thread and info.parent_id:
            parent = await self._channel_cache.get(info.parent_id)
        return _Resolved(
            location=build_location(channel_id, info, guild=guild, parent=parent),
            info=info,
            parent=parent,
        )

    def _group_dm_allowed(self, location: NormalizedLocation) -> bool:
        dm = self._config.channel(DISCORD_CHANNEL).dm
        if not dm.group_enabled:
            return False
        if not dm.group_channels:
            return True
        slug = normalize_slug(location.name)
        for entry in dm.group_channels:
            if entry == "*" or entry == location.id:
                return True
            if slug and normalize_slug(entry) == slug:
                return True
        return False

    def _route(
        self, location: NormalizedLocation, sender: Optional[NormalizedIdentity]
    ) -> AgentRoute:
        return resolve_agent_route(
            self._config,
            channel=DISCORD_CHANNEL,
            location=location,
            peer_id=sender.id if sender is not None and location.is_direct else None,
        )

    def evaluate(
        self,
        location: NormalizedLocation,
        identity: Optional[NormalizedIdentity],
        store_allow_from: Sequence[str],
        *,
        mention: Optional[MentionSignal] = None,
        require_mention: bool = True,
    ) -> tuple[AccessDecision, Optional[EffectivePolicy]]:
        """Admission for a Discord location. No I/O."""

        channel_cfg = self._config.channel(DISCORD_CHANNEL)
        resolved = collect_scopes(self._config, DISCORD_CHANNEL, location)
        policy = fold_scopes(
            resolved.scopes,
            kind=location.kind,
            group_matched=resolved.group_entry is not None,
        )
        if not require_mention:
            policy = dataclasses.replace(policy, require_mention=False)
        if location.kind == "group" and location.parent_id is None:
            if not self._group_dm_allowed(location):
                return AccessDecision.deny("disabled"), policy
        if location.parent_id is not None:
            if channel_cfg.groups and resolved.group_entry is None:
                return AccessDecision.deny("not-allowlisted"), policy
            users = _entry_users(resolved)
            if users and not allowlist_matches(users, identity):
                return AccessDecision.deny("not-allowlisted"), policy
        decision = decide_access(
            policy,
            identity,
            location,
            store_allow_from=store_allow_from,
            mention=mention,
        )
        return decision, policy

    async def handle_message(self, payload: Any) -> Optional[GateOutcome]:
        message = parse_message(payload)
        if message is None:
            return denied_outcome()
        if self._ignore_author(message.author):
            return denied_outcome(identity=message.author)
        resolved = await self._resolve_location(message.channel_id, message.guild)
        if resolved is None:
            return denied_outcome(identity=message.author)
        location = resolved.location
        store_allow_from = await read_channel_allow_from(
            self._pairing_store, DISCORD_CHANNEL
        )
        is_command = is_control_command(message.content)
        mention = detect_mention(
            MentionContext(
                text=message.content,
                bot_id=self._bot_user_id,
                mentioned_ids=message.mentioned_ids,
                reply_to_is_bot=bool(
                    self._bot_user_id
                    and message.reply_to_author_id == self._bot_user_id
                ),
                reply_to_message_id=message.reply_to_message_id,
            )
        )
        decision, policy = self._gate.call(
            self.evaluate,
            location,
            message.author,
            store_allow_from,
            mention=mention,
            require_mention=not is_command,
            fallback=(
                AccessDecision.deny("not-allowlisted"),
                None,
            ),
        )
        if (
            decision.allowed
            and is_command
            and policy is not None
            and not is_command_authorized(
                policy, message.author, decision, store_allow_from=store_allow_from
            )
        ):
            decision = AccessDecision.deny(
                "not-allowlisted", notify_user=location.is_direct
            )
        route = self._route(location, message.author) if decision.allowed else None
        outcome = GateOutcome(
            decision=decision,
            location=location,
            identity=message.author,
            policy=policy,
            route=route,
            is_command=is_command,
            was_mentioned=location.is_direct or mention.satisfied,
        )
        log_event(
            self._logger,
            logging.INFO,
            "discord.message.gate",
            channel_id=message.channel_id,
            guild_id=message.guild.id if message.guild else None,
            message_id=message.message_id,
            user_id=message.author.id if message.author else None,
            allowed=decision.allowed,
            reason=decision.reason,
            session_key=outcome.session_key,
        )
        if not decision.allowed:
            if decision.notify_user:
                await self._send_notice(message, outcome)
            return outcome
        if (
            self._on_turn is not None
            and route is not None
            and message.author is not None
        ):
            await self._on_turn(
                InboundTurn(
                    channel=DISCORD_CHANNEL,
                    agent_id=route.agent_id,
                    session_key=route.session_key,
                    text=message.content,
                    sender=message.author,
                    location=location,
                    message_id=message.message_id,
                    was_mentioned=outcome.was_mentioned,
                    is_command=is_command,
                )
            )
        return outcome

    async def _send_notice(self, message: DiscordMessage, outcome: GateOutcome) -> None:
        author = message.author
        if self._transport is None or author is None:
            return
        if not self._notices.should_notify(
            DISCORD_CHANNEL, message.channel_id, author.id
        ):
            return
        text = (
            NOT_AUTHORIZED_NOTICE
            if outcome.is_command
            else pairing_notice(DISCORD_CHANNEL, author.id)
        )
        await self._transport.send_message(message.channel_id, text)

    async def handle_message_update(self, payload: Any) -> Optional[GateOutcome]:
        message = parse_message(payload)
        if message is None or not message.edited_timestamp:
            return None
        if self._ignore_author(message.author):
            return denied_outcome(identity=message.author)
        resolved = await self._resolve_location(message.channel_id, message.guild)
        if resolved is None:
            return denied_outcome(identity=message.author)
        location = resolved.location
        store_allow_from = await read_channel_allow_from(
            self._pairing_store, DISCORD_CHANNEL
        )
        decision, policy = self.evaluate(
            location, message.author, store_allow_from, require_mention=False
        )
        if not decision.allowed:
            log_event(
                self._logger,
                logging.INFO,
                "discord.edit.denied",
                channel_id=message.channel_id,
                message_id=message.message_id,
                reason=decision.reason,
            )
            return GateOutcome(
                decision=decision,
                location=location,
                identity=message.author,
                policy=policy,
            )
        route = self._route(location, message.author)
        channel_name = resolved.info.name if resolved.info else None
        where = describe_location(
            location,
            guild=message.guild,
            channel_name=channel_name,
            channel_id=message.channel_id,
        )
        text = f"Discord message edited in {where}."
        context_key = build_context_key(
            DISCORD_CHANNEL,
            DISCORD_EVENT_MESSAGE_EDITED,
            message.channel_id,
            message.message_id,
        )
        enqueued = self._enqueue_system_event(
            text, session_key=route.session_key, context_key=context_key
        )
        return GateOutcome(
            decision=decision,
            location=location,
            identity=message.author,
            policy=policy,
            route=route,
            context_keys=(context_key,) if enqueued else (),
        )

    async def _message_author(
        self, reaction: DiscordReaction
    ) -> Optional[Mapping[str, Any]]:
        if self._fetch_message is None:
            return None
        try:
            message = await self._fetch_message(reaction.channel_id, reaction.message_id)
        except Exception as exc:
            log_event(
                self._logger,
                logging.WARNING,
                "discord.reaction.fetch_message_failed",
                channel_id=reaction.channel_id,
                message_id=reaction.message_id,
                exc=exc,
            )
            return None
        if not isinstance(message, Mapping):
            return None
        author = message.get("author")
        return author if isinstance(author, Mapping) else None

    def _reaction_text(
        self,
        reaction: DiscordReaction,
        user: NormalizedIdentity,
        resolved: _Resolved,
        *,
        author_tag: Optional[str],
        guild_slug: Optional[str],
    ) -> str:
        location = resolved.location
        if guild_slug:
            guild_label = guild_slug
        elif reaction.guild and reaction.guild.name:
            guild_label = normalize_slug(reaction.guild.name)
        elif reaction.guild:
            guild_label = reaction.guild.id
        else:
            guild_label = "dm" if location.is_direct else "group-dm"
        channel_name = resolved.info.name if resolved.info else None
        channel_label = (
            f"#{normalize_slug(channel_name)}"
            if channel_name
            else f"#{reaction.channel_id}"
        )
        text = (
            f"Discord reaction added: {reaction.emoji} by "
            f"{identity_label(user)} on {guild_label} {channel_label} "
            f"msg {reaction.message_id}"
        )
        if author_tag:
            text = f"{text} from {author_tag}"
        return text

    async def handle_reaction(
        self, payload: Any, *, action: str = "added"
    ) -> Optional[GateOutcome]:
        if action != "added":
            log_event(
                self._logger,
                logging.DEBUG,
                "discord.reaction.removal_ignored",
                message_id=_mapping_get(payload, "message_id"),
            )
            return None
        reaction = parse_reaction(payload)
        if reaction is None or reaction.user is None or reaction.user.is_bot:
            return None
        if self._bot_user_id and reaction.user.id == self._bot_user_id:
            return None
        resolved = await self._resolve_location(reaction.channel_id, reaction.guild)
        if resolved is None:
            return None
        location = resolved.location
        store_allow_from = await read_channel_allow_from(
            self._pairing_store, DISCORD_CHANNEL
        )
        scopes = collect_scopes(self._config, DISCORD_CHANNEL, location)
        channel_cfg = self._config.channel(DISCORD_CHANNEL)
        if (
            location.parent_id is not None
            and channel_cfg.groups
            and scopes.group_entry is None
        ):
            return denied_outcome(location=location, identity=reaction.user)
        policy = fold_scopes(
            scopes.scopes,
            kind=location.kind,
            group_matched=scopes.group_entry is not None,
        )
        if policy.policy == "disabled":
            return denied_outcome("disabled", location=location, identity=reaction.user)
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
        mode = policy.reaction_notifications
        author: Optional[Mapping[str, Any]] = None
        author_id = reaction.message_author_id
        if mode == "own" and author_id is None:
            author = await self._message_author(reaction)
            author_id = str(author.get("id")) if author and author.get("id") else None
        emoji = reactions_to_notify(
            mode,
            reaction.user,
            old=(),
            new=(reaction.emoji,),
            message_author_is_bot=bool(
                self._bot_user_id and author_id == self._bot_user_id
            ),
            allowlist=policy.allow_from,
        )
        if not emoji:
            return GateOutcome(
                decision=AccessDecision.allow("open"),
                location=location,
                identity=reaction.user,
                policy=policy,
            )
        route = self._route(location, reaction.user)
        text = self._reaction_text(
            reaction,
            reaction.user,
            resolved,
            author_tag=format_user_tag(author) if author else None,
            guild_slug=scopes.group_entry.slug if scopes.group_entry else None,
        )
        context_key = build_context_key(
            DISCORD_CHANNEL,
            DISCORD_EVENT_REACTION_ADD,
            reaction.channel_id,
            reaction.message_id,
            reaction.user.id,
            detail=reaction.emoji,
        )
        enqueued = self._enqueue_system_event(
            text, session_key=route.session_key, context_key=context_key
        )
        log_event(
            self._logger,
            logging.INFO,
            "discord.reaction.notified",
            channel_id=reaction.channel_id,
            message_id=reaction.message_id,
            session_key=route.session_key,
            enqueued=bool(enqueued),
        )
        return GateOutcome(
            decision=AccessDecision.allow("open"),
            location=location,
            identity=reaction.user,
            policy=policy,
            route=route,
            context_keys=(context_key,) if enqueued else (),
        )


def _mapping_get(payload: Any, key: str) -> Any:
    return payload.get(key) if isinstance(payload, Mapping) else None
