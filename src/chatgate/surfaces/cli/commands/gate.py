from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Any, Callable, Mapping, Optional

import typer

from ....integrations.chat.config import ChatConfig
from ....integrations.chat.gate import GateOutcome
from ....integrations.chat.models import LOCATION_KINDS, NormalizedLocation
from ....integrations.chat.pairing_store import SQLitePairingStore
from ....integrations.chat.scope import resolve_effective_policy
from ....integrations.chat.system_events import SystemEventQueue
from ....integrations.discord.channel_cache import ChannelInfoCache
from ....integrations.discord.handlers import DiscordEventHandler
from ....integrations.telegram.handlers import TelegramEventHandler
from .utils import echo_json, load_json_file


class _RecordingTransport:
    """Captures outbound notices instead of sending them."""

    def __init__(self) -> None:
        self.sent: list[dict[str, Any]] = []

    async def send_message(self, chat_id: str, text: str, **kwargs: Any) -> None:
        self.sent.append({"chat_id": chat_id, "text": text})

    async def answer_callback_query(self, callback_query_id: str, **kwargs: Any) -> None:
        self.sent.append({"callback_query_id": callback_query_id, "answered": True})


def _static_channel_fetcher(channels: Mapping[str, Any]):
    async def fetch(channel_id: str) -> Optional[Mapping[str, Any]]:
        entry = channels.get(channel_id)
        return entry if isinstance(entry, Mapping) else None

    return fetch


async def _evaluate_event(
    config: ChatConfig,
    channel: str,
    event: Mapping[str, Any],
    *,
    store: Optional[SQLitePairingStore],
    queue: SystemEventQueue,
    transport: _RecordingTransport,
    bot_id: Optional[str],
    bot_username: Optional[str],
) -> Optional[GateOutcome]:
    if channel == "telegram":
        telegram = TelegramEventHandler(
            config,
            transport=transport,
            enqueue_system_event=queue.enqueue,
            pairing_store=store,
            bot_id=bot_id,
            bot_username=bot_username,
        )
        for chat_id, message_id in event.get("sent_messages") or []:
            telegram.sent_messages.record(chat_id, message_id)
        return await telegram.handle_update(event)
    channels = event.get("channels")
    discord = DiscordEventHandler(
        config,
        channel_cache=ChannelInfoCache(
            _static_channel_fetcher(channels if isinstance(channels, Mapping) else {})
        ),
        enqueue_system_event=queue.enqueue,
        transport=transport,
        pairing_store=store,
        bot_user_id=bot_id,
    )
    data = event.get("d")
    return await discord.handle_dispatch(
        str(event.get("t") or ""), data if isinstance(data, Mapping) else {}
    )


def register_gate_commands(
    app: typer.Typer,
    *,
    require_chat_config: Callable[[Optional[Path]], ChatConfig],
    raise_exit: Callable,
) -> None:
    @app.command("check")
    def check(
        event_path: Path = typer.Option(
            ..., "--event", help="JSON file with a Telegram update or Discord dispatch"
        ),
        channel: str = typer.Option("telegram", "--channel", help="telegram|discord"),
        config_path: Optional[Path] = typer.Option(
            None, "--config", help="chatgate YAML config"
        ),
        store_path: Optional[Path] = typer.Option(
            None, "--store", help="SQLite pairing store"
        ),
        bot_id: Optional[str] = typer.Option(None, "--bot-id", help="Bot user id"),
        bot_username: Optional[str] = typer.Option(
            None, "--bot-username", help="Bot username (Telegram)"
        ),
        output_json: bool = typer.Option(False, "--json", help="Emit JSON output"),
    ) -> None:
        """Run one platform event through the gate without side effects."""
        channel_key = channel.strip().lower()
        if channel_key not in ("telegram", "discord"):
            raise_exit(f"Unsupported channel: {channel}")
        config = require_chat_config(config_path)
        event = load_json_file(event_path)
        if not isinstance(event, Mapping):
            raise_exit(f"Event file must contain a JSON object: {event_path}")
        queue = SystemEventQueue()
        transport = _RecordingTransport()
        outcome = asyncio.run(
            _evaluate_event(
                config,
                channel_key,
                event,
                store=SQLitePairingStore(store_path) if store_path else None,
                queue=queue,
                transport=transport,
                bot_id=bot_id,
                bot_username=bot_username,
            )
        )
        if outcome is None:
            typer.echo("Event ignored.")
            return
        payload = outcome.as_dict()
        payload["outbound"] = transport.sent
        if output_json:
            echo_json(payload)
            return
        verdict = "allowed" if outcome.allowed else "denied"
        lines = [f"Decision: {verdict} ({outcome.decision.reason})"]
        if outcome.policy is not None:
            lines.append(
                "Policy: {policy} require_mention={mention} reactions={reactions}".format(
                    policy=outcome.policy.policy,
                    mention=outcome.policy.require_mention,
                    reactions=outcome.policy.reaction_notifications,
                )
            )
        if outcome.route is not None:
            lines.append(f"Agent: {outcome.route.agent_id}")
            lines.append(f"Session key: {outcome.route.session_key}")
        for context_key in outcome.context_keys:
            lines.append(f"Context key: {context_key}")
        for item in transport.sent:
            if "text" in item:
                lines.append(f"Notice: {item['text']}")
        typer.echo("\n".join(lines))

    @app.command("policy")
    def policy(
        channel: str = typer.Option(..., "--channel", help="Channel name"),
        location_kind: str = typer.Option(
            ..., "--location-kind", help="direct|group|channel"
        ),
        location_id: str = typer.Option(..., "--location-id", help="Chat/channel id"),
        topic: Optional[str] = typer.Option(
            None, "--topic", help="Topic or thread id"
        ),
        parent: Optional[str] = typer.Option(
            None, "--parent", help="Enclosing guild id (Discord)"
        ),
        name: Optional[str] = typer.Option(None, "--name", help="Channel name"),
        config_path: Optional[Path] = typer.Option(
            None, "--config", help="chatgate YAML config"
        ),
        output_json: bool = typer.Option(False, "--json", help="Emit JSON output"),
    ) -> None:
        """Print the effective policy for one location."""
        kind = location_kind.strip().lower()
        if kind not in LOCATION_KINDS:
            raise_exit(
                f"--location-kind must be one of: {', '.join(LOCATION_KINDS)}"
            )
        config = require_chat_config(config_path)
        location = NormalizedLocation(
            kind=kind,  # type: ignore[arg-type]
            id=location_id,
            name=name,
            parent_id=parent,
            topic_or_thread_id=topic,
        )
        effective = resolve_effective_policy(config, channel, location)
        if output_json:
            echo_json(
                {
                    "policy": effective.policy,
                    "allow_from": list(effective.allow_from),
                    "require_mention": effective.require_mention,
                    "reaction_notifications": effective.reaction_notifications,
                    "group_matched": effective.group_matched,
                }
            )
            return
        allow_from = ", ".join(effective.allow_from) or "(none)"
        typer.echo(
            "\n".join(
                [
                    f"policy: {effective.policy}",
                    f"allow_from: {allow_from}",
                    f"require_mention: {effective.require_mention}",
                    f"reaction_notifications: {effective.reaction_notifications}",
                    f"group_matched: {effective.group_matched}",
                ]
            )
        )
