from __future__ import annotations

from pathlib import Path
from typing import Callable

import typer

from ....integrations.chat.errors import PairingStoreError
from ....integrations.chat.pairing_store import SQLitePairingStore
from .utils import echo_json


def register_pairing_commands(
    pairing_app: typer.Typer,
    *,
    raise_exit: Callable,
) -> None:
    @pairing_app.command("add")
    def pairing_add(
        identifier: str = typer.Argument(..., help="User id to pair"),
        channel: str = typer.Option(..., "--channel", help="Channel name"),
        store_path: Path = typer.Option(..., "--store", help="SQLite pairing store"),
    ) -> None:
        """Pair a user id with a channel."""
        store = SQLitePairingStore(store_path)
        try:
            added = store.add(channel, identifier)
        except PairingStoreError as exc:
            raise_exit(str(exc), cause=exc)
        if added:
            typer.echo(f"Paired {identifier} on {channel}.")
        else:
            typer.echo(f"{identifier} is already paired on {channel}.")

    @pairing_app.command("remove")
    def pairing_remove(
        identifier: str = typer.Argument(..., help="User id to unpair"),
        channel: str = typer.Option(..., "--channel", help="Channel name"),
        store_path: Path = typer.Option(..., "--store", help="SQLite pairing store"),
    ) -> None:
        """Remove a paired user id."""
        store = SQLitePairingStore(store_path)
        try:
            removed = store.remove(channel, identifier)
        except PairingStoreError as exc:
            raise_exit(str(exc), cause=exc)
        if not removed:
            raise_exit(f"{identifier} is not paired on {channel}.")
        typer.echo(f"Removed {identifier} from {channel}.")

    @pairing_app.command("list")
    def pairing_list(
        channel: str = typer.Option(..., "--channel", help="Channel name"),
        store_path: Path = typer.Option(..., "--store", help="SQLite pairing store"),
        output_json: bool = typer.Option(False, "--json", help="Emit JSON output"),
    ) -> None:
        """List paired user ids for a channel."""
        store = SQLitePairingStore(store_path)
        try:
            entries = store.list(channel)
        except PairingStoreError as exc:
            raise_exit(str(exc), cause=exc)
        if output_json:
            echo_json({"channel": channel, "allow_from": entries})
            return
        if not entries:
            typer.echo(f"No paired ids for {channel}.")
            return
        typer.echo("\n".join([f"Paired ids for {channel}:"] + [f"- {e}" for e in entries]))
