from __future__ import annotations

import json
from pathlib import Path

from typer.testing import CliRunner

from chatgate import __version__
from chatgate.surfaces.cli.cli import app

runner = CliRunner()


def test_version_flag() -> None:
    result = runner.invoke(app, ["--version"])
    assert result.exit_code == 0
    assert result.stdout.strip() == f"chatgate {__version__}"


def test_pairing_help_lists_commands() -> None:
    result = runner.invoke(app, ["pairing", "--help"])
    assert result.exit_code == 0
    for command in ("add", "remove", "list"):
        assert command in result.stdout


def test_pairing_add_list_remove(tmp_path: Path) -> None:
    store = tmp_path / "pairing.sqlite3"
    added = runner.invoke(
        app, ["pairing", "add", "123", "--channel", "telegram", "--store", str(store)]
    )
    assert added.exit_code == 0, added.output
    assert "Paired 123 on telegram." in added.stdout

    again = runner.invoke(
        app, ["pairing", "add", "123", "--channel", "telegram", "--store", str(store)]
    )
    assert "already paired" in again.stdout

    listed = runner.invoke(
        app,
        ["pairing", "list", "--channel", "telegram", "--store", str(store), "--json"],
    )
    assert listed.exit_code == 0
    assert json.loads(listed.stdout) == {"channel": "telegram", "allow_from": ["123"]}

    removed = runner.invoke(
        app,
        ["pairing", "remove", "123", "--channel", "telegram", "--store", str(store)],
    )
    assert removed.exit_code == 0
    empty = runner.invoke(
        app, ["pairing", "list", "--channel", "telegram", "--store", str(store)]
    )
    assert "No paired ids for telegram." in empty.stdout


def test_pairing_remove_unknown_id_fails(tmp_path: Path) -> None:
    result = runner.invoke(
        app,
        [
            "pairing",
            "remove",
            "404",
            "--channel",
            "discord",
            "--store",
            str(tmp_path / "pairing.sqlite3"),
        ],
    )
    assert result.exit_code == 1
    assert "404 is not paired on discord." in result.output
