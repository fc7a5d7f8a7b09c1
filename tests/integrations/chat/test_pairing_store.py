from __future__ import annotations

import logging
import sqlite3
from pathlib import Path

import pytest

from chatgate.integrations.chat.errors import PairingStoreError
from chatgate.integrations.chat.pairing_store import (
    InMemoryPairingStore,
    SQLitePairingStore,
    read_channel_allow_from,
)


class _FailingStore:
    async def read_allow_from(self, channel: str) -> list[str]:
        raise PairingStoreError("database is locked")


def test_sqlite_store_add_list_remove(tmp_path: Path) -> None:
    store = SQLitePairingStore(tmp_path / "state" / "pairing.sqlite3")
    assert store.add("Telegram", "123")
    assert store.add("telegram", "456")
    assert not store.add("telegram", "123")
    assert not store.add("telegram", "  ")
    assert store.list("telegram") == ["123", "456"]
    assert store.list("discord") == []

    assert store.remove("telegram", "123")
    assert not store.remove("telegram", "123")
    assert store.list("telegram") == ["456"]


def test_sqlite_store_persists_across_instances(tmp_path: Path) -> None:
    path = tmp_path / "pairing.sqlite3"
    SQLitePairingStore(path).add("discord", "u-1")
    assert SQLitePairingStore(path).list("discord") == ["u-1"]


def test_sqlite_store_wraps_database_errors(tmp_path: Path) -> None:
    directory = tmp_path / "not-a-file"
    directory.mkdir()
    store = SQLitePairingStore(directory)
    with pytest.raises(PairingStoreError) as excinfo:
        store.list("telegram")
    assert excinfo.value.recoverable is True
    assert excinfo.value.user_message == "Pairing store unavailable."


def test_sqlite_store_reads_do_not_create_the_database(tmp_path: Path) -> None:
    path = tmp_path / "state" / "pairing.sqlite3"
    store = SQLitePairingStore(path)
    assert store.list("telegram") == []
    assert not store.remove("telegram", "1")
    assert not path.parent.exists()


def test_sqlite_store_reads_empty_before_schema_exists(tmp_path: Path) -> None:
    path = tmp_path / "pairing.sqlite3"
    sqlite3.connect(path).close()
    assert SQLitePairingStore(path).list("telegram") == []
    assert SQLitePairingStore(path).add("telegram", "5")
    assert SQLitePairingStore(path).list("telegram") == ["5"]


@pytest.mark.anyio
async def test_read_allow_from_through_thread(tmp_path: Path) -> None:
    store = SQLitePairingStore(tmp_path / "pairing.sqlite3")
    store.add("telegram", "user:77")
    assert await read_channel_allow_from(store, "telegram") == ["77"]


@pytest.mark.anyio
async def test_missing_store_reads_empty() -> None:
    assert await read_channel_allow_from(None, "telegram") == []


@pytest.mark.anyio
async def test_failing_store_reads_empty_and_logs(
    caplog: pytest.LogCaptureFixture,
) -> None:
    caplog.set_level(logging.WARNING)
    assert await read_channel_allow_from(_FailingStore(), "telegram") == []
    assert "chat.pairing_store.read_failed" in caplog.text


@pytest.mark.anyio
async def test_in_memory_store() -> None:
    store = InMemoryPairingStore({"Telegram": ["1", "user:2"]})
    assert await store.read_allow_from("telegram") == ["1", "2"]
    assert store.add("telegram", "3")
    assert not store.add("telegram", "3")
    assert store.remove("telegram", "1")
    assert await store.read_allow_from("TELEGRAM") == ["2", "3"]
