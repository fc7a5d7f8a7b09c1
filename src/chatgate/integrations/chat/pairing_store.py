"""Pairing allowlist store.

The decision core only needs `read_allow_from(channel)`; the SQLite store
also lets operators add and remove paired identifiers from the CLI.
"""

from __future__ import annotations

import asyncio
import logging
import sqlite3
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterable, Optional, Protocol

from ...core.logging_utils import log_event
from ...core.sqlite_utils import open_sqlite
from .allowlist import normalize_allowlist
from .errors import PairingStoreError

logger = logging.getLogger(__name__)

DEFAULT_READ_TIMEOUT_SECONDS = 5.0

_SCHEMA = """
CREATE TABLE IF NOT EXISTS pairing_allow_from (
    channel TEXT NOT NULL,
    identifier TEXT NOT NULL,
    added_at TEXT NOT NULL,
    PRIMARY KEY (channel, identifier)
);
"""


class PairingStore(Protocol):
    async def read_allow_from(self, channel: str) -> list[str]: ...


def _channel_key(channel: str) -> str:
    return (channel or "").strip().lower()


def _has_table(conn: sqlite3.Connection) -> bool:
    row = conn.execute(
        "SELECT 1 FROM sqlite_master WHERE type = 'table' "
        "AND name = 'pairing_allow_from'"
    ).fetchone()
    return row is not None


class InMemoryPairingStore:
    def __init__(self, entries: Optional[dict[str, Iterable[str]]] = None) -> None:
        self._entries: dict[str, list[str]] = {
            _channel_key(channel): list(normalize_allowlist(list(ids)))
            for channel, ids in (entries or {}).items()
        }

    async def read_allow_from(self, channel: str) -> list[str]:
        return list(self._entries.get(_channel_key(channel), []))

    def add(self, channel: str, identifier: str) -> bool:
        ids = self._entries.setdefault(_channel_key(channel), [])
        token = identifier.strip()
        if not token or token in ids:
            return False
        ids.append(token)
        return True

    def remove(self, channel: str, identifier: str) -> bool:
        ids = self._entries.get(_channel_key(channel), [])
        token = identifier.strip()
        if token not in ids:
            return False
        ids.remove(token)
        return True


class SQLitePairingStore:
    def __init__(self, path: Path) -> None:
        self._path = path

    @property
    def path(self) -> Path:
        return self._path

    def _execute(
        self, sql: str, params: tuple = (), *, write: bool = False
    ) -> list[sqlite3.Row]:
        try:
            with open_sqlite(self._path) as conn:
                if write:
                    conn.executescript(_SCHEMA)
                elif not _has_table(conn):
                    return []
                cursor = conn.execute(sql, params)
                rows = cursor.fetchall()
                if write:
                    conn.commit()
                return rows
        except sqlite3.Error as exc:
            raise PairingStoreError(
                f"pairing store {self._path} failed: {exc}"
            ) from exc

    def list(self, channel: str) -> list[str]:
        # Reads never create the database file or its schema.
        if not self._path.exists():
            return []
        rows = self._execute(
            "SELECT identifier FROM pairing_allow_from WHERE channel = ? "
            "ORDER BY added_at, identifier",
            (_channel_key(channel),),
        )
        return [str(row["identifier"]) for row in rows]

    def add(self, channel: str, identifier: str) -> bool:
        token = identifier.strip()
        if not token:
            return False
        existing = self.list(channel)
        if token in existing:
            return False
        self._execute(
            "INSERT OR IGNORE INTO pairing_allow_from (channel, identifier, added_at) "
            "VALUES (?, ?, ?)",
            (
                _channel_key(channel),
                token,
                datetime.now(timezone.utc).isoformat(),
            ),
            write=True,
        )
        return True

    def remove(self, channel: str, identifier: str) -> bool:
        token = identifier.strip()
        if token not in self.list(channel):
            return False
        self._execute(
            "DELETE FROM pairing_allow_from WHERE channel = ? AND identifier = ?",
            (_channel_key(channel), token),
            write=True,
        )
        return True

    async def read_allow_from(self, channel: str) -> list[str]:
        return await asyncio.to_thread(self.list, channel)


async def read_channel_allow_from(
    store: Optional[PairingStore],
    channel: str,
    *,
    timeout_seconds: float = DEFAULT_READ_TIMEOUT_SECONDS,
) -> list[str]:
    """Read the pairing snapshot once; any failure yields an empty list."""

    if store is None:
        return []
    try:
        entries = await asyncio.wait_for(
            store.read_allow_from(channel), timeout=timeout_seconds
        )
    except Exception as exc:
        log_event(
            logger,
            logging.WARNING,
            "chat.pairing_store.read_failed",
            channel=channel,
            exc=exc,
        )
        return []
    return list(normalize_allowlist(list(entries or [])))
