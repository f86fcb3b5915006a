"""SQLite storage engine.

All stores live in one database file. The log of every store is kept in
the ``entries`` table; views are computed from it on read. SQLite work
runs in a worker thread so the event loop is never blocked on disk I/O.
"""

from __future__ import annotations

import asyncio
import json
import sqlite3
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from peerhost.errors import StorageError
from peerhost.storage.engine import (
    BaseStorageEngine,
    Entry,
    EntryOp,
    StoreKind,
    entry_hash,
    materialize,
)

DB_FILENAME = "stores.db"


class SQLiteStorageEngine(BaseStorageEngine):
    """Storage engine persisting store logs in SQLite."""

    def __init__(self, directory: str | Path):
        """Initialize the engine.

        Args:
            directory: Directory holding the database file
        """
        super().__init__()
        self.directory = Path(directory).expanduser()
        self.directory.mkdir(parents=True, exist_ok=True)
        self.db_path = self.directory / DB_FILENAME
        self._initialize_db()

    def _initialize_db(self) -> None:
        """Create tables and indexes if they don't exist."""
        with sqlite3.connect(self.db_path) as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS stores (
                    name TEXT PRIMARY KEY,
                    type TEXT NOT NULL,
                    created_at TIMESTAMP NOT NULL
                )
            """)

            conn.execute("""
                CREATE TABLE IF NOT EXISTS entries (
                    seq INTEGER PRIMARY KEY AUTOINCREMENT,
                    store TEXT NOT NULL,
                    hash TEXT NOT NULL,
                    op TEXT NOT NULL,
                    key TEXT,
                    value TEXT,
                    created_at TIMESTAMP NOT NULL,
                    FOREIGN KEY (store) REFERENCES stores(name) ON DELETE CASCADE
                )
            """)

            conn.execute("CREATE INDEX IF NOT EXISTS idx_entries_store ON entries(store, seq)")
            conn.execute("CREATE INDEX IF NOT EXISTS idx_entries_key ON entries(store, key)")

            conn.commit()

    async def _store_kind(self, name: str) -> StoreKind | None:
        return await asyncio.to_thread(self._store_kind_sync, name)

    def _store_kind_sync(self, name: str) -> StoreKind | None:
        with sqlite3.connect(self.db_path) as conn:
            row = conn.execute("SELECT type FROM stores WHERE name = ?", (name,)).fetchone()
        return StoreKind(row[0]) if row else None

    async def _create_store(self, name: str, kind: StoreKind) -> None:
        await asyncio.to_thread(self._create_store_sync, name, kind)

    def _create_store_sync(self, name: str, kind: StoreKind) -> None:
        with sqlite3.connect(self.db_path) as conn:
            conn.execute(
                "INSERT OR IGNORE INTO stores (name, type, created_at) VALUES (?, ?, ?)",
                (name, str(kind), datetime.now(UTC).isoformat()),
            )
            conn.commit()

    async def append(self, name: str, op: EntryOp, key: str | None, value: Any) -> Entry:
        try:
            encoded = json.dumps(value)
        except (TypeError, ValueError) as e:
            raise StorageError(f"Value for store '{name}' is not JSON serializable: {e}") from e

        entry = Entry(hash=entry_hash(name, op, key, value), op=op, key=key, value=value)
        await asyncio.to_thread(self._insert_entry, name, entry, encoded)
        return entry

    def _insert_entry(self, name: str, entry: Entry, encoded: str) -> None:
        with sqlite3.connect(self.db_path) as conn:
            conn.execute(
                """
                INSERT INTO entries (store, hash, op, key, value, created_at)
                VALUES (?, ?, ?, ?, ?, ?)
            """,
                (
                    name,
                    entry.hash,
                    str(entry.op),
                    entry.key,
                    encoded,
                    entry.created_at.isoformat(),
                ),
            )
            conn.commit()

    async def latest_value(self, name: str, key: str) -> Any:
        return await asyncio.to_thread(self._latest_value_sync, name, key)

    def _latest_value_sync(self, name: str, key: str) -> Any:
        with sqlite3.connect(self.db_path) as conn:
            row = conn.execute(
                """
                SELECT op, value FROM entries
                WHERE store = ? AND key = ? AND op IN ('PUT', 'DEL')
                ORDER BY seq DESC LIMIT 1
            """,
                (name, key),
            ).fetchone()
        if not row or row[0] == EntryOp.DEL:
            return None
        return json.loads(row[1])

    async def items(self, name: str) -> dict[str, Any]:
        return await asyncio.to_thread(self._items_sync, name)

    def _items_sync(self, name: str) -> dict[str, Any]:
        values, _ = materialize(self._read_log(name))
        return values

    async def entries(self, name: str) -> list[Entry]:
        return await asyncio.to_thread(self._entries_sync, name)

    def _entries_sync(self, name: str) -> list[Entry]:
        _, live = materialize(self._read_log(name))
        return live

    def _read_log(self, name: str) -> list[Entry]:
        with sqlite3.connect(self.db_path) as conn:
            conn.row_factory = sqlite3.Row
            rows = conn.execute(
                "SELECT hash, op, key, value, created_at FROM entries WHERE store = ? ORDER BY seq",
                (name,),
            ).fetchall()
        return [
            Entry(
                hash=row["hash"],
                op=EntryOp(row["op"]),
                key=row["key"],
                value=json.loads(row["value"]) if row["value"] is not None else None,
                created_at=datetime.fromisoformat(row["created_at"]),
            )
            for row in rows
        ]
