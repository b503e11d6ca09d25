"""Queue snapshot stores: SQLite-backed and in-memory."""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

from continuous_playback.domain.music.repository import QueueSnapshot, SnapshotStore
from continuous_playback.domain.shared.constants import DatabaseColumns, DatabaseTables

if TYPE_CHECKING:
    from .database import Database

_TABLE = DatabaseTables.PLAYBACK_SNAPSHOTS
_KEY = DatabaseColumns.SESSION_KEY
_PAYLOAD = DatabaseColumns.PAYLOAD
_SAVED_AT = DatabaseColumns.SAVED_AT


class SQLiteSnapshotStore(SnapshotStore):
    """One row per session; the snapshot is stored as JSON."""

    def __init__(self, database: Database) -> None:
        self._db = database

    async def save(self, session_key: str, snapshot: QueueSnapshot) -> None:
        await self._db.execute(
            f"""
            INSERT INTO {_TABLE} ({_KEY}, {_PAYLOAD}, {_SAVED_AT})
            VALUES (?, ?, ?)
            ON CONFLICT({_KEY}) DO UPDATE SET
                {_PAYLOAD} = excluded.{_PAYLOAD},
                {_SAVED_AT} = excluded.{_SAVED_AT}
            """,
            (session_key, snapshot.model_dump_json(), snapshot.saved_at.isoformat()),
        )

    async def load(self, session_key: str) -> QueueSnapshot | None:
        row = await self._db.fetch_one(
            f"SELECT {_PAYLOAD} FROM {_TABLE} WHERE {_KEY} = ?", (session_key,)
        )
        if row is None:
            return None
        return QueueSnapshot.model_validate_json(row[_PAYLOAD])

    async def clear(self, session_key: str) -> bool:
        deleted = await self._db.execute(f"DELETE FROM {_TABLE} WHERE {_KEY} = ?", (session_key,))
        return deleted > 0


class InMemorySnapshotStore(SnapshotStore):
    """Process-local store, safe to share between sessions on one event loop."""

    def __init__(self) -> None:
        self._snapshots: dict[str, str] = {}
        self._lock = asyncio.Lock()

    async def save(self, session_key: str, snapshot: QueueSnapshot) -> None:
        async with self._lock:
            self._snapshots[session_key] = snapshot.model_dump_json()

    async def load(self, session_key: str) -> QueueSnapshot | None:
        async with self._lock:
            payload = self._snapshots.get(session_key)
        if payload is None:
            return None
        return QueueSnapshot.model_validate_json(payload)

    async def clear(self, session_key: str) -> bool:
        async with self._lock:
            return self._snapshots.pop(session_key, None) is not None

    def __len__(self) -> int:
        return len(self._snapshots)
