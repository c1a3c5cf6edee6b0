"""
Conversation checkpoints keyed by thread_id.

ConversationState is the snapshot persisted between turns: the OpenAI-format
message history and every Record retrieved on the thread. Two backends:
InMemoryCheckpointStore (process-local) and SqliteCheckpointStore (data/checkpoints.db,
table checkpoints(thread_id, state, updated_at)). Reads and writes of one
thread are serialized; the last save of a turn wins.
"""

import asyncio
import json
import logging
import sqlite3
import threading
from collections import defaultdict
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Protocol

from app.core.errors import CheckpointUnavailable
from app.core.timeutil import utcnow
from app.schemas.feed import Record

logger = logging.getLogger(__name__)

_TABLE = "checkpoints"


@dataclass
class ConversationState:
    thread_id: str
    messages: list[dict[str, Any]] = field(default_factory=list)
    records: list[Record] = field(default_factory=list)

    def to_json(self) -> str:
        return json.dumps(
            {
                "thread_id": self.thread_id,
                "messages": self.messages,
                "records": [r.to_wire() for r in self.records],
            }
        )

    @classmethod
    def from_json(cls, raw: str) -> "ConversationState":
        data = json.loads(raw)
        return cls(
            thread_id=data["thread_id"],
            messages=list(data.get("messages") or []),
            records=[Record.model_validate(r) for r in data.get("records") or []],
        )


def _decode(thread_id: str, raw: str | None) -> ConversationState | None:
    if raw is None:
        return None
    try:
        return ConversationState.from_json(raw)
    except (ValueError, KeyError, TypeError) as e:
        raise CheckpointUnavailable(f"stored conversation {thread_id!r} is unreadable: {e}") from e


class CheckpointStore(Protocol):
    async def load(self, thread_id: str) -> ConversationState | None: ...

    async def save(self, thread_id: str, state: ConversationState) -> None: ...


class _KeyLocks:
    """One threading.Lock per thread_id."""

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: dict[str, threading.Lock] = defaultdict(threading.Lock)

    def get(self, key: str) -> threading.Lock:
        with self._guard:
            return self._locks[key]


class InMemoryCheckpointStore:
    """Keeps serialized snapshots so callers never share mutable state with the store."""

    def __init__(self) -> None:
        self._snapshots: dict[str, str] = {}
        self._locks = _KeyLocks()

    async def load(self, thread_id: str) -> ConversationState | None:
        with self._locks.get(thread_id):
            raw = self._snapshots.get(thread_id)
        state = _decode(thread_id, raw)
        logger.info("[checkpoint:memory:load] thread_id=%s found=%s", thread_id[:16], state is not None)
        return state

    async def save(self, thread_id: str, state: ConversationState) -> None:
        raw = state.to_json()
        with self._locks.get(thread_id):
            self._snapshots[thread_id] = raw
        logger.info("[checkpoint:memory:save] thread_id=%s messages=%d records=%d",
                    thread_id[:16], len(state.messages), len(state.records))


class SqliteCheckpointStore:
    """One row per thread. Blocking sqlite3 calls run in a worker thread."""

    def __init__(self, db_path: str | Path) -> None:
        self._db_path = Path(db_path)
        self._locks = _KeyLocks()
        self._initialized = False

    def _get_conn(self) -> sqlite3.Connection:
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        return sqlite3.connect(str(self._db_path))

    def init_db(self) -> None:
        """Create the checkpoints table if it does not exist."""
        conn = self._get_conn()
        try:
            conn.execute(
                f"""
                CREATE TABLE IF NOT EXISTS {_TABLE} (
                    thread_id TEXT PRIMARY KEY,
                    state TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
                """
            )
            conn.commit()
        finally:
            conn.close()
        self._initialized = True

    def _load_sync(self, thread_id: str) -> str | None:
        if not self._initialized:
            self.init_db()
        with self._locks.get(thread_id):
            conn = self._get_conn()
            try:
                row = conn.execute(f"SELECT state FROM {_TABLE} WHERE thread_id = ?", (thread_id,)).fetchone()
            finally:
                conn.close()
        return row[0] if row else None

    def _save_sync(self, thread_id: str, raw: str) -> None:
        if not self._initialized:
            self.init_db()
        with self._locks.get(thread_id):
            conn = self._get_conn()
            try:
                conn.execute(
                    f"""
                    INSERT INTO {_TABLE} (thread_id, state, updated_at) VALUES (?, ?, ?)
                    ON CONFLICT(thread_id) DO UPDATE SET state = excluded.state, updated_at = excluded.updated_at
                    """,
                    (thread_id, raw, utcnow().isoformat()),
                )
                conn.commit()
            finally:
                conn.close()

    async def load(self, thread_id: str) -> ConversationState | None:
        try:
            raw = await asyncio.to_thread(self._load_sync, thread_id)
        except (sqlite3.Error, OSError) as e:
            raise CheckpointUnavailable(f"could not load conversation {thread_id!r}: {e}") from e
        state = _decode(thread_id, raw)
        logger.info("[checkpoint:sqlite:load] thread_id=%s found=%s", thread_id[:16], state is not None)
        return state

    async def save(self, thread_id: str, state: ConversationState) -> None:
        raw = state.to_json()
        try:
            await asyncio.to_thread(self._save_sync, thread_id, raw)
        except (sqlite3.Error, OSError) as e:
            raise CheckpointUnavailable(f"could not save conversation {thread_id!r}: {e}") from e
        logger.info("[checkpoint:sqlite:save] thread_id=%s messages=%d records=%d",
                    thread_id[:16], len(state.messages), len(state.records))

    def clear_all(self) -> None:
        """Delete all rows."""
        if not self._initialized:
            self.init_db()
        conn = self._get_conn()
        try:
            conn.execute(f"DELETE FROM {_TABLE}")
            conn.commit()
            logger.info("[checkpoint:sqlite] cleared all threads")
        finally:
            conn.close()
