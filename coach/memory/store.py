"""Conversation state stores: abstract interface, SQLite and in-memory implementations."""

from __future__ import annotations

import json
import threading
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterable

from coach.core.db import sqlite_connection

from .models import ConversationState


class ConversationStore(ABC):
    """Get/put slot-filling state by conversation id.

    Writes are last-write-wins; concurrent edits to one conversation are the
    host's concern.
    """

    @abstractmethod
    def get(self, conversation_id: str) -> ConversationState:
        """Return the stored state, or an empty state for unknown ids."""

    @abstractmethod
    def put(self, conversation_id: str, state: ConversationState) -> None:
        """Persist the state for a conversation."""

    @abstractmethod
    def reset(self, conversation_id: str) -> None:
        """Forget state and response chaining for a conversation."""

    @abstractmethod
    def iter_conversations(self) -> Iterable[str]:
        """Iterate over known conversation identifiers."""

    @abstractmethod
    def get_last_response_id(self, conversation_id: str) -> str | None:
        """Return the provider response id of the last completed generation."""

    @abstractmethod
    def set_last_response_id(self, conversation_id: str, response_id: str) -> None:
        """Remember the provider response id for response chaining."""


class SQLiteConversationStore(ConversationStore):
    """SQLite-backed conversation state store."""

    def __init__(self, db_path: Path) -> None:
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._ensure_schema()

    def _ensure_schema(self) -> None:
        """Create required tables if they do not exist."""

        with sqlite_connection(self.db_path) as conn:
            conn.executescript(
                """
                CREATE TABLE IF NOT EXISTS conversations (
                    conversation_id TEXT PRIMARY KEY,
                    state TEXT NOT NULL,
                    last_response_id TEXT,
                    updated_at TEXT NOT NULL
                );
                """
            )

    def get(self, conversation_id: str) -> ConversationState:
        with sqlite_connection(self.db_path) as conn:
            row = conn.execute(
                "SELECT state FROM conversations WHERE conversation_id = ?",
                (conversation_id,),
            ).fetchone()

        if not row:
            return ConversationState.empty()
        return ConversationState.from_dict(json.loads(row["state"]))

    def put(self, conversation_id: str, state: ConversationState) -> None:
        with sqlite_connection(self.db_path) as conn:
            conn.execute(
                """
                INSERT INTO conversations (conversation_id, state, updated_at) VALUES (?, ?, ?)
                ON CONFLICT(conversation_id) DO UPDATE SET
                    state = excluded.state,
                    updated_at = excluded.updated_at
                """,
                (
                    conversation_id,
                    json.dumps(state.to_dict(), separators=(",", ":")),
                    _now(),
                ),
            )

    def reset(self, conversation_id: str) -> None:
        with sqlite_connection(self.db_path) as conn:
            conn.execute("DELETE FROM conversations WHERE conversation_id = ?", (conversation_id,))

    def iter_conversations(self) -> Iterable[str]:
        with sqlite_connection(self.db_path) as conn:
            rows = conn.execute("SELECT conversation_id FROM conversations ORDER BY conversation_id")
            return [row["conversation_id"] for row in rows]

    def get_last_response_id(self, conversation_id: str) -> str | None:
        with sqlite_connection(self.db_path) as conn:
            row = conn.execute(
                "SELECT last_response_id FROM conversations WHERE conversation_id = ?",
                (conversation_id,),
            ).fetchone()
        return row["last_response_id"] if row else None

    def set_last_response_id(self, conversation_id: str, response_id: str) -> None:
        with sqlite_connection(self.db_path) as conn:
            conn.execute(
                """
                INSERT INTO conversations (conversation_id, state, last_response_id, updated_at)
                VALUES (?, ?, ?, ?)
                ON CONFLICT(conversation_id) DO UPDATE SET
                    last_response_id = excluded.last_response_id,
                    updated_at = excluded.updated_at
                """,
                (
                    conversation_id,
                    json.dumps(ConversationState.empty().to_dict(), separators=(",", ":")),
                    response_id,
                    _now(),
                ),
            )


class InMemoryConversationStore(ConversationStore):
    """Process-local store for tests and single-worker development."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._states: dict[str, ConversationState] = {}
        self._response_ids: dict[str, str] = {}

    def get(self, conversation_id: str) -> ConversationState:
        with self._lock:
            return self._states.get(conversation_id, ConversationState.empty())

    def put(self, conversation_id: str, state: ConversationState) -> None:
        with self._lock:
            self._states[conversation_id] = state

    def reset(self, conversation_id: str) -> None:
        with self._lock:
            self._states.pop(conversation_id, None)
            self._response_ids.pop(conversation_id, None)

    def iter_conversations(self) -> Iterable[str]:
        with self._lock:
            return sorted(set(self._states) | set(self._response_ids))

    def get_last_response_id(self, conversation_id: str) -> str | None:
        with self._lock:
            return self._response_ids.get(conversation_id)

    def set_last_response_id(self, conversation_id: str, response_id: str) -> None:
        with self._lock:
            self._response_ids[conversation_id] = response_id


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()
