"""Durable key-value storage and conversation history persistence."""

from __future__ import annotations

import json
import logging
import sqlite3
from collections.abc import Iterable
from pathlib import Path
from typing import Protocol, Union

from .config import SAVE_KEY
from .models import Conversation

logger = logging.getLogger("apin_chat")

MEMORY_PATH = ":memory:"


class KeyValueStore(Protocol):
    def get(self, key: str) -> bytes | None: ...

    def set(self, key: str, value: bytes) -> None: ...


class SQLiteKeyValueStore:
    """Single-table sqlite key-value store for local app state."""

    def __init__(self, path: Union[str, Path]) -> None:
        self.path = path if path == MEMORY_PATH else Path(path)
        if isinstance(self.path, Path):
            self.path.parent.mkdir(parents=True, exist_ok=True)
        self.conn = sqlite3.connect(str(self.path))
        self._tune_pragmas()
        self.conn.execute(
            """
            CREATE TABLE IF NOT EXISTS kv (
                key TEXT PRIMARY KEY,
                value BLOB NOT NULL
            )
            """
        )
        self.conn.commit()

    def _tune_pragmas(self) -> None:
        """Tune sqlite for local low-latency usage."""
        self.conn.execute("PRAGMA journal_mode = WAL")
        self.conn.execute("PRAGMA synchronous = NORMAL")
        self.conn.execute("PRAGMA temp_store = MEMORY")

    def get(self, key: str) -> bytes | None:
        row = self.conn.execute("SELECT value FROM kv WHERE key = ?", (key,)).fetchone()
        if row is None:
            return None
        value = row[0]
        return value.encode("utf-8") if isinstance(value, str) else bytes(value)

    def set(self, key: str, value: bytes) -> None:
        self.conn.execute(
            """
            INSERT INTO kv (key, value) VALUES (?, ?)
            ON CONFLICT(key) DO UPDATE SET value = excluded.value
            """,
            (key, sqlite3.Binary(value)),
        )
        self.conn.commit()

    def close(self) -> None:
        """Close sqlite connection."""
        self.conn.close()

    def __repr__(self) -> str:
        return f"SQLiteKeyValueStore(path={str(self.path)!r})"


def encode_conversations(conversations: Iterable[Conversation]) -> bytes:
    """Serialize the whole ordered collection into one UTF-8 JSON blob."""
    payload = [conversation.to_dict() for conversation in conversations]
    return json.dumps(payload, ensure_ascii=False).encode("utf-8")


def decode_conversations(blob: bytes) -> list[Conversation]:
    """Inverse of ``encode_conversations``; raises on malformed input."""
    parsed = json.loads(blob.decode("utf-8"))
    if not isinstance(parsed, list):
        raise TypeError("saved conversations must be a JSON list")
    return [Conversation.from_dict(item) for item in parsed]


class ConversationStore:
    """Stores the full conversation collection under a single key."""

    def __init__(self, kv: KeyValueStore, key: str = SAVE_KEY) -> None:
        self.kv = kv
        self.key = key

    def load(self) -> list[Conversation]:
        """Load saved conversations; absent or unreadable data yields an empty list."""
        blob = self.kv.get(self.key)
        if blob is None:
            return []
        try:
            return decode_conversations(blob)
        except (ValueError, TypeError, KeyError, RecursionError) as e:
            logger.warning(
                "[ApinChat Store] Discarding unreadable saved conversations under %r: %s",
                self.key,
                e,
            )
            return []

    def save(self, conversations: Iterable[Conversation]) -> None:
        self.kv.set(self.key, encode_conversations(conversations))
