"""Chat value records: a single turn (``Message``) and a thread (``Conversation``)."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any
from uuid import UUID, uuid4

from .config import DEFAULT_TITLE, TITLE_WORD_LIMIT


def utc_now() -> datetime:
    """Return the current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def derive_title(content: str) -> str:
    """Title from the first few whitespace-delimited words of an opening message."""
    words = content.split()
    if not words:
        return DEFAULT_TITLE
    return " ".join(words[:TITLE_WORD_LIMIT])


def _parse_timestamp(value: Any) -> datetime:
    if not isinstance(value, str):
        raise TypeError(f"timestamp must be an ISO-8601 string, got {type(value).__name__}")
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


@dataclass(frozen=True)
class Message:
    """One chat turn, authored either by the user or by the assistant."""

    content: str
    is_user: bool
    id: UUID = field(default_factory=uuid4)
    timestamp: datetime = field(default_factory=utc_now)

    @classmethod
    def from_user(cls, content: str) -> Message:
        return cls(content=content, is_user=True)

    @classmethod
    def from_assistant(cls, content: str) -> Message:
        return cls(content=content, is_user=False)

    def to_dict(self) -> dict[str, Any]:
        """Persistable message representation."""
        return {
            "id": str(self.id),
            "content": self.content,
            "is_user": self.is_user,
            "timestamp": self.timestamp.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Message:
        """Rebuild a message; raises on missing or malformed fields."""
        content = data["content"]
        is_user = data["is_user"]
        if not isinstance(content, str):
            raise TypeError("message content must be a string")
        if not isinstance(is_user, bool):
            raise TypeError("message is_user must be a boolean")
        return cls(
            content=content,
            is_user=is_user,
            id=UUID(str(data["id"])),
            timestamp=_parse_timestamp(data["timestamp"]),
        )


@dataclass
class Conversation:
    """An ordered, append-only thread of messages plus its metadata.

    ``last_message_at`` tracks the timestamp of the most recently appended
    message. The title starts as ``DEFAULT_TITLE`` and is replaced once, by the
    opening words of the first non-blank user message.
    """

    title: str = DEFAULT_TITLE
    messages: list[Message] = field(default_factory=list)
    id: UUID = field(default_factory=uuid4)
    created_at: datetime = field(default_factory=utc_now)
    last_message_at: datetime | None = None

    def __post_init__(self) -> None:
        if self.last_message_at is None:
            self.last_message_at = self.created_at

    def add_message(self, message: Message) -> None:
        self.messages.append(message)
        self.last_message_at = message.timestamp

        if self.title == DEFAULT_TITLE and message.is_user and message.content:
            self.title = derive_title(message.content)

    def to_dict(self) -> dict[str, Any]:
        """Persistable conversation representation."""
        return {
            "id": str(self.id),
            "title": self.title,
            "created_at": self.created_at.isoformat(),
            "last_message_at": self.last_message_at.isoformat(),
            "messages": [message.to_dict() for message in self.messages],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Conversation:
        """Rebuild a conversation; raises on missing or malformed fields."""
        title = data["title"]
        raw_messages = data["messages"]
        if not isinstance(title, str):
            raise TypeError("conversation title must be a string")
        if not isinstance(raw_messages, list):
            raise TypeError("conversation messages must be a list")
        return cls(
            title=title,
            messages=[Message.from_dict(item) for item in raw_messages],
            id=UUID(str(data["id"])),
            created_at=_parse_timestamp(data["created_at"]),
            last_message_at=_parse_timestamp(data["last_message_at"]),
        )
