"""
ApinChat: a local-first chat core built on Apple's on-device Foundation Models.

The conversation manager keeps an ordered list of conversations, drives one
generation at a time per conversation through the model provider adapter, and
persists the whole history locally after every change.
"""

from .exceptions import (
    ChatServiceError,
    GenerationFailedError,
    ModelUnavailableError,
    SessionBusyError,
)
from .manager import ChatState, ConversationManager
from .models import Conversation, Message
from .protocols import Availability, UnavailableReason, create_backend
from .provider import ModelProvider, SessionState
from .storage import ConversationStore, SQLiteKeyValueStore

__all__ = [
    "Availability",
    "ChatServiceError",
    "ChatState",
    "Conversation",
    "ConversationManager",
    "ConversationStore",
    "GenerationFailedError",
    "Message",
    "ModelProvider",
    "ModelUnavailableError",
    "SQLiteKeyValueStore",
    "SessionBusyError",
    "SessionState",
    "UnavailableReason",
    "create_backend",
]
