"""
Conversation session manager: the single source of truth for chat state.

The manager owns the ordered conversation collection (most recent first), the
selection, the loading flag and the last error. It is the only writer of
persisted state: every mutation saves the full collection. Observers registered
with ``subscribe`` receive a ``ChatState`` snapshot after each published change.

All mutations happen on the event loop's thread; the only suspension point is
the call into the model provider while a reply is generated.
"""

from __future__ import annotations

import copy
import logging
from collections.abc import Callable
from dataclasses import dataclass
from uuid import UUID

from .exceptions import ChatServiceError, SessionBusyError
from .models import Conversation, Message
from .protocols import Availability
from .provider import ModelProvider
from .storage import ConversationStore

logger = logging.getLogger("apin_chat")


@dataclass(frozen=True)
class ChatState:
    """Immutable snapshot of everything the presentation layer renders."""

    conversations: tuple[Conversation, ...]
    selected_id: UUID | None
    is_loading: bool
    error_message: str | None
    availability: Availability


StateCallback = Callable[[ChatState], None]


class ConversationManager:
    """Owns conversations and sequences send operations through a ``ModelProvider``."""

    def __init__(self, provider: ModelProvider, store: ConversationStore) -> None:
        self.provider = provider
        self.store = store
        self._conversations: list[Conversation] = store.load()
        self._selected_id: UUID | None = None
        self._in_flight: set[UUID] = set()
        self._error_message: str | None = None
        self._availability: Availability = provider.query_availability()
        self._subscribers: list[StateCallback] = []
        logger.debug(
            "[ApinChat Manager] Loaded %d saved conversation(s).", len(self._conversations)
        )

    # -- published state ---------------------------------------------------

    @property
    def conversations(self) -> list[Conversation]:
        return list(self._conversations)

    @property
    def selected_id(self) -> UUID | None:
        return self._selected_id

    @property
    def is_loading(self) -> bool:
        return bool(self._in_flight)

    @property
    def error_message(self) -> str | None:
        return self._error_message

    @property
    def availability(self) -> Availability:
        return self._availability

    @property
    def selected_conversation(self) -> Conversation | None:
        if self._selected_id is None:
            return None
        return self.find_conversation(self._selected_id)

    @property
    def is_ai_available(self) -> bool:
        return self._availability.is_available

    @property
    def availability_message(self) -> str:
        return self._availability.status_message()

    @property
    def state(self) -> ChatState:
        return ChatState(
            conversations=tuple(copy.deepcopy(self._conversations)),
            selected_id=self._selected_id,
            is_loading=self.is_loading,
            error_message=self._error_message,
            availability=self._availability,
        )

    def subscribe(self, callback: StateCallback) -> Callable[[], None]:
        """Register an observer; returns a callable that unregisters it."""
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def _notify(self) -> None:
        if not self._subscribers:
            return
        snapshot = self.state
        for callback in list(self._subscribers):
            try:
                callback(snapshot)
            except Exception:
                logger.exception("[ApinChat Manager] State observer %r failed.", callback)

    def _save(self) -> None:
        self.store.save(self._conversations)

    # -- intents -------------------------------------------------------------

    def find_conversation(self, conversation_id: UUID) -> Conversation | None:
        for conversation in self._conversations:
            if conversation.id == conversation_id:
                return conversation
        return None

    def create_conversation(self) -> Conversation:
        """Create a conversation at the top of the list and select it."""
        conversation = Conversation()
        self._conversations.insert(0, conversation)
        self._selected_id = conversation.id
        self.provider.create_session(conversation.id)
        self._save()
        self._notify()
        return conversation

    def select_conversation(self, conversation_id: UUID) -> None:
        """Select a conversation; unknown ids leave the selection unchanged."""
        if self.find_conversation(conversation_id) is None:
            logger.debug("[ApinChat Manager] Ignoring selection of unknown id %s.", conversation_id)
            return
        self._selected_id = conversation_id
        self._notify()

    def delete_conversation(self, conversation_id: UUID) -> None:
        """Delete a conversation and its provider session, reselecting if needed."""
        self._conversations = [c for c in self._conversations if c.id != conversation_id]
        self.provider.remove_session(conversation_id)

        if self._selected_id == conversation_id:
            self._selected_id = self._conversations[0].id if self._conversations else None

        self._save()
        self._notify()

    def ensure_conversation(self) -> Conversation:
        """Startup helper: guarantee that a conversation exists and is selected."""
        if not self._conversations:
            return self.create_conversation()
        selected = self.selected_conversation
        if selected is None:
            selected = self._conversations[0]
            self.select_conversation(selected.id)
        return selected

    def check_availability(self) -> Availability:
        self._availability = self.provider.query_availability()
        self._notify()
        return self._availability

    def clear_error(self) -> None:
        if self._error_message is not None:
            self._error_message = None
            self._notify()

    async def send_message(self, text: str) -> Message | None:
        """Send user text to the selected conversation and append the reply.

        The user message is persisted before the model is called. Failures are
        published through ``error_message``; the user message is kept and no
        assistant message is appended. Returns the assistant message, if any.
        """
        conversation = self.selected_conversation
        if conversation is None:
            return None
        conversation_id = conversation.id

        if self.provider.is_busy(conversation_id):
            self._error_message = str(SessionBusyError())
            self._notify()
            return None

        conversation.add_message(Message.from_user(text))
        self._save()

        self._in_flight.add(conversation_id)
        self._error_message = None
        self._notify()

        reply: Message | None = None
        try:
            response = await self.provider.generate_response(conversation_id, text)
        except ChatServiceError as e:
            self._error_message = str(e)
        else:
            target = self.find_conversation(conversation_id)
            if target is None:
                logger.info(
                    "[ApinChat Manager] Dropping reply for deleted conversation %s.",
                    conversation_id,
                )
            else:
                reply = Message.from_assistant(response)
                target.add_message(reply)
                self._save()
        finally:
            self._in_flight.discard(conversation_id)
            self._notify()

        return reply

    def __repr__(self) -> str:
        return (
            f"ConversationManager(conversations={len(self._conversations)}, "
            f"selected_id={self._selected_id}, is_loading={self.is_loading})"
        )
