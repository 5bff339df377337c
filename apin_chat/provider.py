"""
Model provider adapter: a uniform request/response contract over a backend.

Sessions are keyed by conversation id and move through
``Idle -> Busy -> Idle``; a conversation that has no entry is absent. A request
against a busy session fails fast with ``SessionBusyError`` instead of queuing,
so at most one generation is outstanding per conversation. Different
conversations never block each other.
"""

from __future__ import annotations

import enum
import logging
import time
from dataclasses import dataclass
from uuid import UUID

from .config import SYSTEM_INSTRUCTIONS, TEMPERATURE
from .exceptions import GenerationFailedError, ModelUnavailableError, SessionBusyError
from .protocols import Availability, LanguageModelBackend, LanguageModelSession

logger = logging.getLogger("apin_chat")


class SessionState(enum.Enum):
    IDLE = "idle"
    BUSY = "busy"


@dataclass
class _ProviderSession:
    handle: LanguageModelSession
    state: SessionState = SessionState.IDLE


class ModelProvider:
    """Owns the per-conversation session table over a single backend."""

    instructions = SYSTEM_INSTRUCTIONS
    temperature = TEMPERATURE

    def __init__(self, backend: LanguageModelBackend) -> None:
        self.backend = backend
        self._sessions: dict[UUID, _ProviderSession] = {}

    def query_availability(self) -> Availability:
        """Poll the backend; the answer may change between calls."""
        return self.backend.availability()

    def create_session(self, conversation_id: UUID) -> None:
        """Open a fresh session for a conversation, replacing any previous one."""
        handle = self.backend.new_session(self.instructions)
        self._sessions[conversation_id] = _ProviderSession(handle=handle)
        logger.debug("[ApinChat Provider] Session created for %s.", conversation_id)

    def remove_session(self, conversation_id: UUID) -> None:
        if self._sessions.pop(conversation_id, None) is not None:
            logger.debug("[ApinChat Provider] Session removed for %s.", conversation_id)

    def session_state(self, conversation_id: UUID) -> SessionState | None:
        """Current state of a conversation's session, or ``None`` if absent."""
        session = self._sessions.get(conversation_id)
        return None if session is None else session.state

    def is_busy(self, conversation_id: UUID) -> bool:
        return self.session_state(conversation_id) is SessionState.BUSY

    async def generate_response(self, conversation_id: UUID, prompt: str) -> str:
        """Generate a completion for ``prompt`` within the conversation's session.

        Raises:
            ModelUnavailableError: the backend reports the model as unavailable.
            SessionBusyError: another request for this conversation is in flight.
            GenerationFailedError: the backend failed; ``detail`` carries its message.
        """
        if not self.query_availability().is_available:
            raise ModelUnavailableError()

        if conversation_id not in self._sessions:
            self.create_session(conversation_id)
        session = self._sessions[conversation_id]

        if session.state is SessionState.BUSY:
            raise SessionBusyError()

        session.state = SessionState.BUSY
        start_time = time.perf_counter()
        try:
            response = await session.handle.respond(prompt, temperature=self.temperature)
        except Exception as e:
            logger.warning(
                "[ApinChat Provider] Generation failed for %s: %s", conversation_id, e
            )
            raise GenerationFailedError(str(e)) from e
        finally:
            session.state = SessionState.IDLE

        elapsed = time.perf_counter() - start_time
        logger.info(
            "[ApinChat Provider] Response generated in %.3fs. Prompt: %d chars, reply: %d chars.",
            elapsed,
            len(prompt),
            len(response),
        )
        return response

    def __repr__(self) -> str:
        return f"ModelProvider(backend={self.backend!r}, sessions={len(self._sessions)})"
