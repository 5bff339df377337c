"""Shared fakes and fixtures for the ApinChat test-suite."""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from typing import Union

import pytest

from apin_chat.manager import ConversationManager
from apin_chat.protocols import Availability, UnavailableReason
from apin_chat.provider import ModelProvider
from apin_chat.storage import ConversationStore, SQLiteKeyValueStore

Reply = Union[str, Callable[[str], str]]


class FakeSession:
    """Scripted backend session that records every prompt it receives."""

    def __init__(self, backend: FakeBackend, instructions: str) -> None:
        self.backend = backend
        self.instructions = instructions
        self.prompts: list[str] = []
        self.temperatures: list[float] = []

    async def respond(self, prompt: str, *, temperature: float) -> str:
        self.prompts.append(prompt)
        self.temperatures.append(temperature)
        if self.backend.gate is not None:
            await self.backend.gate.wait()
        if self.backend.error is not None:
            raise self.backend.error
        reply = self.backend.reply
        return reply(prompt) if callable(reply) else reply


class FakeBackend:
    """In-memory ``LanguageModelBackend``.

    Set ``gate`` to an ``asyncio.Event`` to hold requests in flight until the
    test releases them.
    """

    def __init__(
        self,
        availability: Availability | None = None,
        reply: Reply = "Hello from Apin",
        error: Exception | None = None,
    ) -> None:
        self.current_availability = availability or Availability.available()
        self.reply = reply
        self.error = error
        self.gate: asyncio.Event | None = None
        self.sessions: list[FakeSession] = []

    def availability(self) -> Availability:
        return self.current_availability

    def new_session(self, instructions: str) -> FakeSession:
        session = FakeSession(self, instructions)
        self.sessions.append(session)
        return session

    @property
    def respond_calls(self) -> int:
        return sum(len(session.prompts) for session in self.sessions)


def make_mock_backend(
    available: bool = True,
    reply: Reply = "Hello from Apin",
    error: Exception | None = None,
) -> FakeBackend:
    if available:
        availability = Availability.available()
    else:
        availability = Availability.unavailable(UnavailableReason.MODEL_LOADING, "MODEL_NOT_READY")
    return FakeBackend(availability=availability, reply=reply, error=error)


def echo_reply(prompt: str) -> str:
    return f"echo: {prompt}"


@pytest.fixture
def backend() -> FakeBackend:
    return make_mock_backend(reply=echo_reply)


@pytest.fixture
def provider(backend: FakeBackend) -> ModelProvider:
    return ModelProvider(backend)


@pytest.fixture
def kv(tmp_path):
    store = SQLiteKeyValueStore(tmp_path / "chat.sqlite3")
    yield store
    store.close()


@pytest.fixture
def store(kv: SQLiteKeyValueStore) -> ConversationStore:
    return ConversationStore(kv)


@pytest.fixture
def manager(provider: ModelProvider, store: ConversationStore) -> ConversationManager:
    return ConversationManager(provider, store)
