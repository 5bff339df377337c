"""
Model provider boundary: what the adapter needs from a generative text backend.

A backend reports polled availability and opens per-conversation sessions; a
session answers one prompt at a time. ``AppleFoundationModelsBackend`` is the
production implementation on top of ``python-apple-fm-sdk``.
"""

from __future__ import annotations

import enum
import importlib
import logging
from dataclasses import dataclass
from typing import Any, Protocol, runtime_checkable

from .exceptions import ModelUnavailableError

logger = logging.getLogger("apin_chat")

SDK_MODULE = "apple_fm_sdk"


# ---------------------------------------------------------------------------
# Availability
# ---------------------------------------------------------------------------


class UnavailableReason(str, enum.Enum):
    DEVICE_NOT_ELIGIBLE = "device_not_eligible"
    FEATURE_NOT_ENABLED = "feature_not_enabled"
    MODEL_LOADING = "model_loading"
    OTHER = "other"


@dataclass(frozen=True)
class Availability:
    """Snapshot of whether the on-device model can serve requests right now."""

    reason: UnavailableReason | None = None
    detail: str = ""

    @classmethod
    def available(cls) -> Availability:
        return cls()

    @classmethod
    def unavailable(cls, reason: UnavailableReason, detail: str = "") -> Availability:
        return cls(reason=reason, detail=detail)

    @property
    def is_available(self) -> bool:
        return self.reason is None

    def status_message(self) -> str:
        """Human-readable status line for the presentation layer."""
        if self.reason is None:
            return "AI Ready"
        if self.reason is UnavailableReason.DEVICE_NOT_ELIGIBLE:
            return "Device not eligible for Apple Intelligence"
        if self.reason is UnavailableReason.FEATURE_NOT_ENABLED:
            return "Please enable Apple Intelligence in Settings"
        if self.reason is UnavailableReason.MODEL_LOADING:
            return "AI model is loading..."
        return f"AI unavailable: {self.detail or 'unknown reason'}"


# ---------------------------------------------------------------------------
# Protocols
# ---------------------------------------------------------------------------


@runtime_checkable
class LanguageModelSession(Protocol):
    """A stateful conversation context inside the backend."""

    async def respond(self, prompt: str, *, temperature: float) -> str: ...


@runtime_checkable
class LanguageModelBackend(Protocol):
    """A platform-supplied generative text capability."""

    def availability(self) -> Availability: ...

    def new_session(self, instructions: str) -> LanguageModelSession: ...


# ---------------------------------------------------------------------------
# Apple Foundation Models
# ---------------------------------------------------------------------------

_REASON_KEYWORDS = (
    ("eligible", UnavailableReason.DEVICE_NOT_ELIGIBLE),
    ("enabled", UnavailableReason.FEATURE_NOT_ENABLED),
    ("ready", UnavailableReason.MODEL_LOADING),
    ("loading", UnavailableReason.MODEL_LOADING),
)


def map_unavailable_reason(reason: Any) -> Availability:
    """Translate an SDK unavailability reason into an ``Availability``."""
    name = str(getattr(reason, "name", None) or reason or "").strip()
    lowered = name.lower()
    for keyword, mapped in _REASON_KEYWORDS:
        if keyword in lowered:
            return Availability.unavailable(mapped, name)
    return Availability.unavailable(UnavailableReason.OTHER, name or "unknown reason")


class AppleFoundationModelsSession:
    """Per-conversation session; the SDK session is opened on first use."""

    def __init__(self, backend: AppleFoundationModelsBackend, instructions: str) -> None:
        self._backend = backend
        self.instructions = instructions
        self._session: Any = None

    async def respond(self, prompt: str, *, temperature: float) -> str:
        fm = self._backend.sdk
        if fm is None:
            raise ModelUnavailableError()
        if self._session is None:
            self._session = fm.LanguageModelSession(
                model=self._backend.model, instructions=self.instructions
            )
        options = fm.GenerationOptions(temperature=temperature)
        response = await self._session.respond(prompt, options=options)
        return str(response)

    def __repr__(self) -> str:
        return f"AppleFoundationModelsSession(opened={self._session is not None})"


class AppleFoundationModelsBackend:
    """Backend over ``apple_fm_sdk.SystemLanguageModel``.

    A missing SDK is reported as an unavailable model rather than an import
    error, so stored conversations remain browsable on unsupported machines.
    """

    def __init__(self) -> None:
        self.sdk: Any = None
        self.model: Any = None
        try:
            self.sdk = importlib.import_module(SDK_MODULE)
        except ImportError:
            logger.debug("[ApinChat Provider] %s is not importable.", SDK_MODULE)
            return
        self.model = self.sdk.SystemLanguageModel()

    def availability(self) -> Availability:
        if self.model is None:
            return Availability.unavailable(
                UnavailableReason.OTHER, "apple-fm-sdk is not installed"
            )
        is_available, reason = self.model.is_available()
        if is_available:
            return Availability.available()
        return map_unavailable_reason(reason)

    def new_session(self, instructions: str) -> AppleFoundationModelsSession:
        return AppleFoundationModelsSession(self, instructions)

    def __repr__(self) -> str:
        return f"AppleFoundationModelsBackend(sdk_loaded={self.sdk is not None})"


def create_backend() -> LanguageModelBackend:
    """Return the platform backend used by the app."""
    return AppleFoundationModelsBackend()
