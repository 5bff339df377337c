"""Error taxonomy for the model provider adapter.

Every error carries a human-readable ``str()`` that the conversation manager
publishes as-is.
"""

from __future__ import annotations


class ChatServiceError(RuntimeError):
    """Base class for failures raised while generating a reply."""


class ModelUnavailableError(ChatServiceError):
    """The on-device model cannot currently serve requests."""

    def __init__(self, message: str = "AI model is not available") -> None:
        super().__init__(message)


class SessionBusyError(ChatServiceError):
    """A generation is already outstanding for this conversation."""

    def __init__(self, message: str = "AI is currently processing another request") -> None:
        super().__init__(message)


class GenerationFailedError(ChatServiceError):
    """The provider failed to produce a completion.

    ``detail`` holds the provider's diagnostic text verbatim.
    """

    def __init__(self, detail: str) -> None:
        self.detail = detail
        super().__init__(f"Failed to generate response: {detail}")
