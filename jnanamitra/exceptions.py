"""Domain exception hierarchy for the JnanaMitra chat core."""

from __future__ import annotations


class JnanaMitraError(RuntimeError):
    """Base class for all domain-level chat errors."""


class CollaboratorError(JnanaMitraError):
    """Raised when the chat-completion collaborator cannot produce a reply.

    ``detail`` carries the human-readable text shown to the user.
    """

    def __init__(self, detail: str) -> None:
        super().__init__(detail)
        self.detail = detail


class CollaboratorConnectionError(CollaboratorError):
    """Raised when the chat service cannot be reached."""


class CollaboratorResponseError(CollaboratorError):
    """Raised when the chat service answers with an error or a malformed body."""


class InvalidMessageError(JnanaMitraError, ValueError):
    """Raised when a message violates the session's data invariants."""


class ConfigValidationError(JnanaMitraError):
    """Raised when configuration cannot be validated safely."""


class SpeechRecognitionError(JnanaMitraError):
    """Raised by speech capabilities that fail to produce a transcript."""
