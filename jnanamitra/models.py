"""Immutable message records exchanged within a chat session."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any

from .exceptions import InvalidMessageError

DEFAULT_TIMESTAMP_FORMAT = "%H:%M"

Clock = Callable[[], datetime]


class Role(str, Enum):
    """Author of a message."""

    USER = "user"
    ASSISTANT = "assistant"


@dataclass(frozen=True)
class Message:
    """A single entry of the session log.

    ``timestamp`` is the display label captured when the message was created;
    it is never recomputed afterwards.
    """

    role: Role
    content: str
    timestamp: str
    media: str | None = None

    def __post_init__(self) -> None:
        if self.media and self.role is not Role.ASSISTANT:
            raise InvalidMessageError("Only assistant messages may carry media.")
        if self.role is Role.USER and not self.content.strip():
            raise InvalidMessageError("User messages must have content.")

    @classmethod
    def create(
        cls,
        role: Role,
        content: str,
        media: str | None = None,
        *,
        clock: Clock = datetime.now,
        timestamp_format: str = DEFAULT_TIMESTAMP_FORMAT,
    ) -> Message:
        """Build a message stamped with the current wall-clock time."""
        return cls(
            role=role,
            content=content,
            timestamp=clock().strftime(timestamp_format),
            media=media or None,
        )

    @property
    def has_media(self) -> bool:
        return bool(self.media)

    def to_dict(self) -> dict[str, Any]:
        """Return a JSON-friendly mapping with stable key order."""
        return {
            "role": self.role.value,
            "content": self.content,
            "media": self.media,
            "timestamp": self.timestamp,
        }
