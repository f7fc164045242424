"""Append-only message storage for a single chat session."""

from __future__ import annotations

import json

from .exceptions import InvalidMessageError
from .models import Message


class SessionStore:
    """Hold the canonical ordered message log of one conversation."""

    def __init__(self, seed: Message | None = None) -> None:
        self._messages: list[Message] = [seed] if seed is not None else []

    @property
    def message_count(self) -> int:
        """Return the number of stored messages."""
        return len(self._messages)

    def snapshot(self) -> tuple[Message, ...]:
        """Return the ordered messages as an immutable view."""
        return tuple(self._messages)

    def last(self) -> Message | None:
        """Return the most recent message, if any."""
        return self._messages[-1] if self._messages else None

    def append(self, message: Message) -> int:
        """Append a message at the tail and return the new length."""
        if not message.content.strip() and not message.has_media:
            raise InvalidMessageError("Message content must not be empty.")
        self._messages.append(message)
        return len(self._messages)

    def reset(self, seed: Message) -> None:
        """Replace the whole log with a single seed message."""
        self._messages = [seed]

    def export_json(self) -> str:
        """Export current history using stable list and field ordering."""
        return json.dumps(
            [message.to_dict() for message in self._messages],
            ensure_ascii=False,
            separators=(",", ":"),
            sort_keys=False,
        )
