"""Pending input text edited before it is submitted."""

from __future__ import annotations

from collections.abc import Iterable

DEFAULT_SUGGESTIONS: tuple[str, ...] = (
    "What's the weather today?",
    "Tell me a joke",
    "Who is the principal?",
    "What courses do you offer?",
)


class InputDraft:
    """Hold the text a user is composing plus the canned suggestions."""

    def __init__(self, suggestions: Iterable[str] = DEFAULT_SUGGESTIONS) -> None:
        self.text = ""
        self.suggestions: tuple[str, ...] = tuple(
            item.strip() for item in suggestions if item.strip()
        )

    def set(self, text: str) -> None:
        self.text = text

    def insert_emoji(self, emoji: str) -> None:
        """Append an emoji at the end of the draft."""
        self.text += emoji

    def use_suggestion(self, suggestion: str) -> None:
        """Replace the draft with a suggestion."""
        self.text = suggestion

    @property
    def is_blank(self) -> bool:
        return not self.text.strip()

    def take(self) -> str:
        """Return the draft for sending.

        The draft is only cleared when it holds something worth sending, so a
        blank send leaves the input untouched.
        """
        text = self.text
        if text.strip():
            self.text = ""
        return text
