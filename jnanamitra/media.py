"""Keyword lookup attaching supplementary images to assistant replies."""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import Any

FRANCE_IMAGE_URL = (
    "https://images.unsplash.com/photo-1502602898657-3e91760cbb34"
    "?ixlib=rb-4.0.3&auto=format&fit=crop&w=500&q=60"
)
COLLEGE_IMAGE_URL = (
    "https://images.unsplash.com/photo-1523050854058-8df90110c9f1"
    "?ixlib=rb-4.0.3&auto=format&fit=crop&w=500&q=60"
)
GREETING_IMAGE_URL = (
    "https://images.unsplash.com/photo-1600585154340-be6161a56a0c"
    "?ixlib=rb-4.0.3&auto=format&fit=crop&w=500&q=60"
)


@dataclass(frozen=True)
class MediaRule:
    """Map any of ``keywords`` (matched as lower-case substrings) to ``url``."""

    keywords: tuple[str, ...]
    url: str

    def matches(self, lowered_text: str) -> bool:
        return any(keyword in lowered_text for keyword in self.keywords)

    @classmethod
    def from_config(cls, raw: Mapping[str, Any]) -> MediaRule:
        keywords = tuple(
            str(keyword).strip().lower()
            for keyword in raw.get("keywords", ())
            if str(keyword).strip()
        )
        return cls(keywords=keywords, url=str(raw.get("url", "")).strip())


DEFAULT_MEDIA_RULES: tuple[MediaRule, ...] = (
    MediaRule(keywords=("france",), url=FRANCE_IMAGE_URL),
    MediaRule(keywords=("college", "vignan"), url=COLLEGE_IMAGE_URL),
)


def resolve_media(
    text: str, rules: Iterable[MediaRule] = DEFAULT_MEDIA_RULES
) -> str | None:
    """Return the url of the first rule whose keyword occurs in ``text``."""
    lowered = text.lower()
    for rule in rules:
        if rule.url and rule.matches(lowered):
            return rule.url
    return None
