"""Assemble a chat widget session from configuration."""

from __future__ import annotations

from dataclasses import dataclass
import logging
from typing import Any

from .collaborators import (
    ChatCollaborator,
    HttpChatCollaborator,
    OllamaChatCollaborator,
)
from .controller import ConversationController
from .draft import DEFAULT_SUGGESTIONS, InputDraft
from .events import EventBus
from .media import MediaRule
from .models import Message
from .speech import (
    DEFAULT_LANGUAGE,
    SpeechCapability,
    UnavailableSpeechCapability,
    VoiceInput,
)

LOGGER = logging.getLogger(__name__)


def create_collaborator(config: dict[str, Any]) -> ChatCollaborator:
    """Build the chat-completion collaborator named by ``[collaborator].backend``."""
    section = config.get("collaborator", {})
    backend = str(section.get("backend", "http")).lower()
    if backend == "ollama":
        return OllamaChatCollaborator(
            host=str(section.get("host", "http://localhost:11434")),
            model=str(section.get("model", "llama3.2")),
            system_prompt=str(section.get("system_prompt", "")),
            timeout=int(section.get("timeout", 30)),
        )
    return HttpChatCollaborator(
        endpoint=str(section.get("endpoint", "http://localhost:8003/api/chat")),
        timeout=float(section.get("timeout", 30)),
        retries=int(section.get("retries", 0)),
        retry_backoff_seconds=float(section.get("retry_backoff_seconds", 0.5)),
    )


def create_controller(
    config: dict[str, Any],
    collaborator: ChatCollaborator | None = None,
    bus: EventBus | None = None,
) -> ConversationController:
    """Build a controller seeded with the configured greeting."""
    app_cfg = config.get("app", {})
    ui_cfg = config.get("ui", {})
    media_cfg = config.get("media", {})
    kwargs: dict[str, Any] = {}
    if "greeting" in app_cfg:
        kwargs["greeting"] = app_cfg["greeting"]
    if "cleared_greeting" in app_cfg:
        kwargs["cleared_greeting"] = app_cfg["cleared_greeting"]
    if "greeting_media" in app_cfg:
        kwargs["greeting_media"] = app_cfg["greeting_media"] or None
    if "typing_min_duration_seconds" in ui_cfg:
        kwargs["typing_min_duration_seconds"] = float(
            ui_cfg["typing_min_duration_seconds"]
        )
    if "timestamp_format" in ui_cfg:
        kwargs["timestamp_format"] = ui_cfg["timestamp_format"]
    if "rules" in media_cfg:
        kwargs["media_rules"] = [
            MediaRule.from_config(rule) for rule in media_cfg["rules"]
        ]
    return ConversationController(
        collaborator if collaborator is not None else create_collaborator(config),
        bus=bus,
        **kwargs,
    )


@dataclass
class WidgetSession:
    """Everything a mounted chat widget holds for one conversation."""

    controller: ConversationController
    draft: InputDraft
    voice: VoiceInput

    @property
    def messages(self) -> tuple[Message, ...]:
        return self.controller.messages

    async def send_draft(self) -> tuple[Message, ...]:
        """Submit the composed text; a blank draft is left in place."""
        return await self.controller.submit(self.draft.take())

    async def aclose(self) -> None:
        """Unmount: stop voice input, drop any pending request, close transports."""
        await self.voice.aclose()
        await self.controller.cancel()
        closer = getattr(self.controller.collaborator, "aclose", None)
        if closer is not None:
            await closer()
        LOGGER.info("session.closed", extra={"event": "session.closed"})


def create_widget_session(
    config: dict[str, Any],
    collaborator: ChatCollaborator | None = None,
    speech_capability: SpeechCapability | None = None,
    bus: EventBus | None = None,
) -> WidgetSession:
    """Mount a widget session: controller, input draft and voice input."""
    controller = create_controller(config, collaborator=collaborator, bus=bus)
    draft = InputDraft(config.get("ui", {}).get("suggestions", DEFAULT_SUGGESTIONS))
    speech_cfg = config.get("speech", {})
    speech_enabled = bool(speech_cfg.get("enabled", True))
    capability = speech_capability if speech_enabled else None
    voice = VoiceInput(
        controller,
        capability=capability or UnavailableSpeechCapability(),
        draft=draft,
        language=str(speech_cfg.get("language", DEFAULT_LANGUAGE)),
    )
    return WidgetSession(controller=controller, draft=draft, voice=voice)
