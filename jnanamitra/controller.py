"""Conversation controller mediating one request/response cycle per submission."""

from __future__ import annotations

import asyncio
from collections.abc import Iterable, Sequence
from datetime import datetime
import logging
from typing import Any

from .collaborators import ChatCollaborator
from .events import REQUEST_STATE_CHANGED, SESSION_CHANGED, EventBus
from .exceptions import CollaboratorError, CollaboratorResponseError
from .media import DEFAULT_MEDIA_RULES, GREETING_IMAGE_URL, MediaRule, resolve_media
from .message_store import SessionStore
from .models import DEFAULT_TIMESTAMP_FORMAT, Clock, Message, Role
from .state import RequestState, StateManager

LOGGER = logging.getLogger(__name__)

WELCOME_GREETING = (
    "Hello! I'm VIGNAN JnanaMitra, your AI assistant. "
    "How can I help you today? 😊"
)
CLEARED_GREETING = "Chat cleared! How can I assist you now? 😊"
DEFAULT_TYPING_MIN_DURATION_SECONDS = 1.5


def format_error_reply(exc: BaseException) -> str:
    """Turn a collaborator failure into the text shown in the session."""
    if isinstance(exc, CollaboratorError):
        detail = str(exc.detail or "").strip()
    else:
        detail = str(exc).strip()
    detail = detail or exc.__class__.__name__
    return f"Error: {detail} 😓"


class ConversationController:
    """Own a session and drive it through the IDLE/PENDING request cycle.

    Presentation code calls ``submit``, ``clear`` and ``cancel`` and re-renders
    from ``messages`` or from the ``session.changed`` event. Collaborator
    failures never escape ``submit``; they are appended to the session as an
    assistant message instead.
    """

    def __init__(
        self,
        collaborator: ChatCollaborator,
        *,
        bus: EventBus | None = None,
        media_rules: Iterable[MediaRule] = DEFAULT_MEDIA_RULES,
        typing_min_duration_seconds: float = DEFAULT_TYPING_MIN_DURATION_SECONDS,
        greeting: str = WELCOME_GREETING,
        cleared_greeting: str = CLEARED_GREETING,
        greeting_media: str | None = GREETING_IMAGE_URL,
        timestamp_format: str = DEFAULT_TIMESTAMP_FORMAT,
        clock: Clock = datetime.now,
    ) -> None:
        self._collaborator = collaborator
        self.bus = bus or EventBus()
        self.media_rules = tuple(media_rules)
        self.typing_min_duration_seconds = max(0.0, typing_min_duration_seconds)
        self.greeting = greeting
        self.cleared_greeting = cleared_greeting
        self.greeting_media = greeting_media or None
        self.timestamp_format = timestamp_format
        self._clock = clock

        self._state = StateManager()
        self._store = SessionStore(
            seed=self._new_message(Role.ASSISTANT, greeting, self.greeting_media)
        )
        self._generation = 0
        self._inflight: asyncio.Task[str] | None = None

    @property
    def messages(self) -> tuple[Message, ...]:
        """Current session snapshot, in display order."""
        return self._store.snapshot()

    @property
    def store(self) -> SessionStore:
        return self._store

    @property
    def collaborator(self) -> ChatCollaborator:
        return self._collaborator

    @property
    def state(self) -> RequestState:
        return self._state.state

    @property
    def typing_indicator(self) -> bool:
        """True while a request is pending, including the minimum display floor."""
        return self._state.is_pending

    @property
    def is_loading(self) -> bool:
        return self._state.is_pending

    def _new_message(
        self, role: Role, content: str, media: str | None = None
    ) -> Message:
        return Message.create(
            role,
            content,
            media,
            clock=self._clock,
            timestamp_format=self.timestamp_format,
        )

    async def _publish_session(self, reason: str) -> None:
        await self.bus.publish(
            SESSION_CHANGED,
            {"messages": self._store.snapshot(), "reason": reason},
            source="controller",
        )

    async def _publish_state(self) -> None:
        await self.bus.publish(
            REQUEST_STATE_CHANGED,
            {"state": self._state.state, "typing": self._state.is_pending},
            source="controller",
        )

    async def _hold_typing_floor(self, started: float) -> None:
        elapsed = asyncio.get_running_loop().time() - started
        remaining = self.typing_min_duration_seconds - elapsed
        if remaining > 0:
            await asyncio.sleep(remaining)

    async def _exchange(self, history: Sequence[Message], text: str) -> str:
        """Call the collaborator, then hold until the typing floor has elapsed."""
        started = asyncio.get_running_loop().time()
        try:
            reply = await self._collaborator(history, text)
        except asyncio.CancelledError:
            raise
        except Exception:
            await self._hold_typing_floor(started)
            raise
        await self._hold_typing_floor(started)
        if not isinstance(reply, str) or not reply.strip():
            raise CollaboratorResponseError("The assistant returned an empty reply.")
        return reply

    async def submit(self, raw_text: str) -> tuple[Message, ...]:
        """Run one exchange for ``raw_text`` and return the resulting session.

        Blank input and submissions made while another request is pending are
        ignored without touching the session. A reply that is blank or not a
        string counts as a collaborator failure and is recorded as an error
        message, since an assistant message needs content.
        """
        if not raw_text.strip():
            return self._store.snapshot()
        if not self._state.transition_if(RequestState.IDLE, RequestState.PENDING):
            LOGGER.debug(
                "controller.submit.rejected",
                extra={"event": "controller.submit.rejected", "reason": "pending"},
            )
            return self._store.snapshot()

        generation = self._generation
        history = self._store.snapshot()
        self._store.append(self._new_message(Role.USER, raw_text))
        LOGGER.info(
            "controller.request.start",
            extra={"event": "controller.request.start", "history_size": len(history)},
        )
        task = asyncio.ensure_future(self._exchange(history, raw_text))
        self._inflight = task
        try:
            await self._publish_session("user_message")
            await self._publish_state()
            reply: Message | None = None
            try:
                content = await task
            except asyncio.CancelledError:
                if generation == self._generation:
                    raise
                LOGGER.info(
                    "controller.request.discarded",
                    extra={"event": "controller.request.discarded"},
                )
            except Exception as exc:  # noqa: BLE001 - failures become session data.
                LOGGER.warning(
                    "controller.request.failed",
                    extra={
                        "event": "controller.request.failed",
                        "error_type": exc.__class__.__name__,
                    },
                )
                reply = self._new_message(Role.ASSISTANT, format_error_reply(exc))
            else:
                reply = self._new_message(
                    Role.ASSISTANT,
                    content,
                    resolve_media(raw_text, self.media_rules),
                )

            if reply is not None and generation == self._generation:
                self._store.append(reply)
                LOGGER.info(
                    "controller.request.complete",
                    extra={
                        "event": "controller.request.complete",
                        "media": reply.media,
                    },
                )
                await self._publish_session("assistant_message")
        finally:
            if not task.done():
                task.cancel()
            if generation == self._generation:
                self._inflight = None
                self._state.transition_to(RequestState.IDLE)
                await self._publish_state()
        return self._store.snapshot()

    async def _abandon_inflight(self) -> None:
        """Invalidate the pending exchange so its reply is never appended."""
        self._generation += 1
        task, self._inflight = self._inflight, None
        if task is not None and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
            except Exception:  # noqa: BLE001 - the reply is being discarded anyway.
                LOGGER.debug(
                    "controller.request.discarded_failure",
                    extra={"event": "controller.request.discarded_failure"},
                )

    async def cancel(self) -> bool:
        """Cancel the pending request without appending a reply for it.

        Returns False when there was nothing to cancel.
        """
        if not self._state.is_pending:
            return False
        await self._abandon_inflight()
        self._state.transition_to(RequestState.IDLE)
        LOGGER.info(
            "controller.request.cancelled",
            extra={"event": "controller.request.cancelled"},
        )
        await self._publish_state()
        return True

    async def clear(self) -> tuple[Message, ...]:
        """Replace the session with a fresh greeting and force the IDLE state."""
        was_pending = self._state.is_pending
        await self._abandon_inflight()
        self._store.reset(
            self._new_message(
                Role.ASSISTANT, self.cleared_greeting, self.greeting_media
            )
        )
        self._state.transition_to(RequestState.IDLE)
        LOGGER.info(
            "controller.session.cleared",
            extra={"event": "controller.session.cleared", "was_pending": was_pending},
        )
        await self._publish_session("cleared")
        await self._publish_state()
        return self._store.snapshot()

    async def post_notice(self, content: str) -> tuple[Message, ...]:
        """Append a standalone assistant message outside of any exchange."""
        self._store.append(self._new_message(Role.ASSISTANT, content))
        await self._publish_session("notice")
        return self._store.snapshot()

    def export_json(self) -> str:
        return self._store.export_json()

    def describe(self) -> dict[str, Any]:
        """Small status summary used by logging and the console front-end."""
        return {
            "state": self._state.state.value,
            "messages": self._store.message_count,
            "typing": self._state.is_pending,
        }
