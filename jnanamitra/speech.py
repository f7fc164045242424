"""Voice input bridged onto the controller through a speech capability."""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Coroutine
import logging
from typing import Any, Protocol, runtime_checkable

from .controller import ConversationController
from .draft import InputDraft
from .events import SPEECH_RECORDING_CHANGED
from .exceptions import SpeechRecognitionError

LOGGER = logging.getLogger(__name__)

SPEECH_FAILURE_NOTICE = "Speech recognition failed. Please try typing instead."
DEFAULT_LANGUAGE = "en-US"

ResultCallback = Callable[[str], None]
ErrorCallback = Callable[[SpeechRecognitionError | str], None]


@runtime_checkable
class SpeechCapability(Protocol):
    """A speech-to-text engine that reports one transcript per ``start``."""

    def available(self) -> bool: ...

    def start(
        self,
        on_result: ResultCallback,
        on_error: ErrorCallback,
        language: str = DEFAULT_LANGUAGE,
    ) -> None: ...

    def stop(self) -> None: ...


class UnavailableSpeechCapability:
    """Capability used when no recognition engine is present."""

    def available(self) -> bool:
        return False

    def start(
        self,
        on_result: ResultCallback,
        on_error: ErrorCallback,
        language: str = DEFAULT_LANGUAGE,
    ) -> None:
        return None

    def stop(self) -> None:
        return None


class VoiceInput:
    """Drive a speech capability and feed its transcripts to the conversation.

    With a bound ``draft`` the transcript replaces the pending input, leaving
    the user to send it; without one the transcript is submitted directly.

    ``start`` must be called on the event loop thread. Engines may invoke the
    callbacks from any thread: calls from outside the loop are handed over
    with ``call_soon_threadsafe``. Follow-up coroutines are scheduled as tasks
    and awaited by ``aclose``.
    """

    def __init__(
        self,
        controller: ConversationController,
        capability: SpeechCapability | None = None,
        draft: InputDraft | None = None,
        language: str = DEFAULT_LANGUAGE,
    ) -> None:
        self.controller = controller
        self.capability: SpeechCapability = capability or UnavailableSpeechCapability()
        self.draft = draft
        self.language = language
        self.recording = False
        self.last_error: SpeechRecognitionError | None = None
        self._loop: asyncio.AbstractEventLoop | None = None
        self._tasks: set[asyncio.Task[Any]] = set()

    @property
    def available(self) -> bool:
        return self.capability.available()

    def _schedule(self, coro: Coroutine[Any, Any, Any]) -> None:
        task = asyncio.ensure_future(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    def _dispatch(self, callback: Callable[..., None], *args: Any) -> None:
        """Run ``callback`` on the loop that started recording."""
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None
        if self._loop is None or running is self._loop:
            callback(*args)
            return
        self._loop.call_soon_threadsafe(callback, *args)

    def _set_recording(self, recording: bool) -> None:
        if self.recording == recording:
            return
        self.recording = recording
        self._schedule(
            self.controller.bus.publish(
                SPEECH_RECORDING_CHANGED,
                {"recording": recording},
                source="voice_input",
            )
        )

    def start(self) -> bool:
        """Begin listening. Returns False when no engine is available."""
        if not self.capability.available():
            LOGGER.warning(
                "speech.unavailable",
                extra={"event": "speech.unavailable"},
            )
            return False
        if self.recording:
            return True
        self._loop = asyncio.get_running_loop()
        self.last_error = None
        self._set_recording(True)
        self.capability.start(self._on_result, self._on_error, language=self.language)
        return True

    def stop(self) -> None:
        """Stop listening; any transcript already delivered is kept."""
        if self.capability.available():
            self.capability.stop()
        self._set_recording(False)

    def _on_result(self, transcript: str) -> None:
        self._dispatch(self._handle_result, transcript)

    def _on_error(self, error: SpeechRecognitionError | str) -> None:
        self._dispatch(self._handle_error, error)

    def _handle_result(self, transcript: str) -> None:
        self._set_recording(False)
        if self.draft is not None:
            self.draft.set(transcript)
            return
        self._schedule(self.controller.submit(transcript))

    def _handle_error(self, error: SpeechRecognitionError | str) -> None:
        if not isinstance(error, SpeechRecognitionError):
            error = SpeechRecognitionError(str(error) or "unknown")
        self.last_error = error
        LOGGER.warning(
            "speech.recognition.failed",
            extra={
                "event": "speech.recognition.failed",
                "error": str(error),
                "language": self.language,
            },
        )
        self._set_recording(False)
        self._schedule(self.controller.post_notice(SPEECH_FAILURE_NOTICE))

    async def aclose(self) -> None:
        """Stop the engine and wait for scheduled follow-up work."""
        self.stop()
        # Let callbacks handed over from engine threads run first.
        await asyncio.sleep(0)
        pending = list(self._tasks)
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
