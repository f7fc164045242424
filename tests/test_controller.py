"""Tests for the conversation controller request/response cycle."""

from __future__ import annotations

import asyncio
from collections.abc import Sequence
from datetime import datetime
import unittest

from jnanamitra.controller import (
    CLEARED_GREETING,
    WELCOME_GREETING,
    ConversationController,
    format_error_reply,
)
from jnanamitra.events import REQUEST_STATE_CHANGED, SESSION_CHANGED, Event
from jnanamitra.exceptions import CollaboratorConnectionError, CollaboratorError
from jnanamitra.media import COLLEGE_IMAGE_URL, FRANCE_IMAGE_URL, GREETING_IMAGE_URL
from jnanamitra.models import Message, Role
from jnanamitra.state import RequestState


def _fixed_clock() -> datetime:
    return datetime(2026, 10, 19, 9, 30)


class FakeCollaborator:
    """Deterministic collaborator with optional gating and failures."""

    def __init__(
        self,
        reply: str = "Hello from the assistant",
        error: Exception | None = None,
        gate: asyncio.Event | None = None,
    ) -> None:
        self.reply = reply
        self.error = error
        self.gate = gate
        self.calls: list[tuple[tuple[Message, ...], str]] = []
        self.cancelled = False

    async def __call__(self, history: Sequence[Message], new_text: str) -> str:
        self.calls.append((tuple(history), new_text))
        if self.gate is not None:
            try:
                await self.gate.wait()
            except asyncio.CancelledError:
                self.cancelled = True
                raise
        if self.error is not None:
            raise self.error
        return self.reply


def _controller(collaborator: FakeCollaborator, **kwargs) -> ConversationController:
    kwargs.setdefault("typing_min_duration_seconds", 0.0)
    return ConversationController(collaborator, clock=_fixed_clock, **kwargs)


async def _settle() -> None:
    for _ in range(5):
        await asyncio.sleep(0)


class ControllerInitialStateTests(unittest.TestCase):
    """Validate the session seeded at construction."""

    def test_session_starts_with_greeting(self) -> None:
        controller = _controller(FakeCollaborator())
        messages = controller.messages
        self.assertEqual(len(messages), 1)
        self.assertEqual(messages[0].role, Role.ASSISTANT)
        self.assertEqual(messages[0].content, WELCOME_GREETING)
        self.assertEqual(messages[0].media, GREETING_IMAGE_URL)
        self.assertEqual(messages[0].timestamp, "09:30")
        self.assertEqual(controller.state, RequestState.IDLE)
        self.assertFalse(controller.typing_indicator)
        self.assertFalse(controller.is_loading)


class SubmitTests(unittest.IsolatedAsyncioTestCase):
    """Validate submit() across success, failure and rejection paths."""

    async def test_successful_submit_appends_user_and_reply(self) -> None:
        collaborator = FakeCollaborator(reply="Paris is lovely.")
        controller = _controller(collaborator)

        messages = await controller.submit("Hi there")

        self.assertEqual(len(messages), 3)
        self.assertEqual(messages[1].role, Role.USER)
        self.assertEqual(messages[1].content, "Hi there")
        self.assertEqual(messages[2].role, Role.ASSISTANT)
        self.assertEqual(messages[2].content, "Paris is lovely.")
        self.assertIsNone(messages[2].media)
        self.assertEqual(controller.state, RequestState.IDLE)

    async def test_collaborator_receives_prior_history_and_new_text(self) -> None:
        collaborator = FakeCollaborator()
        controller = _controller(collaborator)
        greeting = controller.messages

        await controller.submit("What courses do you offer?")

        history, new_text = collaborator.calls[0]
        self.assertEqual(history, greeting)
        self.assertEqual(new_text, "What courses do you offer?")

    async def test_user_message_keeps_raw_text(self) -> None:
        controller = _controller(FakeCollaborator())
        messages = await controller.submit("  padded  ")
        self.assertEqual(messages[1].content, "  padded  ")

    async def test_blank_submissions_are_ignored(self) -> None:
        collaborator = FakeCollaborator()
        controller = _controller(collaborator)

        for raw in ("", "   ", "\n\t"):
            messages = await controller.submit(raw)
            self.assertEqual(len(messages), 1)

        self.assertEqual(collaborator.calls, [])
        self.assertEqual(controller.state, RequestState.IDLE)

    async def test_pending_session_grows_by_one(self) -> None:
        gate = asyncio.Event()
        controller = _controller(FakeCollaborator(gate=gate))

        task = asyncio.create_task(controller.submit("Hello"))
        await _settle()

        self.assertEqual(len(controller.messages), 2)
        self.assertEqual(controller.state, RequestState.PENDING)
        self.assertTrue(controller.typing_indicator)
        self.assertTrue(controller.is_loading)

        gate.set()
        await task
        self.assertEqual(len(controller.messages), 3)
        self.assertFalse(controller.typing_indicator)

    async def test_submit_while_pending_is_rejected(self) -> None:
        gate = asyncio.Event()
        collaborator = FakeCollaborator(gate=gate)
        controller = _controller(collaborator)

        first = asyncio.create_task(controller.submit("first"))
        await _settle()
        rejected = await controller.submit("second")

        self.assertEqual(len(rejected), 2)
        self.assertEqual(len(collaborator.calls), 1)

        gate.set()
        final = await first
        self.assertEqual(len(final), 3)
        self.assertEqual(
            [message.content for message in final[1:]],
            ["first", collaborator.reply],
        )

    async def test_collaborator_error_becomes_assistant_message(self) -> None:
        controller = _controller(
            FakeCollaborator(error=CollaboratorError("Service unavailable"))
        )

        messages = await controller.submit("Tell me about France")

        self.assertEqual(len(messages), 3)
        reply = messages[-1]
        self.assertEqual(reply.role, Role.ASSISTANT)
        self.assertIn("Service unavailable", reply.content)
        self.assertTrue(reply.content.startswith("Error: "))
        self.assertIsNone(reply.media)
        self.assertEqual(controller.state, RequestState.IDLE)

    async def test_unexpected_exception_is_folded_into_session(self) -> None:
        controller = _controller(FakeCollaborator(error=RuntimeError("boom")))

        messages = await controller.submit("hello")

        self.assertIn("boom", messages[-1].content)
        self.assertEqual(controller.state, RequestState.IDLE)

    async def test_empty_reply_is_reported_as_error(self) -> None:
        controller = _controller(FakeCollaborator(reply="   "))

        messages = await controller.submit("hello")

        self.assertEqual(len(messages), 3)
        self.assertTrue(messages[-1].content.startswith("Error: "))

    async def test_state_returns_to_idle_after_every_outcome(self) -> None:
        collaborator = FakeCollaborator()
        controller = _controller(collaborator)

        await controller.submit("one")
        self.assertEqual(controller.state, RequestState.IDLE)
        collaborator.error = CollaboratorError("down")
        await controller.submit("two")
        self.assertEqual(controller.state, RequestState.IDLE)
        collaborator.error = None
        messages = await controller.submit("three")
        self.assertEqual(len(messages), 7)

    async def test_media_is_attached_from_keywords(self) -> None:
        controller = _controller(FakeCollaborator())

        france = await controller.submit("Tell me about France")
        self.assertEqual(france[-1].media, FRANCE_IMAGE_URL)

        college = await controller.submit("What is Vignan?")
        self.assertEqual(college[-1].media, COLLEGE_IMAGE_URL)

        plain = await controller.submit("Hi")
        self.assertIsNone(plain[-1].media)

    async def test_typing_floor_holds_pending_state(self) -> None:
        controller = _controller(
            FakeCollaborator(), typing_min_duration_seconds=0.05
        )
        loop = asyncio.get_running_loop()

        started = loop.time()
        await controller.submit("hello")
        elapsed = loop.time() - started

        self.assertGreaterEqual(elapsed, 0.04)
        self.assertEqual(controller.state, RequestState.IDLE)

    async def test_typing_signal_turns_on_then_off(self) -> None:
        controller = _controller(FakeCollaborator())
        typing_flags: list[bool] = []
        reasons: list[str] = []
        controller.bus.subscribe(
            REQUEST_STATE_CHANGED,
            lambda event: typing_flags.append(event.data["typing"]),
        )
        controller.bus.subscribe(
            SESSION_CHANGED, lambda event: reasons.append(event.data["reason"])
        )

        await controller.submit("hello")

        self.assertEqual(typing_flags, [True, False])
        self.assertEqual(reasons, ["user_message", "assistant_message"])

    async def test_failing_observer_does_not_break_submit(self) -> None:
        controller = _controller(FakeCollaborator())

        def explode(event: Event) -> None:
            raise ValueError("observer failure")

        controller.bus.subscribe(SESSION_CHANGED, explode)
        with self.assertLogs("jnanamitra.events", level="ERROR"):
            messages = await controller.submit("hello")
        self.assertEqual(len(messages), 3)

    async def test_failure_is_logged(self) -> None:
        controller = _controller(FakeCollaborator(error=CollaboratorError("down")))
        with self.assertLogs("jnanamitra.controller", level="WARNING") as logs:
            await controller.submit("hello")
        self.assertTrue(
            any("controller.request.failed" in line for line in logs.output)
        )

    async def test_outer_cancellation_resets_state_without_reply(self) -> None:
        gate = asyncio.Event()
        collaborator = FakeCollaborator(gate=gate)
        controller = _controller(collaborator)

        task = asyncio.create_task(controller.submit("hello"))
        await _settle()
        task.cancel()
        with self.assertRaises(asyncio.CancelledError):
            await task

        self.assertEqual(controller.state, RequestState.IDLE)
        self.assertEqual(len(controller.messages), 2)
        self.assertTrue(collaborator.cancelled)


class ClearAndCancelTests(unittest.IsolatedAsyncioTestCase):
    """Validate clear() and cancel() interaction with pending requests."""

    async def test_clear_yields_single_greeting(self) -> None:
        controller = _controller(FakeCollaborator())
        await controller.submit("hello")

        messages = await controller.clear()

        self.assertEqual(len(messages), 1)
        self.assertEqual(messages[0].role, Role.ASSISTANT)
        self.assertEqual(messages[0].content, CLEARED_GREETING)
        self.assertEqual(messages[0].media, GREETING_IMAGE_URL)

    async def test_clear_is_idempotent(self) -> None:
        controller = _controller(FakeCollaborator())
        await controller.submit("hello")

        first = await controller.clear()
        second = await controller.clear()

        self.assertEqual(first, second)
        self.assertEqual(controller.state, RequestState.IDLE)

    async def test_clear_during_pending_drops_late_reply(self) -> None:
        gate = asyncio.Event()
        collaborator = FakeCollaborator(gate=gate)
        controller = _controller(collaborator)

        task = asyncio.create_task(controller.submit("hello"))
        await _settle()
        cleared = await controller.clear()
        await task

        self.assertEqual(len(cleared), 1)
        self.assertEqual(controller.messages, cleared)
        self.assertEqual(controller.state, RequestState.IDLE)
        self.assertTrue(collaborator.cancelled)

        gate.set()
        messages = await controller.submit("again")
        self.assertEqual(len(messages), 3)

    async def test_reply_ignoring_cancellation_is_still_dropped(self) -> None:
        release = asyncio.Event()

        async def stubborn(history: Sequence[Message], new_text: str) -> str:
            try:
                await release.wait()
            except asyncio.CancelledError:
                pass
            return "late reply"

        controller = ConversationController(
            stubborn, clock=_fixed_clock, typing_min_duration_seconds=0.0
        )
        task = asyncio.create_task(controller.submit("hello"))
        await _settle()
        await controller.clear()
        await task

        self.assertEqual(len(controller.messages), 1)
        self.assertNotIn("late reply", [m.content for m in controller.messages])

    async def test_cancel_pending_request(self) -> None:
        gate = asyncio.Event()
        collaborator = FakeCollaborator(gate=gate)
        controller = _controller(collaborator)

        task = asyncio.create_task(controller.submit("hello"))
        await _settle()
        cancelled = await controller.cancel()
        await task

        self.assertTrue(cancelled)
        self.assertEqual(controller.state, RequestState.IDLE)
        self.assertEqual(len(controller.messages), 2)
        self.assertEqual(controller.messages[-1].role, Role.USER)

    async def test_cancel_when_idle_is_noop(self) -> None:
        controller = _controller(FakeCollaborator())
        self.assertFalse(await controller.cancel())
        self.assertEqual(len(controller.messages), 1)

    async def test_post_notice_appends_assistant_message(self) -> None:
        controller = _controller(FakeCollaborator())
        messages = await controller.post_notice("Heads up")
        self.assertEqual(messages[-1].role, Role.ASSISTANT)
        self.assertEqual(messages[-1].content, "Heads up")

    async def test_describe_reports_state_and_count(self) -> None:
        controller = _controller(FakeCollaborator())
        await controller.submit("Hi")
        self.assertEqual(
            controller.describe(),
            {"state": "IDLE", "messages": 3, "typing": False},
        )

    async def test_export_json_contains_conversation(self) -> None:
        controller = _controller(FakeCollaborator(reply="Namaste"))
        await controller.submit("Hi")
        exported = controller.export_json()
        self.assertIn('"Namaste"', exported)
        self.assertIn('"user"', exported)


class FormatErrorReplyTests(unittest.TestCase):
    """Validate user-facing error text."""

    def test_uses_collaborator_detail(self) -> None:
        self.assertEqual(
            format_error_reply(CollaboratorError("Model offline")),
            "Error: Model offline 😓",
        )

    def test_falls_back_to_exception_name(self) -> None:
        self.assertEqual(format_error_reply(TimeoutError()), "Error: TimeoutError 😓")

    def test_blank_collaborator_detail_falls_back_to_exception_name(self) -> None:
        self.assertEqual(
            format_error_reply(CollaboratorConnectionError("  ")),
            "Error: CollaboratorConnectionError 😓",
        )


if __name__ == "__main__":
    unittest.main()
