"""Request state machine guarding the single in-flight collaborator call."""

from __future__ import annotations

from enum import Enum


class RequestState(str, Enum):
    """Lifecycle of the one request a session may have in flight."""

    IDLE = "IDLE"
    PENDING = "PENDING"


class StateManager:
    """Track the request state.

    All transitions are synchronous, so a check-and-set in ``transition_if``
    cannot interleave with another coroutine on the same event loop.
    """

    def __init__(self) -> None:
        self._state = RequestState.IDLE

    @property
    def state(self) -> RequestState:
        return self._state

    @property
    def is_pending(self) -> bool:
        """Single derived flag backing both the spinner and the typing indicator."""
        return self._state is RequestState.PENDING

    def transition_to(self, new_state: RequestState) -> RequestState:
        """Transition to a new state and return it."""
        self._state = new_state
        return self._state

    def transition_if(
        self,
        expected_state: RequestState,
        new_state: RequestState,
    ) -> bool:
        """Transition only when current state matches expected state."""
        if self._state is not expected_state:
            return False
        self._state = new_state
        return True
