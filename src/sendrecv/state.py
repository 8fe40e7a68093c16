"""Call state machine.

Tracks the coarse lifecycle of the one call this process runs:

    UNKNOWN -> CONNECTED -> NEGOTIATING -> STARTED -> STOPPING -> STOPPED

Any non-terminal state may fail into ERROR, CONNECTION_ERROR or CALL_ERROR.
Failure states and STOPPED are terminal: reaching one ends the call loop.
The state has a single writer, the event loop running the call.
"""

import asyncio
import logging
from typing import Optional

from sendrecv.errors import StateError
from sendrecv.protocols import FAILURE_STATES, TERMINAL_STATES, CallState

logger = logging.getLogger(__name__)


# Non-failure transitions; failure transitions are allowed from any
# non-terminal state.
_TRANSITIONS: dict[CallState, frozenset[CallState]] = {
    CallState.UNKNOWN: frozenset({CallState.CONNECTING, CallState.CONNECTED}),
    CallState.CONNECTING: frozenset({CallState.CONNECTED}),
    CallState.CONNECTED: frozenset({CallState.NEGOTIATING, CallState.STOPPING}),
    CallState.NEGOTIATING: frozenset({CallState.STARTED, CallState.STOPPING}),
    CallState.STARTED: frozenset({CallState.NEGOTIATING, CallState.STOPPING}),
    CallState.STOPPING: frozenset({CallState.STOPPED}),
}


class CallStateMachine:
    """Lifecycle of a single call and the guards that depend on it."""

    def __init__(self, initial: CallState = CallState.UNKNOWN):
        self._state = initial
        self._finished = asyncio.Event()
        self._message: Optional[str] = None

    @property
    def state(self) -> CallState:
        """Current call state."""
        return self._state

    @property
    def message(self) -> Optional[str]:
        """Message recorded with the terminal transition, if any."""
        return self._message

    def is_terminal(self) -> bool:
        """Check if the call has ended."""
        return self._state in TERMINAL_STATES

    def is_failed(self) -> bool:
        """Check if the call ended in a failure state."""
        return self._state in FAILURE_STATES

    def can_transition(self, new_state: CallState) -> bool:
        """Check if ``new_state`` is reachable from the current state."""
        if self.is_terminal():
            return False
        if new_state in FAILURE_STATES:
            return True
        return new_state in _TRANSITIONS.get(self._state, frozenset())

    def transition(self, new_state: CallState, message: Optional[str] = None) -> None:
        """Move to ``new_state``.

        Args:
            new_state: Target state.
            message: Human-readable reason, logged on terminal transitions.

        Raises:
            StateError: If the transition is not allowed.
        """
        if not self.can_transition(new_state):
            raise StateError(
                f"Illegal call state transition {self._state.name} -> {new_state.name}"
            )

        logger.debug(f"Call state {self._state.name} -> {new_state.name}")
        self._state = new_state

        if new_state in TERMINAL_STATES:
            self._message = message or new_state.name.lower().replace("_", " ")
            if new_state in FAILURE_STATES:
                logger.error(f"Call ended ({new_state.name}): {self._message}")
            else:
                logger.info(f"Call ended: {self._message}")
            self._finished.set()

    def fail(self, new_state: CallState, message: str) -> None:
        """Enter a failure state unless the call already ended."""
        if self.is_terminal():
            logger.debug(f"Ignoring {new_state.name} after call ended: {message}")
            return
        self.transition(new_state, message)

    def require_state(self, expected: CallState) -> None:
        """Raise StateError unless the call is in ``expected``."""
        if self._state != expected:
            raise StateError(
                f"Operation requires call state {expected.name}, "
                f"call is {self._state.name}"
            )

    def ensure_can_send(self) -> None:
        """Raise StateError unless descriptions may be sent to the peer."""
        if self._state < CallState.NEGOTIATING or self.is_terminal():
            raise StateError(f"Can't send SDP to peer, not in call ({self._state.name})")

    async def wait_finished(self) -> CallState:
        """Block until the call reaches a terminal state."""
        await self._finished.wait()
        return self._state
