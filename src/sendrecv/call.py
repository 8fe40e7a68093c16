"""Call controller: drives one call from pipeline start to teardown.

The controller owns the call state and is its only writer. Negotiation
results come back to it as NegotiationOutcome values; it applies them to the
media engine and moves the call along. Failures are never retried here.
"""

import logging

from sendrecv.errors import StateError
from sendrecv.protocols import (
    REASON_TRANSPORT_UNREACHABLE,
    CallState,
    Failed,
    MediaEngine,
    NegotiationOutcome,
    SdpType,
)
from sendrecv.relay.session import NegotiationSession
from sendrecv.state import CallStateMachine

logger = logging.getLogger(__name__)

# Process exit codes
EXIT_OK = 0
EXIT_MISSING_CAPABILITY = 1
EXIT_CALL_ERROR = 2
EXIT_CONNECTION_ERROR = 3


def exit_code_for(state: CallState) -> int:
    """Map the final call state to a process exit code."""
    if state == CallState.CONNECTION_ERROR:
        return EXIT_CONNECTION_ERROR
    if state in (CallState.CALL_ERROR, CallState.ERROR):
        return EXIT_CALL_ERROR
    return EXIT_OK


class CallController:
    """Runs a single call over a media engine and a negotiation session."""

    def __init__(
        self,
        engine: MediaEngine,
        session: NegotiationSession,
        call: CallStateMachine,
    ):
        self._engine = engine
        self._session = session
        self._call = call

    @property
    def call(self) -> CallStateMachine:
        """The call state machine."""
        return self._call

    async def run(self) -> CallState:
        """Start the pipeline and block until the call ends.

        Returns:
            The terminal call state.
        """
        self._engine.on_negotiation_needed(self._on_negotiation_needed)

        try:
            await self._engine.start()
        except Exception as e:
            logger.exception(f"Pipeline start error: {e}")
            self._call.fail(CallState.CALL_ERROR, "ERROR: failed to start pipeline")
        else:
            if not self._call.is_terminal():
                self._call.transition(CallState.CONNECTED)

        state = await self._call.wait_finished()
        await self._engine.close()
        return state

    async def stop(self, reason: str = "call ended") -> None:
        """Tear the call down: Stopping, then Stopped."""
        if self._call.is_terminal():
            return

        self._session.abort()
        if not self._call.can_transition(CallState.STOPPING):
            self._call.fail(CallState.ERROR, f"{reason} before the pipeline started")
            return

        self._call.transition(CallState.STOPPING)
        self._call.transition(CallState.STOPPED, reason)

    def fail(self, message: str) -> None:
        """Report an unrecoverable media failure."""
        self._session.abort()
        self._call.fail(CallState.CALL_ERROR, message)

    async def _on_negotiation_needed(self) -> None:
        """Create an offer and run one negotiation attempt."""
        try:
            self._call.transition(CallState.NEGOTIATING)
        except StateError as e:
            logger.warning(f"Ignoring negotiation request: {e}")
            return

        try:
            offer = await self._engine.create_offer()
            outcome = await self._session.negotiate(offer)
            await self._apply(outcome)
        except StateError as e:
            self._call.fail(CallState.CALL_ERROR, str(e))
        except Exception as e:
            logger.exception(f"Negotiation error: {e}")
            self._call.fail(CallState.CALL_ERROR, f"Negotiation error: {e}")

    async def _apply(self, outcome: NegotiationOutcome) -> None:
        """Hand a negotiation outcome to the media engine."""
        if self._call.state != CallState.NEGOTIATING:
            logger.debug(f"Discarding outcome after call left negotiation: {outcome!r}")
            return

        if isinstance(outcome, Failed):
            if outcome.reason == REASON_TRANSPORT_UNREACHABLE:
                self._call.fail(
                    CallState.CONNECTION_ERROR, "Failed to connect to the signaling relay"
                )
            else:
                self._call.fail(CallState.CALL_ERROR, f"Negotiation failed: {outcome.reason}")
            return

        remote = outcome.description
        logger.info(f"Received {remote.type.value}:\n{remote.sdp}")
        if remote.type == SdpType.ANSWER:
            await self._engine.set_remote_description(remote)
        else:
            answer = await self._engine.create_answer(remote)
            if not await self._session.send(answer):
                logger.warning("Publishing answer may have failed")

        self._call.transition(CallState.STARTED)
        logger.info("Call started")
