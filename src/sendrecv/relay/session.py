"""One offer/answer round trip through the relay.

The relay keeps nothing for subscribers that are not attached yet, so the
answer topic is subscribed (and its "open" event seen) before the offer is
published. The subscription runs in its own task and hands results back
through two single-shot futures:

- opened: True once the stream is attached, False if it failed first
- message: the first SignalMessage, or the SignalError that ended the stream

Both are resolved first-write-wins; anything arriving later is ignored.
"""

import asyncio
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Optional

from sendrecv.errors import StateError
from sendrecv.protocols import (
    REASON_STREAM_ERROR,
    REASON_TIMEOUT,
    REASON_TRANSPORT_UNREACHABLE,
    CallState,
    Failed,
    NegotiationOutcome,
    SessionDescription,
)
from sendrecv.relay.events import SignalError, SignalMessage, SignalOpen
from sendrecv.relay.transport import EventStream, RelayTransport
from sendrecv.relay.validation import parse_description_message
from sendrecv.sdp import DEFAULT_BITRATE_KBPS, DEFAULT_MEDIA, set_media_bitrate
from sendrecv.state import CallStateMachine

logger = logging.getLogger(__name__)


@dataclass
class _Attempt:
    """State owned by one negotiation attempt."""

    stream: EventStream
    opened: asyncio.Future
    message: asyncio.Future
    task: Optional[asyncio.Task] = field(default=None)


def _resolve(future: asyncio.Future, value: Any) -> bool:
    """Set a single-shot result; later writes are dropped."""
    if future.done():
        logger.debug(f"Ignoring late result: {value!r}")
        return False
    future.set_result(value)
    return True


def encode_description(description: SessionDescription) -> str:
    """Apply the bandwidth policy and serialize for the relay."""
    sdp = set_media_bitrate(description.sdp, DEFAULT_MEDIA, DEFAULT_BITRATE_KBPS)
    rewritten = SessionDescription(type=description.type, sdp=sdp)
    return json.dumps(rewritten.to_message(), separators=(",", ":"))


class NegotiationSession:
    """Publishes local descriptions and waits for the peer's reply.

    Only one attempt may be in flight. A failed attempt is never retried
    here; the caller starts a fresh one, including a fresh subscription.
    """

    # Wait for the event stream to attach
    CONNECT_TIMEOUT = 10.0  # seconds

    def __init__(
        self,
        transport: RelayTransport,
        call: CallStateMachine,
        offer_topic: str,
        answer_topic: str,
        connect_timeout: Optional[float] = CONNECT_TIMEOUT,
        answer_timeout: Optional[float] = None,
    ):
        """Initialize session.

        Args:
            transport: Relay transport used for both directions.
            call: Call state machine guarding when descriptions may be sent.
            offer_topic: Topic our descriptions are published to.
            answer_topic: Topic the peer's replies arrive on.
            connect_timeout: Seconds to wait for the stream to open (None waits forever).
            answer_timeout: Seconds to wait for the reply (None waits forever).
        """
        self._transport = transport
        self._call = call
        self._offer_topic = offer_topic
        self._answer_topic = answer_topic
        self._connect_timeout = connect_timeout
        self._answer_timeout = answer_timeout
        self._attempt: Optional[_Attempt] = None

    def is_negotiating(self) -> bool:
        """Check if an attempt is in flight."""
        return self._attempt is not None

    async def negotiate(self, local: SessionDescription) -> NegotiationOutcome:
        """Send ``local`` and wait for the peer's description.

        Args:
            local: Description created by the media engine.

        Returns:
            Success with the peer's description, or Failed.

        Raises:
            StateError: If the call is not negotiating or an attempt is
                already in flight. Nothing is sent in that case.
        """
        self._call.require_state(CallState.NEGOTIATING)
        if self._attempt is not None:
            raise StateError("A negotiation is already in progress")

        body = encode_description(local)
        loop = asyncio.get_running_loop()
        attempt = _Attempt(
            stream=self._transport.open_event_stream(self._answer_topic),
            opened=loop.create_future(),
            message=loop.create_future(),
        )
        self._attempt = attempt
        attempt.task = asyncio.create_task(self._run_subscription(attempt))

        try:
            return await self._exchange(attempt, local, body)
        finally:
            self._attempt = None
            await self._stop(attempt)

    async def send(self, local: SessionDescription) -> bool:
        """Publish ``local`` without waiting for a reply.

        Used for answers to a remote offer.

        Returns:
            True if the relay accepted the message.

        Raises:
            StateError: If the call has not reached negotiation.
        """
        self._call.ensure_can_send()
        body = encode_description(local)
        logger.info(f"Sending {local.type.value}")
        return await self._transport.publish(self._offer_topic, body)

    def abort(self) -> None:
        """End the in-flight attempt, if any, from outside (e.g. shutdown)."""
        attempt = self._attempt
        if attempt is None:
            return
        logger.info("Aborting negotiation")
        attempt.stream.abort()
        _resolve(attempt.opened, False)
        _resolve(attempt.message, SignalError("negotiation aborted"))

    async def _exchange(
        self, attempt: _Attempt, local: SessionDescription, body: str
    ) -> NegotiationOutcome:
        try:
            opened = await asyncio.wait_for(attempt.opened, timeout=self._connect_timeout)
        except asyncio.TimeoutError:
            logger.error(f"Event stream not open after {self._connect_timeout}s")
            opened = False

        if not opened:
            logger.error("Failed to connect to the relay event stream")
            return Failed(REASON_TRANSPORT_UNREACHABLE)

        logger.info(f"Sending {local.type.value}:\n{json.loads(body)['sdp']}")
        if not await self._transport.publish(self._offer_topic, body):
            # Best effort: a reply may still arrive if the relay got it.
            logger.warning(f"Publishing {local.type.value} may have failed")

        try:
            event = await asyncio.wait_for(attempt.message, timeout=self._answer_timeout)
        except asyncio.TimeoutError:
            logger.error(f"No reply after {self._answer_timeout}s")
            return Failed(REASON_TIMEOUT)

        if isinstance(event, SignalError):
            logger.error(f"Event stream error: {event.detail}")
            return Failed(REASON_STREAM_ERROR)

        outcome = parse_description_message(event.payload)
        logger.debug(f"Negotiation outcome: {outcome!r}")
        return outcome

    async def _run_subscription(self, attempt: _Attempt) -> None:
        """Feed stream events into the attempt's result futures.

        Anything the stream raises is delivered as a SignalError, so a
        waiting negotiate always gets an answer.
        """
        try:
            async for event in attempt.stream:
                if isinstance(event, SignalOpen):
                    _resolve(attempt.opened, True)
                elif isinstance(event, SignalMessage):
                    _resolve(attempt.message, event)
                else:
                    _resolve(attempt.opened, False)
                    _resolve(attempt.message, event)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.warning(f"Event stream failed: {e!r}")
            _resolve(attempt.opened, False)
            _resolve(attempt.message, SignalError(f"event stream failed: {e!r}"))

    async def _stop(self, attempt: _Attempt) -> None:
        attempt.stream.abort()
        task = attempt.task
        if task is None or task.done():
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
