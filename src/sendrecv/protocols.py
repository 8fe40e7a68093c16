"""Protocols, enums and value types for sendrecv."""

from dataclasses import dataclass
from enum import Enum, IntEnum
from typing import Awaitable, Callable, Protocol, Union


class SdpType(Enum):
    """Role of a session description in the offer/answer handshake."""

    OFFER = "offer"
    ANSWER = "answer"


@dataclass(frozen=True)
class SessionDescription:
    """A session description produced or consumed by the media engine."""

    type: SdpType
    sdp: str

    def to_message(self) -> dict:
        """Wire representation sent through the relay."""
        return {"type": self.type.value, "sdp": self.sdp}


class CallState(IntEnum):
    """Coarse lifecycle of the single call.

    Values are ordered: anything below NEGOTIATING is not yet in a call.
    """

    UNKNOWN = 0
    ERROR = 1  # generic error
    CONNECTING = 3000
    CONNECTION_ERROR = 3001
    CONNECTED = 3002
    NEGOTIATING = 4000
    STARTED = 4001
    STOPPING = 4002
    STOPPED = 4003
    CALL_ERROR = 4004


TERMINAL_STATES = frozenset(
    {CallState.ERROR, CallState.CONNECTION_ERROR, CallState.CALL_ERROR, CallState.STOPPED}
)

FAILURE_STATES = frozenset(
    {CallState.ERROR, CallState.CONNECTION_ERROR, CallState.CALL_ERROR}
)


@dataclass(frozen=True)
class Success:
    """Negotiation produced a remote description."""

    description: SessionDescription


@dataclass(frozen=True)
class Failed:
    """Negotiation failed; ``reason`` is a stable machine-readable string."""

    reason: str


NegotiationOutcome = Union[Success, Failed]


NegotiationNeededCallback = Callable[[], Awaitable[None]]


class MediaEngine(Protocol):
    """Media pipeline collaborator.

    Builds local descriptions and applies remote ones. Signaling never looks
    inside the SDP beyond the bandwidth line it rewrites.
    """

    async def start(self) -> None:
        """Build and start the pipeline. Raises on failure."""
        ...

    def on_negotiation_needed(self, callback: NegotiationNeededCallback) -> None:
        """Register the callback fired when the engine wants to (re)negotiate."""
        ...

    async def create_offer(self) -> SessionDescription:
        """Create and apply a local offer."""
        ...

    async def create_answer(self, offer: SessionDescription) -> SessionDescription:
        """Apply a remote offer, then create and apply a local answer."""
        ...

    async def set_remote_description(self, description: SessionDescription) -> None:
        """Apply a remote description."""
        ...

    async def close(self) -> None:
        """Stop the pipeline and release its resources."""
        ...


# Reasons carried by Failed outcomes
REASON_TRANSPORT_UNREACHABLE = "transport-unreachable"
REASON_STREAM_ERROR = "stream-error"
REASON_MALFORMED_MESSAGE = "malformed-message"
REASON_UNEXPECTED_TYPE = "unexpected-type"
REASON_TIMEOUT = "timeout"
