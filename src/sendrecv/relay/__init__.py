"""ntfy relay used as an ad hoc signaling channel.

This package provides the offer/answer exchange over two relay topics.
"""

from sendrecv.relay.events import (
    SignalError,
    SignalEvent,
    SignalMessage,
    SignalOpen,
    parse_event_line,
)
from sendrecv.relay.session import NegotiationSession, encode_description
from sendrecv.relay.transport import EventStream, RelayTransport, build_ssl_option
from sendrecv.relay.validation import parse_description_message

__all__ = [
    "SignalError",
    "SignalEvent",
    "SignalMessage",
    "SignalOpen",
    "parse_event_line",
    "NegotiationSession",
    "encode_description",
    "EventStream",
    "RelayTransport",
    "build_ssl_option",
    "parse_description_message",
]
