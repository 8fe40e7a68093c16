"""Base exceptions for sendrecv."""


class SendrecvError(Exception):
    """Base exception for all sendrecv errors."""

    pass


class TransportError(SendrecvError):
    """Relay could not be reached (DNS, TLS, connection refused, HTTP status)."""

    pass


class ProtocolError(SendrecvError):
    """Relay answered with something that is not the expected event stream."""

    pass


class StateError(SendrecvError):
    """Operation attempted outside its legal call state."""

    pass


class StreamAbortedExpected(SendrecvError):
    """The consumer ended the event stream after receiving its message.

    Not a failure: raised inside the stream reader to unwind the transfer
    and swallowed by the stream itself.
    """

    pass
