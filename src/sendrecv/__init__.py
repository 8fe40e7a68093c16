"""ntfy-sendrecv: negotiate a WebRTC call over an ntfy relay."""

__version__ = "0.1.0"
