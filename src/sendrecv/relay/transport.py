"""HTTP transport for the ntfy relay.

This module provides:
- RelayTransport: publishes to and subscribes to relay topics
- EventStream: one server-push subscription, iterated as SignalEvents

Usage:
    async with RelayTransport(server="https://ntfy.sh") as transport:
        stream = transport.open_event_stream("answers")
        async for event in stream:
            ...
        await transport.publish("offers", body)
"""

import asyncio
import logging
import ssl
from typing import AsyncIterator, Optional, Union

import aiohttp

from sendrecv.errors import ProtocolError, StreamAbortedExpected, TransportError
from sendrecv.relay.events import (
    SignalError,
    SignalEvent,
    SignalMessage,
    SignalOpen,
    parse_event_line,
)

logger = logging.getLogger(__name__)

EVENT_STREAM_CONTENT_TYPE = "text/event-stream"

SslOption = Union[ssl.SSLContext, bool]


def build_ssl_option(
    verify_tls: bool = True,
    ca_file: Optional[str] = None,
    client_cert: Optional[str] = None,
) -> SslOption:
    """Build the ``ssl`` argument passed to aiohttp requests.

    Args:
        verify_tls: False allows insecure connections to the relay.
        ca_file: Extra CA bundle to trust.
        client_cert: PEM file holding a client certificate and its key.

    Returns:
        True for default verification, False to skip it, or an SSLContext.
    """
    if ca_file is None and client_cert is None:
        return verify_tls

    context = ssl.create_default_context(cafile=ca_file)
    if client_cert:
        context.load_cert_chain(client_cert)
    if not verify_tls:
        context.check_hostname = False
        context.verify_mode = ssl.CERT_NONE
    return context


class EventStream:
    """A single subscription to a relay topic.

    Iterating the stream issues the GET and yields events in arrival order:
    at most one SignalOpen, then at most one SignalMessage. Once a message
    has been yielded the transfer is aborted and iteration ends quietly.
    Any other ending (HTTP failure, wrong content type, relay closing the
    stream, external abort) is reported as a final SignalError.
    """

    def __init__(self, session: aiohttp.ClientSession, url: str, ssl: SslOption = True):
        self._session = session
        self._url = url
        self._ssl = ssl
        self._opened = False
        self._message_received = False
        self._abort_requested = False

    @property
    def url(self) -> str:
        """The subscription URL."""
        return self._url

    @property
    def message_received(self) -> bool:
        """True once the stream has delivered its message."""
        return self._message_received

    def abort(self) -> None:
        """Ask the transfer to stop before it processes another line."""
        self._abort_requested = True

    def __aiter__(self) -> AsyncIterator[SignalEvent]:
        return self.events()

    async def events(self) -> AsyncIterator[SignalEvent]:
        """Run the subscription and yield its events."""
        logger.info(f"Connecting to event stream: {self._url}")
        try:
            async with self._session.get(
                self._url,
                headers={"Accept": EVENT_STREAM_CONTENT_TYPE},
                ssl=self._ssl,
                timeout=aiohttp.ClientTimeout(total=None),  # No timeout for SSE
            ) as response:
                self._verify(response)

                async for raw in response.content:
                    if self._abort_requested:
                        response.close()
                        raise StreamAbortedExpected()

                    event = parse_event_line(raw.decode("utf-8", errors="replace"))
                    if isinstance(event, SignalOpen):
                        if self._opened:
                            continue
                        self._opened = True
                        logger.info("Event stream open")
                    elif isinstance(event, SignalMessage):
                        self._message_received = True
                        self._abort_requested = True
                        logger.debug(f"Event stream message ({len(event.payload)} bytes)")

                    if event is not None:
                        yield event

                    if self._message_received:
                        response.close()
                        raise StreamAbortedExpected()
        except StreamAbortedExpected:
            if not self._message_received:
                yield SignalError("stream aborted")
            else:
                logger.debug("Event stream ended after its message")
        except (TransportError, ProtocolError) as e:
            logger.warning(f"Event stream failed: {e}")
            yield SignalError(str(e))
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.warning(f"Event stream failed: {e!r}")
            yield SignalError(f"relay unreachable: {e!r}")
        else:
            logger.warning("Event stream closed by relay")
            yield SignalError("stream closed by relay")

    def _verify(self, response: aiohttp.ClientResponse) -> None:
        """Check status and content type before any body is read.

        Raises:
            TransportError: On a non-2xx status.
            ProtocolError: If the body is not an event stream.
        """
        if not 200 <= response.status < 300:
            raise TransportError(f"event stream request failed with status {response.status}")

        content_type = response.headers.get("Content-Type", "")
        if not content_type.startswith(EVENT_STREAM_CONTENT_TYPE):
            raise ProtocolError(
                f"Invalid content type {content_type!r}, "
                f"should be {EVENT_STREAM_CONTENT_TYPE!r}"
            )


class RelayTransport:
    """Publish/subscribe access to topics on one ntfy server.

    Topics are addressed as ``{server}/{topic}`` for publishing and
    ``{server}/{topic}/sse`` for subscribing.
    """

    # Publish timeout
    REQUEST_TIMEOUT = 10.0  # seconds

    def __init__(
        self,
        server: str = "https://ntfy.sh",
        http_session: Optional[aiohttp.ClientSession] = None,
        ssl: SslOption = True,
        request_timeout: float = REQUEST_TIMEOUT,
    ):
        """Initialize transport.

        Args:
            server: ntfy server URL.
            http_session: Optional aiohttp session (for testing).
            ssl: TLS option passed to every request.
            request_timeout: Timeout for publish requests, in seconds.
        """
        self._server = server.rstrip("/")
        self._session = http_session
        self._owns_session = http_session is None
        self._ssl = ssl
        self._request_timeout = request_timeout

    async def __aenter__(self) -> "RelayTransport":
        """Enter async context, creating session if needed."""
        self._ensure_session()
        return self

    async def __aexit__(self, *args) -> None:
        """Exit async context, closing owned session."""
        await self.close()

    @property
    def server(self) -> str:
        """The ntfy server URL."""
        return self._server

    def publish_url(self, topic: str) -> str:
        """URL messages are POSTed to."""
        return f"{self._server}/{topic}"

    def subscribe_url(self, topic: str) -> str:
        """URL of the topic's event stream."""
        return f"{self._server}/{topic}/sse"

    def open_event_stream(self, topic: str) -> EventStream:
        """Create a subscription to ``topic``.

        The request is issued when the returned stream is iterated.
        """
        return EventStream(self._ensure_session(), self.subscribe_url(topic), ssl=self._ssl)

    async def publish(self, topic: str, body: str) -> bool:
        """POST ``body`` to ``topic``.

        Args:
            topic: Topic to publish to.
            body: UTF-8 text to publish.

        Returns:
            True if the relay accepted the message, False on any failure.
        """
        session = self._ensure_session()
        url = self.publish_url(topic)

        try:
            async with session.post(
                url,
                data=body.encode("utf-8"),
                ssl=self._ssl,
                timeout=aiohttp.ClientTimeout(total=self._request_timeout),
            ) as response:
                if 200 <= response.status < 300:
                    logger.debug(f"Published {len(body)} bytes to {topic}")
                    return True
                logger.warning(f"Publish to {topic} failed with status {response.status}")
                return False
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.warning(f"Publish to {topic} failed: {e!r}")
            return False

    async def close(self) -> None:
        """Close the HTTP session if owned."""
        if self._owns_session and self._session:
            await self._session.close()
            # Allow event loop to clean up connector
            await asyncio.sleep(0)
            self._session = None

    def _ensure_session(self) -> aiohttp.ClientSession:
        if self._session is None:
            self._session = aiohttp.ClientSession()
        return self._session
