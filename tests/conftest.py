"""Pytest configuration and shared fixtures."""

import asyncio
import json
import time
from collections import defaultdict

import pytest
import pytest_asyncio
from aiohttp import web


@pytest.fixture(autouse=True)
def reset_logging_state():
    """Reset logging state before each test."""
    from sendrecv.logging import reset_logging

    reset_logging()
    yield
    reset_logging()


@pytest_asyncio.fixture(autouse=True, loop_scope="function")
async def cleanup_aiohttp_sessions():
    """Give aiohttp sessions time to clean up their connectors."""
    yield
    await asyncio.sleep(0)


class FakeRelay:
    """In-process stand-in for an ntfy server.

    - GET /{topic}/sse streams ntfy-style events
    - POST /{topic} records the body and releases queued replies

    ``log`` records ("open", topic) when the open event is written and
    ("publish", topic) when a publish arrives, in order.
    """

    # Upper bound on how long a subscriber handler stays idle
    MAX_IDLE = 5.0  # seconds

    def __init__(self):
        self.app = web.Application()
        self.app.router.add_get("/{topic}/sse", self._subscribe)
        self.app.router.add_post("/{topic}", self._publish)

        self.log: list[tuple[str, str]] = []
        self.published: dict[str, list[str]] = defaultdict(list)
        self.publish_headers: list[dict] = []
        self.subscribe_headers: list[dict] = []

        # Subscription behavior
        self.subscribe_status = 200
        self.content_type = "text/event-stream; charset=utf-8"
        self.open_delay = 0.0
        self.send_open = True
        self.replies: list[str] = []  # raw SSE text written after a publish
        self.reply_immediately = False  # write replies without waiting for a publish
        self.close_after_replies = False

        # Publish behavior
        self.publish_status = 200

        self._closed = False

    @staticmethod
    def event(event: str, **fields) -> str:
        """Build one SSE data line the way ntfy sends it."""
        data = {"id": "abc123", "time": int(time.time()), "event": event, "topic": "t"}
        data.update(fields)
        return f"data: {json.dumps(data)}\n\n"

    @classmethod
    def message(cls, payload: str) -> str:
        """SSE line for a message event carrying ``payload``."""
        return cls.event("message", message=payload)

    @classmethod
    def description(cls, sdp_type: str, sdp: str) -> str:
        """SSE line for a message carrying a session description."""
        return cls.message(json.dumps({"type": sdp_type, "sdp": sdp}))

    def close(self) -> None:
        """Release every idle subscriber handler."""
        self._closed = True

    def published_count(self) -> int:
        return sum(1 for entry in self.log if entry[0] == "publish")

    async def _idle_until(self, request: web.Request, predicate) -> bool:
        deadline = time.monotonic() + self.MAX_IDLE
        while not predicate():
            transport = request.transport
            if self._closed or transport is None or transport.is_closing():
                return False
            if time.monotonic() > deadline:
                return False
            await asyncio.sleep(0.01)
        return True

    async def _subscribe(self, request: web.Request) -> web.StreamResponse:
        topic = request.match_info["topic"]
        self.subscribe_headers.append(dict(request.headers))

        if self.subscribe_status != 200:
            return web.Response(status=self.subscribe_status, text="nope")

        response = web.StreamResponse(headers={"Content-Type": self.content_type})
        await response.prepare(request)

        try:
            if self.open_delay:
                await asyncio.sleep(self.open_delay)
            published_before = self.published_count()
            if self.send_open:
                self.log.append(("open", topic))
                await response.write(self.event("open").encode())

            if not self.reply_immediately:
                released = await self._idle_until(
                    request, lambda: self.published_count() > published_before
                )
                if not released:
                    return response

            for reply in self.replies:
                await response.write(reply.encode())

            if not self.close_after_replies:
                await self._idle_until(request, lambda: False)
        except ConnectionResetError:
            pass
        return response

    async def _publish(self, request: web.Request) -> web.Response:
        topic = request.match_info["topic"]
        body = await request.text()
        self.publish_headers.append(dict(request.headers))
        self.published[topic].append(body)
        self.log.append(("publish", topic))
        return web.Response(status=self.publish_status, text="{}")


@pytest.fixture
def fake_relay():
    """A FakeRelay that is closed after the test."""
    relay = FakeRelay()
    yield relay
    relay.close()


@pytest_asyncio.fixture
async def relay_url(aiohttp_server, fake_relay):
    """Base URL of a running FakeRelay."""
    server = await aiohttp_server(fake_relay.app)
    return str(server.make_url("/")).rstrip("/")
