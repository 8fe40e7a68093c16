"""Events delivered by a relay subscription.

ntfy's SSE endpoint sends lines like::

    data: {"id":"...","time":...,"event":"open","topic":"..."}
    data: {"id":"...","time":...,"event":"message","topic":"...","message":"<content>"}

Keepalives, comments, and anything else not understood are ignored.
"""

import json
import logging
from dataclasses import dataclass
from typing import Optional, Union

logger = logging.getLogger(__name__)

DATA_PREFIX = "data:"


@dataclass(frozen=True)
class SignalOpen:
    """The relay confirmed the subscription is attached."""


@dataclass(frozen=True)
class SignalMessage:
    """A message published to the topic."""

    payload: str


@dataclass(frozen=True)
class SignalError:
    """The stream ended for any reason other than a deliberate abort."""

    detail: str


SignalEvent = Union[SignalOpen, SignalMessage, SignalError]


def parse_event_line(line: str) -> Optional[SignalEvent]:
    """Decode one line of an ntfy event stream.

    Args:
        line: A single line of the response body.

    Returns:
        SignalOpen or SignalMessage for recognized events, None for anything
        else (non-data lines, bad JSON, unknown or missing ``event``).
    """
    line = line.strip()
    if not line.startswith(DATA_PREFIX):
        return None

    try:
        data = json.loads(line[len(DATA_PREFIX):])
    except (ValueError, RecursionError) as e:
        logger.debug(f"Ignoring undecodable event data: {e}")
        return None

    if not isinstance(data, dict) or "event" not in data:
        logger.debug("Ignoring event data without an event field")
        return None

    event = data["event"]
    if event == "open":
        return SignalOpen()
    if event == "message":
        message = data.get("message")
        if not isinstance(message, str):
            logger.debug("Ignoring message event without a message body")
            return None
        return SignalMessage(message)

    logger.debug(f"Ignoring ntfy event: {event}")
    return None
