"""Validation of description messages received through the relay.

The message body published by the peer is itself JSON::

    {"type": "answer", "sdp": "v=0\\r\\n..."}

Only the shape is checked here. Nothing that fails validation ever reaches
the media engine. A ``type`` other than offer or answer is rejected as
``unexpected-type`` rather than passed through, since the media engine can
only apply those two.
"""

import json
import logging

from sendrecv.protocols import (
    REASON_MALFORMED_MESSAGE,
    REASON_UNEXPECTED_TYPE,
    Failed,
    NegotiationOutcome,
    SdpType,
    SessionDescription,
    Success,
)

logger = logging.getLogger(__name__)


def parse_description_message(payload: str) -> NegotiationOutcome:
    """Turn a relay message body into a negotiation outcome.

    Args:
        payload: The ``message`` field of a relay message event.

    Returns:
        Success carrying the parsed description, or Failed with
        ``malformed-message`` (not a JSON object, missing ``type``, missing
        ``sdp``) or ``unexpected-type`` (``type`` is neither offer nor answer).
    """
    try:
        data = json.loads(payload)
    except (ValueError, RecursionError):
        logger.warning(f"Unknown message {payload[:100]!r}")
        return Failed(REASON_MALFORMED_MESSAGE)

    if not isinstance(data, dict):
        logger.warning(f"Unknown json message {payload[:100]!r}")
        return Failed(REASON_MALFORMED_MESSAGE)

    if "type" not in data:
        logger.warning("Received SDP without 'type'")
        return Failed(REASON_MALFORMED_MESSAGE)

    try:
        sdp_type = SdpType(data["type"])
    except ValueError:
        logger.warning(f"Received SDP of unexpected type {data['type']!r}")
        return Failed(REASON_UNEXPECTED_TYPE)

    sdp = data.get("sdp")
    if not isinstance(sdp, str) or not sdp:
        logger.warning(f"Received {sdp_type.value} without 'sdp'")
        return Failed(REASON_MALFORMED_MESSAGE)

    return Success(SessionDescription(type=sdp_type, sdp=sdp))
