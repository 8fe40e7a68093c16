"""aiortc media engine.

Sends a synthetic video and audio track, opens a data channel, and drains
whatever the peer sends back. Signaling sees it only through the
MediaEngine protocol.
"""

import asyncio
import logging
from typing import Callable, Optional

from aiortc import (
    AudioStreamTrack,
    RTCConfiguration,
    RTCIceServer,
    RTCPeerConnection,
    RTCRtpSender,
    RTCSessionDescription,
    VideoStreamTrack,
)
from aiortc.contrib.media import MediaBlackhole

from sendrecv.protocols import NegotiationNeededCallback, SdpType, SessionDescription

logger = logging.getLogger(__name__)

# Codecs a call cannot work without: (kind, mimeType)
REQUIRED_CODECS = [
    ("video", "video/VP8"),
    ("audio", "audio/opus"),
]

DATA_CHANNEL_LABEL = "channel"


def missing_capabilities() -> list[str]:
    """Return the required codecs the media stack does not provide."""
    missing = []
    for kind, mime_type in REQUIRED_CODECS:
        codecs = RTCRtpSender.getCapabilities(kind).codecs
        if not any(codec.mimeType.lower() == mime_type.lower() for codec in codecs):
            missing.append(mime_type)
    return missing


class AiortcMediaEngine:
    """MediaEngine backed by an aiortc RTCPeerConnection."""

    def __init__(
        self,
        stun_servers: list[str] | None = None,
        pc_factory: Callable[[RTCConfiguration], RTCPeerConnection] | None = None,
    ):
        """Initialize engine.

        Args:
            stun_servers: STUN server URLs; empty for host candidates only.
            pc_factory: Factory to create RTCPeerConnection (for testing).
        """
        self.stun_servers = stun_servers or []
        self._pc_factory = pc_factory or self._default_pc_factory
        self._pc: RTCPeerConnection | None = None
        self._sink = MediaBlackhole()
        self._negotiation_needed: Optional[NegotiationNeededCallback] = None
        self._failed_callback: Callable[[str], None] | None = None
        self._negotiation_task: asyncio.Task | None = None

    def _default_pc_factory(self, config: RTCConfiguration) -> RTCPeerConnection:
        """Create default RTCPeerConnection."""
        return RTCPeerConnection(configuration=config)

    def on_negotiation_needed(self, callback: NegotiationNeededCallback) -> None:
        """Register the callback fired once the pipeline has tracks to offer."""
        self._negotiation_needed = callback

    def on_failed(self, callback: Callable[[str], None]) -> None:
        """Register a callback for an unrecoverable connection failure."""
        self._failed_callback = callback

    @property
    def pc(self) -> RTCPeerConnection:
        if self._pc is None:
            raise RuntimeError("Media engine not started")
        return self._pc

    async def start(self) -> None:
        """Create the peer connection, add the local tracks and a data channel."""
        if self.stun_servers:
            config = RTCConfiguration(iceServers=[RTCIceServer(urls=self.stun_servers)])
        else:
            config = RTCConfiguration(iceServers=[])
        self._pc = self._pc_factory(config)
        pc = self._pc

        @pc.on("connectionstatechange")
        async def on_connection_state_change():
            state = pc.connectionState
            logger.info(f"Connection state: {state}")
            if state == "failed" and self._failed_callback:
                self._failed_callback("peer connection failed")

        @pc.on("track")
        def on_track(track):
            logger.info(f"Receiving {track.kind} track")
            self._sink.addTrack(track)
            asyncio.ensure_future(self._sink.start())

        @pc.on("datachannel")
        def on_datachannel(channel):
            self._setup_channel(channel)

        pc.addTrack(VideoStreamTrack())
        pc.addTrack(AudioStreamTrack())
        self._setup_channel(pc.createDataChannel(DATA_CHANNEL_LABEL))
        logger.info("Media pipeline started")

        if self._negotiation_needed:
            self._negotiation_task = asyncio.create_task(self._negotiation_needed())

    def _setup_channel(self, channel) -> None:
        @channel.on("open")
        def on_open():
            logger.info(f"Data channel '{channel.label}' open")
            channel.send("Hi! from sendrecv")

        @channel.on("message")
        def on_message(message):
            if isinstance(message, str):
                logger.info(f"Received data channel message: {message}")

        @channel.on("close")
        def on_close():
            logger.info(f"Data channel '{channel.label}' closed")

    async def create_offer(self) -> SessionDescription:
        """Create an offer and set it as the local description."""
        offer = await self.pc.createOffer()
        await self.pc.setLocalDescription(offer)
        return SessionDescription(SdpType.OFFER, self.pc.localDescription.sdp)

    async def create_answer(self, offer: SessionDescription) -> SessionDescription:
        """Apply a remote offer and return the local answer."""
        await self.set_remote_description(offer)
        answer = await self.pc.createAnswer()
        await self.pc.setLocalDescription(answer)
        return SessionDescription(SdpType.ANSWER, self.pc.localDescription.sdp)

    async def set_remote_description(self, description: SessionDescription) -> None:
        """Apply a description received from the peer."""
        await self.pc.setRemoteDescription(
            RTCSessionDescription(sdp=description.sdp, type=description.type.value)
        )

    async def close(self) -> None:
        """Stop the sink and close the peer connection."""
        await self._sink.stop()
        if self._pc is not None:
            await self._pc.close()
            self._pc = None
        logger.info("Pipeline stopped")
