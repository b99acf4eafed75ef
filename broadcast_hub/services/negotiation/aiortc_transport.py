import logging
from typing import Any, Dict, List, Optional

from broadcast_hub.errors import TransportError
from .base import PeerTransport

logger = logging.getLogger(__name__)


class AiortcTransport(PeerTransport):
    """PeerTransport backed by an aiortc RTCPeerConnection.

    aiortc gathers every local candidate before setLocalDescription returns,
    so they travel inside the SDP and "icecandidate" is never emitted.
    Remote candidates are still accepted for peers that trickle them.
    """

    def __init__(self, ice_servers: Optional[List[Dict[str, Any]]] = None, relay: Any = None):
        super().__init__()
        from aiortc import RTCConfiguration, RTCIceServer, RTCPeerConnection  # lazy import

        servers = [
            RTCIceServer(urls=s["urls"], username=s.get("username"), credential=s.get("credential"))
            for s in ice_servers or []
        ]
        self.pc = RTCPeerConnection(RTCConfiguration(iceServers=servers))
        # A single source track can only feed one consumer without a relay
        self.relay = relay

        @self.pc.on("connectionstatechange")
        async def on_connectionstatechange():
            logger.debug("Connection state: %s", self.pc.connectionState)
            await self.emit("connectionstatechange", self.pc.connectionState)

        @self.pc.on("track")
        async def on_track(track):
            logger.debug("Remote %s track received", track.kind)
            await self.emit("track", track)

    @property
    def signaling_state(self) -> str:
        return self.pc.signalingState

    @property
    def connection_state(self) -> str:
        return self.pc.connectionState

    def add_track(self, track: Any) -> None:
        if self.relay is not None:
            track = self.relay.subscribe(track)
        self.pc.addTrack(track)

    async def create_offer(self) -> Dict[str, str]:
        try:
            await self.pc.setLocalDescription(await self.pc.createOffer())
        except Exception as e:
            raise TransportError(f"Could not create offer: {e}") from e
        return self._local_description()

    async def create_answer(self) -> Dict[str, str]:
        try:
            await self.pc.setLocalDescription(await self.pc.createAnswer())
        except Exception as e:
            raise TransportError(f"Could not create answer: {e}") from e
        return self._local_description()

    async def set_remote_description(self, description: Dict[str, str]) -> None:
        from aiortc import RTCSessionDescription

        try:
            await self.pc.setRemoteDescription(
                RTCSessionDescription(sdp=description["sdp"], type=description["type"])
            )
        except Exception as e:
            raise TransportError(f"Could not apply remote description: {e}") from e

    async def add_ice_candidate(self, candidate: Dict[str, Any]) -> None:
        from aiortc.sdp import candidate_from_sdp

        line = (candidate.get("candidate") or "").strip()
        if not line:
            # End-of-candidates marker
            return
        if line.startswith("candidate:"):
            line = line[len("candidate:"):]
        try:
            ice_candidate = candidate_from_sdp(line)
            ice_candidate.sdpMid = candidate.get("sdpMid")
            ice_candidate.sdpMLineIndex = candidate.get("sdpMLineIndex")
            await self.pc.addIceCandidate(ice_candidate)
        except Exception as e:
            raise TransportError(f"Could not add candidate: {e}") from e

    async def close(self) -> None:
        try:
            await self.pc.close()
        except Exception as e:
            raise TransportError(f"Could not close peer connection: {e}") from e

    def _local_description(self) -> Dict[str, str]:
        description = self.pc.localDescription
        return {"type": description.type, "sdp": description.sdp}
