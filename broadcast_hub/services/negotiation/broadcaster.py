import logging
from enum import Enum
from functools import partial
from typing import Any, Dict, Optional

from broadcast_hub.errors import InvalidSource, TransportError
from .base import CLOSED_STATES, MediaStream, PeerSession, TransportFactory, generate_id
from .events import EventEmitter

logger = logging.getLogger(__name__)


class BroadcasterState(str, Enum):
    IDLE = "idle"
    BROADCASTING = "broadcasting"
    HALTED = "halted"


class ViewerSessionState(str, Enum):
    REQUESTED = "requested"
    OFFER_SENT = "offer_sent"
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"


class Broadcaster(EventEmitter):
    """Publishes one media stream to every viewer that requests it.

    Start with `await broadcaster.start(stream)`; stop with `await broadcaster.stop()`.
    Inbound negotiation messages are passed to `viewer_request`, `viewer_confirm`
    and `add_ice_candidate`.

    Events:
      "broadcasting"                 accepting requests
      "halted"                       no longer accepting requests
      "sendOffer" (data)             {name: self.id, target: viewer id, sdp}
      "iceCandidate" (data)          {name: self.id, target: viewer id, candidate}
      "viewerConnected" (viewer_id)
      "viewerDisconnected" (viewer_id)
    """

    def __init__(self, transport_factory: TransportFactory, id: Optional[str] = None):
        super().__init__()
        self.id = id or generate_id()
        self._transport_factory = transport_factory
        self._state = BroadcasterState.IDLE
        self._stream: Optional[MediaStream] = None
        self._viewers: Dict[str, PeerSession] = {}
        self.ready()

    @property
    def state(self) -> BroadcasterState:
        return self._state

    @property
    def broadcasting(self) -> bool:
        return self._state is BroadcasterState.BROADCASTING

    @property
    def stream(self) -> Optional[MediaStream]:
        return self._stream

    @property
    def viewers(self) -> tuple[str, ...]:
        return tuple(self._viewers)

    def viewer_state(self, viewer_id: str) -> Optional[ViewerSessionState]:
        session = self._viewers.get(viewer_id)
        return session.state if session else None

    async def start(self, stream: MediaStream) -> None:
        if self.broadcasting:
            return
        if not isinstance(stream, MediaStream):
            raise InvalidSource()
        self._stream = stream
        self._state = BroadcasterState.BROADCASTING
        logger.info("Broadcaster %s started with %r", self.id, stream)
        await self.emit("broadcasting")

    async def stop(self) -> None:
        if not self.broadcasting:
            return
        self._state = BroadcasterState.HALTED
        self._stream = None
        for viewer_id in list(self._viewers):
            await self._drop_viewer(viewer_id)
        logger.info("Broadcaster %s halted", self.id)
        await self.emit("halted")

    async def viewer_request(self, request: Dict[str, Any]) -> None:
        viewer_id = request.get("name")
        if not viewer_id:
            return
        if not self.broadcasting:
            logger.debug("Ignoring request from %s: not broadcasting", viewer_id)
            return

        previous = self._viewers.pop(viewer_id, None)
        if previous is not None:
            logger.info("Replacing existing session for viewer %s", viewer_id)
            await previous.close()

        transport = self._transport_factory()
        session = PeerSession(viewer_id, transport, ViewerSessionState.REQUESTED)
        self._viewers[viewer_id] = session
        transport.on("icecandidate", partial(self._on_ice_candidate, session))
        transport.on("connectionstatechange", partial(self._on_connection_state, session))
        transport.on("negotiationneeded", partial(self._negotiate, session))

        for track in self._stream.get_tracks():
            transport.add_track(track)
        await self._negotiate(session)

    async def viewer_confirm(self, answer: Dict[str, Any]) -> None:
        if answer.get("target") != self.id or not answer.get("sdp"):
            return
        session = self._viewers.get(answer.get("name"))
        if session is None or session.state is not ViewerSessionState.OFFER_SENT:
            logger.debug("Dropping answer from %s: no pending offer", answer.get("name"))
            return
        if not await session.apply_remote_description(answer["sdp"]):
            return
        # Renegotiated sessions are already connected
        if session.transport.connection_state == "connected":
            session.state = ViewerSessionState.CONNECTED

    async def add_ice_candidate(self, data: Dict[str, Any]) -> None:
        if data.get("target") != self.id:
            return
        session = self._viewers.get(data.get("name"))
        if session is None:
            return
        await session.add_candidate(data.get("candidate"))

    async def _negotiate(self, session: PeerSession) -> None:
        if session.lock.locked():
            logger.debug("Negotiation with %s already in flight", session.remote_id)
            return
        async with session.lock:
            if self._viewers.get(session.remote_id) is not session:
                return
            if session.transport.signaling_state != "stable":
                return
            try:
                offer = await session.transport.create_offer()
            except TransportError as e:
                logger.error("Could not create offer for %s: %s", session.remote_id, e)
                return
            # Session may have been replaced or dropped while the offer was built
            if self._viewers.get(session.remote_id) is not session:
                return
            session.state = ViewerSessionState.OFFER_SENT
            await self.emit("sendOffer", {
                "name": self.id,
                "target": session.remote_id,
                "sdp": offer,
            })

    async def _on_ice_candidate(self, session: PeerSession, candidate: Optional[Dict[str, Any]]) -> None:
        if not candidate:
            return
        await self.emit("iceCandidate", {
            "name": self.id,
            "target": session.remote_id,
            "candidate": candidate,
        })

    async def _on_connection_state(self, session: PeerSession, state: str) -> None:
        if self._viewers.get(session.remote_id) is not session:
            return
        if state == "connected":
            session.state = ViewerSessionState.CONNECTED
            logger.info("Viewer %s connected to %s", session.remote_id, self.id)
            await self.emit("viewerConnected", session.remote_id)
        elif state in CLOSED_STATES:
            await self._drop_viewer(session.remote_id)

    async def _drop_viewer(self, viewer_id: str) -> None:
        session = self._viewers.pop(viewer_id, None)
        if session is None:
            return
        session.state = ViewerSessionState.DISCONNECTED
        await session.close()
        logger.info("Viewer %s disconnected from %s", viewer_id, self.id)
        await self.emit("viewerDisconnected", viewer_id)
