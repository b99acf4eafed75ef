import logging
from enum import Enum
from functools import partial
from typing import Any, Dict, Optional

from broadcast_hub.errors import AlreadyWatching, TransportError
from .base import CLOSED_STATES, MediaStream, PeerSession, TransportFactory, generate_id
from .events import EventEmitter

logger = logging.getLogger(__name__)


class ViewerState(str, Enum):
    IDLE = "idle"
    REQUESTING = "requesting"
    NEGOTIATING = "negotiating"
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"


class Viewer(EventEmitter):
    """Receives a broadcaster's media.

    `watch(broadcaster_id)` starts the exchange; offers and candidates from the
    broadcaster go to `receive_offer` and `add_ice_candidate`.

    Events:
      "sendRequest" (data)        {name: self.id, target: broadcaster id}
      "sendAccept" (data)         {name: self.id, target: broadcaster id, sdp}
      "iceCandidate" (data)       {name: self.id, target: broadcaster id, candidate}
      "receivingMediaStream" (stream)  MediaStream of the remote tracks
      "connected" (broadcaster_id)
      "disconnected" (broadcaster_id)
    """

    def __init__(self, transport_factory: TransportFactory, id: Optional[str] = None):
        super().__init__()
        self.id = id or generate_id()
        self._transport_factory = transport_factory
        self._state = ViewerState.IDLE
        self._watching: Optional[str] = None
        self._session: Optional[PeerSession] = None
        self._stream: Optional[MediaStream] = None
        self.ready()

    @property
    def state(self) -> ViewerState:
        return self._state

    @property
    def watching(self) -> Optional[str]:
        return self._watching

    @property
    def stream(self) -> Optional[MediaStream]:
        return self._stream

    @property
    def session(self) -> Optional[PeerSession]:
        return self._session

    async def watch(self, broadcaster_id: str) -> None:
        if self._watching or self._state not in (ViewerState.IDLE, ViewerState.DISCONNECTED):
            raise AlreadyWatching(self._watching)
        self._watching = broadcaster_id
        self._state = ViewerState.REQUESTING
        logger.info("Viewer %s requesting %s", self.id, broadcaster_id)
        await self.emit("sendRequest", {"name": self.id, "target": broadcaster_id})

    async def leave(self) -> None:
        session, self._session = self._session, None
        self._watching = None
        self._stream = None
        self._state = ViewerState.IDLE
        if session is not None:
            await session.close()

    async def receive_offer(self, offer: Dict[str, Any]) -> None:
        if offer.get("target") != self.id or not offer.get("sdp"):
            return
        broadcaster_id = offer.get("name")
        session = self._session
        renegotiating = (
            session is not None
            and session.remote_id == broadcaster_id
            and session.remote_description_set
        )
        if not renegotiating:
            if session is not None:
                await session.close()
            session = self._new_session(broadcaster_id)

        async with session.lock:
            if not await session.apply_remote_description(offer["sdp"]):
                return
            try:
                answer = await session.transport.create_answer()
            except TransportError as e:
                logger.error("Could not answer offer from %s: %s", broadcaster_id, e)
                return
            if self._session is not session:
                return
            if self._state is not ViewerState.CONNECTED:
                self._state = ViewerState.NEGOTIATING
            await self.emit("sendAccept", {
                "name": self.id,
                "target": broadcaster_id,
                "sdp": answer,
            })

    async def add_ice_candidate(self, data: Dict[str, Any]) -> None:
        session = self._session
        if data.get("target") != self.id or session is None:
            return
        if data.get("name") not in (None, session.remote_id):
            return
        await session.add_candidate(data.get("candidate"))

    def _new_session(self, broadcaster_id: str) -> PeerSession:
        transport = self._transport_factory()
        session = PeerSession(broadcaster_id, transport, ViewerState.NEGOTIATING)
        transport.on("icecandidate", partial(self._on_ice_candidate, session))
        transport.on("connectionstatechange", partial(self._on_connection_state, session))
        transport.on("track", partial(self._on_track, session))
        self._session = session
        self._stream = None
        self._watching = broadcaster_id
        return session

    async def _on_ice_candidate(self, session: PeerSession, candidate: Optional[Dict[str, Any]]) -> None:
        if not candidate:
            return
        await self.emit("iceCandidate", {
            "name": self.id,
            "target": session.remote_id,
            "candidate": candidate,
        })

    async def _on_connection_state(self, session: PeerSession, state: str) -> None:
        if self._session is not session:
            return
        if state == "connected":
            self._state = ViewerState.CONNECTED
            session.state = ViewerState.CONNECTED
            logger.info("Viewer %s connected to %s", self.id, session.remote_id)
            await self.emit("connected", session.remote_id)
        elif state in CLOSED_STATES:
            self._session = None
            self._watching = None
            self._state = ViewerState.DISCONNECTED
            session.state = ViewerState.DISCONNECTED
            await session.close()
            logger.info("Viewer %s disconnected from %s", self.id, session.remote_id)
            await self.emit("disconnected", session.remote_id)

    async def _on_track(self, session: PeerSession, track: Any) -> None:
        if self._session is not session:
            return
        # One stream per session; later tracks join the stream already announced
        if self._stream is not None:
            self._stream.add_track(track)
            return
        self._stream = MediaStream([track])
        await self.emit("receivingMediaStream", self._stream)
