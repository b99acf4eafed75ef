import logging
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Optional, Union

from broadcast_hub.errors import BROADCASTER_CONFLICT
from .base import TransportFactory, generate_id
from .broadcaster import Broadcaster
from .events import EventEmitter
from .viewer import Viewer

logger = logging.getLogger(__name__)

Send = Callable[..., Awaitable[None]]


class Role(str, Enum):
    VIEWER = "viewer"
    BROADCASTER = "broadcaster"


class Participant(EventEmitter):
    """A hub client acting as either viewer or broadcaster.

    The role object is rebuilt on every role change. Outbound negotiation
    events become `webrtc_message` frames through `send(event, data)`; inbound
    hub events go through `handle_event` and are re-emitted to listeners.
    """

    def __init__(self, send: Send, transport_factory: TransportFactory, id: Optional[str] = None):
        super().__init__()
        self._send = send
        self._transport_factory = transport_factory
        self._id = id or generate_id()
        self._role = Role.VIEWER
        self._session: Union[Viewer, Broadcaster] = self._build_viewer()
        self.ready()

    @property
    def id(self) -> str:
        return self._id

    @id.setter
    def id(self, value: str) -> None:
        self._id = value
        self._session.id = value

    @property
    def role(self) -> Role:
        return self._role

    @property
    def session(self) -> Union[Viewer, Broadcaster]:
        return self._session

    async def become_broadcaster(self) -> Broadcaster:
        await self._teardown()
        self._role = Role.BROADCASTER
        self._session = self._build_broadcaster()
        return self._session

    async def become_viewer(self) -> Viewer:
        await self._teardown()
        self._role = Role.VIEWER
        self._session = self._build_viewer()
        return self._session

    async def send_webrtc_message(self, action: str, data: Dict[str, Any]) -> None:
        await self._send("webrtc_message", {"action": action, "data": data})

    async def process_webrtc_message(self, message: Dict[str, Any]) -> None:
        action = message.get("action")
        data = message.get("data") or {}
        session = self._session
        if action == "viewerRequest":
            if self._role is Role.BROADCASTER:
                await session.viewer_request(data)
        elif action == "viewerConfirm":
            if self._role is Role.BROADCASTER:
                await session.viewer_confirm(data)
        elif action == "viewerApproval":
            if self._role is Role.VIEWER:
                await session.receive_offer(data)
        elif action == "iceCandidate":
            await session.add_ice_candidate(data)
        else:
            logger.debug("Ignoring unknown negotiation action %r", action)

    async def handle_event(self, event: str, data: Any = None) -> None:
        if event == "connected":
            if data and data.get("id"):
                self.id = data["id"]
        elif event == "webrtc_message":
            await self.process_webrtc_message(data or {})
        elif event == "broadcastStarted":
            if self._role is Role.VIEWER and self._session.watching is None:
                await self._session.watch(data)
        elif event == "broadcasterLeft":
            if self._role is Role.VIEWER:
                await self._session.leave()
        elif event == "webrtc_messageError":
            # Hub refused the slot; local state follows the hub
            if (
                self._role is Role.BROADCASTER
                and (data or {}).get("code") == BROADCASTER_CONFLICT
                and self._session.broadcasting
            ):
                logger.warning("Broadcaster %s refused by the hub: %s", self._id, data.get("message"))
                await self._session.stop()
        await self.emit(event, data)

    async def _teardown(self) -> None:
        if self._role is Role.BROADCASTER:
            await self._session.stop()
        else:
            await self._session.leave()
        self._session.remove_all_listeners()

    def _build_broadcaster(self) -> Broadcaster:
        broadcaster = Broadcaster(self._transport_factory, id=self._id)
        broadcaster.on("broadcasting", lambda: self._send("initializeBroadcaster"))
        broadcaster.on("halted", lambda: self._send("releaseBroadcaster"))
        broadcaster.on("sendOffer", lambda offer: self.send_webrtc_message("viewerApproval", offer))
        broadcaster.on("iceCandidate", lambda candidate: self.send_webrtc_message("iceCandidate", candidate))
        broadcaster.on("viewerConnected", lambda viewer_id: self.emit("viewerConnected", viewer_id))
        broadcaster.on("viewerDisconnected", lambda viewer_id: self.emit("viewerDisconnected", viewer_id))
        return broadcaster

    def _build_viewer(self) -> Viewer:
        viewer = Viewer(self._transport_factory, id=self._id)
        viewer.on("sendRequest", lambda request: self.send_webrtc_message("viewerRequest", request))
        viewer.on("sendAccept", lambda answer: self.send_webrtc_message("viewerConfirm", answer))
        viewer.on("iceCandidate", lambda candidate: self.send_webrtc_message("iceCandidate", candidate))
        viewer.on("receivingMediaStream", lambda stream: self.emit("receivingMediaStream", stream))
        viewer.on("connected", lambda broadcaster_id: self.emit("mediaConnected", broadcaster_id))
        viewer.on("disconnected", lambda broadcaster_id: self.emit("mediaDisconnected", broadcaster_id))
        return viewer
