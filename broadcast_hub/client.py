import argparse
import asyncio
import json
import logging
from typing import Any, Optional

import websockets
from pydantic import ValidationError

from broadcast_hub.config import settings
from broadcast_hub.models import Envelope
from broadcast_hub.services.negotiation.base import MediaStream, TransportFactory
from broadcast_hub.services.negotiation.participant import Participant

logger = logging.getLogger(__name__)


class SignalingClient:
    """Connects a Participant to the hub over a websocket."""

    def __init__(self, url: Optional[str] = None, transport_factory: Optional[TransportFactory] = None):
        if transport_factory is None:
            from broadcast_hub.services.negotiation.factory import get_transport_factory
            transport_factory = get_transport_factory()
        self.url = url or settings.HUB_URL
        self.participant = Participant(self._forward, transport_factory)
        self._ws = None

    @property
    def connected(self) -> bool:
        return self._ws is not None

    async def connect(self) -> None:
        self._ws = await websockets.connect(self.url)
        logger.info("Connected to hub at %s", self.url)

    async def close(self) -> None:
        if self._ws is not None:
            await self._ws.close()
            self._ws = None

    async def send(self, event: str, data: Any = None) -> None:
        if self._ws is None:
            raise RuntimeError("Not connected to the hub")
        await self._ws.send(json.dumps({"event": event, "data": data}))

    async def _forward(self, event: str, data: Any = None) -> None:
        # Role teardown after the socket is gone has nothing left to tell the hub
        if self._ws is None:
            logger.debug("Not connected, dropping %s", event)
            return
        await self.send(event, data)

    async def join(self, room: str, name: str) -> None:
        await self.send("joinRoom", {"room": room, "name": name})

    async def leave(self, room: str) -> None:
        await self.send("leaveRoom", {"room": room})

    async def send_chat(self, text: str) -> None:
        text = text.strip()
        if text:
            await self.send("message", {"text": text})

    async def handle_frame(self, raw: str) -> None:
        try:
            frame = Envelope.model_validate_json(raw)
        except ValidationError as e:
            logger.warning("Ignoring malformed frame from hub: %s", e)
            return
        await self.participant.handle_event(frame.event, frame.data)

    async def run(self) -> None:
        if self._ws is None:
            await self.connect()
        try:
            async for raw in self._ws:
                await self.handle_frame(raw)
        except websockets.exceptions.ConnectionClosed:
            logger.info("Hub closed the connection")
        finally:
            await self.close()


async def run_client(url: str, room: str, name: str, play: Optional[str] = None) -> None:
    client = SignalingClient(url)
    participant = client.participant

    participant.on("userJoin", lambda user: logger.info("%s has joined", user))
    participant.on("userLeft", lambda user: logger.info("%s has left", user))
    participant.on("message", lambda m: logger.info("[%s] %s", m.get("from"), m.get("text")))
    participant.on("broadcasterLeft", lambda data: logger.info("Broadcast has stopped"))
    participant.on("viewerConnected", lambda viewer_id: logger.info("Viewer %s connected", viewer_id))
    participant.on("receivingMediaStream", lambda stream: logger.info("Receiving %r from broadcaster", stream))

    await client.connect()
    receiver = asyncio.ensure_future(client.run())
    await client.join(room, name)

    if play:
        from aiortc.contrib.media import MediaPlayer  # lazy import

        broadcaster = await participant.become_broadcaster()
        await broadcaster.start(MediaStream.from_player(MediaPlayer(play)))

    try:
        await receiver
    finally:
        if play:
            await participant.session.stop()
        else:
            await participant.session.leave()
        await client.close()


def main() -> None:
    parser = argparse.ArgumentParser(description="Join a room as a viewer, or broadcast a media file.")
    parser.add_argument("room")
    parser.add_argument("name")
    parser.add_argument("--url", default=settings.HUB_URL)
    parser.add_argument("--play", help="Media file or device to broadcast (viewer when omitted)")
    args = parser.parse_args()

    logging.basicConfig(level=settings.LOG_LEVEL.upper())
    try:
        asyncio.run(run_client(args.url, args.room, args.name, args.play))
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    main()
