from fastapi import APIRouter, WebSocket, WebSocketDisconnect
from pydantic import ValidationError
from typing import Any, Awaitable, Callable, Dict
import logging

from broadcast_hub.errors import HubError, MalformedMessage
from broadcast_hub.models import ChatMessage, Envelope, JoinRoomMessage, LeaveRoomMessage, WebRTCMessage
from broadcast_hub.services.hub import Connection, SignalingHub

logger = logging.getLogger(__name__)

router = APIRouter()


class WebSocketConnection(Connection):
    def __init__(self, websocket: WebSocket):
        super().__init__()
        self.websocket = websocket

    async def send(self, event: str, data: Any = None) -> None:
        await self.websocket.send_json({"event": event, "data": data})


async def _join_room(hub: SignalingHub, connection: Connection, data: Any) -> None:
    message = JoinRoomMessage.model_validate(data or {})
    await hub.join(message.room, message.name, connection)


async def _leave_room(hub: SignalingHub, connection: Connection, data: Any) -> None:
    message = LeaveRoomMessage.model_validate(data or {})
    await hub.leave(message.room, connection)


async def _chat(hub: SignalingHub, connection: Connection, data: Any) -> None:
    message = ChatMessage.model_validate(data or {})
    await hub.relay_chat(message.text, connection)


async def _initialize_broadcaster(hub: SignalingHub, connection: Connection, data: Any) -> None:
    await hub.claim_broadcaster(connection)


async def _release_broadcaster(hub: SignalingHub, connection: Connection, data: Any) -> None:
    await hub.release_broadcaster(connection)


async def _webrtc_message(hub: SignalingHub, connection: Connection, data: Any) -> None:
    WebRTCMessage.model_validate(data)
    # Forward the client's payload untouched
    await hub.route_negotiation_message(data, connection)


Handler = Callable[[SignalingHub, Connection, Any], Awaitable[None]]

HANDLERS: Dict[str, Handler] = {
    "joinRoom": _join_room,
    "leaveRoom": _leave_room,
    "message": _chat,
    "initializeBroadcaster": _initialize_broadcaster,
    "releaseBroadcaster": _release_broadcaster,
    "webrtc_message": _webrtc_message,
}

NEGOTIATION_EVENTS = ("initializeBroadcaster", "releaseBroadcaster", "webrtc_message")


def error_event_for(event: str) -> str:
    return "webrtc_messageError" if event in NEGOTIATION_EVENTS else "messageError"


async def dispatch(hub: SignalingHub, connection: Connection, frame: Envelope) -> None:
    handler = HANDLERS.get(frame.event)
    if handler is None:
        logger.warning("Unknown event %r from client %s", frame.event, connection.id)
        return
    try:
        try:
            await handler(hub, connection, frame.data)
        except ValidationError as e:
            raise MalformedMessage(f"Invalid {frame.event} payload") from e
    except HubError as e:
        logger.info("Rejected %s from client %s: %s", frame.event, connection.id, e.message)
        await connection.send(error_event_for(frame.event), e.to_payload())


@router.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket):
    hub: SignalingHub = websocket.app.state.hub
    await websocket.accept()
    connection = WebSocketConnection(websocket)
    hub.connect(connection)

    try:
        await connection.send("connected", {"id": connection.id})

        while True:
            raw = await websocket.receive_text()
            try:
                frame = Envelope.model_validate_json(raw)
            except ValidationError:
                error = MalformedMessage("Frames must be JSON objects {event, data}")
                await connection.send("messageError", error.to_payload())
                continue

            logger.debug("📨 Received %s from %s", frame.event, connection.id)
            await dispatch(hub, connection, frame)

    except WebSocketDisconnect:
        logger.info("Client %s closed the socket", connection.id)
    except Exception as e:
        logger.exception("Error in websocket for client %s: %s", connection.id, e)
    finally:
        await hub.disconnect(connection)
