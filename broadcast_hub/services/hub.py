import logging
import time
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional

from broadcast_hub.errors import BroadcasterConflict, NotInRoom

logger = logging.getLogger(__name__)


class Connection:
    """One client session as seen by the hub."""

    def __init__(self, connection_id: Optional[str] = None):
        self.id = connection_id or uuid.uuid4().hex
        self.room: Optional[str] = None
        self.name: Optional[str] = None

    async def send(self, event: str, data: Any = None) -> None:
        raise NotImplementedError

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.id} room={self.room!r} name={self.name!r}>"


@dataclass
class Member:
    name: str
    connection_id: str


@dataclass
class Room:
    name: str
    members: List[Member] = field(default_factory=list)
    broadcaster: Optional[str] = None

    def member_for(self, connection_id: str) -> Optional[Member]:
        return next((m for m in self.members if m.connection_id == connection_id), None)

    def member_ids(self, exclude: Optional[str] = None) -> List[str]:
        return [m.connection_id for m in self.members if m.connection_id != exclude]

    def names(self) -> List[str]:
        return [m.name for m in self.members]


class SignalingHub:
    """Room registry, broadcaster bookkeeping and message routing.

    Runs on a single event loop. Every check-and-mutate of a room happens
    before the first await of an operation, so concurrent handlers can never
    observe a half-applied change (two broadcasters, duplicate members).
    Notifications are sent after the mutation.
    """

    def __init__(self):
        self.connections: Dict[str, Connection] = {}
        self._rooms: Dict[str, Room] = {}

    def connect(self, connection: Connection) -> None:
        if connection.id in self.connections:
            return
        self.connections[connection.id] = connection
        logger.info("Client %s connected", connection.id)

    async def disconnect(self, connection: Connection) -> None:
        if connection.room:
            await self.leave(connection.room, connection)
        self.connections.pop(connection.id, None)
        logger.info("Client %s disconnected", connection.id)

    def get_room(self, name: str) -> Optional[Room]:
        return self._rooms.get(name)

    def rooms(self) -> List[Room]:
        return list(self._rooms.values())

    def get_connection(self, connection_id: str) -> Optional[Connection]:
        return self.connections.get(connection_id)

    async def join(self, room_name: str, name: str, connection: Connection) -> None:
        room_name = (room_name or "").strip()
        name = (name or "").strip()
        if not room_name or not name:
            logger.debug("Ignoring join from %s: blank room or name", connection.id)
            return
        if connection.room == room_name:
            return
        if connection.room:
            await self.leave(connection.room, connection)

        self.connections.setdefault(connection.id, connection)
        room = self._rooms.get(room_name)
        if room is None:
            room = self._rooms[room_name] = Room(name=room_name)
            logger.info("Room %s created", room_name)
        existing = room.member_ids()
        room.members.append(Member(name=name, connection_id=connection.id))
        connection.room = room_name
        connection.name = name
        names = room.names()
        broadcaster = room.broadcaster
        logger.info("Client %s joined room %s as %s", connection.id, room_name, name)

        await self._send_many(existing, "userJoin", name)
        await self._safe_send(connection, "loggedIn")
        await self._safe_send(connection, "otherUsers", names)
        if broadcaster:
            await self._safe_send(connection, "broadcastStarted", broadcaster)

    async def leave(self, room_name: str, connection: Connection) -> None:
        room = self._rooms.get(room_name)
        if room is None:
            return
        member = room.member_for(connection.id)
        if member is None:
            return

        room.members.remove(member)
        if connection.room == room_name:
            connection.room = None
        was_broadcaster = room.broadcaster == connection.id
        if was_broadcaster:
            room.broadcaster = None
        remaining = room.member_ids()
        if not room.members:
            del self._rooms[room_name]
            logger.info("Room %s is now empty, removed", room_name)
        logger.info("Client %s left room %s", connection.id, room_name)

        await self._send_many(remaining, "userLeft", member.name)
        if was_broadcaster:
            logger.info("Broadcaster %s left room %s", connection.id, room_name)
            await self._send_many(remaining, "broadcasterLeft")

    async def relay_chat(self, text: str, connection: Connection) -> None:
        room = self._room_of(connection)
        message = {
            "text": text,
            "from": connection.name,
            "createdAt": int(time.time() * 1000),
        }
        await self._send_many(room.member_ids(), "message", message)

    async def claim_broadcaster(self, connection: Connection) -> None:
        room = self._room_of(connection)
        if room.broadcaster and room.broadcaster != connection.id:
            logger.info("Broadcaster claim by %s denied: %s holds room %s", connection.id, room.broadcaster, room.name)
            raise BroadcasterConflict()
        room.broadcaster = connection.id
        others = room.member_ids(exclude=connection.id)
        logger.info("Client %s is broadcasting in room %s", connection.id, room.name)

        await self._safe_send(connection, "broadcasterConfirm")
        await self._send_many(others, "broadcastStarted", connection.id)

    async def release_broadcaster(self, connection: Connection) -> None:
        room = self._room_of(connection)
        if room.broadcaster != connection.id:
            return
        room.broadcaster = None
        others = room.member_ids(exclude=connection.id)
        logger.info("Client %s stopped broadcasting in room %s", connection.id, room.name)
        await self._send_many(others, "broadcasterLeft")

    async def route_negotiation_message(self, message: Dict[str, Any], connection: Connection) -> bool:
        self._room_of(connection)
        target = (message.get("data") or {}).get("target")
        recipient = self.get_connection(target) if target else None
        if recipient is None:
            logger.debug("Dropping %s from %s: unknown target %r", message.get("action"), connection.id, target)
            return False
        await self._safe_send(recipient, "webrtc_message", message)
        return True

    def _room_of(self, connection: Connection) -> Room:
        room = self._rooms.get(connection.room) if connection.room else None
        if room is None:
            raise NotInRoom()
        return room

    async def _send_many(self, connection_ids: Iterable[str], event: str, data: Any = None) -> None:
        for connection_id in connection_ids:
            connection = self.get_connection(connection_id)
            if connection is not None:
                await self._safe_send(connection, event, data)

    async def _safe_send(self, connection: Connection, event: str, data: Any = None) -> None:
        try:
            await connection.send(event, data)
        except Exception as e:
            logger.error("Error sending %s to client %s: %s", event, connection.id, e)
