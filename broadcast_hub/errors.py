"""Error taxonomy shared by the hub and the negotiation state machines."""

from typing import Optional

NOT_IN_ROOM = 201
BROADCASTER_CONFLICT = 202
MALFORMED_MESSAGE = 400


class HubError(Exception):
    """Client misuse reported back to the offending connection as {code, message}."""

    code: int = 0
    default_message: str = "Signaling error"

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)

    def to_payload(self) -> dict:
        return {"code": self.code, "message": self.message}


class RoomError(HubError):
    default_message = "Invalid room operation"


class NotInRoom(RoomError):
    code = NOT_IN_ROOM
    default_message = "You cannot send messages to a room you're not logged into."


class BroadcasterConflict(HubError):
    code = BROADCASTER_CONFLICT
    default_message = "That room already has a broadcaster"


class MalformedMessage(HubError):
    code = MALFORMED_MESSAGE
    default_message = "Malformed message"


class NegotiationError(Exception):
    pass


class InvalidSource(NegotiationError):
    def __init__(self, message: str = "You must choose a media source before starting to broadcast."):
        super().__init__(message)


class AlreadyWatching(NegotiationError):
    def __init__(self, broadcaster_id: Optional[str]):
        self.broadcaster_id = broadcaster_id
        super().__init__(f"Already watching {broadcaster_id}; leave the current broadcast first.")


class TransportError(NegotiationError):
    """Description or candidate application failed inside the peer transport."""
