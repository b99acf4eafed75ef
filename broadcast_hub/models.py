from pydantic import BaseModel, ConfigDict
from typing import Optional, Dict, Any, Literal

NegotiationAction = Literal["viewerRequest", "viewerApproval", "viewerConfirm", "iceCandidate"]


class Envelope(BaseModel):
    event: str
    data: Optional[Any] = None


class JoinRoomMessage(BaseModel):
    room: str = ""
    name: str = ""


class LeaveRoomMessage(BaseModel):
    room: str = ""


class ChatMessage(BaseModel):
    text: str


class NegotiationData(BaseModel):
    # Unknown keys are forwarded untouched
    model_config = ConfigDict(extra="allow")

    name: Optional[str] = None
    target: Optional[str] = None
    sdp: Optional[Dict[str, Any]] = None
    candidate: Optional[Dict[str, Any]] = None


class WebRTCMessage(BaseModel):
    action: NegotiationAction
    data: NegotiationData
