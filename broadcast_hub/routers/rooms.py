from fastapi import APIRouter, Depends, HTTPException, Request

from broadcast_hub.schemas import RoomRead, RoomSummary
from broadcast_hub.services.hub import SignalingHub

router = APIRouter(prefix="/rooms", tags=["rooms"])


def get_hub(request: Request) -> SignalingHub:
    return request.app.state.hub


@router.get("", response_model=list[RoomSummary])
def list_rooms(hub: SignalingHub = Depends(get_hub)):
    return [
        RoomSummary(name=r.name, member_count=len(r.members), broadcasting=r.broadcaster is not None)
        for r in hub.rooms()
    ]


@router.get("/{name}", response_model=RoomRead)
def read_room(name: str, hub: SignalingHub = Depends(get_hub)):
    room = hub.get_room(name)
    if room is None:
        raise HTTPException(status_code=404, detail="Room not found")
    return RoomRead.model_validate(room)
