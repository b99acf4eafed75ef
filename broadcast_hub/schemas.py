from pydantic import BaseModel, Field
from typing import Optional


class MemberRead(BaseModel):
    name: str
    connection_id: str

    class Config:
        from_attributes = True


class RoomRead(BaseModel):
    name: str = Field(description="Room name")
    members: list[MemberRead]
    broadcaster: Optional[str] = Field(default=None, description="Connection id holding the broadcaster slot")

    class Config:
        from_attributes = True


class RoomSummary(BaseModel):
    name: str
    member_count: int
    broadcasting: bool
