from datetime import datetime
from typing import Annotated, List, Literal, Union

from pydantic import BaseModel, ConfigDict, EmailStr, Field, TypeAdapter

from models import Request, Resource, ResourceStatus


class ResourceCreate(BaseModel):
    name: str = Field(min_length=1)
    category: str = Field(min_length=1)
    description: str = ""
    images: List[str] = Field(default_factory=list)
    quantity: int = Field(default=1, gt=0)
    location: str = ""


class ResourceStatusUpdate(BaseModel):
    status: ResourceStatus


class RequestCreate(BaseModel):
    resource_id: int


class UserCreate(BaseModel):
    email: EmailStr
    name: str = Field(min_length=1)
    password: str = Field(min_length=1)


class UserRead(BaseModel):
    id: int
    email: EmailStr
    name: str
    is_admin: bool

    model_config = ConfigDict(from_attributes=True)


class LoginData(BaseModel):
    email: EmailStr
    password: str


class ProfileRead(BaseModel):
    user: UserRead
    donated_resources: List[Resource]
    requested_resources: List[Request]


# Chat events (websocket)

class _ChatEvent(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    room_id: str = Field(alias="roomId", min_length=1, max_length=200)


class JoinRoomEvent(_ChatEvent):
    event: Literal["joinRoom"]


class SendMessageEvent(_ChatEvent):
    event: Literal["sendMessage"]
    body: str = Field(alias="message", min_length=1)


class LeaveRoomEvent(_ChatEvent):
    event: Literal["leaveRoom"]


ChatEvent = Annotated[
    Union[JoinRoomEvent, SendMessageEvent, LeaveRoomEvent],
    Field(discriminator="event"),
]
chat_event_adapter: TypeAdapter = TypeAdapter(ChatEvent)


class ChatMessage(BaseModel):
    """A relayed message; stamped by the room it was published to."""

    room_id: str
    sender_id: int
    body: str
    timestamp: datetime
    seq: int

    def to_event(self) -> dict:
        return {
            "event": "receiveMessage",
            "roomId": self.room_id,
            "senderId": self.sender_id,
            "message": self.body,
            "timestamp": self.timestamp.isoformat(),
            "seq": self.seq,
        }
