"""Chat relay: validates inbound chat events and routes them to the registry.

Per room a connection moves Unjoined -> Joined -> (Messaging)* -> Left.
Errors never leave the originating connection and never close it.
"""

import logging
from typing import Any, Optional, Union

import pydantic
from sqlalchemy.exc import SQLAlchemyError

from errors import (
    EligibilityError,
    ExchangeError,
    InvalidEvent,
    NotAllowed,
    ParticipantNotFound,
    RelayError,
    RoomNotFound,
)
from schemas import (
    JoinRoomEvent,
    LeaveRoomEvent,
    SendMessageEvent,
    chat_event_adapter,
)
from services.eligibility import StandingChecker
from services.rooms import Connection, RoomRegistry

log = logging.getLogger("handoff.relay")


class ChatRelay:
    def __init__(
        self,
        registry: RoomRegistry,
        standing: StandingChecker,
        max_body: int = 2000,
    ) -> None:
        self.registry = registry
        self.standing = standing
        self.max_body = max_body

    async def handle(
        self,
        connection: Connection,
        participant_id: int,
        raw: Union[str, bytes, dict],
    ) -> None:
        """Process one inbound event from ``connection``."""
        try:
            if isinstance(raw, dict):
                event = chat_event_adapter.validate_python(raw)
            else:
                event = chat_event_adapter.validate_json(raw)
        except pydantic.ValidationError as exc:
            await self._reply_error(connection, InvalidEvent(_describe(exc)))
            return

        try:
            if isinstance(event, JoinRoomEvent):
                await self.join(connection, participant_id, event.room_id)
            elif isinstance(event, SendMessageEvent):
                await self.send(participant_id, event.room_id, event.body)
            elif isinstance(event, LeaveRoomEvent):
                await self.leave(connection, participant_id, event.room_id)
        except ExchangeError as exc:
            await self._reply_error(connection, exc, event.room_id)
        except SQLAlchemyError:
            log.exception(
                "store failure handling %s from user %s", event.event, participant_id
            )
            await self._reply_error(connection, RelayError(), event.room_id)

    async def join(self, connection: Connection, participant_id: int, room_id: str) -> None:
        # the registry queues the "joined" ack ahead of any room traffic
        try:
            await self.registry.join(room_id, participant_id, connection)
        except ExchangeError as exc:
            log.info("user %s refused from room %s: %s", participant_id, room_id, exc.code)
            raise

    async def send(self, participant_id: int, room_id: str, body: str) -> int:
        if len(body) > self.max_body:
            raise InvalidEvent(f"Message exceeds {self.max_body} characters")

        try:
            await self.standing(participant_id)
        except (EligibilityError, ParticipantNotFound):
            log.info("user %s may no longer send to room %s", participant_id, room_id)
            raise NotAllowed()

        message, queued = await self.registry.publish(room_id, participant_id, body)
        log.debug(
            "room %s message #%s from user %s queued for %s",
            room_id,
            message.seq,
            participant_id,
            queued,
        )
        return queued

    async def leave(self, connection: Connection, participant_id: int, room_id: str) -> None:
        if not await self.registry.leave(room_id, participant_id, connection):
            raise RoomNotFound()
        await connection.send_json({"event": "left", "roomId": room_id})

    async def disconnect(self, connection: Connection) -> None:
        await self.registry.leave_connection(connection)

    async def _reply_error(
        self,
        connection: Connection,
        exc: ExchangeError,
        room_id: Optional[str] = None,
    ) -> None:
        payload: dict[str, Any] = {"event": "error", "code": exc.code, "message": exc.message}
        if room_id is not None:
            payload["roomId"] = room_id
        await connection.send_json(payload)


def _describe(exc: pydantic.ValidationError) -> str:
    first = exc.errors()[0] if exc.errors() else {}
    where = ".".join(str(p) for p in first.get("loc", ()))
    return f"{where}: {first.get('msg', 'invalid')}" if where else "Malformed chat event"
