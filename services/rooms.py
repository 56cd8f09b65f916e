"""Room registry for the handoff chat.

This module exclusively owns room membership:
- ordered membership per room (join order), one entry per participant
- join/leave, including leaving every room when a connection closes
- stamping of published messages (strictly increasing timestamp + sequence)
- delivery through one outbound queue and writer task per connection

All mutations of a room go through that room's ``asyncio.Lock``; nothing is
locked across rooms.  Payloads are only enqueued under the lock, never sent,
so a slow connection holds up nobody but itself.  A connection whose queue
overflows or whose send fails or times out is dropped from every room.
Empty rooms are dropped as soon as the last member leaves.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import (
    Any,
    AsyncIterator,
    Awaitable,
    Callable,
    Dict,
    List,
    Optional,
    Protocol,
    Tuple,
)

from errors import RoomNotFound
from models import utcnow
from schemas import ChatMessage

StandingCheck = Callable[[int], Awaitable[None]]

log = logging.getLogger("handoff.rooms")

_CLOSE = object()


class Connection(Protocol):
    async def send_json(self, data: Any) -> None: ...


@dataclass
class Member:
    participant_id: int
    connection: Connection
    joined_at: datetime


@dataclass
class Room:
    room_id: str
    members: Dict[int, Member] = field(default_factory=dict)
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    last_stamp: Optional[datetime] = None
    seq: int = 0

    def tick(self) -> datetime:
        """Next room timestamp; strictly later than any earlier one."""
        now = utcnow()
        if self.last_stamp is not None and now <= self.last_stamp:
            now = self.last_stamp + timedelta(microseconds=1)
        self.last_stamp = now
        return now

    def participant_ids(self) -> List[int]:
        return list(self.members)


class Outbox:
    """Outbound queue for one connection, drained by its own writer task."""

    def __init__(
        self,
        connection: Connection,
        send_timeout: float,
        maxsize: int,
        on_failure: Callable[[Connection], Awaitable[Any]],
    ) -> None:
        self.connection = connection
        self.send_timeout = send_timeout
        self.queue: asyncio.Queue = asyncio.Queue(maxsize=maxsize)
        self.closed = False
        self._on_failure = on_failure
        self.task = asyncio.create_task(self._run())

    def offer(self, payload: Any) -> bool:
        if self.closed:
            return False
        try:
            self.queue.put_nowait(payload)
        except asyncio.QueueFull:
            return False
        return True

    def close(self) -> None:
        """Stop after what is already queued; cancel at once if the queue is full."""
        if self.closed:
            return
        self.closed = True
        try:
            self.queue.put_nowait(_CLOSE)
        except asyncio.QueueFull:
            self.task.cancel()

    async def _run(self) -> None:
        while True:
            payload = await self.queue.get()
            try:
                if payload is _CLOSE:
                    return
                await asyncio.wait_for(self.connection.send_json(payload), self.send_timeout)
            except Exception as exc:
                log.warning("delivery failed, dropping connection: %r", exc)
                self.closed = True
                self._discard_pending()
                await self._on_failure(self.connection)
                return
            finally:
                self.queue.task_done()

    def _discard_pending(self) -> None:
        while True:
            try:
                self.queue.get_nowait()
            except asyncio.QueueEmpty:
                return
            self.queue.task_done()


class RoomRegistry:
    def __init__(
        self,
        standing: StandingCheck,
        send_timeout: float = 5.0,
        outbox_size: int = 100,
    ) -> None:
        self.standing = standing
        self.send_timeout = send_timeout
        self.outbox_size = outbox_size
        self.log = log
        self._rooms: Dict[str, Room] = {}
        # keyed by id(); websocket objects are not hashable
        self._outboxes: Dict[int, Outbox] = {}

    @asynccontextmanager
    async def _locked(self, room_id: str, create: bool = False) -> AsyncIterator[Optional[Room]]:
        """Hold ``room_id``'s lock; yields None when the room does not exist."""
        while True:
            room = self._rooms.get(room_id)
            if room is None:
                if not create:
                    yield None
                    return
                room = self._rooms[room_id] = Room(room_id)

            async with room.lock:
                # The room may have been emptied and dropped while we waited.
                if self._rooms.get(room_id) is not room:
                    continue
                try:
                    yield room
                finally:
                    if not room.members:
                        self._rooms.pop(room_id, None)
                return

    def _outbox(self, connection: Connection) -> Optional[Outbox]:
        box = self._outboxes.get(id(connection))
        if box is None or box.connection is not connection or box.closed:
            return None
        return box

    def _open_outbox(self, connection: Connection) -> Outbox:
        box = self._outbox(connection)
        if box is None:
            box = Outbox(connection, self.send_timeout, self.outbox_size, self.leave_connection)
            self._outboxes[id(connection)] = box
        return box

    def _release(self, connection: Connection) -> None:
        """Close the connection's outbox once it is in no room at all."""
        if self.rooms_for(connection):
            return
        box = self._outboxes.get(id(connection))
        if box is not None and box.connection is connection:
            del self._outboxes[id(connection)]
            box.close()

    def _enqueue(self, room: Room, member: Member, payload: Any) -> bool:
        box = self._outbox(member.connection)
        if box is not None and box.offer(payload):
            return True
        self.log.warning(
            "outbound queue of user %s in room %s is full or closed, dropping",
            member.participant_id,
            room.room_id,
        )
        if room.members.get(member.participant_id) is member:
            del room.members[member.participant_id]
        self._release(member.connection)
        return False

    async def join(self, room_id: str, participant_id: int, connection: Connection) -> Member:
        """Admit ``participant_id`` to ``room_id`` and queue a ``joined`` ack.

        Raises if the participant lacks standing; membership is untouched then.
        """
        await self.standing(participant_id)

        async with self._locked(room_id, create=True) as room:
            previous = room.members.pop(participant_id, None)
            member = Member(participant_id, connection, room.tick())
            room.members[participant_id] = member
            self._open_outbox(connection)
            self._enqueue(
                room,
                member,
                {
                    "event": "joined",
                    "roomId": room_id,
                    "participantId": participant_id,
                    "members": room.participant_ids(),
                    "timestamp": member.joined_at.isoformat(),
                },
            )
            if previous is not None and previous.connection is not connection:
                self._release(previous.connection)

        self.log.info("user %s joined room %s", participant_id, room_id)
        return member

    async def leave(
        self,
        room_id: str,
        participant_id: int,
        connection: Optional[Connection] = None,
    ) -> bool:
        """Remove a participant; if ``connection`` is given only that entry goes."""
        async with self._locked(room_id) as room:
            if room is None:
                return False
            member = room.members.get(participant_id)
            if member is None:
                return False
            if connection is not None and member.connection is not connection:
                return False
            del room.members[participant_id]
            self._release(member.connection)

        self.log.info("user %s left room %s", participant_id, room_id)
        return True

    async def leave_connection(self, connection: Connection) -> List[str]:
        """Drop ``connection`` from every room it is in. Returns the rooms left."""
        left = []
        for room_id in self.rooms_for(connection):
            async with self._locked(room_id) as room:
                if room is None:
                    continue
                gone = [
                    pid for pid, m in room.members.items() if m.connection is connection
                ]
                for pid in gone:
                    del room.members[pid]
                if gone:
                    left.append(room_id)
        self._release(connection)
        if left:
            self.log.info("connection closed, left rooms: %s", ", ".join(left))
        return left

    async def broadcast(self, room_id: str, payload: Any) -> int:
        """Queue ``payload`` for every member of ``room_id``. Returns how many accepted it."""
        async with self._locked(room_id) as room:
            if room is None:
                return 0
            return self._fan_out(room, payload)

    async def publish(self, room_id: str, sender_id: int, body: str) -> Tuple[ChatMessage, int]:
        """Stamp a message from a current member and queue it for the room.

        Stamping and enqueueing happen under the room lock, so every member
        receives the room's messages in the same order.
        """
        async with self._locked(room_id) as room:
            if room is None or sender_id not in room.members:
                raise RoomNotFound()
            room.seq += 1
            message = ChatMessage(
                room_id=room_id,
                sender_id=sender_id,
                body=body,
                timestamp=room.tick(),
                seq=room.seq,
            )
            queued = self._fan_out(room, message.to_event())
        return message, queued

    def _fan_out(self, room: Room, payload: Any) -> int:
        return sum(self._enqueue(room, m, payload) for m in list(room.members.values()))

    async def drain(self) -> None:
        """Wait until every queued payload has been handed to its connection."""
        await asyncio.gather(*(box.queue.join() for box in list(self._outboxes.values())))

    async def close(self) -> None:
        boxes = list(self._outboxes.values())
        self._outboxes.clear()
        self._rooms.clear()
        for box in boxes:
            box.closed = True
            box.task.cancel()
        await asyncio.gather(*(box.task for box in boxes), return_exceptions=True)

    def members(self, room_id: str) -> List[int]:
        room = self._rooms.get(room_id)
        return room.participant_ids() if room is not None else []

    def rooms_for(self, connection: Connection) -> List[str]:
        return [
            room_id
            for room_id, room in self._rooms.items()
            if any(m.connection is connection for m in room.members.values())
        ]

    def get_stats(self) -> Dict[str, Any]:
        rooms_total = len(self._rooms)
        memberships = sum(len(r.members) for r in self._rooms.values())
        return {"rooms_total": rooms_total, "memberships": memberships}
