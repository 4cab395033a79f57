"""
Push channel room registry.

Connections are grouped into rooms (`business:<id>`, `user:<id>`,
`conversation:<id>`). State is per process: a second worker has its own rooms.
"""
import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, Optional, Set

from fastapi import WebSocket

logger = logging.getLogger("tradedesk.realtime")


def business_room(business_id) -> str:
    return f"business:{business_id}"


def user_room(user_id) -> str:
    return f"user:{user_id}"


def conversation_room(conversation_id) -> str:
    return f"conversation:{conversation_id}"


@dataclass
class PushEvent:
    """An event a service wants delivered once its transaction is committed."""
    room: str
    event: str
    data: Dict[str, Any]
    # deliver to everyone in the room except this connection (socket.to semantics)
    exclude: Optional[WebSocket] = field(default=None, compare=False)


class ConnectionManager:
    def __init__(self):
        # room -> connections
        self.rooms: Dict[str, Set[WebSocket]] = {}
        # connection -> rooms it is in
        self.memberships: Dict[WebSocket, Set[str]] = {}
        # connection -> event loop that accepted it
        self.loops: Dict[WebSocket, asyncio.AbstractEventLoop] = {}

    def connect(self, websocket: WebSocket, rooms: Iterable[str] = ()):
        self.memberships.setdefault(websocket, set())
        try:
            self.loops[websocket] = asyncio.get_running_loop()
        except RuntimeError:
            pass
        for room in rooms:
            self.join(websocket, room)

    def disconnect(self, websocket: WebSocket):
        self.loops.pop(websocket, None)
        for room in self.memberships.pop(websocket, set()):
            members = self.rooms.get(room)
            if members is not None:
                members.discard(websocket)
                if not members:
                    del self.rooms[room]

    def join(self, websocket: WebSocket, room: str):
        self.rooms.setdefault(room, set()).add(websocket)
        self.memberships.setdefault(websocket, set()).add(room)

    def leave(self, websocket: WebSocket, room: str):
        members = self.rooms.get(room)
        if members is not None:
            members.discard(websocket)
            if not members:
                del self.rooms[room]
        self.memberships.get(websocket, set()).discard(room)

    def members(self, room: str) -> Set[WebSocket]:
        return set(self.rooms.get(room, set()))

    async def send(self, websocket: WebSocket, event: str, data: Dict[str, Any]):
        payload = {"event": event, "data": data}
        loop = self.loops.get(websocket)
        try:
            if loop is not None and loop is not asyncio.get_running_loop():
                # writes must happen on the loop that owns the connection
                await asyncio.wrap_future(asyncio.run_coroutine_threadsafe(websocket.send_json(payload), loop))
            else:
                await websocket.send_json(payload)
        except Exception as exc:
            logger.debug("Dropping connection after failed send: %s", exc)
            self.disconnect(websocket)

    async def emit(self, room: str, event: str, data: Dict[str, Any], exclude: Optional[WebSocket] = None):
        for websocket in self.members(room):
            if websocket is exclude:
                continue
            await self.send(websocket, event, data)

    async def publish(self, events: Iterable[PushEvent]):
        for ev in events:
            await self.emit(ev.room, ev.event, ev.data, exclude=ev.exclude)
