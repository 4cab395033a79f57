"""
Push channel — one authenticated WebSocket per client at /api/v1/ws.

Handshake: `?token=<jwt>` (or an `Authorization: Bearer` header) and an
optional `?business_id=`; without one the user's first business is used.
Frames in both directions are `{"event": <name>, "data": {...}}`.

Client events:
  join_conversation / leave_conversation   {conversation_id}
  send_message      {conversation_id, message_type?, content?, metadata?}
  typing_start / typing_stop               {conversation_id}
  mark_read         {conversation_id}

`send_message` and `mark_read` run the same service functions as their REST
routes.
"""
import logging
from dataclasses import dataclass
from typing import Optional, Iterable

from fastapi import APIRouter, BackgroundTasks, Request, WebSocket, WebSocketDisconnect
from starlette.concurrency import run_in_threadpool

from tradedesk.errors import AppError, Forbidden, ValidationError, NotFound
from tradedesk.models import Business
from tradedesk.routes.auth import AuthContext, authenticate, bearer_token, parse_id
from tradedesk.serializers import sid
from tradedesk.services import chat as chat_service
from tradedesk.services.realtime import (
    ConnectionManager, PushEvent, business_room, user_room, conversation_room,
)

logger = logging.getLogger("tradedesk.realtime")

router = APIRouter(prefix="/api/v1", tags=["realtime"])

AUTH_FAILED = 4001


def publish(request: Request, background_tasks: BackgroundTasks, events: Iterable[PushEvent]):
    """Deliver push events after the REST response has been sent."""
    events = [e for e in events if e is not None]
    if events:
        background_tasks.add_task(request.app.state.hub.publish, events)


@dataclass
class SocketSession:
    websocket: WebSocket
    user: AuthContext
    business_id: Optional[int]

    @property
    def hub(self) -> ConnectionManager:
        return self.websocket.app.state.hub

    async def call(self, fn, *args, **kwargs):
        """Run a synchronous service function with its own DB session."""
        return await run_in_threadpool(_with_session, self.websocket.app.state.db, fn, *args, **kwargs)

    def require_business(self) -> int:
        if self.business_id is None:
            raise ValidationError("Business ID required")
        return self.business_id


def _with_session(database, fn, *args, **kwargs):
    db = database.session()
    try:
        return fn(db, *args, **kwargs)
    finally:
        db.close()


def _resolve_business(db, user_id: int, business_id: Optional[int]) -> Optional[int]:
    if business_id is not None:
        business = db.query(Business).filter(Business.id == business_id).first()
        if not business:
            raise NotFound("Business not found")
        if business.user_id != user_id:
            raise Forbidden("You do not own this business")
        return business.id
    first = db.query(Business).filter(Business.user_id == user_id).order_by(Business.id).first()
    return first.id if first else None


def _conversation_id(data) -> int:
    raw = data.get("conversation_id") if isinstance(data, dict) else data
    conversation_id = parse_id(raw, "conversation_id")
    if conversation_id is None:
        raise ValidationError("conversation_id is required")
    return conversation_id


def _check_access(db, conversation_id: int, business_id: int):
    chat_service.check_party(chat_service.get_conversation(db, conversation_id), business_id)


# ═══════════════════════════════════════════════
#  CLIENT EVENTS
# ═══════════════════════════════════════════════

async def on_join_conversation(session: SocketSession, data):
    conversation_id = _conversation_id(data)
    await session.call(_check_access, conversation_id, session.require_business())
    session.hub.join(session.websocket, conversation_room(conversation_id))
    await session.hub.send(session.websocket, "joined_conversation", {"conversation_id": sid(conversation_id)})


async def on_leave_conversation(session: SocketSession, data):
    conversation_id = _conversation_id(data)
    session.hub.leave(session.websocket, conversation_room(conversation_id))
    await session.hub.send(session.websocket, "left_conversation", {"conversation_id": sid(conversation_id)})


async def on_send_message(session: SocketSession, data):
    business_id = session.require_business()
    if not isinstance(data, dict):
        raise ValidationError("send_message expects an object")
    conversation_id = _conversation_id(data)
    _, events = await session.call(
        chat_service.send_message,
        conversation_id,
        business_id,
        data.get("message_type") or "text",
        data.get("content"),
        data.get("metadata"),
    )
    await session.hub.publish(events)
    await session.hub.emit(
        conversation_room(conversation_id), "typing_stop",
        {"business_id": sid(business_id), "conversation_id": sid(conversation_id)},
        exclude=session.websocket,
    )


async def _relay_typing(session: SocketSession, data, event: str):
    business_id = session.require_business()
    conversation_id = _conversation_id(data)
    room = conversation_room(conversation_id)
    if session.websocket not in session.hub.members(room):
        raise Forbidden("Join the conversation first")
    await session.hub.emit(
        room, event,
        {"business_id": sid(business_id), "conversation_id": sid(conversation_id)},
        exclude=session.websocket,
    )


async def on_typing_start(session: SocketSession, data):
    await _relay_typing(session, data, "typing_start")


async def on_typing_stop(session: SocketSession, data):
    await _relay_typing(session, data, "typing_stop")


async def on_mark_read(session: SocketSession, data):
    business_id = session.require_business()
    _, events = await session.call(chat_service.mark_read, _conversation_id(data), business_id)
    for ev in events:
        ev.exclude = session.websocket
    await session.hub.publish(events)


HANDLERS = {
    "join_conversation": on_join_conversation,
    "leave_conversation": on_leave_conversation,
    "send_message": on_send_message,
    "typing_start": on_typing_start,
    "typing_stop": on_typing_stop,
    "mark_read": on_mark_read,
}


# ═══════════════════════════════════════════════
#  ENDPOINT
# ═══════════════════════════════════════════════

@router.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket):
    await websocket.accept()

    settings = websocket.app.state.settings
    token = websocket.query_params.get("token") or bearer_token(websocket.headers.get("authorization"))
    try:
        user = authenticate(token, settings)
        requested = parse_id(websocket.query_params.get("business_id"), "business_id")
        business_id = await run_in_threadpool(
            _with_session, websocket.app.state.db, _resolve_business, user.user_id, requested,
        )
    except AppError as exc:
        logger.warning("Rejected socket handshake: %s", exc.detail)
        await websocket.close(code=AUTH_FAILED, reason=exc.detail)
        return

    session = SocketSession(websocket, user, business_id)
    hub: ConnectionManager = websocket.app.state.hub
    rooms = [user_room(user.user_id)]
    if business_id is not None:
        rooms.append(business_room(business_id))
    hub.connect(websocket, rooms)
    logger.info("Socket connected: user %s (business %s)", user.user_id, business_id)

    try:
        while True:
            try:
                frame = await websocket.receive_json()
            except ValueError:
                await hub.send(websocket, "error", {"message": "Invalid message format"})
                continue

            event = frame.get("event") if isinstance(frame, dict) else None
            handler = HANDLERS.get(event)
            if handler is None:
                await hub.send(websocket, "error", {"message": f"Unknown event: {event}"})
                continue
            try:
                await handler(session, frame.get("data") or {})
            except AppError as exc:
                await hub.send(websocket, "error", {"message": exc.detail, "status": exc.status_code, "event": event})
            except WebSocketDisconnect:
                raise
            except Exception:
                logger.exception("Socket handler %s failed", event)
                await hub.send(websocket, "error", {"message": "Internal server error", "event": event})
    except WebSocketDisconnect:
        pass
    finally:
        hub.disconnect(websocket)
        logger.info("Socket disconnected: user %s", user.user_id)
