"""
Negotiation threads between a buyer and a seller business.

Every mutating function returns `(result, events)`: the push events to publish
once the transaction is committed. The REST routes and the socket handlers both
call these functions, so the two transports share authorization and side
effects.
"""
import logging
from typing import Optional, List, Tuple

from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from tradedesk.errors import Forbidden, NotFound, ValidationError
from tradedesk.models import Conversation, ChatMessage, Business, Product, MESSAGE_TYPES, utcnow
from tradedesk.serializers import message_to_dict, sid
from tradedesk.services.notifications import notify_business
from tradedesk.services.realtime import PushEvent, conversation_room

logger = logging.getLogger("tradedesk.chat")

MAX_CONTENT_LENGTH = 5000


def thread_key(buyer_business_id: int, seller_business_id: int, product_id: Optional[int]) -> str:
    return f"{buyer_business_id}:{seller_business_id}:{product_id or 0}"


def get_conversation(db: Session, conversation_id: int) -> Conversation:
    conv = db.query(Conversation).filter(Conversation.id == conversation_id).first()
    if not conv:
        raise NotFound("Conversation not found")
    return conv


def check_party(conv: Conversation, business_id: Optional[int], detail: str = "Access denied"):
    if business_id not in (conv.buyer_business_id, conv.seller_business_id):
        raise Forbidden(detail)


def counterparty(conv: Conversation, business_id: int) -> int:
    return conv.seller_business_id if business_id == conv.buyer_business_id else conv.buyer_business_id


def _find_thread(db: Session, key: str) -> Optional[Conversation]:
    return db.query(Conversation).filter(Conversation.thread_key == key).first()


def get_or_create_conversation(
    db: Session,
    caller_business_id: int,
    buyer_business_id: int,
    seller_business_id: int,
    product_id: Optional[int] = None,
    inquiry_id: Optional[int] = None,
    order_id: Optional[int] = None,
) -> Tuple[Conversation, bool]:
    """Return the active thread for (buyer, seller, product), creating it if needed.

    The second element is True when the conversation was created by this call.
    """
    if caller_business_id not in (buyer_business_id, seller_business_id):
        raise Forbidden("You can only access conversations you're part of")
    if buyer_business_id == seller_business_id:
        raise ValidationError("A business cannot negotiate with itself")

    found = db.query(Business.id).filter(Business.id.in_([buyer_business_id, seller_business_id])).count()
    if found != 2:
        raise NotFound("Business not found")
    if product_id is not None and not db.query(Product.id).filter(Product.id == product_id).first():
        raise NotFound("Product not found")

    key = thread_key(buyer_business_id, seller_business_id, product_id)
    existing = _find_thread(db, key)
    if existing:
        return existing, False

    conv = Conversation(
        buyer_business_id=buyer_business_id,
        seller_business_id=seller_business_id,
        product_id=product_id,
        inquiry_id=inquiry_id,
        order_id=order_id,
        thread_key=key,
    )
    try:
        with db.begin_nested():
            db.add(conv)
    except IntegrityError:
        # the other party opened the same thread concurrently
        existing = _find_thread(db, key)
        if existing is None:
            raise
        return existing, False

    db.commit()
    db.refresh(conv)
    logger.info("Conversation %s opened between buyer %s and seller %s", conv.id, buyer_business_id, seller_business_id)
    return conv, True


def last_message(db: Session, conversation_id: int) -> Optional[ChatMessage]:
    return (
        db.query(ChatMessage)
        .filter(ChatMessage.conversation_id == conversation_id, ChatMessage.is_deleted == False)
        .order_by(ChatMessage.created_at.desc(), ChatMessage.id.desc())
        .first()
    )


def list_business_conversations(db: Session, business_id: int) -> List[Tuple[Conversation, Optional[ChatMessage]]]:
    """Active conversations of a business, most recent activity first."""
    rows = (
        db.query(Conversation)
        .filter(
            or_(Conversation.buyer_business_id == business_id, Conversation.seller_business_id == business_id),
            Conversation.is_active == True,
        )
        .order_by(
            Conversation.last_message_at.is_(None),
            Conversation.last_message_at.desc(),
            Conversation.created_at.desc(),
        )
        .all()
    )
    return [(conv, last_message(db, conv.id)) for conv in rows]


def _mark_other_party_read(db: Session, conversation_id: int, business_id: int) -> int:
    return db.query(ChatMessage).filter(
        ChatMessage.conversation_id == conversation_id,
        ChatMessage.sender_business_id != business_id,
        ChatMessage.is_read == False,
    ).update({"is_read": True, "read_at": utcnow()}, synchronize_session=False)


def get_messages(
    db: Session,
    conversation_id: int,
    business_id: int,
    page: int = 1,
    limit: int = 50,
) -> Tuple[List[ChatMessage], int]:
    """A page of a conversation's messages, oldest first.

    Pages count back from the newest message. Reading marks the other party's
    messages as read.
    """
    conv = get_conversation(db, conversation_id)
    check_party(conv, business_id)

    _mark_other_party_read(db, conv.id, business_id)
    db.commit()

    q = db.query(ChatMessage).filter(ChatMessage.conversation_id == conv.id, ChatMessage.is_deleted == False)
    total = q.count()
    newest_first = (
        q.order_by(ChatMessage.created_at.desc(), ChatMessage.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return list(reversed(newest_first)), total


def send_message(
    db: Session,
    conversation_id: int,
    sender_business_id: int,
    message_type: str = "text",
    content: Optional[str] = None,
    metadata: Optional[dict] = None,
) -> Tuple[ChatMessage, List[PushEvent]]:
    message_type = message_type or "text"
    if message_type not in MESSAGE_TYPES:
        raise ValidationError(f"message_type must be one of: {', '.join(MESSAGE_TYPES)}")
    if content is not None and len(content) > MAX_CONTENT_LENGTH:
        raise ValidationError(f"content must be at most {MAX_CONTENT_LENGTH} characters")
    if message_type == "text" and not (content and content.strip()):
        raise ValidationError("content is required for text messages")

    conv = get_conversation(db, conversation_id)
    check_party(conv, sender_business_id, "You can only send messages in your conversations")

    msg = ChatMessage(
        conversation_id=conv.id,
        sender_business_id=sender_business_id,
        message_type=message_type,
        content=content,
        meta=metadata,
    )
    db.add(msg)
    conv.last_message_at = utcnow()
    db.flush()

    recipient_id = counterparty(conv, sender_business_id)
    notification = notify_business(
        db,
        recipient_id,
        "message",
        "New Message",
        content or "You received a new message",
        link=f"/chat/{conv.id}",
        metadata={"conversation_id": sid(conv.id), "sender_business_id": sid(sender_business_id)},
    )
    db.commit()
    db.refresh(msg)

    events = [PushEvent(conversation_room(conv.id), "new_message", message_to_dict(msg))]
    if notification:
        events.append(notification)
    return msg, events


def mark_read(db: Session, conversation_id: int, business_id: int) -> Tuple[int, List[PushEvent]]:
    conv = get_conversation(db, conversation_id)
    check_party(conv, business_id)
    updated = _mark_other_party_read(db, conv.id, business_id)
    db.commit()
    event = PushEvent(
        conversation_room(conv.id),
        "messages_read",
        {"business_id": sid(business_id), "conversation_id": sid(conv.id)},
    )
    return updated, [event]


def delete_message(db: Session, message_id: int, business_id: int) -> ChatMessage:
    msg = db.query(ChatMessage).filter(ChatMessage.id == message_id).first()
    if not msg:
        raise NotFound("Message not found")
    if msg.sender_business_id != business_id:
        raise Forbidden("You can only delete your own messages")
    msg.is_deleted = True
    db.commit()
    return msg
