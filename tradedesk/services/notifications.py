"""
Notification inbox. Rows are created as side effects of chat, order and
quotation events; each creation also yields a `new_notification` push event.
"""
import logging
from typing import Optional, Tuple

from sqlalchemy.orm import Session

from tradedesk.errors import NotFound, Forbidden
from tradedesk.models import Notification, Business, utcnow
from tradedesk.serializers import notification_to_dict
from tradedesk.services.realtime import PushEvent, business_room, user_room

logger = logging.getLogger("tradedesk.notifications")


def notify(
    db: Session,
    user_id: int,
    business_id: Optional[int],
    notification_type: str,
    title: str,
    message: str,
    link: Optional[str] = None,
    metadata: Optional[dict] = None,
) -> PushEvent:
    """Add a notification row and return the matching push event.

    The caller commits; the event should be published only after that commit.
    """
    notif = Notification(
        user_id=user_id,
        business_id=business_id,
        notification_type=notification_type,
        title=title,
        message=message,
        link=link,
        meta=metadata,
    )
    db.add(notif)
    db.flush()
    room = business_room(business_id) if business_id else user_room(user_id)
    return PushEvent(room, "new_notification", notification_to_dict(notif))


def notify_business(db: Session, business_id: int, notification_type: str, title: str, message: str,
                    link: Optional[str] = None, metadata: Optional[dict] = None) -> Optional[PushEvent]:
    """Notify the user owning `business_id`."""
    business = db.query(Business).filter(Business.id == business_id).first()
    if not business:
        return None
    return notify(db, business.user_id, business.id, notification_type, title, message, link, metadata)


def list_notifications(db: Session, user_id: int, page: int = 1, limit: int = 20,
                       is_read: Optional[bool] = None) -> Tuple[list, int]:
    q = db.query(Notification).filter(Notification.user_id == user_id)
    if is_read is not None:
        q = q.filter(Notification.is_read == is_read)
    total = q.count()
    rows = (
        q.order_by(Notification.created_at.desc(), Notification.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return rows, total


def _owned(db: Session, notification_id: int, user_id: int) -> Notification:
    notif = db.query(Notification).filter(Notification.id == notification_id).first()
    if not notif:
        raise NotFound("Notification not found")
    if notif.user_id != user_id:
        raise Forbidden("Access denied")
    return notif


def mark_read(db: Session, notification_id: int, user_id: int) -> Notification:
    notif = _owned(db, notification_id, user_id)
    if not notif.is_read:
        notif.is_read = True
        notif.read_at = utcnow()
        db.commit()
        db.refresh(notif)
    return notif


def mark_all_read(db: Session, user_id: int) -> int:
    updated = db.query(Notification).filter(
        Notification.user_id == user_id,
        Notification.is_read == False,
    ).update({"is_read": True, "read_at": utcnow()}, synchronize_session=False)
    db.commit()
    return updated


def delete_notification(db: Session, notification_id: int, user_id: int):
    notif = _owned(db, notification_id, user_id)
    db.delete(notif)
    db.commit()


def unread_count(db: Session, user_id: int) -> int:
    return db.query(Notification).filter(
        Notification.user_id == user_id,
        Notification.is_read == False,
    ).count()
