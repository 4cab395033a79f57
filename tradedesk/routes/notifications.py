"""
Notification routes — the authenticated user's in-app inbox.
"""
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from tradedesk.database import get_db
from tradedesk.routes.auth import AuthContext, get_current_user
from tradedesk.serializers import notification_to_dict, page_info
from tradedesk.services import notifications as notification_service

router = APIRouter(prefix="/api/v1/notifications", tags=["notifications"])


@router.get("")
def get_notifications(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    is_read: Optional[bool] = None,
    user: AuthContext = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Newest first."""
    rows, total = notification_service.list_notifications(db, user.user_id, page, limit, is_read)
    return {
        "notifications": [notification_to_dict(n) for n in rows],
        "pagination": page_info(total, page, limit),
    }


@router.get("/unread-count")
def unread_count(user: AuthContext = Depends(get_current_user), db: Session = Depends(get_db)):
    return {"unread_count": notification_service.unread_count(db, user.user_id)}


@router.patch("/read-all")
def mark_all_read(user: AuthContext = Depends(get_current_user), db: Session = Depends(get_db)):
    updated = notification_service.mark_all_read(db, user.user_id)
    return {"message": "All notifications marked as read", "updated": updated}


@router.patch("/{notification_id}/read")
def mark_read(
    notification_id: int,
    user: AuthContext = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    notif = notification_service.mark_read(db, notification_id, user.user_id)
    return {"message": "Notification marked as read", "notification": notification_to_dict(notif)}


@router.delete("/{notification_id}")
def delete_notification(
    notification_id: int,
    user: AuthContext = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    notification_service.delete_notification(db, notification_id, user.user_id)
    return {"message": "Notification deleted successfully"}
