from typing import Optional

from fastapi import APIRouter

from liveshop.api.schemas.notification import MarkAllRead, NotificationOut
from liveshop.api.services.notification_service import NotificationService
from liveshop.core.database import GetDBDep
from liveshop.core.utils.enums import NotificationType

router = APIRouter(tags=["Notifications"], prefix="/notifications")


@router.get("", response_model=list[NotificationOut])
def list_notifications(
    db: GetDBDep,
    user_id: Optional[str] = None,
    shop_id: Optional[int] = None,
    unread: bool = False,
    type: Optional[NotificationType] = None,
    limit: int = 50,
):
    return NotificationService(db).list_notifications(user_id, shop_id, unread, type, limit)


@router.post("/read-all")
def mark_all_read(payload: MarkAllRead, db: GetDBDep):
    updated = NotificationService(db).mark_all_read(payload.user_id, payload.shop_id)
    return {"updated": updated}


@router.post("/{notification_id}/read", response_model=NotificationOut)
def mark_read(notification_id: int, db: GetDBDep):
    return NotificationService(db).mark_read(notification_id)
