from datetime import datetime
from typing import Optional

from liveshop.api.schemas.base_schema import AppBaseModel
from liveshop.core.utils.enums import NotificationType


class NotificationOut(AppBaseModel):
    id: int
    type: NotificationType
    message: str
    user_id: Optional[str] = None
    shop_id: Optional[int] = None
    ref_id: Optional[str] = None
    notify_at: Optional[datetime] = None
    read: bool
    created_at: datetime


class MarkAllRead(AppBaseModel):
    user_id: Optional[str] = None
    shop_id: Optional[int] = None
