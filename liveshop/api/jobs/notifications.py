# liveshop/api/jobs/notifications.py

import logging
from datetime import datetime
from typing import Optional

from liveshop.api.services.notification_service import NotificationService
from liveshop.core.database import get_db_manager

logger = logging.getLogger(__name__)


def run_notifications(minutes_ahead: Optional[int] = None, now: Optional[datetime] = None) -> dict:
    """Envia lembretes dos vivos que começam dentro da janela"""
    logger.info("🔔 [Notifications] Verificando lembretes de vivos")

    with get_db_manager() as db:
        return NotificationService(db).run_notifications(minutes_ahead, now)
