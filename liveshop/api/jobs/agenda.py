# liveshop/api/jobs/agenda.py

import logging
from datetime import datetime
from typing import Optional

from liveshop.api.services.shop_service import ShopService
from liveshop.core.database import get_db_manager

logger = logging.getLogger(__name__)


def release_agenda_suspensions(now: Optional[datetime] = None) -> dict:
    """Lojas com suspensão vencida voltam para ACTIVE (penalidades seguem ativas)"""
    with get_db_manager() as db:
        summary = ShopService(db).release_expired_suspensions(now)

    if summary["released"]:
        logger.info(f"🔓 [Agenda] {summary['released']} lojas liberadas")
    return summary
