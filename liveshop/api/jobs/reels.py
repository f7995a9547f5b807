# liveshop/api/jobs/reels.py

import logging
from datetime import datetime
from typing import Optional

from liveshop.api.services.reel_service import ReelService
from liveshop.core.database import get_db_manager

logger = logging.getLogger(__name__)


def expire_reels(now: Optional[datetime] = None) -> dict:
    """Historias ACTIVE com mais de 24h viram EXPIRED"""
    logger.info("⌛ [Reels] Expirando historias vencidas")

    with get_db_manager() as db:
        return ReelService(db).sweep_expired(now)
