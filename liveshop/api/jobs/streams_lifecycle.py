# liveshop/api/jobs/streams_lifecycle.py

"""
Job de Ciclo de Vida dos Vivos
==============================

Roda a cada STREAMS_LIFECYCLE_INTERVAL_MINUTES:
1. UPCOMING com horário alcançado → LIVE
2. LIVE com duração esgotada → FINISHED
"""

import logging
from datetime import datetime
from typing import Optional

from liveshop.api.services.stream_lifecycle_service import StreamLifecycleService
from liveshop.core.database import get_db_manager

logger = logging.getLogger(__name__)


def run_streams_lifecycle(now: Optional[datetime] = None) -> dict:
    logger.info("═" * 60)
    logger.info("📺 [Streams Lifecycle] Iniciando tick")
    logger.info("═" * 60)

    with get_db_manager() as db:
        summary = StreamLifecycleService(db).run_tick(now)

    logger.info(
        f"✅ [Streams Lifecycle] {summary['started']} iniciados, "
        f"{summary['finished']} finalizados, {len(summary['errors'])} erros"
    )
    return summary


if __name__ == "__main__":
    run_streams_lifecycle()
