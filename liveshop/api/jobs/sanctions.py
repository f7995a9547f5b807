# liveshop/api/jobs/sanctions.py

"""
Job do Motor de Sanções
=======================

Roda a cada SANCTIONS_INTERVAL_MINUTES, independente do ciclo de vida.
Vivos com denúncias acima do limiar dentro da janela viram MISSED, a loja
recebe uma penalidade e, se reincidente, tem a agenda suspensa.
"""

import logging
from datetime import datetime
from typing import Optional

from liveshop.api.services.sanction_service import SanctionService
from liveshop.core.database import get_db_manager

logger = logging.getLogger(__name__)


def run_sanctions(now: Optional[datetime] = None) -> dict:
    logger.info("═" * 60)
    logger.info("⚖️ [Sanctions] Iniciando varredura de sanções")
    logger.info("═" * 60)

    with get_db_manager() as db:
        summary = SanctionService(db).run(now)

    logger.info("═" * 60)
    logger.info(
        f"✅ [Sanctions] {summary['candidates']} candidatos, {summary['sanctioned']} sancionados, "
        f"{summary['reprogrammed']} reprogramados, {len(summary['errors'])} erros"
    )
    logger.info("═" * 60)
    return summary


if __name__ == "__main__":
    run_sanctions()
