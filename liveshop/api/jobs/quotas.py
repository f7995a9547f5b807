# liveshop/api/jobs/quotas.py

"""
Jobs de Reset de Cupos
======================

- Semanal (segunda 00:00 no fuso das lojas): zera o uso base de vivos.
  O saldo extra atravessa o reset.
- Diário (00:00 no fuso das lojas): zera o uso base de historias.

Os dois são idempotentes pela chave de semana/dia gravada na carteira.
"""

import logging
from datetime import datetime
from typing import Optional

from liveshop.api.services.quota_wallet_service import QuotaWalletService
from liveshop.core.database import get_db_manager

logger = logging.getLogger(__name__)


def reset_weekly_live_quotas(now: Optional[datetime] = None) -> dict:
    logger.info("🔄 [Quotas] Reset semanal de vivos")
    with get_db_manager() as db:
        return QuotaWalletService(db).reset_weekly_live(now)


def reset_daily_reel_quotas(now: Optional[datetime] = None) -> dict:
    logger.info("🔄 [Quotas] Reset diário de historias")
    with get_db_manager() as db:
        return QuotaWalletService(db).reset_daily_reel(now)
