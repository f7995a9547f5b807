# liveshop/api/services/sanction_service.py
"""
Motor de Sanções (SanctionEngine)
=================================

Candidatos: vivos UPCOMING/LIVE com report_count >= limiar e horário de
início dentro da janela de denúncias em torno de agora.

Para cada candidato:
1. Vivo → MISSED
2. Penalty ativa na loja
3. N-ésimo MISSED no período → agenda suspensa por X dias
4. (opcional) vivo de reposição PENDING_REPROGRAMMATION, sem estorno

Idempotente: vivos MISSED não voltam a ser candidatos e a Penalty é única
por vivo.
"""

import logging
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from liveshop.api.services.notification_service import NotificationService
from liveshop.api.services.stream_feedback_service import sanction_lookback
from liveshop.core import models
from liveshop.core.config import config
from liveshop.core.exceptions import EntityNotFound, InvalidTransition
from liveshop.core.stream_transitions import apply_event
from liveshop.core.utils.dates import ensure_utc, utcnow
from liveshop.core.utils.enums import (
    WEEKLY_CAP_STATUSES, NotificationType, ShopStatus, StreamEvent, StreamStatus,
)

logger = logging.getLogger(__name__)

PENALTY_REASON_MISSED = "Vivo não realizado: limiar de denúncias atingido"


class SanctionService:

    def __init__(self, db: Session):
        self.db = db
        self.notifications = NotificationService(db)

    def _candidates(self, now: datetime):
        earliest = now - sanction_lookback()
        latest = now + timedelta(minutes=config.REPORT_WINDOW_BEFORE_MINUTES)

        return self.db.execute(
            select(models.Stream).where(
                models.Stream.status.in_(WEEKLY_CAP_STATUSES),
                models.Stream.report_count >= config.SANCTION_REPORT_THRESHOLD,
                models.Stream.scheduled_at >= earliest,
                models.Stream.scheduled_at <= latest,
            ).order_by(models.Stream.scheduled_at)
        ).scalars().all()

    def _missed_in_period(self, shop_id: int, now: datetime) -> int:
        since = now - timedelta(days=config.SANCTION_ROLLING_PERIOD_DAYS)
        return self.db.scalar(
            select(func.count(models.Stream.id)).where(
                models.Stream.shop_id == shop_id,
                models.Stream.status == StreamStatus.MISSED,
                models.Stream.scheduled_at >= since,
            )
        ) or 0

    def _escalate(self, shop: models.Shop, now: datetime) -> bool:
        if shop.status != ShopStatus.ACTIVE:
            return False

        missed = self._missed_in_period(shop.id, now)
        if missed < config.SANCTION_MISSED_ESCALATION_COUNT:
            return False

        shop.status = ShopStatus.AGENDA_SUSPENDED
        shop.agenda_suspended_until = now + timedelta(days=config.SANCTION_SUSPENSION_DAYS)
        shop.agenda_suspended_reason = (
            f"{missed} vivos não realizados nos últimos {config.SANCTION_ROLLING_PERIOD_DAYS} dias"
        )
        shop.status_reason = shop.agenda_suspended_reason
        shop.status_changed_at = now

        self.notifications.notify(
            NotificationType.SYSTEM,
            f"⚠️ Sua agenda foi suspensa por {config.SANCTION_SUSPENSION_DAYS} dias "
            f"({shop.agenda_suspended_reason}).",
            shop_id=shop.id,
        )
        logger.warning(f"  ⛔ Loja {shop.id} com agenda suspensa até {shop.agenda_suspended_until.isoformat()}")
        return True

    def _create_replacement(self, stream: models.Stream) -> models.Stream:
        """Vivo PENDING_REPROGRAMMATION que herda o cupo já consumido"""
        replacement = models.Stream(
            shop_id=stream.shop_id,
            title=stream.title,
            description=stream.description,
            cover_image=stream.cover_image,
            scheduled_at=stream.scheduled_at,
            platform=stream.platform,
            url=stream.url,
            status=StreamStatus.PENDING_REPROGRAMMATION,
            replaces_stream_id=stream.id,
        )
        self.db.add(replacement)
        self.db.flush()
        return replacement

    def run(self, now: Optional[datetime] = None) -> dict:
        """
        Executa uma varredura de sanções.

        Returns:
            {"candidates", "sanctioned", "reprogrammed", "suspended", "errors"}
        """
        now = ensure_utc(now) if now else utcnow()
        candidates = self._candidates(now)

        summary = {
            "candidates": len(candidates),
            "sanctioned": 0,
            "reprogrammed": 0,
            "suspended": 0,
            "errors": {},
        }

        for stream in candidates:
            logger.info(
                f"  🔎 Vivo {stream.id} (loja {stream.shop_id}) com {stream.report_count} denúncias"
            )
            savepoint = self.db.begin_nested()
            try:
                already_penalized = self.db.scalar(
                    select(models.Penalty.id).where(models.Penalty.stream_id == stream.id)
                )
                if already_penalized is not None or stream.status not in WEEKLY_CAP_STATUSES:
                    savepoint.commit()
                    continue

                apply_event(stream, StreamEvent.MARK_MISSED)
                stream.status_reason = PENALTY_REASON_MISSED
                stream.is_visible = False

                shop = self.db.get(models.Shop, stream.shop_id)
                shop.penalties.append(models.Penalty(
                    reason=PENALTY_REASON_MISSED,
                    stream_id=stream.id,
                    active=True,
                ))
                self.notifications.notify(
                    NotificationType.SYSTEM,
                    f"⚠️ O vivo '{stream.title}' foi marcado como não realizado após "
                    f"{stream.report_count} denúncias.",
                    shop_id=stream.shop_id,
                    ref_id=str(stream.id),
                )
                self.db.flush()

                if self._escalate(shop, now):
                    summary["suspended"] += 1

                if config.SANCTION_AUTO_REPROGRAM:
                    replacement = self._create_replacement(stream)
                    summary["reprogrammed"] += 1
                    logger.info(f"  🔁 Vivo de reposição {replacement.id} aguardando nova data")

                savepoint.commit()
                summary["sanctioned"] += 1
                logger.info(f"  ✅ Vivo {stream.id} sancionado")

            except Exception as e:
                savepoint.rollback()
                summary["errors"][str(stream.id)] = str(e)
                logger.error(f"  ❌ Erro ao sancionar vivo {stream.id}: {e}", exc_info=True)

        self.db.commit()
        return summary

    def reprogram_missed(self, stream_id: int) -> models.Stream:
        """Admin cria a reposição de um vivo MISSED quando a automática está desligada"""
        stream = self.db.get(models.Stream, stream_id)
        if not stream:
            raise EntityNotFound("Vivo não encontrado", stream_id=stream_id)
        if stream.status != StreamStatus.MISSED:
            raise InvalidTransition(
                "Só vivos não realizados podem ser reprogramados",
                stream_id=stream.id,
                status=stream.status.value,
            )

        existing = self.db.execute(
            select(models.Stream).where(models.Stream.replaces_stream_id == stream.id)
        ).scalar_one_or_none()
        if existing:
            return existing

        replacement = self._create_replacement(stream)
        self.db.commit()
        self.db.refresh(replacement)
        return replacement
