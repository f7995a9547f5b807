# liveshop/api/services/stream_feedback_service.py
"""Denúncias e avaliações de vivos feitas pelos espectadores"""

import logging
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from liveshop.core import models
from liveshop.core.config import config
from liveshop.core.exceptions import (
    AlreadyProcessed, EntityNotFound, InvalidTransition, ReportWindowClosed,
)
from liveshop.core.utils.dates import ensure_utc, utcnow
from liveshop.core.utils.enums import WEEKLY_CAP_STATUSES, ReportStatus, StreamStatus

logger = logging.getLogger(__name__)


def report_window(stream: models.Stream):
    start = stream.scheduled_at - timedelta(minutes=config.REPORT_WINDOW_BEFORE_MINUTES)
    end = stream.scheduled_at + timedelta(minutes=config.REPORT_WINDOW_AFTER_MINUTES)
    return start, end


def sanction_lookback() -> timedelta:
    """Por quanto tempo após o horário agendado o vivo ainda é candidato a sanção"""
    return timedelta(minutes=config.REPORT_WINDOW_BEFORE_MINUTES + config.REPORT_WINDOW_AFTER_MINUTES)


class StreamFeedbackService:

    def __init__(self, db: Session):
        self.db = db

    def _get_stream(self, stream_id: int, lock: bool = False) -> models.Stream:
        stmt = select(models.Stream).where(models.Stream.id == stream_id)
        if lock:
            stmt = stmt.with_for_update()
        stream = self.db.execute(stmt).scalar_one_or_none()
        if not stream:
            raise EntityNotFound("Vivo não encontrado", stream_id=stream_id)
        return stream

    def _get_report(self, report_id: int) -> models.StreamReport:
        report = self.db.get(models.StreamReport, report_id)
        if not report:
            raise EntityNotFound("Denúncia não encontrada", report_id=report_id)
        if report.status != ReportStatus.OPEN:
            raise AlreadyProcessed("Denúncia já foi analisada", report_id=report_id)
        return report

    # ═══════════════════════════════════════════════════════════
    # DENÚNCIAS
    # ═══════════════════════════════════════════════════════════

    def report_stream(self, stream_id: int, reporter_id: str, reason: str,
                      now: Optional[datetime] = None) -> models.StreamReport:
        """
        Registra "a loja não está ao vivo".

        Uma denúncia por espectador; só aceita dentro da janela
        [início - 5min, início + 35min] e com o vivo UPCOMING/LIVE.
        """
        now = ensure_utc(now) if now else utcnow()
        stream = self._get_stream(stream_id, lock=True)

        window_start, window_end = report_window(stream)
        if stream.status not in WEEKLY_CAP_STATUSES or not (window_start <= now <= window_end):
            raise ReportWindowClosed(
                stream_id=stream.id,
                status=stream.status.value,
                window_start=window_start.isoformat(),
                window_end=window_end.isoformat(),
            )

        duplicate = self.db.execute(
            select(models.StreamReport.id).where(
                models.StreamReport.stream_id == stream.id,
                models.StreamReport.reporter_id == reporter_id,
            )
        ).scalar_one_or_none()
        if duplicate is not None:
            raise AlreadyProcessed("Você já denunciou este vivo", stream_id=stream.id)

        report = models.StreamReport(stream_id=stream.id, reporter_id=reporter_id, reason=reason)
        self.db.add(report)
        stream.report_count += 1

        try:
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            raise AlreadyProcessed("Você já denunciou este vivo", stream_id=stream_id)

        self.db.refresh(report)
        logger.info(f"🚩 Vivo {stream.id} denunciado ({stream.report_count} denúncias)")
        return report

    def resolve_report(self, report_id: int, now: Optional[datetime] = None) -> models.StreamReport:
        report = self._get_report(report_id)
        report.status = ReportStatus.RESOLVED
        report.resolved_at = ensure_utc(now) if now else utcnow()
        self.db.commit()
        self.db.refresh(report)
        return report

    def reject_report(self, report_id: int, now: Optional[datetime] = None) -> models.StreamReport:
        """Denúncia improcedente: deixa de contar enquanto o vivo ainda é UPCOMING/LIVE"""
        report = self._get_report(report_id)
        stream = self._get_stream(report.stream_id, lock=True)

        report.status = ReportStatus.REJECTED
        report.resolved_at = ensure_utc(now) if now else utcnow()
        if stream.status in WEEKLY_CAP_STATUSES and stream.report_count > 0:
            stream.report_count -= 1

        self.db.commit()
        self.db.refresh(report)
        return report

    def list_reports(self, status: Optional[ReportStatus] = None, stream_id: Optional[int] = None):
        stmt = select(models.StreamReport)
        if status is not None:
            stmt = stmt.where(models.StreamReport.status == status)
        if stream_id is not None:
            stmt = stmt.where(models.StreamReport.stream_id == stream_id)
        return self.db.execute(stmt.order_by(models.StreamReport.id)).scalars().all()

    # ═══════════════════════════════════════════════════════════
    # AVALIAÇÕES
    # ═══════════════════════════════════════════════════════════

    def rate_stream(self, stream_id: int, rater_id: str, rating: int,
                    comment: Optional[str] = None) -> models.Stream:
        if not 1 <= rating <= 5:
            raise ValueError("A nota deve estar entre 1 e 5")

        stream = self._get_stream(stream_id, lock=True)
        if stream.status != StreamStatus.FINISHED:
            raise InvalidTransition(
                "Só vivos finalizados podem ser avaliados",
                stream_id=stream.id,
                status=stream.status.value,
            )

        duplicate = self.db.execute(
            select(models.StreamRating.id).where(
                models.StreamRating.stream_id == stream.id,
                models.StreamRating.rater_id == rater_id,
            )
        ).scalar_one_or_none()
        if duplicate is not None:
            raise AlreadyProcessed("Você já avaliou este vivo", stream_id=stream.id)

        self.db.add(models.StreamRating(
            stream_id=stream.id, rater_id=rater_id, rating=rating, comment=comment
        ))
        self.db.flush()

        count, average = self.db.execute(
            select(func.count(models.StreamRating.id), func.avg(models.StreamRating.rating))
            .where(models.StreamRating.stream_id == stream.id)
        ).one()
        stream.rating_count = count
        stream.rating = round(float(average), 2)

        self.db.commit()
        self.db.refresh(stream)
        return stream

    # ═══════════════════════════════════════════════════════════
    # CURTIDAS
    # ═══════════════════════════════════════════════════════════

    def toggle_like(self, stream_id: int, user_id: str) -> dict:
        """
        Curte ou descurte o vivo para o espectador.

        Returns:
            {"stream_id", "liked", "likes"}: estado da curtida e total do vivo
        """
        stream = self._get_stream(stream_id, lock=True)

        existing = self.db.execute(
            select(models.StreamLike).where(
                models.StreamLike.stream_id == stream.id,
                models.StreamLike.user_id == user_id,
            )
        ).scalar_one_or_none()

        if existing is not None:
            self.db.delete(existing)
            liked = False
        else:
            self.db.add(models.StreamLike(stream_id=stream.id, user_id=user_id))
            liked = True
        self.db.flush()

        stream.likes = self.db.scalar(
            select(func.count(models.StreamLike.id)).where(models.StreamLike.stream_id == stream.id)
        ) or 0
        self.db.commit()

        action = "curtiu" if liked else "descurtiu"
        logger.info(f"❤️ Vivo {stream.id}: {user_id} {action} (total {stream.likes})")
        return {"stream_id": stream.id, "liked": liked, "likes": stream.likes}
