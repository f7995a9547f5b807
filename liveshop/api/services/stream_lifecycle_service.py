# liveshop/api/services/stream_lifecycle_service.py
"""
Ciclo de Vida dos Vivos (StreamLifecycleEngine)
===============================================

Tick periódico:
- UPCOMING com horário alcançado → LIVE (started_at = agora)
- LIVE com duração esgotada (30min × (1 + extensões)) → FINISHED, nunca antes
  de fechar a janela de sanção do vivo

Overrides manuais (admin/loja): iniciar, finalizar, estender, banir.

Cada vivo do tick roda em um SAVEPOINT próprio; falhas viram entradas no
resumo em vez de abortar o lote. A transição é guardada pelo estado atual,
então rodar o tick duas vezes no mesmo instante não aplica nada em dobro.
"""

import logging
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from liveshop.api.services.stream_feedback_service import sanction_lookback
from liveshop.core import models
from liveshop.core.config import config
from liveshop.core.exceptions import EntityNotFound, ExtensionLimitReached, InvalidTransition
from liveshop.core.stream_transitions import apply_event
from liveshop.core.utils.dates import ensure_utc, utcnow
from liveshop.core.utils.enums import StreamEvent, StreamStatus

logger = logging.getLogger(__name__)


def scheduled_duration(stream: models.Stream) -> timedelta:
    return timedelta(minutes=config.STREAM_BASE_DURATION_MINUTES * (1 + (stream.extension_count or 0)))


def can_auto_finish(stream: models.Stream, now: datetime) -> bool:
    """
    Duração esgotada e janela de sanção encerrada.

    Enquanto o motor de sanções ainda pode marcar o vivo como MISSED ele
    continua LIVE, senão as últimas denúncias da janela se perdem.
    """
    started_at = stream.started_at or stream.scheduled_at
    if now - started_at <= scheduled_duration(stream):
        return False
    return now > stream.scheduled_at + sanction_lookback()


class StreamLifecycleService:

    def __init__(self, db: Session):
        self.db = db

    def _get_stream(self, stream_id: int) -> models.Stream:
        stream = self.db.execute(
            select(models.Stream).where(models.Stream.id == stream_id).with_for_update()
        ).scalar_one_or_none()
        if not stream:
            raise EntityNotFound("Vivo não encontrado", stream_id=stream_id)
        return stream

    # ═══════════════════════════════════════════════════════════
    # TICK
    # ═══════════════════════════════════════════════════════════

    def run_tick(self, now: Optional[datetime] = None) -> dict:
        """
        Avança os vivos no tempo.

        Returns:
            {"started": int, "finished": int, "errors": {stream_id: erro}}
        """
        now = ensure_utc(now) if now else utcnow()
        summary = {"started": 0, "finished": 0, "errors": {}}

        to_start = self.db.execute(
            select(models.Stream).where(
                models.Stream.status == StreamStatus.UPCOMING,
                models.Stream.scheduled_at <= now,
            )
        ).scalars().all()

        for stream in to_start:
            savepoint = self.db.begin_nested()
            try:
                if stream.status == StreamStatus.UPCOMING:
                    apply_event(stream, StreamEvent.START)
                    stream.started_at = stream.started_at or now
                    summary["started"] += 1
                    logger.info(f"  🔴 Vivo {stream.id} AO VIVO")
                savepoint.commit()
            except Exception as e:
                savepoint.rollback()
                summary["errors"][str(stream.id)] = str(e)
                logger.error(f"  ❌ Erro ao iniciar vivo {stream.id}: {e}", exc_info=True)

        live_streams = self.db.execute(
            select(models.Stream).where(models.Stream.status == StreamStatus.LIVE)
        ).scalars().all()

        for stream in live_streams:
            savepoint = self.db.begin_nested()
            try:
                if stream.status == StreamStatus.LIVE and can_auto_finish(stream, now):
                    apply_event(stream, StreamEvent.FINISH)
                    stream.finished_at = now
                    summary["finished"] += 1
                    logger.info(f"  ⏹️ Vivo {stream.id} finalizado ({stream.extension_count} extensões)")
                savepoint.commit()
            except Exception as e:
                savepoint.rollback()
                summary["errors"][str(stream.id)] = str(e)
                logger.error(f"  ❌ Erro ao finalizar vivo {stream.id}: {e}", exc_info=True)

        self.db.commit()
        return summary

    # ═══════════════════════════════════════════════════════════
    # OVERRIDES MANUAIS
    # ═══════════════════════════════════════════════════════════

    def start_stream(self, stream_id: int, now: Optional[datetime] = None) -> models.Stream:
        """Início manual, inclusive antes do horário"""
        stream = self._get_stream(stream_id)
        apply_event(stream, StreamEvent.START)
        stream.started_at = ensure_utc(now) if now else utcnow()
        self.db.commit()
        self.db.refresh(stream)
        logger.info(f"🔴 Vivo {stream.id} iniciado manualmente")
        return stream

    def finish_stream(self, stream_id: int, now: Optional[datetime] = None) -> models.Stream:
        stream = self._get_stream(stream_id)
        apply_event(stream, StreamEvent.FINISH)
        stream.finished_at = ensure_utc(now) if now else utcnow()
        self.db.commit()
        self.db.refresh(stream)
        logger.info(f"⏹️ Vivo {stream.id} finalizado manualmente")
        return stream

    def extend_stream(self, stream_id: int) -> models.Stream:
        """
        Soma uma extensão de 30 minutos a um vivo LIVE.

        Raises:
            InvalidTransition: vivo não está LIVE
            ExtensionLimitReached: já tem o máximo de extensões
        """
        stream = self._get_stream(stream_id)

        if stream.status != StreamStatus.LIVE:
            raise InvalidTransition(
                "Só é possível estender um vivo em curso",
                stream_id=stream.id,
                status=stream.status.value,
            )
        if stream.extension_count >= config.STREAM_MAX_EXTENSIONS:
            raise ExtensionLimitReached(
                stream_id=stream.id,
                extension_count=stream.extension_count,
                max_extensions=config.STREAM_MAX_EXTENSIONS,
            )

        apply_event(stream, StreamEvent.EXTEND)
        stream.extension_count += 1
        self.db.commit()
        self.db.refresh(stream)
        logger.info(f"⏩ Vivo {stream.id} estendido ({stream.extension_count}/{config.STREAM_MAX_EXTENSIONS})")
        return stream

    def ban_stream(self, stream_id: int, reason: Optional[str] = None,
                   now: Optional[datetime] = None) -> models.Stream:
        """Admin interrompe o vivo (UPCOMING ou LIVE). Não há estorno."""
        stream = self._get_stream(stream_id)
        was_live = stream.status == StreamStatus.LIVE
        apply_event(stream, StreamEvent.BAN)
        stream.status_reason = reason
        stream.is_visible = False
        if was_live:
            stream.finished_at = ensure_utc(now) if now else utcnow()
        self.db.commit()
        self.db.refresh(stream)
        logger.warning(f"⛔ Vivo {stream.id} banido: {reason or 'sem motivo'}")
        return stream
