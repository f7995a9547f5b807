# liveshop/api/services/notification_service.py
"""
Notificações
============

- REMINDER: espectador pediu aviso antes de um vivo começar
- SYSTEM: loja sancionada / agenda suspensa
- PURCHASE: compra aprovada ou rejeitada
"""

import logging
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, selectinload

from liveshop.core import models
from liveshop.core.config import config
from liveshop.core.exceptions import EntityNotFound, InvalidTransition
from liveshop.core.utils.dates import ensure_utc, local_time_label, utcnow
from liveshop.core.utils.enums import NotificationType, StreamStatus

logger = logging.getLogger(__name__)


class NotificationService:

    def __init__(self, db: Session):
        self.db = db

    def notify(
        self,
        type: NotificationType,
        message: str,
        shop_id: Optional[int] = None,
        user_id: Optional[str] = None,
        ref_id: Optional[str] = None,
        notify_at: Optional[datetime] = None,
    ) -> models.Notification:
        """Cria a notificação na transação do chamador (sem commit)"""
        if shop_id is None and user_id is None:
            raise ValueError("Notificação precisa de um destinatário")

        notification = models.Notification(
            type=type,
            message=message,
            shop_id=shop_id,
            user_id=user_id,
            ref_id=ref_id,
            notify_at=notify_at,
        )
        self.db.add(notification)
        return notification

    # ═══════════════════════════════════════════════════════════
    # LEMBRETES
    # ═══════════════════════════════════════════════════════════

    def register_reminder(self, stream_id: int, user_id: str) -> models.StreamReminder:
        stream = self.db.get(models.Stream, stream_id)
        if not stream:
            raise EntityNotFound("Vivo não encontrado", stream_id=stream_id)
        if stream.status != StreamStatus.UPCOMING:
            raise InvalidTransition(
                "Só é possível pedir lembrete de um vivo programado",
                stream_id=stream_id,
                status=stream.status.value,
            )

        existing = self.db.execute(
            select(models.StreamReminder).where(
                models.StreamReminder.stream_id == stream_id,
                models.StreamReminder.user_id == user_id,
            )
        ).scalar_one_or_none()
        if existing:
            return existing

        reminder = models.StreamReminder(stream_id=stream_id, user_id=user_id)
        self.db.add(reminder)
        try:
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            return self.db.execute(
                select(models.StreamReminder).where(
                    models.StreamReminder.stream_id == stream_id,
                    models.StreamReminder.user_id == user_id,
                )
            ).scalar_one()
        self.db.refresh(reminder)
        return reminder

    def run_notifications(self, minutes_ahead: Optional[int] = None,
                          now: Optional[datetime] = None) -> dict:
        """
        Gera um REMINDER por lembrete cujo vivo começa dentro da janela.

        Returns:
            {"created": int, "skipped": int, "errors": {...}}
        """
        now = ensure_utc(now) if now else utcnow()
        window = minutes_ahead if minutes_ahead is not None else config.NOTIFICATIONS_WINDOW_MINUTES
        limit = now + timedelta(minutes=window)

        reminders = self.db.execute(
            select(models.StreamReminder)
            .join(models.Stream, models.Stream.id == models.StreamReminder.stream_id)
            .options(selectinload(models.StreamReminder.stream))
            .where(
                models.Stream.status == StreamStatus.UPCOMING,
                models.Stream.scheduled_at >= now,
                models.Stream.scheduled_at <= limit,
            )
        ).scalars().all()

        summary = {"created": 0, "skipped": 0, "errors": {}}

        for reminder in reminders:
            if reminder.notified_at is not None:
                summary["skipped"] += 1
                continue

            savepoint = self.db.begin_nested()
            try:
                stream = reminder.stream
                self.notify(
                    NotificationType.REMINDER,
                    f"🔴 '{stream.title}' começa às {local_time_label(stream.scheduled_at)}",
                    user_id=reminder.user_id,
                    ref_id=str(stream.id),
                    notify_at=stream.scheduled_at,
                )
                reminder.notified_at = now
                savepoint.commit()
                summary["created"] += 1
            except Exception as e:
                savepoint.rollback()
                summary["errors"][str(reminder.id)] = str(e)
                logger.error(f"  ❌ Erro no lembrete {reminder.id}: {e}", exc_info=True)

        self.db.commit()
        logger.info(f"🔔 Lembretes: {summary['created']} criados, {summary['skipped']} já enviados")
        return summary

    # ═══════════════════════════════════════════════════════════
    # CONSULTA
    # ═══════════════════════════════════════════════════════════

    def list_notifications(
        self,
        user_id: Optional[str] = None,
        shop_id: Optional[int] = None,
        unread_only: bool = False,
        type: Optional[NotificationType] = None,
        limit: int = 50,
    ):
        if user_id is None and shop_id is None:
            raise ValueError("Informe user_id ou shop_id")

        stmt = select(models.Notification)
        if user_id is not None:
            stmt = stmt.where(models.Notification.user_id == user_id)
        if shop_id is not None:
            stmt = stmt.where(models.Notification.shop_id == shop_id)
        if unread_only:
            stmt = stmt.where(models.Notification.read.is_(False))
        if type is not None:
            stmt = stmt.where(models.Notification.type == type)

        stmt = stmt.order_by(models.Notification.created_at.desc(), models.Notification.id.desc()).limit(limit)
        return self.db.execute(stmt).scalars().all()

    def mark_read(self, notification_id: int) -> models.Notification:
        notification = self.db.get(models.Notification, notification_id)
        if not notification:
            raise EntityNotFound("Notificação não encontrada", notification_id=notification_id)
        notification.read = True
        self.db.commit()
        self.db.refresh(notification)
        return notification

    def mark_all_read(self, user_id: Optional[str] = None, shop_id: Optional[int] = None) -> int:
        if user_id is None and shop_id is None:
            raise ValueError("Informe user_id ou shop_id")

        stmt = update(models.Notification).where(models.Notification.read.is_(False))
        if user_id is not None:
            stmt = stmt.where(models.Notification.user_id == user_id)
        if shop_id is not None:
            stmt = stmt.where(models.Notification.shop_id == shop_id)

        result = self.db.execute(stmt.values(read=True))
        self.db.commit()
        return result.rowcount
