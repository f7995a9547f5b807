# liveshop/api/services/reel_service.py
"""
Historias (ReelPublisher)
=========================

Diferente dos vivos, lojas com agenda suspensa (ou penalizadas) continuam
podendo publicar historias; só PENDING_VERIFICATION, HIDDEN e BANNED
bloqueiam.
"""

import logging
from datetime import datetime, timedelta
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from liveshop.api.services.quota_wallet_service import QuotaWalletService
from liveshop.core import models
from liveshop.core.config import config
from liveshop.core.exceptions import EntityNotFound, InvalidTransition, ShopNotSchedulable
from liveshop.core.utils.dates import ensure_utc, utcnow
from liveshop.core.utils.enums import ReelOrigin, ReelStatus, ReelType, ShopStatus, SocialPlatform

logger = logging.getLogger(__name__)

REEL_PUBLISHING_STATUSES = (ShopStatus.ACTIVE, ShopStatus.AGENDA_SUSPENDED)


class ReelService:

    def __init__(self, db: Session):
        self.db = db
        self.wallet = QuotaWalletService(db)

    def _get_reel(self, reel_id: int) -> models.Reel:
        reel = self.db.execute(
            select(models.Reel).where(models.Reel.id == reel_id).with_for_update()
        ).scalar_one_or_none()
        if not reel:
            raise EntityNotFound("Historia não encontrada", reel_id=reel_id)
        return reel

    def publish_reel(
        self,
        shop_id: int,
        platform: SocialPlatform,
        type: ReelType = ReelType.VIDEO,
        video_url: Optional[str] = None,
        photo_urls: Optional[List[str]] = None,
        thumbnail_url: Optional[str] = None,
        duration_seconds: int = 10,
        processing_job_id: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> models.Reel:
        """
        Valida e publica uma historia de 24h.

        Raises:
            ShopNotSchedulable: loja não verificada, oculta ou banida
            InsufficientQuota: sem cupo diário nem extra
        """
        now = ensure_utc(now) if now else utcnow()
        shop = self.db.get(models.Shop, shop_id)
        if not shop:
            raise EntityNotFound("Loja não encontrada", shop_id=shop_id)

        if shop.status not in REEL_PUBLISHING_STATUSES:
            raise ShopNotSchedulable(
                "A loja não pode publicar historias neste momento",
                shop_id=shop.id,
                status=shop.status.value,
            )

        reel_type = ReelType(type)
        if reel_type == ReelType.PHOTO_SET and not photo_urls:
            raise ValueError("Historia de fotos precisa de pelo menos uma imagem")
        if reel_type == ReelType.VIDEO and not video_url and not processing_job_id:
            raise ValueError("Historia de vídeo precisa de video_url ou processing_job_id")

        # Materializa a carteira antes de inserir a historia (a projeção legada conta as do dia)
        self.wallet.ensure_wallet(shop.id, now)

        reel = models.Reel(
            shop_id=shop.id,
            type=reel_type,
            platform=SocialPlatform(platform),
            video_url=video_url,
            photo_urls=photo_urls or [],
            thumbnail_url=thumbnail_url,
            duration_seconds=duration_seconds,
            processing_job_id=processing_job_id,
            status=ReelStatus.PROCESSING if processing_job_id and not video_url else ReelStatus.ACTIVE,
            origin=ReelOrigin.PLAN,
            expires_at=now + timedelta(hours=config.REEL_TTL_HOURS),
        )

        try:
            self.db.add(reel)
            self.db.flush()
            reel.origin = self.wallet.debit_reel(shop.id, 1, reel_id=reel.id, now=now)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        self.db.refresh(reel)
        logger.info(f"🎞️ Historia {reel.id} publicada pela loja {shop.id} ({reel.origin.value})")
        return reel

    def complete_processing(self, reel_id: int, video_url: str,
                            thumbnail_url: Optional[str] = None) -> models.Reel:
        reel = self._get_reel(reel_id)
        if reel.status != ReelStatus.PROCESSING:
            raise InvalidTransition(
                "Historia não está em processamento",
                reel_id=reel.id,
                status=reel.status.value,
            )
        reel.video_url = video_url
        if thumbnail_url:
            reel.thumbnail_url = thumbnail_url
        reel.status = ReelStatus.ACTIVE
        self.db.commit()
        self.db.refresh(reel)
        return reel

    def hide_reel(self, reel_id: int) -> models.Reel:
        reel = self._get_reel(reel_id)
        if reel.status not in (ReelStatus.ACTIVE, ReelStatus.PROCESSING):
            raise InvalidTransition(
                f"Historia {reel.status.value} não pode ser ocultada",
                reel_id=reel.id,
                status=reel.status.value,
            )
        reel.status = ReelStatus.HIDDEN
        self.db.commit()
        self.db.refresh(reel)
        logger.info(f"🙈 Historia {reel.id} ocultada")
        return reel

    def reactivate_reel(self, reel_id: int, now: Optional[datetime] = None) -> models.Reel:
        """HIDDEN → ACTIVE enquanto as 24h não passaram"""
        now = ensure_utc(now) if now else utcnow()
        reel = self._get_reel(reel_id)
        if reel.status != ReelStatus.HIDDEN or reel.expires_at <= now:
            raise InvalidTransition(
                "Só historias ocultas e ainda não expiradas podem ser reativadas",
                reel_id=reel.id,
                status=reel.status.value,
                expires_at=reel.expires_at.isoformat(),
            )
        reel.status = ReelStatus.ACTIVE
        self.db.commit()
        self.db.refresh(reel)
        return reel

    def register_view(self, reel_id: int, now: Optional[datetime] = None) -> models.Reel:
        now = ensure_utc(now) if now else utcnow()
        reel = self._get_reel(reel_id)
        if reel.status != ReelStatus.ACTIVE or reel.expires_at <= now:
            raise InvalidTransition("Historia indisponível", reel_id=reel.id, status=reel.status.value)
        reel.views += 1
        self.db.commit()
        self.db.refresh(reel)
        return reel

    def sweep_expired(self, now: Optional[datetime] = None) -> dict:
        """ACTIVE com expires_at < agora → EXPIRED. Ocultas ficam de fora."""
        now = ensure_utc(now) if now else utcnow()
        reels = self.db.execute(
            select(models.Reel).where(
                models.Reel.status == ReelStatus.ACTIVE,
                models.Reel.expires_at < now,
            )
        ).scalars().all()

        summary = {"expired": 0, "errors": {}}
        for reel in reels:
            savepoint = self.db.begin_nested()
            try:
                reel.status = ReelStatus.EXPIRED
                savepoint.commit()
                summary["expired"] += 1
            except Exception as e:
                savepoint.rollback()
                summary["errors"][str(reel.id)] = str(e)
                logger.error(f"  ❌ Erro ao expirar historia {reel.id}: {e}", exc_info=True)

        self.db.commit()
        logger.info(f"⌛ {summary['expired']} historias expiradas")
        return summary

    def list_shop_reels(self, shop_id: int, status: Optional[ReelStatus] = None):
        stmt = select(models.Reel).where(models.Reel.shop_id == shop_id)
        if status is not None:
            stmt = stmt.where(models.Reel.status == status)
        return self.db.execute(stmt.order_by(models.Reel.created_at.desc())).scalars().all()

    def list_feed(self, now: Optional[datetime] = None, limit: int = 50):
        """Historias visíveis; a expiração é checada também aqui, sem esperar o sweep"""
        now = ensure_utc(now) if now else utcnow()
        stmt = (
            select(models.Reel)
            .join(models.Shop, models.Shop.id == models.Reel.shop_id)
            .where(
                models.Reel.status == ReelStatus.ACTIVE,
                models.Reel.expires_at > now,
                models.Shop.status.in_(REEL_PUBLISHING_STATUSES),
            )
            .order_by(models.Reel.created_at.desc())
            .limit(limit)
        )
        return self.db.execute(stmt).scalars().all()
