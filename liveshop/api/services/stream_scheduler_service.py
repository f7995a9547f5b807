# liveshop/api/services/stream_scheduler_service.py
"""
Agendamento de Vivos (StreamScheduler)
======================================

Validações na ordem em que são aplicadas:
1. Loja ACTIVE e não penalizada          → ShopNotSchedulable
2. Cupo de vivo disponível                → InsufficientQuota
3. Um vivo por dia (fuso da loja)         → DuplicateDailySlot
4. Teto semanal UPCOMING/LIVE             → WeeklyCapExceeded
5. Usuário da rede configurado            → MissingSocialHandle

O lock da carteira é adquirido antes das validações para que dois pedidos
simultâneos da mesma loja sejam serializados. Onde o banco não bloqueia
(SQLite) o version_id da carteira detecta a escrita concorrente e o débito
perdido vira InsufficientQuota.
"""

import logging
from datetime import datetime
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from liveshop.api.services.quota_wallet_service import QuotaWalletService
from liveshop.core import models
from liveshop.core.config import config
from liveshop.core.exceptions import (
    DuplicateDailySlot, EntityNotFound, InsufficientQuota, InvalidTransition,
    MissingSocialHandle, ShopNotSchedulable, WeeklyCapExceeded,
)
from liveshop.core.stream_transitions import apply_event
from liveshop.core.utils.dates import ensure_utc, iso_week_bounds, local_day_bounds, local_day_key, utcnow
from liveshop.core.utils.enums import (
    AGENDA_OCCUPYING_STATUSES, WEEKLY_CAP_STATUSES, ShopStatus, SocialPlatform, StreamEvent,
    StreamStatus,
)

logger = logging.getLogger(__name__)

LIVE_URL_PATTERNS = {
    SocialPlatform.INSTAGRAM: "https://instagram.com/{handle}/live",
    SocialPlatform.TIKTOK: "https://tiktok.com/@{handle}/live",
    SocialPlatform.FACEBOOK: "https://facebook.com/{handle}/live",
    SocialPlatform.YOUTUBE: "https://youtube.com/@{handle}/live",
}

EDITABLE_STATUSES = (StreamStatus.UPCOMING, StreamStatus.PENDING_REPROGRAMMATION)


def build_live_url(platform: SocialPlatform, handle: str) -> str:
    return LIVE_URL_PATTERNS[platform].format(handle=handle.strip().lstrip("@"))


class StreamSchedulerService:
    """Cria, edita e cancela vivos respeitando cupos e agenda da loja"""

    def __init__(self, db: Session):
        self.db = db
        self.wallet = QuotaWalletService(db)

    # ═══════════════════════════════════════════════════════════
    # BUSCAS
    # ═══════════════════════════════════════════════════════════

    def _get_shop(self, shop_id: int) -> models.Shop:
        shop = self.db.get(models.Shop, shop_id)
        if not shop:
            raise EntityNotFound("Loja não encontrada", shop_id=shop_id)
        return shop

    def get_stream(self, stream_id: int, lock: bool = False) -> models.Stream:
        stmt = select(models.Stream).where(models.Stream.id == stream_id)
        if lock:
            stmt = stmt.with_for_update()
        stream = self.db.execute(stmt).scalar_one_or_none()
        if not stream:
            raise EntityNotFound("Vivo não encontrado", stream_id=stream_id)
        return stream

    # ═══════════════════════════════════════════════════════════
    # VALIDAÇÕES
    # ═══════════════════════════════════════════════════════════

    def _check_shop_schedulable(self, shop: models.Shop):
        if shop.status != ShopStatus.ACTIVE or shop.is_penalized:
            raise ShopNotSchedulable(
                shop_id=shop.id,
                status=shop.status.value,
                is_penalized=shop.is_penalized,
            )

    def _check_quota(self, shop: models.Shop, now: datetime):
        available = self.wallet.available_live(shop.id, now)
        if available <= 0:
            raise InsufficientQuota(
                "Sem cupos de vivo disponíveis",
                shop_id=shop.id,
                available=available,
            )

    def _check_daily_slot(self, shop: models.Shop, when: datetime, exclude_id: Optional[int]):
        day_start, day_end = local_day_bounds(when, shop.timezone)
        stmt = select(models.Stream.id).where(
            models.Stream.shop_id == shop.id,
            models.Stream.status.in_(AGENDA_OCCUPYING_STATUSES),
            models.Stream.scheduled_at >= day_start,
            models.Stream.scheduled_at < day_end,
        )
        if exclude_id is not None:
            stmt = stmt.where(models.Stream.id != exclude_id)

        conflict = self.db.execute(stmt.limit(1)).scalar_one_or_none()
        if conflict is not None:
            raise DuplicateDailySlot(
                shop_id=shop.id,
                day=local_day_key(when, shop.timezone),
                conflicting_stream_id=conflict,
            )

    def _check_weekly_cap(self, shop: models.Shop, when: datetime, exclude_id: Optional[int]):
        week_start, week_end = iso_week_bounds(when, shop.timezone)
        stmt = select(func.count(models.Stream.id)).where(
            models.Stream.shop_id == shop.id,
            models.Stream.status.in_(WEEKLY_CAP_STATUSES),
            models.Stream.scheduled_at >= week_start,
            models.Stream.scheduled_at < week_end,
        )
        if exclude_id is not None:
            stmt = stmt.where(models.Stream.id != exclude_id)

        count = self.db.scalar(stmt) or 0
        if count + 1 > config.STREAM_WEEKLY_HARD_CAP:
            raise WeeklyCapExceeded(
                shop_id=shop.id,
                count=count,
                cap=config.STREAM_WEEKLY_HARD_CAP,
            )

    def _resolve_url(self, shop: models.Shop, platform: SocialPlatform) -> str:
        handle = shop.handle_for(platform)
        if not handle:
            raise MissingSocialHandle(
                f"A loja não tem usuário de {platform.value} configurado",
                shop_id=shop.id,
                platform=platform.value,
            )
        return build_live_url(platform, handle)

    def _admin_url(self, shop: models.Shop, platform: SocialPlatform, url: Optional[str]) -> str:
        if url:
            return url
        handle = shop.handle_for(platform)
        return build_live_url(platform, handle) if handle else ""

    # ═══════════════════════════════════════════════════════════
    # OPERAÇÕES
    # ═══════════════════════════════════════════════════════════

    def schedule_stream(
        self,
        shop_id: int,
        title: str,
        scheduled_at: datetime,
        platform: SocialPlatform,
        description: Optional[str] = None,
        cover_image: Optional[str] = None,
        url: Optional[str] = None,
        is_admin_override: bool = False,
        now: Optional[datetime] = None,
    ) -> models.Stream:
        """
        Valida e cria um vivo UPCOMING, debitando 1 cupo.

        Com is_admin_override as validações 1-5 são ignoradas, mas o débito
        continua atômico (sem cupo → InsufficientQuota).
        """
        now = now or utcnow()
        when = ensure_utc(scheduled_at)
        platform = SocialPlatform(platform)
        shop = self._get_shop(shop_id)

        self.wallet.ensure_wallet(shop.id, now)

        if is_admin_override:
            stream_url = self._admin_url(shop, platform, url)
        else:
            self._check_shop_schedulable(shop)
            self._check_quota(shop, now)
            self._check_daily_slot(shop, when, exclude_id=None)
            self._check_weekly_cap(shop, when, exclude_id=None)
            stream_url = self._resolve_url(shop, platform)

        stream = models.Stream(
            shop_id=shop.id,
            title=title,
            description=description,
            cover_image=cover_image,
            scheduled_at=when,
            platform=platform,
            url=stream_url,
            status=StreamStatus.UPCOMING,
        )

        try:
            self.db.add(stream)
            self.db.flush()
            self.wallet.debit_live(shop.id, 1, stream_id=stream.id, now=now)
            self.db.commit()
        except StaleDataError:
            # Outra transação gravou a carteira entre a leitura e o débito
            self.db.rollback()
            logger.warning(f"⚠️ Carteira da loja {shop_id} alterada por outro agendamento, débito abortado")
            raise InsufficientQuota(
                "Cupo de vivo disputado por outro agendamento, tente novamente",
                shop_id=shop_id,
                reason="concurrent_update",
            )
        except Exception:
            self.db.rollback()
            raise

        self.db.refresh(stream)
        logger.info(
            f"📅 Vivo {stream.id} agendado para loja {shop.id} em {when.isoformat()} "
            f"({platform.value}{', override admin' if is_admin_override else ''})"
        )
        return stream

    def update_stream(
        self,
        stream_id: int,
        title: Optional[str] = None,
        description: Optional[str] = None,
        cover_image: Optional[str] = None,
        scheduled_at: Optional[datetime] = None,
        platform: Optional[SocialPlatform] = None,
        url: Optional[str] = None,
        is_admin_override: bool = False,
    ) -> models.Stream:
        """
        Edita um vivo UPCOMING ou PENDING_REPROGRAMMATION.

        Validações 1, 3, 4 e 5 só rodam quando data ou plataforma mudam;
        nenhum cupo novo é debitado. Reprogramar um PENDING_REPROGRAMMATION
        exige nova data e o devolve para UPCOMING.
        """
        stream = self.get_stream(stream_id, lock=True)

        if stream.status not in EDITABLE_STATUSES:
            raise InvalidTransition(
                f"Vivo {stream.status.value} não pode ser editado",
                stream_id=stream.id,
                status=stream.status.value,
            )

        reprogramming = stream.status == StreamStatus.PENDING_REPROGRAMMATION
        if reprogramming and scheduled_at is None:
            raise ValueError("Informe a nova data para reprogramar o vivo")

        shop = self._get_shop(stream.shop_id)
        new_when = ensure_utc(scheduled_at) if scheduled_at is not None else stream.scheduled_at
        new_platform = SocialPlatform(platform) if platform is not None else stream.platform

        date_changed = scheduled_at is not None and new_when != stream.scheduled_at
        platform_changed = new_platform != stream.platform

        if date_changed or platform_changed or reprogramming:
            self.wallet.ensure_wallet(shop.id)
            if is_admin_override:
                stream.url = self._admin_url(shop, new_platform, url)
            else:
                self._check_shop_schedulable(shop)
                self._check_daily_slot(shop, new_when, exclude_id=stream.id)
                self._check_weekly_cap(shop, new_when, exclude_id=stream.id)
                stream.url = self._resolve_url(shop, new_platform)

            stream.scheduled_at = new_when
            stream.platform = new_platform
            apply_event(stream, StreamEvent.RESCHEDULE)

        if title is not None:
            stream.title = title
        if description is not None:
            stream.description = description
        if cover_image is not None:
            stream.cover_image = cover_image

        self.db.commit()
        self.db.refresh(stream)

        if reprogramming:
            logger.info(f"🔁 Vivo {stream.id} reprogramado para {new_when.isoformat()}")
        return stream

    def cancel_stream(self, stream_id: int, reason: Optional[str] = None,
                      now: Optional[datetime] = None) -> models.Stream:
        """UPCOMING → CANCELLED com estorno de exatamente 1 cupo"""
        stream = self.get_stream(stream_id, lock=True)
        apply_event(stream, StreamEvent.CANCEL)
        stream.status_reason = reason

        try:
            self.wallet.refund_live(stream.shop_id, 1, stream_id=stream.id, now=now)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        self.db.refresh(stream)
        logger.info(f"🚫 Vivo {stream.id} cancelado: {reason or 'sem motivo'}")
        return stream

    # ═══════════════════════════════════════════════════════════
    # LISTAGENS
    # ═══════════════════════════════════════════════════════════

    def list_shop_streams(self, shop_id: int, status: Optional[StreamStatus] = None):
        self._get_shop(shop_id)
        stmt = select(models.Stream).where(models.Stream.shop_id == shop_id)
        if status is not None:
            stmt = stmt.where(models.Stream.status == status)
        return self.db.execute(stmt.order_by(models.Stream.scheduled_at)).scalars().all()

    def list_agenda(self, limit: int = 100):
        """Agenda pública: vivos visíveis UPCOMING/LIVE de lojas ativas"""
        stmt = (
            select(models.Stream)
            .join(models.Shop, models.Shop.id == models.Stream.shop_id)
            .where(
                models.Stream.status.in_(WEEKLY_CAP_STATUSES),
                models.Stream.is_visible.is_(True),
                models.Shop.status.in_((ShopStatus.ACTIVE, ShopStatus.AGENDA_SUSPENDED)),
            )
            .order_by(models.Stream.scheduled_at)
            .limit(limit)
        )
        return self.db.execute(stmt).scalars().all()
