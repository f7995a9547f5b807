# liveshop/api/services/shop_service.py
"""Cadastro e administração de lojas"""

import logging
from datetime import datetime, timedelta
from typing import Dict, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from liveshop.api.services.notification_service import NotificationService
from liveshop.api.services.quota_wallet_service import QuotaWalletService
from liveshop.core import models
from liveshop.core.config import config
from liveshop.core.defaults.plans import normalize_plan
from liveshop.core.exceptions import EntityNotFound, InvalidTransition
from liveshop.core.utils.dates import ensure_utc, utcnow
from liveshop.core.utils.enums import NotificationType, ShopStatus, SocialPlatform

logger = logging.getLogger(__name__)

DEFAULT_SUSPENSION_DAYS = 7


def clean_social_handles(handles: Optional[Dict[str, str]]) -> Dict[str, str]:
    """Normaliza as chaves (instagram, tiktok...) e descarta valores vazios"""
    valid_keys = {platform.handle_key for platform in SocialPlatform}
    cleaned = {}
    for key, value in (handles or {}).items():
        normalized = str(key).strip().lower()
        if normalized not in valid_keys:
            raise ValueError(f"Rede social desconhecida: {key}")
        if value and str(value).strip():
            cleaned[normalized] = str(value).strip().lstrip("@")
    return cleaned


class ShopService:
    """Service para cadastro, moderação e sanções manuais de lojas"""

    def __init__(self, db: Session):
        self.db = db
        self.wallet = QuotaWalletService(db)
        self.notifications = NotificationService(db)

    def get_shop(self, shop_id: int) -> models.Shop:
        shop = self.db.get(models.Shop, shop_id)
        if not shop:
            raise EntityNotFound("Loja não encontrada", shop_id=shop_id)
        return shop

    def list_shops(self, status: Optional[ShopStatus] = None):
        stmt = select(models.Shop)
        if status is not None:
            stmt = stmt.where(models.Shop.status == status)
        return self.db.execute(stmt.order_by(models.Shop.id)).scalars().all()

    def _set_status(self, shop: models.Shop, status: ShopStatus, reason: Optional[str], now: datetime):
        previous = shop.status
        shop.status = status
        shop.status_reason = reason
        shop.status_changed_at = now
        logger.info(f"🏪 Loja {shop.id}: {previous.value} → {status.value}")

    # ═══════════════════════════════════════════════════════════
    # CADASTRO
    # ═══════════════════════════════════════════════════════════

    def create_shop(
        self,
        name: str,
        plan="Estandar",
        email: Optional[str] = None,
        razon_social: Optional[str] = None,
        cuit: Optional[str] = None,
        social_handles: Optional[Dict[str, str]] = None,
        timezone: Optional[str] = None,
    ) -> models.Shop:
        shop = models.Shop(
            name=name,
            plan=normalize_plan(plan),
            email=email,
            razon_social=razon_social,
            cuit=cuit,
            social_handles=clean_social_handles(social_handles),
            timezone=timezone or config.TIMEZONE,
            status=ShopStatus.PENDING_VERIFICATION,
        )
        self.db.add(shop)

        try:
            self.db.flush()
            self.wallet.ensure_wallet(shop.id)
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            raise ValueError(f"Já existe uma loja com o CUIT '{cuit}'.")

        self.db.refresh(shop)
        logger.info(f"🏪 Loja {shop.id} cadastrada ({shop.plan.value})")
        return shop

    def update_shop(self, shop_id: int, **fields) -> models.Shop:
        """Atualiza perfil e redes. O plano só muda por change_plan."""
        shop = self.get_shop(shop_id)

        if "social_handles" in fields and fields["social_handles"] is not None:
            merged = dict(shop.social_handles or {})
            merged.update(clean_social_handles(fields.pop("social_handles")))
            shop.social_handles = merged
        fields.pop("social_handles", None)

        for key in ("name", "email", "razon_social", "cuit", "timezone"):
            if fields.get(key) is not None:
                setattr(shop, key, fields[key])

        try:
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            raise ValueError(f"Já existe uma loja com o CUIT '{fields.get('cuit')}'.")
        self.db.refresh(shop)
        return shop

    def change_plan(self, shop_id: int, plan) -> models.Shop:
        shop = self.get_shop(shop_id)
        self.wallet.apply_plan(shop, normalize_plan(plan))
        self.db.commit()
        self.db.refresh(shop)
        return shop

    # ═══════════════════════════════════════════════════════════
    # MODERAÇÃO
    # ═══════════════════════════════════════════════════════════

    def accept_terms(self, shop_id: int, now: Optional[datetime] = None) -> models.Shop:
        """Dono da loja aceita os termos"""
        shop = self.get_shop(shop_id)
        if shop.owner_accepted_at is None:
            shop.owner_accepted_at = ensure_utc(now) if now else utcnow()
            self.db.commit()
            self.db.refresh(shop)
        return shop

    def activate_shop(self, shop_id: int, reason: Optional[str] = None,
                      now: Optional[datetime] = None) -> models.Shop:
        shop = self.get_shop(shop_id)
        if shop.status == ShopStatus.AGENDA_SUSPENDED:
            raise InvalidTransition(
                "Loja com agenda suspensa: use o levantamento de suspensão",
                shop_id=shop.id,
            )
        if shop.status != ShopStatus.ACTIVE:
            self._set_status(shop, ShopStatus.ACTIVE, reason, ensure_utc(now) if now else utcnow())
            self.db.commit()
            self.db.refresh(shop)
        return shop

    def reject_shop(self, shop_id: int, reason: str, now: Optional[datetime] = None) -> models.Shop:
        """Rejeição do cadastro: a loja fica oculta"""
        shop = self.get_shop(shop_id)
        if shop.status == ShopStatus.BANNED:
            raise InvalidTransition("Loja banida não pode ser rejeitada", shop_id=shop.id)
        self._set_status(shop, ShopStatus.HIDDEN, reason, ensure_utc(now) if now else utcnow())
        self.db.commit()
        self.db.refresh(shop)
        return shop

    def ban_shop(self, shop_id: int, reason: str, now: Optional[datetime] = None) -> models.Shop:
        shop = self.get_shop(shop_id)
        self._set_status(shop, ShopStatus.BANNED, reason, ensure_utc(now) if now else utcnow())
        self.db.commit()
        self.db.refresh(shop)
        logger.warning(f"⛔ Loja {shop.id} banida: {reason}")
        return shop

    def toggle_penalty(self, shop_id: int, value: Optional[bool] = None) -> models.Shop:
        """Liga/desliga a flag explícita de penalização"""
        shop = self.get_shop(shop_id)
        shop.penalty_flag = (not shop.penalty_flag) if value is None else value
        self.db.commit()
        self.db.refresh(shop)
        return shop

    def suspend_agenda(self, shop_id: int, days: int = DEFAULT_SUSPENSION_DAYS,
                       reason: Optional[str] = None, now: Optional[datetime] = None) -> models.Shop:
        if days <= 0:
            raise ValueError("A suspensão precisa de pelo menos 1 dia")

        now = ensure_utc(now) if now else utcnow()
        shop = self.get_shop(shop_id)
        if shop.status in (ShopStatus.BANNED, ShopStatus.HIDDEN, ShopStatus.PENDING_VERIFICATION):
            raise InvalidTransition(
                f"Loja {shop.status.value} não tem agenda para suspender",
                shop_id=shop.id,
            )

        reason = reason or "Suspensão manual"
        self._set_status(shop, ShopStatus.AGENDA_SUSPENDED, reason, now)
        shop.agenda_suspended_until = now + timedelta(days=days)
        shop.agenda_suspended_reason = reason

        self.notifications.notify(
            NotificationType.SYSTEM,
            f"⚠️ Sua agenda foi suspensa por {days} dias ({reason}).",
            shop_id=shop.id,
        )
        self.db.commit()
        self.db.refresh(shop)
        return shop

    def lift_agenda_suspension(self, shop_id: int, now: Optional[datetime] = None) -> models.Shop:
        """Volta para ACTIVE, desativa todas as penalidades e limpa a flag"""
        now = ensure_utc(now) if now else utcnow()
        shop = self.get_shop(shop_id)
        if shop.status in (ShopStatus.BANNED, ShopStatus.HIDDEN):
            raise InvalidTransition(
                f"Loja {shop.status.value} não pode ter a suspensão levantada",
                shop_id=shop.id,
            )

        for penalty in shop.penalties:
            if penalty.active:
                penalty.active = False
                penalty.lifted_at = now

        shop.penalty_flag = False
        shop.agenda_suspended_until = None
        shop.agenda_suspended_reason = None
        if shop.status != ShopStatus.ACTIVE:
            self._set_status(shop, ShopStatus.ACTIVE, "Suspensão levantada", now)

        self.db.commit()
        self.db.refresh(shop)
        return shop

    def release_expired_suspensions(self, now: Optional[datetime] = None) -> dict:
        """
        Sweep: agenda suspensa com prazo vencido volta para ACTIVE.

        As penalidades continuam ativas até o admin levantá-las, então a
        loja segue sem poder agendar vivos enquanto houver alguma.
        """
        now = ensure_utc(now) if now else utcnow()
        shops = self.db.execute(
            select(models.Shop).where(
                models.Shop.status == ShopStatus.AGENDA_SUSPENDED,
                models.Shop.agenda_suspended_until.is_not(None),
                models.Shop.agenda_suspended_until <= now,
            )
        ).scalars().all()

        summary = {"released": 0, "errors": {}}
        for shop in shops:
            savepoint = self.db.begin_nested()
            try:
                self._set_status(shop, ShopStatus.ACTIVE, "Fim da suspensão de agenda", now)
                shop.agenda_suspended_until = None
                savepoint.commit()
                summary["released"] += 1
            except Exception as e:
                savepoint.rollback()
                summary["errors"][str(shop.id)] = str(e)
                logger.error(f"  ❌ Erro ao liberar loja {shop.id}: {e}", exc_info=True)

        self.db.commit()
        return summary
