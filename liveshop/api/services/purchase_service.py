# liveshop/api/services/purchase_service.py
"""
Compras (PurchaseLedger)
========================

PENDING → APPROVED | REJECTED | CANCELLED, exatamente uma vez.

APPROVED aplica UM efeito:
- LIVE_PACK     → crédito extra de vivos
- REEL_PACK     → crédito extra de historias
- PLAN_UPGRADE  → troca de plano

A chave de idempotência do crédito é "purchase:<id>", então mesmo uma
corrida entre webhook e confirmação manual não credita duas vezes.
"""

import logging
from datetime import datetime
from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from liveshop.api.services.mercadopago_service import MercadoPagoError, MercadoPagoService
from liveshop.api.services.notification_service import NotificationService
from liveshop.api.services.quota_wallet_service import QuotaWalletService
from liveshop.core import models
from liveshop.core.circuit_breaker import CircuitBreakerOpen
from liveshop.core.config import config
from liveshop.core.defaults.plans import get_plan_price, is_upgrade, normalize_plan
from liveshop.core.exceptions import (
    AlreadyProcessed, EntityNotFound, PaymentNotInitiated, PaymentRejected,
)
from liveshop.core.utils.dates import utcnow
from liveshop.core.utils.enums import NotificationType, PurchaseStatus, PurchaseType

logger = logging.getLogger(__name__)

APPROVED_PAYMENT_STATUSES = ("approved",)
REJECTED_PAYMENT_STATUSES = ("rejected", "cancelled", "refunded", "charged_back")

PURCHASE_TITLES = {
    PurchaseType.LIVE_PACK: "Pacote de vivos extras",
    PurchaseType.REEL_PACK: "Pacote de historias extras",
    PurchaseType.PLAN_UPGRADE: "Upgrade de plano",
}


def idempotency_key_for(purchase: models.PurchaseRequest) -> str:
    return f"purchase:{purchase.id}"


class PurchaseService:

    def __init__(self, db: Session, payment_gateway: Optional[MercadoPagoService] = None):
        self.db = db
        self.wallet = QuotaWalletService(db)
        self.notifications = NotificationService(db)
        self._payment_gateway = payment_gateway

    @property
    def payment_gateway(self) -> MercadoPagoService:
        if self._payment_gateway is None:
            self._payment_gateway = MercadoPagoService()
        return self._payment_gateway

    def get_purchase(self, purchase_id: int, lock: bool = False) -> models.PurchaseRequest:
        stmt = select(models.PurchaseRequest).where(models.PurchaseRequest.id == purchase_id)
        if lock:
            stmt = stmt.with_for_update()
        purchase = self.db.execute(stmt).scalar_one_or_none()
        if not purchase:
            raise EntityNotFound("Compra não encontrada", purchase_id=purchase_id)
        return purchase

    def _locked_pending(self, purchase_id: int) -> models.PurchaseRequest:
        purchase = self.get_purchase(purchase_id, lock=True)
        if purchase.status != PurchaseStatus.PENDING:
            raise AlreadyProcessed(
                purchase_id=purchase.id,
                status=purchase.status.value,
            )
        return purchase

    # ═══════════════════════════════════════════════════════════
    # CRIAÇÃO
    # ═══════════════════════════════════════════════════════════

    def create_purchase(self, shop_id: int, type: PurchaseType, quantity: int = 1,
                        target_plan=None) -> models.PurchaseRequest:
        """Registra uma compra PENDING com o valor calculado (sem commit)"""
        shop = self.db.get(models.Shop, shop_id)
        if not shop:
            raise EntityNotFound("Loja não encontrada", shop_id=shop_id)

        purchase_type = PurchaseType(type)
        plan = None

        if purchase_type == PurchaseType.PLAN_UPGRADE:
            if target_plan is None:
                raise ValueError("Upgrade de plano precisa do plano de destino")
            plan = normalize_plan(target_plan)
            if not is_upgrade(shop.plan, plan):
                raise ValueError(f"{plan.value} não é um upgrade de {shop.plan.value}")
            quantity = 1
            amount = get_plan_price(plan)
        else:
            if quantity is None or quantity <= 0:
                raise ValueError("A quantidade deve ser positiva")
            unit_price = (
                config.LIVE_PACK_UNIT_PRICE if purchase_type == PurchaseType.LIVE_PACK
                else config.REEL_PACK_UNIT_PRICE
            )
            amount = unit_price * quantity

        purchase = models.PurchaseRequest(
            shop_id=shop.id,
            type=purchase_type,
            quantity=quantity,
            target_plan=plan,
            amount=amount,
            currency=config.PAYMENT_CURRENCY,
            status=PurchaseStatus.PENDING,
        )
        self.db.add(purchase)
        self.db.flush()
        return purchase

    def create_purchase_preference(self, shop_id: int, type: PurchaseType, quantity: int = 1,
                                   target_plan=None) -> dict:
        """
        Cria a compra e a preferência no Mercado Pago.

        Raises:
            PaymentNotInitiated: o provedor falhou (a compra fica REJECTED)
        """
        purchase = self.create_purchase(shop_id, type, quantity, target_plan)
        self.db.commit()

        shop = self.db.get(models.Shop, shop_id)
        title = PURCHASE_TITLES[purchase.type]
        if purchase.target_plan is not None:
            title = f"{title}: {purchase.target_plan.value}"

        try:
            preference = self.payment_gateway.create_preference(
                purchase_id=purchase.id,
                title=title,
                quantity=1,
                unit_price=purchase.amount,
                payer_email=shop.email,
            )
        except (MercadoPagoError, CircuitBreakerOpen) as e:
            purchase.status = PurchaseStatus.REJECTED
            purchase.notes = f"Falha ao criar preferência: {e}"
            purchase.processed_at = utcnow()
            self.db.commit()
            logger.error(f"❌ Compra {purchase.id}: preferência não criada ({e})")
            raise PaymentNotInitiated(purchase_id=purchase.id, provider_error=str(e))

        purchase.preference_id = preference["preference_id"]
        self.db.commit()
        self.db.refresh(purchase)

        logger.info(f"💳 Compra {purchase.id} aguardando pagamento (preferência {purchase.preference_id})")
        return {
            "purchase_id": purchase.id,
            "preference_id": purchase.preference_id,
            "init_point": preference["init_point"],
            "amount": purchase.amount,
            "currency": purchase.currency,
        }

    # ═══════════════════════════════════════════════════════════
    # TRANSIÇÕES
    # ═══════════════════════════════════════════════════════════

    def approve(self, purchase_id: int, payment_id: Optional[str] = None,
                now: Optional[datetime] = None) -> models.PurchaseRequest:
        """
        PENDING → APPROVED aplicando o efeito da compra uma única vez.

        Raises:
            AlreadyProcessed: a compra não está mais PENDING
        """
        now = now or utcnow()
        purchase = self._locked_pending(purchase_id)
        key = idempotency_key_for(purchase)

        try:
            if purchase.type == PurchaseType.LIVE_PACK:
                self.wallet.credit_live_extra(
                    purchase.shop_id, purchase.quantity, idempotency_key=key, purchase_id=purchase.id, now=now
                )
            elif purchase.type == PurchaseType.REEL_PACK:
                self.wallet.credit_reel_extra(
                    purchase.shop_id, purchase.quantity, idempotency_key=key, purchase_id=purchase.id, now=now
                )
            else:
                shop = self.db.get(models.Shop, purchase.shop_id)
                self.wallet.apply_plan(shop, purchase.target_plan, purchase_id=purchase.id, now=now)

            purchase.status = PurchaseStatus.APPROVED
            purchase.processed_at = now
            if payment_id:
                purchase.payment_id = str(payment_id)

            self.notifications.notify(
                NotificationType.PURCHASE,
                f"✅ Sua compra #{purchase.id} foi aprovada.",
                shop_id=purchase.shop_id,
                ref_id=str(purchase.id),
            )
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            raise AlreadyProcessed(purchase_id=purchase_id)
        except Exception:
            self.db.rollback()
            raise

        self.db.refresh(purchase)
        logger.info(f"✅ Compra {purchase.id} aprovada ({purchase.type.value} x{purchase.quantity})")
        return purchase

    def reject(self, purchase_id: int, notes: Optional[str] = None,
               payment_id: Optional[str] = None) -> models.PurchaseRequest:
        purchase = self._locked_pending(purchase_id)
        purchase.status = PurchaseStatus.REJECTED
        purchase.notes = notes
        purchase.processed_at = utcnow()
        if payment_id:
            purchase.payment_id = str(payment_id)

        self.notifications.notify(
            NotificationType.PURCHASE,
            f"❌ Sua compra #{purchase.id} foi rejeitada{': ' + notes if notes else '.'}",
            shop_id=purchase.shop_id,
            ref_id=str(purchase.id),
        )
        self.db.commit()
        self.db.refresh(purchase)
        logger.info(f"❌ Compra {purchase.id} rejeitada")
        return purchase

    def cancel(self, purchase_id: int) -> models.PurchaseRequest:
        purchase = self._locked_pending(purchase_id)
        purchase.status = PurchaseStatus.CANCELLED
        purchase.processed_at = utcnow()
        self.db.commit()
        self.db.refresh(purchase)
        return purchase

    def list_purchases(self, shop_id: Optional[int] = None, status: Optional[PurchaseStatus] = None):
        stmt = select(models.PurchaseRequest)
        if shop_id is not None:
            stmt = stmt.where(models.PurchaseRequest.shop_id == shop_id)
        if status is not None:
            stmt = stmt.where(models.PurchaseRequest.status == status)
        return self.db.execute(stmt.order_by(models.PurchaseRequest.id.desc())).scalars().all()

    # ═══════════════════════════════════════════════════════════
    # CONFIRMAÇÃO DE PAGAMENTO
    # ═══════════════════════════════════════════════════════════

    def _find_payment(self, payment_id: Optional[str], purchase_id: Optional[int]) -> Optional[dict]:
        if payment_id:
            return self.payment_gateway.get_payment(str(payment_id))
        results = self.payment_gateway.search_payments(str(purchase_id))
        return results[0] if results else None

    def confirm_payment(self, payment_id: Optional[str] = None,
                        purchase_id: Optional[int] = None) -> models.PurchaseRequest:
        """
        Consulta o provedor e aplica o resultado.

        - approved → approve
        - rejected/cancelled → reject + PaymentRejected
        - demais → compra continua PENDING

        Uma compra já APPROVED com pagamento aprovado é devolvida sem erro.
        """
        if not payment_id and purchase_id is None:
            raise ValueError("Informe payment_id ou purchase_id")

        try:
            payment = self._find_payment(payment_id, purchase_id)
        except (MercadoPagoError, CircuitBreakerOpen) as e:
            raise PaymentNotInitiated("Não foi possível consultar o pagamento", provider_error=str(e))

        if payment is None:
            return self.get_purchase(purchase_id)

        reference = payment.get("external_reference")
        if purchase_id is None:
            if not reference or not str(reference).isdigit():
                raise EntityNotFound("Pagamento sem compra vinculada", payment_id=payment_id)
            purchase_id = int(reference)

        purchase = self.get_purchase(purchase_id)
        status = payment.get("status")
        provider_payment_id = str(payment.get("id") or payment_id or "") or None

        if status in APPROVED_PAYMENT_STATUSES:
            if purchase.status == PurchaseStatus.APPROVED:
                return purchase
            return self.approve(purchase.id, payment_id=provider_payment_id)

        if status in REJECTED_PAYMENT_STATUSES:
            if purchase.status == PurchaseStatus.PENDING:
                self.reject(
                    purchase.id,
                    notes=f"Pagamento {status} ({payment.get('status_detail', 'sem detalhe')})",
                    payment_id=provider_payment_id,
                )
            raise PaymentRejected(purchase_id=purchase.id, payment_status=status)

        logger.info(f"⏳ Compra {purchase.id}: pagamento {status}, aguardando")
        return purchase

    def handle_webhook(self, payload: dict) -> dict:
        """
        Processa notificação do Mercado Pago.

        Reenvios do mesmo evento são no-ops silenciosos.
        """
        event_type = payload.get("type") or payload.get("topic") or "unknown"
        data_id = (payload.get("data") or {}).get("id") or payload.get("resource")
        action = payload.get("action") or ""

        if event_type != "payment" or not data_id:
            logger.info(f"ℹ️ [WEBHOOK] Evento ignorado: {event_type}")
            return {"status": "ignored"}

        event_id = str(payload.get("id") or f"{event_type}:{data_id}:{action}")
        already = self.db.execute(
            select(models.ProcessedWebhookEvent.id).where(models.ProcessedWebhookEvent.event_id == event_id)
        ).scalar_one_or_none()
        if already is not None:
            logger.info(f"↩️ [WEBHOOK] Evento {event_id} já processado")
            return {"status": "duplicate"}

        result = "processed"
        try:
            purchase = self.confirm_payment(payment_id=str(data_id))
            result = purchase.status.value.lower()
        except PaymentRejected:
            result = "rejected"
        except AlreadyProcessed:
            result = "already_processed"

        self.db.add(models.ProcessedWebhookEvent(
            event_id=event_id,
            event_type=event_type,
            payload=payload,
        ))
        try:
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            return {"status": "duplicate"}

        return {"status": result}
