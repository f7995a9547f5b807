import logging
from typing import Optional

from fastapi import APIRouter, Request, status

from liveshop.api.schemas.purchase import (
    PaymentConfirm, PurchaseOut, PurchasePreferenceCreate, PurchasePreferenceOut, PurchaseReject,
)
from liveshop.api.services.purchase_service import PurchaseService
from liveshop.core.database import GetDBDep
from liveshop.core.utils.enums import PurchaseStatus

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Purchases"], prefix="/purchases")
webhook_router = APIRouter(tags=["MercadoPago Webhook"], prefix="/webhook")


@router.post("/preference", response_model=PurchasePreferenceOut, status_code=status.HTTP_201_CREATED)
def create_purchase_preference(payload: PurchasePreferenceCreate, db: GetDBDep):
    return PurchaseService(db).create_purchase_preference(
        payload.shop_id, payload.type, payload.quantity, payload.target_plan
    )


@router.get("", response_model=list[PurchaseOut])
def list_purchases(db: GetDBDep, shop_id: Optional[int] = None, status: Optional[PurchaseStatus] = None):
    return PurchaseService(db).list_purchases(shop_id, status)


@router.get("/{purchase_id}", response_model=PurchaseOut)
def get_purchase(purchase_id: int, db: GetDBDep):
    return PurchaseService(db).get_purchase(purchase_id)


@router.post("/{purchase_id}/approve", response_model=PurchaseOut)
def approve_purchase(purchase_id: int, db: GetDBDep):
    return PurchaseService(db).approve(purchase_id)


@router.post("/{purchase_id}/reject", response_model=PurchaseOut)
def reject_purchase(purchase_id: int, payload: PurchaseReject, db: GetDBDep):
    return PurchaseService(db).reject(purchase_id, payload.notes)


@router.post("/{purchase_id}/cancel", response_model=PurchaseOut)
def cancel_purchase(purchase_id: int, db: GetDBDep):
    return PurchaseService(db).cancel(purchase_id)


@router.post("/{purchase_id}/confirm", response_model=PurchaseOut)
def confirm_payment(purchase_id: int, payload: PaymentConfirm, db: GetDBDep):
    """Consulta o Mercado Pago e aplica o resultado do pagamento"""
    return PurchaseService(db).confirm_payment(payment_id=payload.payment_id, purchase_id=purchase_id)


@webhook_router.post("/mercadopago")
async def mercadopago_webhook(request: Request, db: GetDBDep):
    """
    Notificações do Mercado Pago.

    Sempre responde 200 quando o corpo é válido, para o provedor não reenviar.
    """
    logger.info("=" * 60)
    logger.info("📨 [WEBHOOK] Recebendo notificação do Mercado Pago")

    body = await request.json()
    logger.info(f"📦 [WEBHOOK] Tipo: {body.get('type', body.get('topic'))} | Action: {body.get('action')}")

    result = PurchaseService(db).handle_webhook(body)

    logger.info(f"✅ [WEBHOOK] Resultado: {result['status']}")
    logger.info("=" * 60)
    return result
