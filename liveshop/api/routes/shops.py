from typing import Optional

from fastapi import APIRouter, status

from liveshop.api.schemas.notification import NotificationOut
from liveshop.api.schemas.purchase import PurchaseOut
from liveshop.api.schemas.reel import ReelOut
from liveshop.api.schemas.shop import (
    AgendaSuspension, QuotaOut, ShopCreate, ShopOut, ShopPenaltyToggle, ShopPlanChange,
    ShopStatusReason, ShopUpdate,
)
from liveshop.api.schemas.stream import StreamOut
from liveshop.api.services.notification_service import NotificationService
from liveshop.api.services.purchase_service import PurchaseService
from liveshop.api.services.quota_wallet_service import QuotaWalletService
from liveshop.api.services.reel_service import ReelService
from liveshop.api.services.shop_service import ShopService
from liveshop.api.services.stream_scheduler_service import StreamSchedulerService
from liveshop.core.database import GetDBDep
from liveshop.core.utils.enums import ReelStatus, ShopStatus, StreamStatus

router = APIRouter(tags=["Shops"], prefix="/shops")


@router.post("", response_model=ShopOut, status_code=status.HTTP_201_CREATED)
def create_shop(payload: ShopCreate, db: GetDBDep):
    return ShopService(db).create_shop(**payload.model_dump())


@router.get("", response_model=list[ShopOut])
def list_shops(db: GetDBDep, status: Optional[ShopStatus] = None):
    return ShopService(db).list_shops(status)


@router.get("/{shop_id}", response_model=ShopOut)
def get_shop(shop_id: int, db: GetDBDep):
    return ShopService(db).get_shop(shop_id)


@router.patch("/{shop_id}", response_model=ShopOut)
def update_shop(shop_id: int, payload: ShopUpdate, db: GetDBDep):
    return ShopService(db).update_shop(shop_id, **payload.model_dump(exclude_unset=True))


@router.put("/{shop_id}/plan", response_model=ShopOut)
def change_plan(shop_id: int, payload: ShopPlanChange, db: GetDBDep):
    """Troca de plano feita pelo admin (compras usam /purchases)"""
    return ShopService(db).change_plan(shop_id, payload.plan)


@router.get("/{shop_id}/quota", response_model=QuotaOut)
def get_quota(shop_id: int, db: GetDBDep):
    return QuotaWalletService(db).snapshot(shop_id).to_dict()


# ═══════════════════════════════════════════════════════════
# MODERAÇÃO
# ═══════════════════════════════════════════════════════════

@router.post("/{shop_id}/accept", response_model=ShopOut)
def accept_terms(shop_id: int, db: GetDBDep):
    return ShopService(db).accept_terms(shop_id)


@router.post("/{shop_id}/activate", response_model=ShopOut)
def activate_shop(shop_id: int, payload: ShopStatusReason, db: GetDBDep):
    return ShopService(db).activate_shop(shop_id, payload.reason)


@router.post("/{shop_id}/reject", response_model=ShopOut)
def reject_shop(shop_id: int, payload: ShopStatusReason, db: GetDBDep):
    return ShopService(db).reject_shop(shop_id, payload.reason or "Cadastro rejeitado")


@router.post("/{shop_id}/ban", response_model=ShopOut)
def ban_shop(shop_id: int, payload: ShopStatusReason, db: GetDBDep):
    return ShopService(db).ban_shop(shop_id, payload.reason or "Banida pelo admin")


@router.post("/{shop_id}/penalty", response_model=ShopOut)
def toggle_penalty(shop_id: int, payload: ShopPenaltyToggle, db: GetDBDep):
    return ShopService(db).toggle_penalty(shop_id, payload.value)


@router.post("/{shop_id}/suspend-agenda", response_model=ShopOut)
def suspend_agenda(shop_id: int, payload: AgendaSuspension, db: GetDBDep):
    return ShopService(db).suspend_agenda(shop_id, payload.days, payload.reason)


@router.post("/{shop_id}/lift-suspension", response_model=ShopOut)
def lift_agenda_suspension(shop_id: int, db: GetDBDep):
    return ShopService(db).lift_agenda_suspension(shop_id)


# ═══════════════════════════════════════════════════════════
# RECURSOS DA LOJA
# ═══════════════════════════════════════════════════════════

@router.get("/{shop_id}/streams", response_model=list[StreamOut])
def list_shop_streams(shop_id: int, db: GetDBDep, status: Optional[StreamStatus] = None):
    return StreamSchedulerService(db).list_shop_streams(shop_id, status)


@router.get("/{shop_id}/reels", response_model=list[ReelOut])
def list_shop_reels(shop_id: int, db: GetDBDep, status: Optional[ReelStatus] = None):
    return ReelService(db).list_shop_reels(shop_id, status)


@router.get("/{shop_id}/purchases", response_model=list[PurchaseOut])
def list_shop_purchases(shop_id: int, db: GetDBDep):
    return PurchaseService(db).list_purchases(shop_id=shop_id)


@router.get("/{shop_id}/notifications", response_model=list[NotificationOut])
def list_shop_notifications(shop_id: int, db: GetDBDep, unread: bool = False, limit: int = 50):
    return NotificationService(db).list_notifications(shop_id=shop_id, unread_only=unread, limit=limit)
