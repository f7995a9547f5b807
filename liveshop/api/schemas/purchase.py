from datetime import datetime
from typing import Optional

from pydantic import Field

from liveshop.api.schemas.base_schema import AppBaseModel
from liveshop.core.utils.enums import PurchaseStatus, PurchaseType, ShopPlan


class PurchasePreferenceCreate(AppBaseModel):
    shop_id: int
    type: PurchaseType
    quantity: int = Field(1, ge=1, le=100)
    target_plan: Optional[str] = None


class PurchasePreferenceOut(AppBaseModel):
    purchase_id: int
    preference_id: str
    init_point: Optional[str] = None
    amount: float
    currency: str


class PurchaseReject(AppBaseModel):
    notes: Optional[str] = None


class PaymentConfirm(AppBaseModel):
    payment_id: Optional[str] = None


class PurchaseOut(AppBaseModel):
    id: int
    shop_id: int
    type: PurchaseType
    quantity: int
    target_plan: Optional[ShopPlan] = None
    status: PurchaseStatus
    amount: float
    currency: str
    preference_id: Optional[str] = None
    payment_id: Optional[str] = None
    notes: Optional[str] = None
    created_at: datetime
    processed_at: Optional[datetime] = None
