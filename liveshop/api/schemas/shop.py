from datetime import datetime
from typing import Dict, Optional

from pydantic import Field

from liveshop.api.schemas.base_schema import AppBaseModel
from liveshop.core.utils.enums import ShopPlan, ShopStatus


class ShopCreate(AppBaseModel):
    name: str = Field(..., min_length=2, max_length=120)
    plan: str = "Estandar"
    email: Optional[str] = None
    razon_social: Optional[str] = None
    cuit: Optional[str] = None
    social_handles: Dict[str, str] = Field(default_factory=dict)
    timezone: Optional[str] = None


class ShopUpdate(AppBaseModel):
    name: Optional[str] = Field(None, min_length=2, max_length=120)
    email: Optional[str] = None
    razon_social: Optional[str] = None
    cuit: Optional[str] = None
    social_handles: Optional[Dict[str, str]] = None
    timezone: Optional[str] = None


class ShopPlanChange(AppBaseModel):
    plan: str


class ShopStatusReason(AppBaseModel):
    reason: Optional[str] = None


class ShopPenaltyToggle(AppBaseModel):
    value: Optional[bool] = None


class AgendaSuspension(AppBaseModel):
    days: int = Field(7, ge=1, le=365)
    reason: Optional[str] = None


class PenaltyOut(AppBaseModel):
    id: int
    reason: str
    active: bool
    stream_id: Optional[int] = None
    created_at: datetime
    lifted_at: Optional[datetime] = None


class ShopOut(AppBaseModel):
    id: int
    name: str
    email: Optional[str] = None
    razon_social: Optional[str] = None
    cuit: Optional[str] = None
    plan: ShopPlan
    status: ShopStatus
    status_reason: Optional[str] = None
    status_changed_at: Optional[datetime] = None
    is_penalized: bool
    penalty_flag: bool
    agenda_suspended_until: Optional[datetime] = None
    agenda_suspended_reason: Optional[str] = None
    owner_accepted_at: Optional[datetime] = None
    social_handles: Dict[str, str]
    timezone: str
    penalties: list[PenaltyOut] = []


class QuotaOut(AppBaseModel):
    weekly_live_base_limit: int
    weekly_live_used: int
    live_extra_balance: int
    reel_daily_limit: int
    reel_daily_used: int
    reel_extra_balance: int
    available_live_quota: int
    available_reel_quota: int
    source: str
