# liveshop/core/defaults/plans.py
"""
Catálogo de planes e cupos base.

Estandar não inclui vivos semanais (só compra de pacotes extras).
"""

from typing import Dict, NamedTuple

from liveshop.core.config import config
from liveshop.core.utils.enums import ShopPlan


class PlanLimits(NamedTuple):
    weekly_live: int
    daily_reel: int


PLAN_LIMITS: Dict[ShopPlan, PlanLimits] = {
    ShopPlan.ESTANDAR: PlanLimits(weekly_live=0, daily_reel=1),
    ShopPlan.ALTA_VISIBILIDAD: PlanLimits(weekly_live=1, daily_reel=3),
    ShopPlan.MAXIMA_VISIBILIDAD: PlanLimits(weekly_live=3, daily_reel=5),
}

# Nomes antigos ainda gravados por integrações legadas
PLAN_ALIASES: Dict[str, ShopPlan] = {
    "basic": ShopPlan.ESTANDAR,
    "estandar": ShopPlan.ESTANDAR,
    "premium": ShopPlan.ALTA_VISIBILIDAD,
    "alta": ShopPlan.ALTA_VISIBILIDAD,
    "alta visibilidad": ShopPlan.ALTA_VISIBILIDAD,
    "pro": ShopPlan.MAXIMA_VISIBILIDAD,
    "maxima": ShopPlan.MAXIMA_VISIBILIDAD,
    "maxima visibilidad": ShopPlan.MAXIMA_VISIBILIDAD,
}

PLAN_ORDER = [ShopPlan.ESTANDAR, ShopPlan.ALTA_VISIBILIDAD, ShopPlan.MAXIMA_VISIBILIDAD]


def normalize_plan(value) -> ShopPlan:
    """
    Converte o valor recebido em um ShopPlan.

    Raises:
        ValueError: se o plano não existir (sem fallback silencioso)
    """
    if isinstance(value, ShopPlan):
        return value
    key = value.strip().lower() if isinstance(value, str) else ""
    if key not in PLAN_ALIASES:
        raise ValueError(f"Plano desconhecido: {value!r}")
    return PLAN_ALIASES[key]


def get_plan_limits(plan: ShopPlan) -> PlanLimits:
    return PLAN_LIMITS[plan]


def get_plan_price(plan: ShopPlan) -> float:
    prices = {
        ShopPlan.ESTANDAR: 0.0,
        ShopPlan.ALTA_VISIBILIDAD: config.PLAN_PRICE_ALTA_VISIBILIDAD,
        ShopPlan.MAXIMA_VISIBILIDAD: config.PLAN_PRICE_MAXIMA_VISIBILIDAD,
    }
    return prices[plan]


def is_upgrade(current: ShopPlan, target: ShopPlan) -> bool:
    return PLAN_ORDER.index(target) > PLAN_ORDER.index(current)
