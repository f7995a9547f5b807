# liveshop/api/services/quota_wallet_service.py
"""
Carteira de Cupos (QuotaWallet)
===============================

Fonte única da fórmula de cupo disponível:

    disponível = max(0, base - usado) + extra

Lojas antigas sem carteira são projetadas a partir dos campos planos
(legacy_extra_quota / legacy_reels_extra_quota) e da contagem de vivos e
historias. A primeira mutação materializa a projeção como QuotaWallet e a
partir daí os campos planos não são mais lidos.

Os métodos de débito/crédito NÃO fazem commit: participam da transação do
chamador (agendar vivo + debitar precisa ser atômico). Os sweeps de reset
fazem commit próprio.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from liveshop.core import models
from liveshop.core.defaults.plans import get_plan_limits
from liveshop.core.exceptions import EntityNotFound, InsufficientQuota
from liveshop.core.utils.dates import (
    iso_week_key, local_day_bounds, local_day_key, utcnow,
)
from liveshop.core.utils.enums import (
    AGENDA_OCCUPYING_STATUSES, LedgerEntryKind, QuotaBucket, ReelOrigin, ReelStatus,
)

logger = logging.getLogger(__name__)


@dataclass
class QuotaSnapshot:
    weekly_live_base_limit: int
    weekly_live_used: int
    live_extra_balance: int
    reel_daily_limit: int
    reel_daily_used: int
    reel_extra_balance: int
    source: str = "wallet"

    @property
    def available_live(self) -> int:
        return max(0, self.weekly_live_base_limit - self.weekly_live_used) + self.live_extra_balance

    @property
    def available_reel(self) -> int:
        return max(0, self.reel_daily_limit - self.reel_daily_used) + self.reel_extra_balance

    def to_dict(self) -> dict:
        return {
            "weekly_live_base_limit": self.weekly_live_base_limit,
            "weekly_live_used": self.weekly_live_used,
            "live_extra_balance": self.live_extra_balance,
            "reel_daily_limit": self.reel_daily_limit,
            "reel_daily_used": self.reel_daily_used,
            "reel_extra_balance": self.reel_extra_balance,
            "available_live_quota": self.available_live,
            "available_reel_quota": self.available_reel,
            "source": self.source,
        }


def _split_usage(base: int, extra: int, count: int):
    """Distribui o consumo contado: primeiro o base, o excedente sai do extra"""
    used = min(count, base)
    overflow = max(0, count - base)
    return used, max(0, extra - overflow)


class QuotaWalletService:
    """Serviço da carteira de cupos de vivos e historias"""

    def __init__(self, db: Session):
        self.db = db

    # ═══════════════════════════════════════════════════════════
    # LEITURA
    # ═══════════════════════════════════════════════════════════

    def _get_shop(self, shop_id: int) -> models.Shop:
        shop = self.db.get(models.Shop, shop_id)
        if not shop:
            raise EntityNotFound("Loja não encontrada", shop_id=shop_id)
        return shop

    def _find_wallet(self, shop_id: int, lock: bool = False) -> Optional[models.QuotaWallet]:
        stmt = select(models.QuotaWallet).where(models.QuotaWallet.shop_id == shop_id)
        if lock:
            # A leitura bloqueada sempre recarrega a carteira, mesmo que já esteja na sessão
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        return self.db.execute(stmt).scalar_one_or_none()

    def _project_legacy(self, shop: models.Shop, now: datetime) -> QuotaSnapshot:
        """Projeção somente-leitura para lojas sem carteira"""
        limits = get_plan_limits(shop.plan)

        # Todo vivo que ainda ocupa agenda segura um cupo, inclusive os de
        # semanas futuras e as reposições PENDING_REPROGRAMMATION
        live_count = self.db.scalar(
            select(func.count(models.Stream.id)).where(
                models.Stream.shop_id == shop.id,
                models.Stream.status.in_(AGENDA_OCCUPYING_STATUSES),
            )
        ) or 0

        day_start, day_end = local_day_bounds(now, shop.timezone)
        reel_count = self.db.scalar(
            select(func.count(models.Reel.id)).where(
                models.Reel.shop_id == shop.id,
                models.Reel.origin == ReelOrigin.PLAN,
                models.Reel.status != ReelStatus.HIDDEN,
                models.Reel.created_at >= day_start,
                models.Reel.created_at < day_end,
            )
        ) or 0

        live_used, live_extra = _split_usage(
            limits.weekly_live, shop.legacy_extra_quota or 0, live_count
        )
        reel_used, reel_extra = _split_usage(
            limits.daily_reel, shop.legacy_reels_extra_quota or 0, reel_count
        )

        return QuotaSnapshot(
            weekly_live_base_limit=limits.weekly_live,
            weekly_live_used=live_used,
            live_extra_balance=live_extra,
            reel_daily_limit=limits.daily_reel,
            reel_daily_used=reel_used,
            reel_extra_balance=reel_extra,
            source="legacy",
        )

    def snapshot(self, shop_id: int, now: Optional[datetime] = None) -> QuotaSnapshot:
        """
        Estado atual da carteira.

        O uso diário de historias de um dia anterior aparece zerado mesmo
        antes do sweep de reset rodar.
        """
        now = now or utcnow()
        shop = self._get_shop(shop_id)
        wallet = self._find_wallet(shop_id)

        if wallet is None:
            return self._project_legacy(shop, now)

        reel_used = wallet.reel_daily_used
        if wallet.reel_day_key != local_day_key(now, shop.timezone):
            reel_used = 0

        return QuotaSnapshot(
            weekly_live_base_limit=wallet.weekly_live_base_limit,
            weekly_live_used=wallet.weekly_live_used,
            live_extra_balance=wallet.live_extra_balance,
            reel_daily_limit=wallet.reel_daily_limit,
            reel_daily_used=reel_used,
            reel_extra_balance=wallet.reel_extra_balance,
        )

    def available_live(self, shop_id: int, now: Optional[datetime] = None) -> int:
        return self.snapshot(shop_id, now).available_live

    def available_reel(self, shop_id: int, now: Optional[datetime] = None) -> int:
        return self.snapshot(shop_id, now).available_reel

    # ═══════════════════════════════════════════════════════════
    # MATERIALIZAÇÃO E LOCK
    # ═══════════════════════════════════════════════════════════

    def _locked_wallet(self, shop_id: int, now: datetime) -> models.QuotaWallet:
        """
        Carteira bloqueada (SELECT ... FOR UPDATE) para a transação corrente.

        Materializa a projeção legada na primeira mutação.
        """
        wallet = self._find_wallet(shop_id, lock=True)
        if wallet is not None:
            return wallet

        shop = self._get_shop(shop_id)
        projected = self._project_legacy(shop, now)

        wallet = models.QuotaWallet(
            shop_id=shop.id,
            weekly_live_base_limit=projected.weekly_live_base_limit,
            weekly_live_used=projected.weekly_live_used,
            live_extra_balance=projected.live_extra_balance,
            week_key=iso_week_key(now, shop.timezone),
            reel_daily_limit=projected.reel_daily_limit,
            reel_daily_used=projected.reel_daily_used,
            reel_extra_balance=projected.reel_extra_balance,
            reel_day_key=local_day_key(now, shop.timezone),
        )
        self.db.add(wallet)
        self.db.flush()

        logger.info(
            f"🧾 Carteira materializada para loja {shop.id} "
            f"(vivos: {projected.available_live}, historias: {projected.available_reel})"
        )
        return wallet

    def ensure_wallet(self, shop_id: int, now: Optional[datetime] = None) -> models.QuotaWallet:
        return self._locked_wallet(shop_id, now or utcnow())

    def _record(self, shop_id: int, bucket: QuotaBucket, kind: LedgerEntryKind, amount: int, **refs):
        entry = models.QuotaLedgerEntry(
            shop_id=shop_id,
            bucket=bucket,
            kind=kind,
            amount=amount,
            **refs,
        )
        self.db.add(entry)
        return entry

    def _idempotency_key_used(self, key: Optional[str]) -> bool:
        if not key:
            return False
        return self.db.scalar(
            select(models.QuotaLedgerEntry.id).where(models.QuotaLedgerEntry.idempotency_key == key)
        ) is not None

    # ═══════════════════════════════════════════════════════════
    # VIVOS
    # ═══════════════════════════════════════════════════════════

    def debit_live(
        self,
        shop_id: int,
        n: int = 1,
        stream_id: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> models.QuotaWallet:
        """
        Consome n cupos de vivo: primeiro o base semanal, o excedente do extra.

        Raises:
            InsufficientQuota: cupo disponível menor que n (carteira intacta)
        """
        now = now or utcnow()
        wallet = self._locked_wallet(shop_id, now)

        base_free = max(0, wallet.weekly_live_base_limit - wallet.weekly_live_used)
        available = base_free + wallet.live_extra_balance
        if available < n:
            raise InsufficientQuota(
                "Sem cupos de vivo disponíveis",
                shop_id=shop_id,
                available=available,
                requested=n,
            )

        from_base = min(n, base_free)
        from_extra = n - from_base

        if from_base:
            wallet.weekly_live_used += from_base
            self._record(shop_id, QuotaBucket.LIVE, LedgerEntryKind.DEBIT_BASE, -from_base, stream_id=stream_id)
        if from_extra:
            wallet.live_extra_balance -= from_extra
            self._record(shop_id, QuotaBucket.LIVE, LedgerEntryKind.DEBIT_EXTRA, -from_extra, stream_id=stream_id)

        self.db.flush()
        logger.info(f"➖ Loja {shop_id}: débito de vivo (base={from_base}, extra={from_extra})")
        return wallet

    def credit_live_extra(
        self,
        shop_id: int,
        n: int,
        idempotency_key: Optional[str] = None,
        purchase_id: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> bool:
        """
        Credita n cupos extras de vivo.

        Returns:
            False se a chave de idempotência já foi aplicada (no-op)
        """
        if n <= 0:
            raise ValueError("Quantidade de crédito deve ser positiva")
        if self._idempotency_key_used(idempotency_key):
            logger.info(f"↩️ Crédito '{idempotency_key}' já aplicado, ignorando")
            return False

        wallet = self._locked_wallet(shop_id, now or utcnow())
        wallet.live_extra_balance += n
        self._record(
            shop_id, QuotaBucket.LIVE, LedgerEntryKind.CREDIT_EXTRA, n,
            idempotency_key=idempotency_key, purchase_id=purchase_id,
        )
        self.db.flush()
        logger.info(f"➕ Loja {shop_id}: +{n} cupos extras de vivo")
        return True

    def refund_live(
        self,
        shop_id: int,
        n: int = 1,
        stream_id: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> models.QuotaWallet:
        """Devolve n cupos de vivo, sempre no saldo extra"""
        wallet = self._locked_wallet(shop_id, now or utcnow())
        wallet.live_extra_balance += n
        self._record(shop_id, QuotaBucket.LIVE, LedgerEntryKind.REFUND_EXTRA, n, stream_id=stream_id)
        self.db.flush()
        logger.info(f"↩️ Loja {shop_id}: estorno de {n} cupo(s) de vivo no saldo extra")
        return wallet

    # ═══════════════════════════════════════════════════════════
    # HISTORIAS
    # ═══════════════════════════════════════════════════════════

    def _roll_reel_day(self, wallet: models.QuotaWallet, shop: models.Shop, now: datetime) -> bool:
        today = local_day_key(now, shop.timezone)
        if wallet.reel_day_key == today:
            return False
        previous = wallet.reel_daily_used
        wallet.reel_daily_used = 0
        wallet.reel_day_key = today
        self._record(
            shop.id, QuotaBucket.REEL, LedgerEntryKind.RESET_BASE, previous,
            note=f"dia {today}",
        )
        return True

    def debit_reel(
        self,
        shop_id: int,
        n: int = 1,
        reel_id: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> ReelOrigin:
        """
        Consome cupo de historia. Retorna a origem (PLAN quando saiu só do base).

        Raises:
            InsufficientQuota: sem cupo diário nem extra
        """
        now = now or utcnow()
        shop = self._get_shop(shop_id)
        wallet = self._locked_wallet(shop_id, now)
        self._roll_reel_day(wallet, shop, now)

        base_free = max(0, wallet.reel_daily_limit - wallet.reel_daily_used)
        available = base_free + wallet.reel_extra_balance
        if available < n:
            raise InsufficientQuota(
                "Sem cupos de historia disponíveis",
                shop_id=shop_id,
                available=available,
                requested=n,
            )

        from_base = min(n, base_free)
        from_extra = n - from_base

        if from_base:
            wallet.reel_daily_used += from_base
            self._record(shop_id, QuotaBucket.REEL, LedgerEntryKind.DEBIT_BASE, -from_base, reel_id=reel_id)
        if from_extra:
            wallet.reel_extra_balance -= from_extra
            self._record(shop_id, QuotaBucket.REEL, LedgerEntryKind.DEBIT_EXTRA, -from_extra, reel_id=reel_id)

        self.db.flush()
        return ReelOrigin.PLAN if from_extra == 0 else ReelOrigin.EXTRA

    def credit_reel_extra(
        self,
        shop_id: int,
        n: int,
        idempotency_key: Optional[str] = None,
        purchase_id: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> bool:
        if n <= 0:
            raise ValueError("Quantidade de crédito deve ser positiva")
        if self._idempotency_key_used(idempotency_key):
            logger.info(f"↩️ Crédito '{idempotency_key}' já aplicado, ignorando")
            return False

        wallet = self._locked_wallet(shop_id, now or utcnow())
        wallet.reel_extra_balance += n
        self._record(
            shop_id, QuotaBucket.REEL, LedgerEntryKind.CREDIT_EXTRA, n,
            idempotency_key=idempotency_key, purchase_id=purchase_id,
        )
        self.db.flush()
        logger.info(f"➕ Loja {shop_id}: +{n} cupos extras de historia")
        return True

    # ═══════════════════════════════════════════════════════════
    # PLANO
    # ═══════════════════════════════════════════════════════════

    def apply_plan(self, shop: models.Shop, plan, purchase_id: Optional[int] = None,
                   now: Optional[datetime] = None) -> models.QuotaWallet:
        """Troca o plano da loja e ajusta os limites base da carteira"""
        wallet = self._locked_wallet(shop.id, now or utcnow())
        previous = shop.plan
        limits = get_plan_limits(plan)

        shop.plan = plan
        wallet.weekly_live_base_limit = limits.weekly_live
        wallet.reel_daily_limit = limits.daily_reel

        self._record(
            shop.id, QuotaBucket.LIVE, LedgerEntryKind.PLAN_CHANGE, limits.weekly_live,
            purchase_id=purchase_id, note=f"{previous.value} → {plan.value}",
        )
        self.db.flush()
        logger.info(f"📦 Loja {shop.id}: plano {previous.value} → {plan.value}")
        return wallet

    # ═══════════════════════════════════════════════════════════
    # RESETS (SWEEPS)
    # ═══════════════════════════════════════════════════════════

    def _reset_sweep(self, label: str, now: datetime, key_fn, apply_fn) -> dict:
        wallets = self.db.execute(
            select(models.QuotaWallet, models.Shop)
            .join(models.Shop, models.Shop.id == models.QuotaWallet.shop_id)
        ).all()

        summary = {"checked": len(wallets), "reset": 0, "errors": {}}

        for wallet, shop in wallets:
            key = key_fn(now, shop.timezone)
            savepoint = self.db.begin_nested()
            try:
                if apply_fn(wallet, shop, key):
                    summary["reset"] += 1
                savepoint.commit()
            except Exception as e:
                savepoint.rollback()
                summary["errors"][str(shop.id)] = str(e)
                logger.error(f"  ❌ Erro no reset {label} da loja {shop.id}: {e}", exc_info=True)

        self.db.commit()
        logger.info(f"🔄 Reset {label}: {summary['reset']}/{summary['checked']} carteiras")
        return summary

    def reset_weekly_live(self, now: Optional[datetime] = None) -> dict:
        """Zera o uso base semanal; o saldo extra persiste. Idempotente por week_key."""

        def apply(wallet, shop, key):
            if wallet.week_key == key:
                return False
            previous = wallet.weekly_live_used
            wallet.weekly_live_used = 0
            wallet.week_key = key
            self._record(shop.id, QuotaBucket.LIVE, LedgerEntryKind.RESET_BASE, previous, note=f"semana {key}")
            return True

        return self._reset_sweep("semanal de vivos", now or utcnow(), iso_week_key, apply)

    def reset_daily_reel(self, now: Optional[datetime] = None) -> dict:
        """Zera o uso diário de historias. Idempotente por reel_day_key."""
        now = now or utcnow()

        def apply(wallet, shop, key):
            return self._roll_reel_day(wallet, shop, now)

        return self._reset_sweep("diário de historias", now, local_day_key, apply)
