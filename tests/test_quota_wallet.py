"""
Testes da carteira de cupos
===========================
Fórmula disponível = max(0, base - usado) + extra, projeção legada,
débitos/créditos, resets e lock otimista.
"""

from datetime import timedelta

import pytest
from sqlalchemy import select, update
from sqlalchemy.orm.exc import StaleDataError

from conftest import NOW, local_at
from liveshop.api.services.quota_wallet_service import QuotaSnapshot, QuotaWalletService
from liveshop.api.services.stream_scheduler_service import StreamSchedulerService
from liveshop.core import models
from liveshop.core.exceptions import InsufficientQuota
from liveshop.core.utils.enums import (
    LedgerEntryKind, QuotaBucket, ReelOrigin, ReelStatus, ShopPlan, SocialPlatform, StreamStatus,
)


def wallet_of(db, shop):
    return db.execute(
        select(models.QuotaWallet).where(models.QuotaWallet.shop_id == shop.id)
    ).scalar_one()


def ledger_of(db, shop, kind=None):
    stmt = select(models.QuotaLedgerEntry).where(models.QuotaLedgerEntry.shop_id == shop.id)
    if kind is not None:
        stmt = stmt.where(models.QuotaLedgerEntry.kind == kind)
    return db.execute(stmt.order_by(models.QuotaLedgerEntry.id)).scalars().all()


class TestQuotaSnapshot:

    def test_available_never_negative_on_base(self):
        snapshot = QuotaSnapshot(
            weekly_live_base_limit=1, weekly_live_used=3, live_extra_balance=2,
            reel_daily_limit=3, reel_daily_used=0, reel_extra_balance=0,
        )
        assert snapshot.available_live == 2
        assert snapshot.available_reel == 3

    def test_to_dict_exposes_available_quotas(self):
        snapshot = QuotaSnapshot(
            weekly_live_base_limit=3, weekly_live_used=1, live_extra_balance=0,
            reel_daily_limit=5, reel_daily_used=5, reel_extra_balance=1,
        )
        data = snapshot.to_dict()
        assert data["available_live_quota"] == 2
        assert data["available_reel_quota"] == 1
        assert data["source"] == "wallet"


class TestWalletReads:

    def test_new_wallet_follows_plan(self, db, make_shop):
        shop = make_shop(plan=ShopPlan.MAXIMA_VISIBILIDAD)
        snapshot = QuotaWalletService(db).snapshot(shop.id, NOW)

        assert snapshot.weekly_live_base_limit == 3
        assert snapshot.reel_daily_limit == 5
        assert snapshot.available_live == 3
        assert snapshot.available_reel == 5

    def test_estandar_has_no_base_lives(self, db, make_shop):
        shop = make_shop(plan=ShopPlan.ESTANDAR)
        assert QuotaWalletService(db).available_live(shop.id, NOW) == 0
        assert QuotaWalletService(db).available_reel(shop.id, NOW) == 1

    def test_reel_usage_from_previous_day_shows_as_zero(self, db, shop):
        service = QuotaWalletService(db)
        for _ in range(3):
            service.debit_reel(shop.id, now=NOW)
        db.commit()

        assert service.available_reel(shop.id, NOW) == 0
        assert service.available_reel(shop.id, NOW + timedelta(days=1)) == 3
        # Leitura não altera a carteira
        assert wallet_of(db, shop).reel_daily_used == 3


class TestLegacyProjection:

    def test_legacy_shop_is_projected_from_flat_fields(self, db, make_shop, make_stream):
        shop = make_shop(with_wallet=False, live_extra=2)
        make_stream(shop, scheduled_at=local_at(1, 19))

        snapshot = QuotaWalletService(db).snapshot(shop.id, NOW)

        assert snapshot.source == "legacy"
        assert snapshot.weekly_live_used == 1
        assert snapshot.live_extra_balance == 2
        assert snapshot.available_live == 2

    def test_overflow_beyond_base_consumes_legacy_extra(self, db, make_shop, make_stream):
        shop = make_shop(with_wallet=False, live_extra=2)
        make_stream(shop, scheduled_at=local_at(1, 19))
        make_stream(shop, scheduled_at=local_at(2, 19))

        snapshot = QuotaWalletService(db).snapshot(shop.id, NOW)
        assert snapshot.weekly_live_used == 1
        assert snapshot.live_extra_balance == 1
        assert snapshot.available_live == 1

    def test_legacy_counts_every_stream_still_holding_a_slot(self, db, make_shop, make_stream):
        shop = make_shop(with_wallet=False)
        make_stream(shop, scheduled_at=local_at(1, 19), status=StreamStatus.PENDING_REPROGRAMMATION)
        make_stream(shop, scheduled_at=local_at(8, 19))
        make_stream(shop, scheduled_at=local_at(2, 19), status=StreamStatus.CANCELLED)
        service = QuotaWalletService(db)

        snapshot = service.snapshot(shop.id, NOW)
        assert snapshot.weekly_live_used == 1
        assert snapshot.live_extra_balance == 0
        assert snapshot.available_live == 0

        # A materialização herda a mesma conta e não libera cupo novo
        with pytest.raises(InsufficientQuota):
            StreamSchedulerService(db).schedule_stream(
                shop.id, "Vivo", local_at(3, 19), SocialPlatform.INSTAGRAM, now=NOW
            )
        db.rollback()
        assert service.available_live(shop.id, NOW) == 0

    def test_legacy_reels_count_only_visible_plan_reels_of_today(self, db, make_shop):
        shop = make_shop(with_wallet=False, plan=ShopPlan.ESTANDAR, reel_extra=1)
        for status, origin in (
            (ReelStatus.ACTIVE, ReelOrigin.PLAN),
            (ReelStatus.HIDDEN, ReelOrigin.PLAN),
            (ReelStatus.ACTIVE, ReelOrigin.EXTRA),
        ):
            db.add(models.Reel(
                shop_id=shop.id, platform=SocialPlatform.INSTAGRAM, video_url="https://cdn/v.mp4",
                status=status, origin=origin, created_at=NOW - timedelta(hours=1),
                expires_at=NOW + timedelta(hours=23),
            ))
        db.commit()

        snapshot = QuotaWalletService(db).snapshot(shop.id, NOW)
        assert snapshot.reel_daily_used == 1
        assert snapshot.reel_extra_balance == 1
        assert snapshot.available_reel == 1

    def test_first_mutation_materializes_wallet(self, db, make_shop, make_stream):
        shop = make_shop(with_wallet=False, live_extra=2)
        make_stream(shop, scheduled_at=local_at(1, 19))
        service = QuotaWalletService(db)

        service.debit_live(shop.id, 1, now=NOW)
        db.commit()

        wallet = wallet_of(db, shop)
        assert wallet.weekly_live_used == 1
        assert wallet.live_extra_balance == 1
        assert wallet.week_key == "2026-W43"
        assert wallet.reel_day_key == "2026-10-19"
        assert service.snapshot(shop.id, NOW).source == "wallet"


class TestLiveDebitAndCredit:

    def test_debit_uses_base_before_extra(self, db, make_shop):
        shop = make_shop(live_extra=2)
        service = QuotaWalletService(db)

        service.debit_live(shop.id, 1, now=NOW)
        wallet = wallet_of(db, shop)
        assert (wallet.weekly_live_used, wallet.live_extra_balance) == (1, 2)

        service.debit_live(shop.id, 1, now=NOW)
        assert (wallet.weekly_live_used, wallet.live_extra_balance) == (1, 1)

        kinds = [entry.kind for entry in ledger_of(db, shop)]
        assert kinds == [LedgerEntryKind.DEBIT_BASE, LedgerEntryKind.DEBIT_EXTRA]

    def test_debit_of_several_splits_between_base_and_extra(self, db, make_shop):
        shop = make_shop(plan=ShopPlan.MAXIMA_VISIBILIDAD, live_extra=2)
        QuotaWalletService(db).debit_live(shop.id, 4, now=NOW)

        wallet = wallet_of(db, shop)
        assert wallet.weekly_live_used == 3
        assert wallet.live_extra_balance == 1

    def test_insufficient_quota_leaves_wallet_untouched(self, db, make_shop):
        shop = make_shop(plan=ShopPlan.ESTANDAR)
        service = QuotaWalletService(db)

        with pytest.raises(InsufficientQuota) as exc_info:
            service.debit_live(shop.id, 1, now=NOW)

        assert exc_info.value.details["available"] == 0
        wallet = wallet_of(db, shop)
        assert wallet.weekly_live_used == 0
        assert wallet.live_extra_balance == 0
        assert ledger_of(db, shop) == []

    def test_credit_with_same_key_applies_once(self, db, shop):
        service = QuotaWalletService(db)

        assert service.credit_live_extra(shop.id, 3, idempotency_key="purchase:1", now=NOW) is True
        db.commit()
        assert service.credit_live_extra(shop.id, 3, idempotency_key="purchase:1", now=NOW) is False
        db.commit()

        assert wallet_of(db, shop).live_extra_balance == 3
        assert len(ledger_of(db, shop, LedgerEntryKind.CREDIT_EXTRA)) == 1

    def test_credit_must_be_positive(self, db, shop):
        with pytest.raises(ValueError):
            QuotaWalletService(db).credit_live_extra(shop.id, 0)

    def test_refund_always_goes_to_extra(self, db, shop):
        service = QuotaWalletService(db)
        service.debit_live(shop.id, 1, now=NOW)
        service.refund_live(shop.id, 1, now=NOW)

        wallet = wallet_of(db, shop)
        assert wallet.weekly_live_used == 1
        assert wallet.live_extra_balance == 1
        assert service.available_live(shop.id, NOW) == 1


class TestReelDebit:

    def test_origin_is_plan_then_extra(self, db, make_shop):
        shop = make_shop(reel_extra=1)
        service = QuotaWalletService(db)

        origins = [service.debit_reel(shop.id, now=NOW) for _ in range(4)]

        assert origins == [ReelOrigin.PLAN] * 3 + [ReelOrigin.EXTRA]
        with pytest.raises(InsufficientQuota):
            service.debit_reel(shop.id, now=NOW)

    def test_debit_on_new_day_rolls_usage_lazily(self, db, shop):
        service = QuotaWalletService(db)
        for _ in range(3):
            service.debit_reel(shop.id, now=NOW)

        tomorrow = NOW + timedelta(days=1)
        assert service.debit_reel(shop.id, now=tomorrow) == ReelOrigin.PLAN

        wallet = wallet_of(db, shop)
        assert wallet.reel_daily_used == 1
        assert wallet.reel_day_key == "2026-10-20"
        resets = ledger_of(db, shop, LedgerEntryKind.RESET_BASE)
        assert len(resets) == 1
        assert resets[0].bucket == QuotaBucket.REEL


class TestPlanChange:

    def test_apply_plan_changes_base_and_keeps_extra(self, db, make_shop):
        shop = make_shop(live_extra=2, reel_extra=4)
        QuotaWalletService(db).apply_plan(shop, ShopPlan.MAXIMA_VISIBILIDAD, now=NOW)
        db.commit()

        wallet = wallet_of(db, shop)
        assert shop.plan == ShopPlan.MAXIMA_VISIBILIDAD
        assert wallet.weekly_live_base_limit == 3
        assert wallet.reel_daily_limit == 5
        assert wallet.live_extra_balance == 2
        assert wallet.reel_extra_balance == 4


class TestResets:

    def test_weekly_reset_zeroes_base_and_keeps_extra(self, db, make_shop):
        shop = make_shop(live_extra=2)
        service = QuotaWalletService(db)
        service.debit_live(shop.id, 1, now=NOW)
        db.commit()

        next_monday = local_at(7, 0, 1)
        summary = service.reset_weekly_live(next_monday)

        wallet = wallet_of(db, shop)
        assert summary == {"checked": 1, "reset": 1, "errors": {}}
        assert wallet.weekly_live_used == 0
        assert wallet.live_extra_balance == 2
        assert wallet.week_key == "2026-W44"

    def test_weekly_reset_is_idempotent_per_week(self, db, shop):
        service = QuotaWalletService(db)
        service.debit_live(shop.id, 1, now=NOW)
        db.commit()

        # Mesma semana: nada a fazer
        assert service.reset_weekly_live(NOW)["reset"] == 0
        assert wallet_of(db, shop).weekly_live_used == 1

        service.reset_weekly_live(local_at(7, 0, 1))
        assert service.reset_weekly_live(local_at(7, 0, 2))["reset"] == 0

    def test_daily_reel_reset(self, db, shop):
        service = QuotaWalletService(db)
        service.debit_reel(shop.id, now=NOW)
        db.commit()

        summary = service.reset_daily_reel(local_at(1, 0, 1))
        assert summary["reset"] == 1
        wallet = wallet_of(db, shop)
        assert wallet.reel_daily_used == 0
        assert wallet.reel_day_key == "2026-10-20"

    def test_day_key_uses_shop_timezone(self, db, shop):
        service = QuotaWalletService(db)
        # 23:30 em Buenos Aires já é o dia seguinte em UTC
        assert service.reset_daily_reel(local_at(0, 23, 30))["reset"] == 0


class TestOptimisticLocking:

    def test_concurrent_wallet_write_raises_stale_data(self, db, shop):
        wallet = wallet_of(db, shop)
        db.commit()

        # Outra transação já gravou a carteira (version_id avançou)
        db.execute(
            update(models.QuotaWallet)
            .where(models.QuotaWallet.id == wallet.id)
            .values(version_id=models.QuotaWallet.version_id + 1)
            .execution_options(synchronize_session=False)
        )

        wallet.live_extra_balance += 1
        with pytest.raises(StaleDataError):
            db.flush()
        db.rollback()
