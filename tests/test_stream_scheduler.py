"""
Testes do agendamento de vivos
==============================
Ordem das validações, débito atômico, edição, cancelamento com estorno.
"""

from datetime import timedelta
from unittest.mock import patch

import pytest
from sqlalchemy import select, update

from conftest import NOW, local_at
from liveshop.api.services.quota_wallet_service import QuotaWalletService
from liveshop.api.services.stream_scheduler_service import StreamSchedulerService, build_live_url
from liveshop.core import models
from liveshop.core.exceptions import (
    DuplicateDailySlot, InsufficientQuota, InvalidTransition, MissingSocialHandle,
    ShopNotSchedulable, WeeklyCapExceeded,
)
from liveshop.core.utils.enums import (
    LedgerEntryKind, ShopPlan, ShopStatus, SocialPlatform, StreamStatus,
)


# ═══════════════════════════════════════════════════════════
# FIXTURES
# ═══════════════════════════════════════════════════════════

@pytest.fixture
def scheduler(db):
    return StreamSchedulerService(db)


def schedule(scheduler, shop, when, platform=SocialPlatform.INSTAGRAM, **kwargs):
    return scheduler.schedule_stream(
        shop_id=shop.id,
        title="Liquidação de primavera",
        scheduled_at=when,
        platform=platform,
        now=NOW,
        **kwargs,
    )


def count_streams(db, shop):
    return len(db.execute(
        select(models.Stream).where(models.Stream.shop_id == shop.id)
    ).scalars().all())


class TestBuildLiveUrl:

    @pytest.mark.parametrize("platform,expected", [
        (SocialPlatform.INSTAGRAM, "https://instagram.com/loja/live"),
        (SocialPlatform.TIKTOK, "https://tiktok.com/@loja/live"),
        (SocialPlatform.FACEBOOK, "https://facebook.com/loja/live"),
        (SocialPlatform.YOUTUBE, "https://youtube.com/@loja/live"),
    ])
    def test_url_per_platform(self, platform, expected):
        assert build_live_url(platform, "@loja") == expected


# ═══════════════════════════════════════════════════════════
# AGENDAMENTO
# ═══════════════════════════════════════════════════════════

class TestScheduleStream:

    def test_schedules_and_debits_one_quota(self, db, scheduler, shop):
        stream = schedule(scheduler, shop, local_at(1, 19))

        assert stream.status == StreamStatus.UPCOMING
        assert stream.url == "https://instagram.com/lojateste/live"
        assert stream.scheduled_time == "19:00"
        assert QuotaWalletService(db).available_live(shop.id, NOW) == 0

        entry = db.execute(
            select(models.QuotaLedgerEntry).where(models.QuotaLedgerEntry.stream_id == stream.id)
        ).scalar_one()
        assert entry.kind == LedgerEntryKind.DEBIT_BASE

    def test_inactive_shop_is_rejected_first(self, db, scheduler, make_shop):
        shop = make_shop(status=ShopStatus.PENDING_VERIFICATION, plan=ShopPlan.ESTANDAR, handles={})

        # Sem cupo e sem usuário também, mas a loja inativa é o primeiro erro
        with pytest.raises(ShopNotSchedulable):
            schedule(scheduler, shop, local_at(1, 19))
        assert count_streams(db, shop) == 0

    def test_penalized_shop_cannot_schedule(self, db, scheduler, make_shop):
        shop = make_shop()
        shop.penalty_flag = True
        db.commit()

        with pytest.raises(ShopNotSchedulable) as exc_info:
            schedule(scheduler, shop, local_at(1, 19))
        assert exc_info.value.details["is_penalized"] is True

    def test_agenda_suspended_shop_cannot_schedule(self, scheduler, make_shop):
        shop = make_shop(status=ShopStatus.AGENDA_SUSPENDED)
        with pytest.raises(ShopNotSchedulable):
            schedule(scheduler, shop, local_at(1, 19))

    def test_without_quota(self, db, scheduler, make_shop):
        shop = make_shop(plan=ShopPlan.ESTANDAR)
        with pytest.raises(InsufficientQuota):
            schedule(scheduler, shop, local_at(1, 19))
        assert count_streams(db, shop) == 0

    def test_quota_checked_before_daily_slot(self, scheduler, shop):
        schedule(scheduler, shop, local_at(1, 19))
        # Sem cupo E dia ocupado: o cupo é reportado primeiro
        with pytest.raises(InsufficientQuota):
            schedule(scheduler, shop, local_at(1, 21))

    def test_second_stream_same_local_day(self, db, scheduler, make_shop):
        shop = make_shop(live_extra=5)
        schedule(scheduler, shop, local_at(1, 10))

        with pytest.raises(DuplicateDailySlot) as exc_info:
            schedule(scheduler, shop, local_at(1, 22))

        assert exc_info.value.details["day"] == "2026-10-20"
        assert QuotaWalletService(db).available_live(shop.id, NOW) == 5

    def test_daily_slot_uses_shop_timezone(self, scheduler, make_shop):
        shop = make_shop(live_extra=5)
        # Terça 22:00 local já é quarta em UTC; no fuso da loja são dias diferentes
        schedule(scheduler, shop, local_at(1, 22))
        stream = schedule(scheduler, shop, local_at(2, 10))
        assert stream.status == StreamStatus.UPCOMING

    def test_pending_reprogrammation_occupies_the_day(self, scheduler, make_shop, make_stream):
        shop = make_shop(live_extra=5)
        make_stream(shop, scheduled_at=local_at(1, 9), status=StreamStatus.PENDING_REPROGRAMMATION)

        with pytest.raises(DuplicateDailySlot):
            schedule(scheduler, shop, local_at(1, 19))

    def test_cancelled_stream_frees_the_day(self, scheduler, make_shop, make_stream):
        shop = make_shop(live_extra=5)
        make_stream(shop, scheduled_at=local_at(1, 9), status=StreamStatus.CANCELLED)

        stream = schedule(scheduler, shop, local_at(1, 19))
        assert stream.status == StreamStatus.UPCOMING

    def test_weekly_hard_cap(self, db, scheduler, make_shop, make_stream):
        shop = make_shop(plan=ShopPlan.MAXIMA_VISIBILIDAD, live_extra=10)
        # Semana ISO de 19/10 a 25/10: 7 vivos em 6 dias (um dia com dois, via admin)
        for day in range(6):
            make_stream(shop, scheduled_at=local_at(day, 20))
        make_stream(shop, scheduled_at=local_at(0, 13))

        # Domingo está livre, mas o teto semanal já foi atingido
        with pytest.raises(WeeklyCapExceeded) as exc_info:
            schedule(scheduler, shop, local_at(6, 20))
        assert exc_info.value.details["count"] == 7
        assert count_streams(db, shop) == 7

        # A semana seguinte está livre
        stream = schedule(scheduler, shop, local_at(7, 20))
        assert stream.status == StreamStatus.UPCOMING

    def test_missing_social_handle(self, db, scheduler, shop):
        with pytest.raises(MissingSocialHandle) as exc_info:
            schedule(scheduler, shop, local_at(1, 19), platform=SocialPlatform.YOUTUBE)

        assert exc_info.value.details["platform"] == "YouTube"
        assert count_streams(db, shop) == 0
        assert QuotaWalletService(db).available_live(shop.id, NOW) == 1

    def test_admin_override_skips_validations_but_debits(self, db, scheduler, make_shop):
        shop = make_shop(status=ShopStatus.AGENDA_SUSPENDED, handles={}, live_extra=1)

        stream = schedule(
            scheduler, shop, local_at(1, 19),
            platform=SocialPlatform.YOUTUBE,
            url="https://youtube.com/watch?v=abc",
            is_admin_override=True,
        )

        assert stream.url == "https://youtube.com/watch?v=abc"
        assert QuotaWalletService(db).available_live(shop.id, NOW) == 1

    def test_admin_override_without_quota_fails_atomically(self, db, scheduler, make_shop):
        shop = make_shop(plan=ShopPlan.ESTANDAR)

        with pytest.raises(InsufficientQuota):
            schedule(scheduler, shop, local_at(1, 19), is_admin_override=True)
        assert count_streams(db, shop) == 0

    def test_legacy_shop_schedules_from_projection(self, db, scheduler, make_shop):
        shop = make_shop(with_wallet=False, live_extra=1)

        schedule(scheduler, shop, local_at(1, 19))
        schedule(scheduler, shop, local_at(2, 19))

        snapshot = QuotaWalletService(db).snapshot(shop.id, NOW)
        assert snapshot.source == "wallet"
        assert snapshot.available_live == 0


class TestConcurrentScheduling:
    """Dois agendamentos disputando o último cupo da semana"""

    def test_second_session_sees_the_committed_debit(self, db, session_factory, shop):
        # A sessão principal já tem a carteira carregada com o cupo livre
        QuotaWalletService(db).ensure_wallet(shop.id, NOW)
        db.commit()

        other = session_factory()
        try:
            first = schedule(StreamSchedulerService(other), shop, local_at(1, 19))
            assert first.status == StreamStatus.UPCOMING
        finally:
            other.close()

        with pytest.raises(InsufficientQuota):
            schedule(StreamSchedulerService(db), shop, local_at(2, 19))
        db.rollback()

        assert count_streams(db, shop) == 1
        assert QuotaWalletService(db).available_live(shop.id, NOW) == 0

    def test_write_between_read_and_debit_becomes_insufficient_quota(self, db, scheduler, shop):
        original_record = QuotaWalletService._record

        def record_after_concurrent_write(self, *args, **kwargs):
            # Outro agendamento consome o cupo antes do flush deste débito
            self.db.execute(
                update(models.QuotaWallet)
                .where(models.QuotaWallet.shop_id == shop.id)
                .values(
                    weekly_live_used=models.QuotaWallet.weekly_live_used + 1,
                    version_id=models.QuotaWallet.version_id + 1,
                )
                .execution_options(synchronize_session=False)
            )
            return original_record(self, *args, **kwargs)

        with patch.object(QuotaWalletService, "_record", record_after_concurrent_write):
            with pytest.raises(InsufficientQuota) as exc:
                schedule(scheduler, shop, local_at(1, 19))

        assert exc.value.details["reason"] == "concurrent_update"
        assert count_streams(db, shop) == 0
        assert db.execute(
            select(models.QuotaLedgerEntry).where(models.QuotaLedgerEntry.shop_id == shop.id)
        ).scalars().all() == []
        assert QuotaWalletService(db).available_live(shop.id, NOW) == 1


# ═══════════════════════════════════════════════════════════
# EDIÇÃO E CANCELAMENTO
# ═══════════════════════════════════════════════════════════

class TestUpdateStream:

    def test_title_only_does_not_revalidate(self, db, scheduler, shop):
        stream = schedule(scheduler, shop, local_at(1, 19))
        shop.penalty_flag = True
        db.commit()

        updated = scheduler.update_stream(stream.id, title="Novo título")
        assert updated.title == "Novo título"

    def test_reschedule_does_not_debit_again(self, db, scheduler, shop):
        stream = schedule(scheduler, shop, local_at(1, 19))

        updated = scheduler.update_stream(stream.id, scheduled_at=local_at(3, 18))

        assert updated.scheduled_at == local_at(3, 18)
        assert updated.status == StreamStatus.UPCOMING
        assert QuotaWalletService(db).snapshot(shop.id, NOW).weekly_live_used == 1

    def test_reschedule_same_day_excludes_itself(self, scheduler, shop):
        stream = schedule(scheduler, shop, local_at(1, 19))
        updated = scheduler.update_stream(stream.id, scheduled_at=local_at(1, 21))
        assert updated.scheduled_time == "21:00"

    def test_reschedule_onto_occupied_day(self, scheduler, make_shop, make_stream):
        shop = make_shop(live_extra=2)
        make_stream(shop, scheduled_at=local_at(2, 10))
        stream = schedule(scheduler, shop, local_at(1, 19))

        with pytest.raises(DuplicateDailySlot):
            scheduler.update_stream(stream.id, scheduled_at=local_at(2, 19))

    def test_platform_change_rebuilds_url(self, scheduler, shop):
        stream = schedule(scheduler, shop, local_at(1, 19))
        updated = scheduler.update_stream(stream.id, platform=SocialPlatform.TIKTOK)
        assert updated.url == "https://tiktok.com/@lojateste/live"

    def test_finished_stream_cannot_be_edited(self, scheduler, shop, make_stream):
        stream = make_stream(shop, status=StreamStatus.FINISHED)
        with pytest.raises(InvalidTransition):
            scheduler.update_stream(stream.id, title="x")

    def test_pending_reprogrammation_requires_new_date(self, scheduler, shop, make_stream):
        stream = make_stream(shop, status=StreamStatus.PENDING_REPROGRAMMATION)
        with pytest.raises(ValueError):
            scheduler.update_stream(stream.id, title="x")

    def test_pending_reprogrammation_back_to_upcoming(self, db, scheduler, shop, make_stream):
        stream = make_stream(shop, status=StreamStatus.PENDING_REPROGRAMMATION)

        updated = scheduler.update_stream(stream.id, scheduled_at=local_at(4, 19))

        assert updated.status == StreamStatus.UPCOMING
        assert updated.scheduled_at == local_at(4, 19)
        # Reposição herda o cupo: nada é debitado
        assert QuotaWalletService(db).available_live(shop.id, NOW) == 1


class TestCancelStream:

    def test_cancel_refunds_exactly_one_to_extra(self, db, scheduler, shop):
        stream = schedule(scheduler, shop, local_at(1, 19))

        cancelled = scheduler.cancel_stream(stream.id, reason="Sem estoque", now=NOW)

        assert cancelled.status == StreamStatus.CANCELLED
        assert cancelled.status_reason == "Sem estoque"
        snapshot = QuotaWalletService(db).snapshot(shop.id, NOW)
        assert snapshot.weekly_live_used == 1
        assert snapshot.live_extra_balance == 1
        assert snapshot.available_live == 1

    def test_cancel_twice_is_invalid(self, db, scheduler, shop):
        stream = schedule(scheduler, shop, local_at(1, 19))
        scheduler.cancel_stream(stream.id, now=NOW)

        with pytest.raises(InvalidTransition):
            scheduler.cancel_stream(stream.id, now=NOW)
        assert QuotaWalletService(db).snapshot(shop.id, NOW).live_extra_balance == 1

    def test_live_stream_cannot_be_cancelled(self, scheduler, shop, make_stream):
        stream = make_stream(shop, status=StreamStatus.LIVE)
        with pytest.raises(InvalidTransition):
            scheduler.cancel_stream(stream.id, now=NOW)


class TestListings:

    def test_agenda_hides_invisible_and_inactive(self, db, scheduler, make_shop, make_stream):
        active = make_shop(name="Ativa")
        banned = make_shop(name="Banida", status=ShopStatus.BANNED)
        visible = make_stream(active, scheduled_at=local_at(1, 19))
        make_stream(active, scheduled_at=local_at(2, 19), is_visible=False)
        make_stream(active, scheduled_at=local_at(3, 19), status=StreamStatus.FINISHED)
        make_stream(banned, scheduled_at=local_at(1, 19))

        agenda = scheduler.list_agenda()
        assert [stream.id for stream in agenda] == [visible.id]

    def test_shop_streams_filtered_by_status(self, scheduler, shop, make_stream):
        make_stream(shop, scheduled_at=local_at(1, 19))
        make_stream(shop, scheduled_at=local_at(2, 19), status=StreamStatus.CANCELLED)

        assert len(scheduler.list_shop_streams(shop.id)) == 2
        assert len(scheduler.list_shop_streams(shop.id, StreamStatus.CANCELLED)) == 1
