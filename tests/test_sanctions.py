"""
Testes do motor de sanções
==========================
Limiar de denúncias, penalidade única por vivo, escalonamento para agenda
suspensa e vivo de reposição.
"""

from datetime import timedelta
from unittest.mock import patch

import pytest
from sqlalchemy import select

from conftest import NOW
from liveshop.api.services.quota_wallet_service import QuotaWalletService
from liveshop.api.services.sanction_service import PENALTY_REASON_MISSED, SanctionService
from liveshop.api.services.stream_feedback_service import StreamFeedbackService
from liveshop.api.services.stream_lifecycle_service import StreamLifecycleService
from liveshop.core import models
from liveshop.core.config import config
from liveshop.core.exceptions import InvalidTransition
from liveshop.core.utils.enums import NotificationType, ShopStatus, StreamStatus


@pytest.fixture
def sanctions(db):
    return SanctionService(db)


@pytest.fixture
def reported_stream(shop, make_stream):
    """Vivo que começou há 10 minutos com 5 denúncias (limiar padrão)"""
    return make_stream(shop, scheduled_at=NOW - timedelta(minutes=10), status=StreamStatus.LIVE, report_count=5)


def penalties_of(db, shop):
    return db.execute(select(models.Penalty).where(models.Penalty.shop_id == shop.id)).scalars().all()


def replacements_of(db, stream):
    return db.execute(
        select(models.Stream).where(models.Stream.replaces_stream_id == stream.id)
    ).scalars().all()


class TestSanctionRun:

    def test_reported_stream_becomes_missed(self, db, sanctions, shop, reported_stream):
        summary = sanctions.run(NOW)

        assert summary["candidates"] == 1
        assert summary["sanctioned"] == 1
        assert summary["errors"] == {}
        assert reported_stream.status == StreamStatus.MISSED
        assert reported_stream.is_visible is False
        assert reported_stream.status_reason == PENALTY_REASON_MISSED

        penalties = penalties_of(db, shop)
        assert len(penalties) == 1
        assert penalties[0].active is True
        assert penalties[0].stream_id == reported_stream.id
        assert shop.is_penalized is True

    def test_shop_is_notified(self, db, sanctions, shop, reported_stream):
        sanctions.run(NOW)

        notification = db.execute(
            select(models.Notification).where(models.Notification.shop_id == shop.id)
        ).scalar_one()
        assert notification.type == NotificationType.SYSTEM
        assert notification.ref_id == str(reported_stream.id)

    def test_below_threshold_is_ignored(self, sanctions, shop, make_stream):
        stream = make_stream(shop, scheduled_at=NOW - timedelta(minutes=10), report_count=4)

        assert sanctions.run(NOW)["candidates"] == 0
        assert stream.status == StreamStatus.UPCOMING

    @pytest.mark.parametrize("offset_minutes,expected", [
        (5, 1),      # começa daqui a 5 minutos: dentro da janela
        (6, 0),      # ainda fora da janela
        (-40, 1),    # início + 35min da janela + 5min de tolerância
        (-41, 0),    # vencido há muito tempo
    ])
    def test_candidate_window(self, sanctions, shop, make_stream, offset_minutes, expected):
        make_stream(shop, scheduled_at=NOW + timedelta(minutes=offset_minutes), report_count=5)
        assert sanctions.run(NOW)["candidates"] == expected

    def test_second_run_does_nothing(self, db, sanctions, shop, reported_stream):
        sanctions.run(NOW)
        second = sanctions.run(NOW + timedelta(minutes=5))

        assert second["candidates"] == 0
        assert len(penalties_of(db, shop)) == 1
        assert len(replacements_of(db, reported_stream)) == 1

    def test_existing_penalty_for_stream_is_not_duplicated(self, db, sanctions, shop, reported_stream):
        db.add(models.Penalty(shop_id=shop.id, reason="manual", stream_id=reported_stream.id))
        db.commit()

        summary = sanctions.run(NOW)

        assert summary["sanctioned"] == 0
        assert len(penalties_of(db, shop)) == 1

    def test_no_refund_for_missed_stream(self, db, sanctions, shop, reported_stream):
        QuotaWalletService(db).debit_live(shop.id, 1, now=NOW)
        db.commit()

        sanctions.run(NOW)

        assert QuotaWalletService(db).available_live(shop.id, NOW) == 0


class TestReplacement:

    def test_auto_replacement_waits_for_new_date(self, db, sanctions, shop, reported_stream):
        summary = sanctions.run(NOW)

        assert summary["reprogrammed"] == 1
        replacement = replacements_of(db, reported_stream)[0]
        assert replacement.status == StreamStatus.PENDING_REPROGRAMMATION
        assert replacement.title == reported_stream.title
        assert replacement.platform == reported_stream.platform

    def test_auto_replacement_can_be_disabled(self, db, sanctions, shop, reported_stream):
        with patch.object(config, "SANCTION_AUTO_REPROGRAM", False):
            summary = sanctions.run(NOW)

        assert summary["reprogrammed"] == 0
        assert replacements_of(db, reported_stream) == []

        replacement = sanctions.reprogram_missed(reported_stream.id)
        assert replacement.status == StreamStatus.PENDING_REPROGRAMMATION
        # Repetir devolve a mesma reposição
        assert sanctions.reprogram_missed(reported_stream.id).id == replacement.id

    def test_reprogram_requires_missed(self, sanctions, shop, make_stream):
        stream = make_stream(shop)
        with pytest.raises(InvalidTransition):
            sanctions.reprogram_missed(stream.id)


class TestEscalation:

    def _missed_history(self, shop, make_stream, count):
        for days_ago in range(1, count + 1):
            make_stream(
                shop,
                scheduled_at=NOW - timedelta(days=days_ago * 3),
                status=StreamStatus.MISSED,
            )

    def test_third_missed_suspends_agenda(self, db, sanctions, shop, make_stream, reported_stream):
        self._missed_history(shop, make_stream, 2)

        summary = sanctions.run(NOW)

        assert summary["suspended"] == 1
        assert shop.status == ShopStatus.AGENDA_SUSPENDED
        assert shop.agenda_suspended_until == NOW + timedelta(days=7)
        types = db.execute(
            select(models.Notification.type).where(models.Notification.shop_id == shop.id)
        ).scalars().all()
        assert len(types) == 2

    def test_old_missed_streams_do_not_count(self, sanctions, shop, make_stream, reported_stream):
        make_stream(shop, scheduled_at=NOW - timedelta(days=31), status=StreamStatus.MISSED)
        make_stream(shop, scheduled_at=NOW - timedelta(days=45), status=StreamStatus.MISSED)

        summary = sanctions.run(NOW)

        assert summary["suspended"] == 0
        assert shop.status == ShopStatus.ACTIVE

    def test_already_suspended_shop_is_not_escalated_again(self, db, sanctions, make_shop, make_stream):
        shop = make_shop(status=ShopStatus.AGENDA_SUSPENDED)
        self._missed_history(shop, make_stream, 3)
        make_stream(shop, scheduled_at=NOW - timedelta(minutes=10), status=StreamStatus.LIVE, report_count=6)

        summary = sanctions.run(NOW)

        assert summary["sanctioned"] == 1
        assert summary["suspended"] == 0
        assert shop.agenda_suspended_until is None


class TestSweepersOnOneTimeline:

    def test_late_reports_still_sanction_a_no_show(self, db, sanctions, shop, make_stream):
        """Vivo agendado em T, sem ninguém ao vivo, com a 5ª denúncia em T+33"""
        lifecycle = StreamLifecycleService(db)
        feedback = StreamFeedbackService(db)
        stream = make_stream(shop, scheduled_at=NOW)

        lifecycle.run_tick(NOW)
        for viewer in range(4):
            feedback.report_stream(stream.id, f"viewer-{viewer}", "Offline", now=NOW + timedelta(minutes=10))

        assert lifecycle.run_tick(NOW + timedelta(minutes=31))["finished"] == 0
        feedback.report_stream(stream.id, "viewer-4", "Offline", now=NOW + timedelta(minutes=33))
        lifecycle.run_tick(NOW + timedelta(minutes=36))

        summary = sanctions.run(NOW + timedelta(minutes=36))

        assert summary["sanctioned"] == 1
        assert stream.status == StreamStatus.MISSED
        assert lifecycle.run_tick(NOW + timedelta(minutes=41))["finished"] == 0
        assert stream.status == StreamStatus.MISSED

    def test_unreported_stream_finishes_after_window(self, db, sanctions, shop, make_stream):
        lifecycle = StreamLifecycleService(db)
        stream = make_stream(shop, scheduled_at=NOW)

        lifecycle.run_tick(NOW)
        assert sanctions.run(NOW + timedelta(minutes=36))["candidates"] == 0
        assert lifecycle.run_tick(NOW + timedelta(minutes=41))["finished"] == 1
        assert stream.status == StreamStatus.FINISHED
