"""
Fixtures compartilhadas
=======================
Banco SQLite em memória por teste, fábricas de lojas/vivos e TestClient.
"""

import os

os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("DATABASE_URL", "sqlite://")

from contextlib import contextmanager
from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from liveshop.api.services.quota_wallet_service import QuotaWalletService
from liveshop.core import models
from liveshop.core.circuit_breaker import circuit_breakers
from liveshop.core.database import configure_sqlite, get_db
from liveshop.core.utils.enums import ShopPlan, ShopStatus, SocialPlatform, StreamStatus

# Segunda-feira 19/10/2026, 12:00 em Buenos Aires (UTC-3, sem horário de verão)
NOW = datetime(2026, 10, 19, 15, 0, tzinfo=timezone.utc)


def local_at(days_ahead: int, hour: int, minute: int = 0) -> datetime:
    """Horário de Buenos Aires contado a partir da segunda de NOW, devolvido em UTC"""
    midnight = datetime(2026, 10, 19, 3, 0, tzinfo=timezone.utc)
    return midnight + timedelta(days=days_ahead, hours=hour, minutes=minute)


# ═══════════════════════════════════════════════════════════
# BANCO DE DADOS
# ═══════════════════════════════════════════════════════════

@pytest.fixture
def engine():
    """Banco em memória compartilhado entre as sessões do mesmo teste"""
    test_engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    configure_sqlite(test_engine)
    models.Base.metadata.create_all(test_engine)
    yield test_engine
    test_engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autocommit=False, autoflush=False, expire_on_commit=False)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def db_manager(db):
    """Substitui get_db_manager dos jobs pela sessão do teste"""
    @contextmanager
    def _manager():
        yield db

    return _manager


@pytest.fixture(autouse=True)
def reset_circuit_breakers():
    for breaker in circuit_breakers.values():
        breaker.reset()
    yield


# ═══════════════════════════════════════════════════════════
# FÁBRICAS
# ═══════════════════════════════════════════════════════════

@pytest.fixture
def make_shop(db):
    """
    Cria uma loja.

    with_wallet=True materializa a carteira com os saldos extras informados;
    False deixa a loja no modelo legado (campos planos, sem carteira).
    """
    def _make(
        plan=ShopPlan.ALTA_VISIBILIDAD,
        status=ShopStatus.ACTIVE,
        handles=None,
        live_extra=0,
        reel_extra=0,
        with_wallet=True,
        name="Loja Teste",
        email=None,
    ):
        shop = models.Shop(
            name=name,
            email=email,
            plan=plan,
            status=status,
            social_handles={"instagram": "lojateste", "tiktok": "lojateste"} if handles is None else handles,
            timezone="America/Argentina/Buenos_Aires",
            legacy_extra_quota=0 if with_wallet else live_extra,
            legacy_reels_extra_quota=0 if with_wallet else reel_extra,
        )
        db.add(shop)
        db.commit()

        if with_wallet:
            wallet = QuotaWalletService(db).ensure_wallet(shop.id, NOW)
            wallet.live_extra_balance = live_extra
            wallet.reel_extra_balance = reel_extra
            db.commit()

        return shop

    return _make


@pytest.fixture
def make_stream(db):
    """Insere um vivo direto no banco, sem passar pelo agendador nem pela carteira"""
    def _make(shop, scheduled_at=None, status=StreamStatus.UPCOMING, **fields):
        stream = models.Stream(
            shop_id=shop.id,
            title=fields.pop("title", "Vivo de teste"),
            scheduled_at=scheduled_at or local_at(1, 19),
            platform=fields.pop("platform", SocialPlatform.INSTAGRAM),
            url=fields.pop("url", "https://instagram.com/lojateste/live"),
            status=status,
            **fields,
        )
        db.add(stream)
        db.commit()
        return stream

    return _make


@pytest.fixture
def shop(make_shop):
    """Loja Alta Visibilidad ativa: 1 vivo base por semana, 3 historias por dia, sem extras"""
    return make_shop()


# ═══════════════════════════════════════════════════════════
# API
# ═══════════════════════════════════════════════════════════

@pytest.fixture
def client(session_factory):
    """
    TestClient com get_db apontando para o banco do teste.

    Criado sem `with` para não disparar o lifespan (create_all e scheduler).
    """
    from main import app

    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()
