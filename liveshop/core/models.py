from __future__ import annotations

from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy import (
    JSON, Boolean, CheckConstraint, DateTime, Enum, Float, ForeignKey, Index, Integer,
    String, Text, TypeDecorator, UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

from liveshop.core.config import config
from liveshop.core.utils.dates import local_time_label
from liveshop.core.utils.enums import (
    LedgerEntryKind, NotificationType, PurchaseStatus, PurchaseType, QuotaBucket, ReelOrigin,
    ReelStatus, ReelType, ReportStatus, ShopPlan, ShopStatus, SocialPlatform, StreamStatus,
)


class UTCDateTime(TypeDecorator):
    """
    DateTime sempre com fuso UTC.

    No PostgreSQL usa TIMESTAMP WITH TIME ZONE; no SQLite o valor volta
    ingênuo e é marcado como UTC na leitura.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return value
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)

    def process_result_value(self, value, dialect):
        if value is None:
            return value
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)


class Base(DeclarativeBase):
    pass


class TimestampMixin:
    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime(),
        default=lambda: datetime.now(timezone.utc),
        index=True
    )

    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime(),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc)
    )


class Shop(Base, TimestampMixin):
    __tablename__ = "shops"

    id: Mapped[int] = mapped_column(primary_key=True)

    # --- Identificação Básica ---
    name: Mapped[str] = mapped_column(String(120))
    razon_social: Mapped[str | None] = mapped_column(String(160), nullable=True)
    cuit: Mapped[str | None] = mapped_column(String(20), unique=True, nullable=True)
    email: Mapped[str | None] = mapped_column(String(160), nullable=True)
    timezone: Mapped[str] = mapped_column(String(64), default=lambda: config.TIMEZONE)

    # --- Plano e Estado ---
    plan: Mapped[ShopPlan] = mapped_column(
        Enum(ShopPlan, name="shop_plan_enum"), default=ShopPlan.ESTANDAR
    )
    status: Mapped[ShopStatus] = mapped_column(
        Enum(ShopStatus, name="shop_status_enum"), default=ShopStatus.PENDING_VERIFICATION, index=True
    )
    status_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    status_changed_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    owner_accepted_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    agenda_suspended_until: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    agenda_suspended_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Flag explícita de penalização (admin)
    penalty_flag: Mapped[bool] = mapped_column(Boolean, default=False)

    # --- Redes ---
    # {"instagram": "...", "tiktok": "...", "facebook": "...", "youtube": "..."}
    social_handles: Mapped[dict] = mapped_column(JSON, default=dict)

    # --- Cupos legados (somente leitura; usados enquanto não existe carteira) ---
    legacy_extra_quota: Mapped[int] = mapped_column(Integer, default=0)
    legacy_reels_extra_quota: Mapped[int] = mapped_column(Integer, default=0)

    # --- Relacionamentos ---
    quota_wallet: Mapped[Optional["QuotaWallet"]] = relationship(
        back_populates="shop", uselist=False, cascade="all, delete-orphan"
    )
    streams: Mapped[List["Stream"]] = relationship(
        back_populates="shop", foreign_keys="Stream.shop_id", cascade="all, delete-orphan"
    )
    reels: Mapped[List["Reel"]] = relationship(back_populates="shop", cascade="all, delete-orphan")
    penalties: Mapped[List["Penalty"]] = relationship(
        back_populates="shop", cascade="all, delete-orphan", order_by="Penalty.created_at"
    )
    purchases: Mapped[List["PurchaseRequest"]] = relationship(
        back_populates="shop", cascade="all, delete-orphan"
    )

    @property
    def has_active_penalty(self) -> bool:
        return any(penalty.active for penalty in self.penalties)

    @property
    def is_penalized(self) -> bool:
        """Flag explícita OU penalidade ativa OU agenda suspensa"""
        return (
            bool(self.penalty_flag)
            or self.has_active_penalty
            or self.status == ShopStatus.AGENDA_SUSPENDED
        )

    def handle_for(self, platform: SocialPlatform) -> str | None:
        handle = (self.social_handles or {}).get(platform.handle_key)
        if isinstance(handle, str) and handle.strip():
            return handle.strip().lstrip("@")
        return None

    def __repr__(self) -> str:
        return f"<Shop(id={self.id}, name='{self.name}', status={self.status})>"


class QuotaWallet(Base, TimestampMixin):
    """
    Carteira de cupos da loja.

    Vivos: limite base semanal (plano) + saldo extra comprado.
    Historias: limite base diário (plano) + saldo extra comprado.
    """
    __tablename__ = "quota_wallets"

    id: Mapped[int] = mapped_column(primary_key=True)
    shop_id: Mapped[int] = mapped_column(ForeignKey("shops.id", ondelete="CASCADE"), unique=True)
    shop: Mapped["Shop"] = relationship(back_populates="quota_wallet")

    weekly_live_base_limit: Mapped[int] = mapped_column(Integer, default=0)
    weekly_live_used: Mapped[int] = mapped_column(Integer, default=0)
    live_extra_balance: Mapped[int] = mapped_column(Integer, default=0)
    week_key: Mapped[str] = mapped_column(String(10))

    reel_daily_limit: Mapped[int] = mapped_column(Integer, default=0)
    reel_daily_used: Mapped[int] = mapped_column(Integer, default=0)
    reel_extra_balance: Mapped[int] = mapped_column(Integer, default=0)
    reel_day_key: Mapped[str] = mapped_column(String(10))

    version_id: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version_id}

    __table_args__ = (
        CheckConstraint("weekly_live_base_limit >= 0", name="ck_wallet_live_limit"),
        CheckConstraint("weekly_live_used >= 0", name="ck_wallet_live_used"),
        CheckConstraint("live_extra_balance >= 0", name="ck_wallet_live_extra"),
        CheckConstraint("reel_daily_limit >= 0", name="ck_wallet_reel_limit"),
        CheckConstraint("reel_daily_used >= 0", name="ck_wallet_reel_used"),
        CheckConstraint("reel_extra_balance >= 0", name="ck_wallet_reel_extra"),
    )


class QuotaLedgerEntry(Base, TimestampMixin):
    """Movimento auditável da carteira"""
    __tablename__ = "quota_ledger_entries"

    id: Mapped[int] = mapped_column(primary_key=True)
    shop_id: Mapped[int] = mapped_column(ForeignKey("shops.id", ondelete="CASCADE"), index=True)
    bucket: Mapped[QuotaBucket] = mapped_column(Enum(QuotaBucket, name="quota_bucket_enum"))
    kind: Mapped[LedgerEntryKind] = mapped_column(Enum(LedgerEntryKind, name="ledger_entry_kind_enum"))
    amount: Mapped[int] = mapped_column(Integer)

    # Chave de idempotência (ex: "purchase:12"); única quando presente
    idempotency_key: Mapped[str | None] = mapped_column(String(100), unique=True, nullable=True)

    stream_id: Mapped[int | None] = mapped_column(ForeignKey("streams.id", ondelete="SET NULL"), nullable=True)
    reel_id: Mapped[int | None] = mapped_column(ForeignKey("reels.id", ondelete="SET NULL"), nullable=True)
    purchase_id: Mapped[int | None] = mapped_column(
        ForeignKey("purchase_requests.id", ondelete="SET NULL"), nullable=True
    )
    note: Mapped[str | None] = mapped_column(Text, nullable=True)


class Stream(Base, TimestampMixin):
    __tablename__ = "streams"

    id: Mapped[int] = mapped_column(primary_key=True)
    shop_id: Mapped[int] = mapped_column(ForeignKey("shops.id", ondelete="CASCADE"), index=True)
    shop: Mapped["Shop"] = relationship(back_populates="streams", foreign_keys=[shop_id])

    title: Mapped[str] = mapped_column(String(160))
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    cover_image: Mapped[str | None] = mapped_column(String(500), nullable=True)

    # --- Estado e Tempo ---
    status: Mapped[StreamStatus] = mapped_column(
        Enum(StreamStatus, name="stream_status_enum"), default=StreamStatus.UPCOMING, index=True
    )
    scheduled_at: Mapped[datetime] = mapped_column(UTCDateTime(), index=True)
    started_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    finished_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    extension_count: Mapped[int] = mapped_column(Integer, default=0)
    status_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    platform: Mapped[SocialPlatform] = mapped_column(Enum(SocialPlatform, name="social_platform_enum"))
    url: Mapped[str] = mapped_column(String(500), default="")

    # --- Métricas ---
    views: Mapped[int] = mapped_column(Integer, default=0)
    likes: Mapped[int] = mapped_column(Integer, default=0)
    report_count: Mapped[int] = mapped_column(Integer, default=0)
    is_visible: Mapped[bool] = mapped_column(Boolean, default=True)
    rating: Mapped[float | None] = mapped_column(Float, nullable=True)
    rating_count: Mapped[int] = mapped_column(Integer, default=0)

    # Vivo de reposição criado pelo motor de sanções (herda o cupo consumido)
    replaces_stream_id: Mapped[int | None] = mapped_column(
        ForeignKey("streams.id", ondelete="SET NULL"), nullable=True
    )

    version_id: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    reports: Mapped[List["StreamReport"]] = relationship(
        back_populates="stream", cascade="all, delete-orphan"
    )

    __mapper_args__ = {"version_id_col": version_id}

    __table_args__ = (
        CheckConstraint("extension_count >= 0", name="ck_stream_extension_count"),
        Index("idx_streams_shop_status_date", "shop_id", "status", "scheduled_at"),
    )

    @property
    def scheduled_time(self) -> str:
        """Horário 'HH:mm' no fuso da loja"""
        return local_time_label(self.scheduled_at, self.shop.timezone if self.shop else None)

    def __repr__(self) -> str:
        return f"<Stream(id={self.id}, shop_id={self.shop_id}, status={self.status})>"


class StreamReport(Base, TimestampMixin):
    """Denúncia de espectador ("a loja não está ao vivo")"""
    __tablename__ = "stream_reports"

    id: Mapped[int] = mapped_column(primary_key=True)
    stream_id: Mapped[int] = mapped_column(ForeignKey("streams.id", ondelete="CASCADE"), index=True)
    stream: Mapped["Stream"] = relationship(back_populates="reports")
    reporter_id: Mapped[str] = mapped_column(String(100))
    reason: Mapped[str] = mapped_column(String(255))
    status: Mapped[ReportStatus] = mapped_column(
        Enum(ReportStatus, name="report_status_enum"), default=ReportStatus.OPEN
    )
    resolved_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)

    __table_args__ = (
        UniqueConstraint("stream_id", "reporter_id", name="uq_stream_report_reporter"),
    )


class StreamRating(Base, TimestampMixin):
    __tablename__ = "stream_ratings"

    id: Mapped[int] = mapped_column(primary_key=True)
    stream_id: Mapped[int] = mapped_column(ForeignKey("streams.id", ondelete="CASCADE"), index=True)
    rater_id: Mapped[str] = mapped_column(String(100))
    rating: Mapped[int] = mapped_column(Integer)
    comment: Mapped[str | None] = mapped_column(Text, nullable=True)

    __table_args__ = (
        UniqueConstraint("stream_id", "rater_id", name="uq_stream_rating_rater"),
        CheckConstraint("rating BETWEEN 1 AND 5", name="ck_stream_rating_range"),
    )


class StreamLike(Base, TimestampMixin):
    """Curtida de espectador; Stream.likes guarda o total"""
    __tablename__ = "stream_likes"

    id: Mapped[int] = mapped_column(primary_key=True)
    stream_id: Mapped[int] = mapped_column(ForeignKey("streams.id", ondelete="CASCADE"), index=True)
    user_id: Mapped[str] = mapped_column(String(100))

    __table_args__ = (
        UniqueConstraint("stream_id", "user_id", name="uq_stream_like_user"),
    )


class Reel(Base, TimestampMixin):
    __tablename__ = "reels"

    id: Mapped[int] = mapped_column(primary_key=True)
    shop_id: Mapped[int] = mapped_column(ForeignKey("shops.id", ondelete="CASCADE"), index=True)
    shop: Mapped["Shop"] = relationship(back_populates="reels")

    type: Mapped[ReelType] = mapped_column(Enum(ReelType, name="reel_type_enum"), default=ReelType.VIDEO)
    platform: Mapped[SocialPlatform] = mapped_column(Enum(SocialPlatform, name="social_platform_enum"))
    video_url: Mapped[str | None] = mapped_column(String(500), nullable=True)
    photo_urls: Mapped[list] = mapped_column(JSON, default=list)
    thumbnail_url: Mapped[str | None] = mapped_column(String(500), nullable=True)
    duration_seconds: Mapped[int] = mapped_column(Integer, default=10)
    processing_job_id: Mapped[str | None] = mapped_column(String(100), nullable=True)

    status: Mapped[ReelStatus] = mapped_column(
        Enum(ReelStatus, name="reel_status_enum"), default=ReelStatus.ACTIVE, index=True
    )
    origin: Mapped[ReelOrigin] = mapped_column(Enum(ReelOrigin, name="reel_origin_enum"))
    expires_at: Mapped[datetime] = mapped_column(UTCDateTime(), index=True)
    views: Mapped[int] = mapped_column(Integer, default=0)

    version_id: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version_id}


class Penalty(Base, TimestampMixin):
    """Registro imutável de sanção; só o admin desativa (levantar suspensão)"""
    __tablename__ = "penalties"

    id: Mapped[int] = mapped_column(primary_key=True)
    shop_id: Mapped[int] = mapped_column(ForeignKey("shops.id", ondelete="CASCADE"), index=True)
    shop: Mapped["Shop"] = relationship(back_populates="penalties")
    reason: Mapped[str] = mapped_column(String(255))
    active: Mapped[bool] = mapped_column(Boolean, default=True)

    # Vivo que originou a sanção; único para impedir aplicação dupla
    stream_id: Mapped[int | None] = mapped_column(
        ForeignKey("streams.id", ondelete="SET NULL"), unique=True, nullable=True
    )
    lifted_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)


class PurchaseRequest(Base, TimestampMixin):
    __tablename__ = "purchase_requests"

    id: Mapped[int] = mapped_column(primary_key=True)
    shop_id: Mapped[int] = mapped_column(ForeignKey("shops.id", ondelete="CASCADE"), index=True)
    shop: Mapped["Shop"] = relationship(back_populates="purchases")

    type: Mapped[PurchaseType] = mapped_column(Enum(PurchaseType, name="purchase_type_enum"))
    quantity: Mapped[int] = mapped_column(Integer, default=1)
    target_plan: Mapped[ShopPlan | None] = mapped_column(
        Enum(ShopPlan, name="shop_plan_enum"), nullable=True
    )
    status: Mapped[PurchaseStatus] = mapped_column(
        Enum(PurchaseStatus, name="purchase_status_enum"), default=PurchaseStatus.PENDING, index=True
    )
    amount: Mapped[float] = mapped_column(Float, default=0.0)
    currency: Mapped[str] = mapped_column(String(3), default="ARS")

    # --- Mercado Pago ---
    preference_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    payment_id: Mapped[str | None] = mapped_column(String(100), nullable=True, index=True)

    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    processed_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)

    version_id: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version_id}

    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_purchase_quantity"),
    )


class ProcessedWebhookEvent(Base, TimestampMixin):
    """
    Registra notificações do Mercado Pago já processadas.

    O provedor reenvia o mesmo evento até receber 200; o reenvio vira no-op.
    """
    __tablename__ = "processed_webhook_events"

    id: Mapped[int] = mapped_column(primary_key=True)
    event_id: Mapped[str] = mapped_column(String(100), unique=True, index=True)
    event_type: Mapped[str] = mapped_column(String(50))
    payload: Mapped[dict | None] = mapped_column(JSON, nullable=True)


class StreamReminder(Base, TimestampMixin):
    """Espectador pediu aviso antes do vivo começar"""
    __tablename__ = "stream_reminders"

    id: Mapped[int] = mapped_column(primary_key=True)
    stream_id: Mapped[int] = mapped_column(ForeignKey("streams.id", ondelete="CASCADE"), index=True)
    stream: Mapped["Stream"] = relationship()
    user_id: Mapped[str] = mapped_column(String(100), index=True)
    notified_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)

    __table_args__ = (
        UniqueConstraint("stream_id", "user_id", name="uq_stream_reminder_user"),
    )


class Notification(Base, TimestampMixin):
    __tablename__ = "notifications"

    id: Mapped[int] = mapped_column(primary_key=True)
    # Destinatário: espectador (user_id) ou loja (shop_id)
    user_id: Mapped[str | None] = mapped_column(String(100), nullable=True, index=True)
    shop_id: Mapped[int | None] = mapped_column(ForeignKey("shops.id", ondelete="CASCADE"), nullable=True, index=True)
    type: Mapped[NotificationType] = mapped_column(Enum(NotificationType, name="notification_type_enum"))
    message: Mapped[str] = mapped_column(Text)
    ref_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    notify_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    read: Mapped[bool] = mapped_column(Boolean, default=False)
