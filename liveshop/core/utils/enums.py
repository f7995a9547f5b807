import enum


class ShopPlan(str, enum.Enum):
    ESTANDAR = "Estandar"
    ALTA_VISIBILIDAD = "Alta Visibilidad"
    MAXIMA_VISIBILIDAD = "Maxima Visibilidad"


class ShopStatus(str, enum.Enum):
    PENDING_VERIFICATION = "PENDING_VERIFICATION"
    ACTIVE = "ACTIVE"
    AGENDA_SUSPENDED = "AGENDA_SUSPENDED"
    HIDDEN = "HIDDEN"
    BANNED = "BANNED"


class SocialPlatform(str, enum.Enum):
    INSTAGRAM = "Instagram"
    TIKTOK = "TikTok"
    FACEBOOK = "Facebook"
    YOUTUBE = "YouTube"

    @property
    def handle_key(self) -> str:
        """Chave usada em Shop.social_handles"""
        return self.value.lower()


class StreamStatus(str, enum.Enum):
    UPCOMING = "UPCOMING"  # Programado
    LIVE = "LIVE"  # Em curso
    FINISHED = "FINISHED"  # Finalizado
    MISSED = "MISSED"  # Não realizado (limiar de denúncias atingido)
    CANCELLED = "CANCELLED"  # Cancelado pela loja/admin
    BANNED = "BANNED"  # Interrompido pelo admin
    PENDING_REPROGRAMMATION = "PENDING_REPROGRAMMATION"  # Aguardando nova data


# Vivos que ocupam o dia na agenda da loja
AGENDA_OCCUPYING_STATUSES = (
    StreamStatus.UPCOMING,
    StreamStatus.LIVE,
    StreamStatus.PENDING_REPROGRAMMATION,
)

# Vivos que contam para o teto semanal
WEEKLY_CAP_STATUSES = (
    StreamStatus.UPCOMING,
    StreamStatus.LIVE,
)


class StreamEvent(str, enum.Enum):
    START = "START"
    FINISH = "FINISH"
    EXTEND = "EXTEND"
    CANCEL = "CANCEL"
    BAN = "BAN"
    MARK_MISSED = "MARK_MISSED"
    RESCHEDULE = "RESCHEDULE"


class ReelStatus(str, enum.Enum):
    ACTIVE = "ACTIVE"
    EXPIRED = "EXPIRED"
    HIDDEN = "HIDDEN"
    PROCESSING = "PROCESSING"


class ReelOrigin(str, enum.Enum):
    PLAN = "PLAN"
    EXTRA = "EXTRA"


class ReelType(str, enum.Enum):
    VIDEO = "VIDEO"
    PHOTO_SET = "PHOTO_SET"


class PurchaseType(str, enum.Enum):
    LIVE_PACK = "LIVE_PACK"
    REEL_PACK = "REEL_PACK"
    PLAN_UPGRADE = "PLAN_UPGRADE"


class PurchaseStatus(str, enum.Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    CANCELLED = "CANCELLED"


class QuotaBucket(str, enum.Enum):
    LIVE = "LIVE"
    REEL = "REEL"


class LedgerEntryKind(str, enum.Enum):
    DEBIT_BASE = "DEBIT_BASE"
    DEBIT_EXTRA = "DEBIT_EXTRA"
    CREDIT_EXTRA = "CREDIT_EXTRA"
    REFUND_EXTRA = "REFUND_EXTRA"
    RESET_BASE = "RESET_BASE"
    PLAN_CHANGE = "PLAN_CHANGE"


class ReportStatus(str, enum.Enum):
    OPEN = "OPEN"
    RESOLVED = "RESOLVED"
    REJECTED = "REJECTED"


class NotificationType(str, enum.Enum):
    SYSTEM = "SYSTEM"
    REMINDER = "REMINDER"
    PURCHASE = "PURCHASE"
