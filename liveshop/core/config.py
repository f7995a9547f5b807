# liveshop/core/config.py
"""
Configurações da Aplicação - LiveShop
=====================================

Gerencia variáveis de ambiente de forma centralizada e tipada.

Cobre:
- Banco de dados e fuso horário das lojas
- Regras de vivos (duração, extensões, teto semanal)
- Motor de sanções (janela de denúncias, limiar, escalonamento)
- Historias (reels) e notificações
- Mercado Pago (compra de pacotes extras e upgrade de plano)
"""

from pathlib import Path
from typing import Optional
from dotenv import load_dotenv
from pydantic_settings import BaseSettings, SettingsConfigDict

# Carrega .env do diretório raiz
load_dotenv(dotenv_path=Path(__file__).resolve().parent.parent.parent / ".env")


class Config(BaseSettings):
    """Configurações centralizadas da aplicação"""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ═══════════════════════════════════════════════════════════
    # 🌍 AMBIENTE
    # ═══════════════════════════════════════════════════════════

    ENVIRONMENT: str = "development"
    DEBUG: bool = False

    # ═══════════════════════════════════════════════════════════
    # 🗄️ BANCO DE DADOS
    # ═══════════════════════════════════════════════════════════

    DATABASE_URL: str = "sqlite:///./liveshop.db"

    # ═══════════════════════════════════════════════════════════
    # 🕒 FUSO HORÁRIO DAS LOJAS
    # ═══════════════════════════════════════════════════════════

    # Usado para chave de dia (historias), chave de semana ISO (vivos)
    # e para o horário "HH:mm" exibido na agenda.
    TIMEZONE: str = "America/Argentina/Buenos_Aires"

    # ═══════════════════════════════════════════════════════════
    # 📺 VIVOS (STREAMS)
    # ═══════════════════════════════════════════════════════════

    STREAM_BASE_DURATION_MINUTES: int = 30
    STREAM_MAX_EXTENSIONS: int = 3
    STREAM_WEEKLY_HARD_CAP: int = 7

    STREAMS_LIFECYCLE_ENABLED: bool = True
    STREAMS_LIFECYCLE_INTERVAL_MINUTES: int = 1

    # ═══════════════════════════════════════════════════════════
    # ⚖️ MOTOR DE SANÇÕES
    # ═══════════════════════════════════════════════════════════

    SANCTIONS_ENABLED: bool = True
    SANCTIONS_INTERVAL_MINUTES: int = 5
    SANCTION_REPORT_THRESHOLD: int = 5
    REPORT_WINDOW_BEFORE_MINUTES: int = 5
    REPORT_WINDOW_AFTER_MINUTES: int = 35
    SANCTION_MISSED_ESCALATION_COUNT: int = 3
    SANCTION_ROLLING_PERIOD_DAYS: int = 30
    SANCTION_SUSPENSION_DAYS: int = 7
    SANCTION_AUTO_REPROGRAM: bool = True

    # ═══════════════════════════════════════════════════════════
    # 🎞️ HISTORIAS (REELS)
    # ═══════════════════════════════════════════════════════════

    REEL_TTL_HOURS: int = 24
    REELS_EXPIRATION_INTERVAL_MINUTES: int = 10

    # ═══════════════════════════════════════════════════════════
    # 🔔 NOTIFICAÇÕES
    # ═══════════════════════════════════════════════════════════

    NOTIFICATIONS_ENABLED: bool = True
    NOTIFICATIONS_INTERVAL_MINUTES: int = 5
    NOTIFICATIONS_WINDOW_MINUTES: int = 15

    # ═══════════════════════════════════════════════════════════
    # 💳 MERCADO PAGO
    # ═══════════════════════════════════════════════════════════

    MERCADOPAGO_ACCESS_TOKEN: Optional[str] = None
    MERCADOPAGO_API_URL: str = "https://api.mercadopago.com"
    MERCADOPAGO_ENVIRONMENT: str = "sandbox"
    MERCADOPAGO_NOTIFICATION_URL: Optional[str] = None
    FRONTEND_URL: str = "http://localhost:3000"

    PAYMENT_CURRENCY: str = "ARS"
    LIVE_PACK_UNIT_PRICE: float = 5000.0
    REEL_PACK_UNIT_PRICE: float = 1500.0
    PLAN_PRICE_ALTA_VISIBILIDAD: float = 25000.0
    PLAN_PRICE_MAXIMA_VISIBILIDAD: float = 60000.0

    # ═══════════════════════════════════════════════════════════
    # 🖥️ SERVIDOR
    # ═══════════════════════════════════════════════════════════

    HOST: str = "0.0.0.0"
    PORT: int = 8000
    LOG_LEVEL: str = "INFO"

    # ═══════════════════════════════════════════════════════════
    # 🔧 PROPRIEDADES ÚTEIS
    # ═══════════════════════════════════════════════════════════

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT.lower() == "production"

    @property
    def is_development(self) -> bool:
        return self.ENVIRONMENT.lower() == "development"

    @property
    def is_test(self) -> bool:
        return self.ENVIRONMENT.lower() == "test"

    @property
    def mercadopago_is_sandbox(self) -> bool:
        return self.MERCADOPAGO_ENVIRONMENT.lower() in ["sandbox", "test", "testing"]


# ✅ Instância global
config = Config()


# ✅ Validação básica no startup
def validate_config():
    """Valida configurações críticas"""
    errors = []

    if config.ENVIRONMENT not in ["development", "test", "production"]:
        errors.append("ENVIRONMENT deve ser: development, test ou production")

    if config.STREAM_BASE_DURATION_MINUTES <= 0:
        errors.append("STREAM_BASE_DURATION_MINUTES deve ser positivo")

    if config.STREAM_MAX_EXTENSIONS < 0:
        errors.append("STREAM_MAX_EXTENSIONS não pode ser negativo")

    if config.SANCTION_REPORT_THRESHOLD < 1:
        errors.append("SANCTION_REPORT_THRESHOLD deve ser pelo menos 1")

    if config.is_production and not config.MERCADOPAGO_ACCESS_TOKEN:
        errors.append("MERCADOPAGO_ACCESS_TOKEN é obrigatório em produção")

    if errors:
        raise ValueError(
            "❌ Erros de configuração:\n" + "\n".join(f"  • {e}" for e in errors)
        )


validate_config()
