# liveshop/core/exceptions.py
"""
Taxonomia de Erros do Domínio
=============================

Todos os erros de validação são síncronos e recuperáveis pelo chamador
(corrigir a entrada e tentar de novo). Nenhum é re-tentado automaticamente.
"""

from typing import Any, Dict, Optional


class LiveShopError(Exception):
    """Exceção base para erros de regra de negócio"""

    status_code: int = 400
    code: str = "LIVESHOP_ERROR"
    default_message: str = "Operação não permitida"

    def __init__(self, message: Optional[str] = None, **details: Any):
        self.message = message or self.default_message
        self.details: Dict[str, Any] = details
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": self.code,
            "message": self.message,
            "details": self.details,
        }


class EntityNotFound(LiveShopError):
    """Loja, vivo, historia ou compra inexistente"""
    status_code = 404
    code = "NOT_FOUND"
    default_message = "Recurso não encontrado"


class ShopNotSchedulable(LiveShopError):
    """Loja não está ativa ou está penalizada"""
    status_code = 403
    code = "SHOP_NOT_SCHEDULABLE"
    default_message = "A loja não pode agendar neste momento"


class InsufficientQuota(LiveShopError):
    """Sem cupo disponível no bucket solicitado"""
    status_code = 409
    code = "INSUFFICIENT_QUOTA"
    default_message = "Cupo insuficiente"


class DuplicateDailySlot(LiveShopError):
    """Já existe um vivo ativo no mesmo dia"""
    status_code = 409
    code = "DUPLICATE_DAILY_SLOT"
    default_message = "Já existe um vivo programado para este dia"


class WeeklyCapExceeded(LiveShopError):
    """Teto semanal de vivos atingido"""
    status_code = 409
    code = "WEEKLY_CAP_EXCEEDED"
    default_message = "Limite semanal de vivos atingido"


class MissingSocialHandle(LiveShopError):
    """Loja sem usuário configurado para a plataforma"""
    status_code = 422
    code = "MISSING_SOCIAL_HANDLE"
    default_message = "Configure o usuário da rede social antes de agendar"


class ExtensionLimitReached(LiveShopError):
    """Vivo já recebeu o máximo de extensões"""
    status_code = 409
    code = "EXTENSION_LIMIT_REACHED"
    default_message = "Limite de extensões atingido"


class AlreadyProcessed(LiveShopError):
    """Compra que já saiu do estado PENDING"""
    status_code = 409
    code = "ALREADY_PROCESSED"
    default_message = "A compra já foi processada"


class InvalidTransition(LiveShopError):
    """Transição de estado não permitida"""
    status_code = 409
    code = "INVALID_TRANSITION"
    default_message = "Transição de estado inválida"


class ReportWindowClosed(LiveShopError):
    """Denúncia fora da janela do vivo"""
    status_code = 409
    code = "REPORT_WINDOW_CLOSED"
    default_message = "A janela de denúncias deste vivo está fechada"


class PaymentNotInitiated(LiveShopError):
    """Provedor de pagamento não criou a preferência"""
    status_code = 502
    code = "PAYMENT_NOT_INITIATED"
    default_message = "Não foi possível iniciar o pagamento"


class PaymentRejected(LiveShopError):
    """Provedor informou pagamento rejeitado"""
    status_code = 402
    code = "PAYMENT_REJECTED"
    default_message = "Pagamento rejeitado"
