"""
Circuit Breaker para o provedor de pagamentos
=============================================

Estados:
- CLOSED: chamadas passam
- OPEN: falhas seguidas, chamadas bloqueadas até o recovery_timeout
- HALF_OPEN: uma chamada de teste é liberada

Uso:
    @circuit_breaker_decorator("mercadopago", failure_threshold=5)
    def _make_request(...):
        ...
"""

import logging
import time
from enum import Enum
from functools import wraps
from typing import Callable, Dict, Optional

from tenacity import (
    retry, retry_if_exception_type, retry_if_not_exception_type, stop_after_attempt, wait_exponential,
)

logger = logging.getLogger(__name__)


class CircuitBreakerState(str, Enum):
    CLOSED = "CLOSED"
    OPEN = "OPEN"
    HALF_OPEN = "HALF_OPEN"


class CircuitBreakerOpen(Exception):
    """Chamada bloqueada porque o circuito está aberto"""
    pass


class CircuitBreaker:
    """
    Conta falhas consecutivas de um serviço externo.

    Atributos:
        name: nome usado nos logs e no status do sistema
        failure_threshold: falhas antes de abrir
        recovery_timeout: segundos em OPEN antes de testar (HALF_OPEN)
    """

    def __init__(self, name: str, failure_threshold: int = 5, recovery_timeout: int = 60):
        self.name = name
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout

        self.failure_count = 0
        self.last_failure_time: Optional[float] = None
        self.state = CircuitBreakerState.CLOSED

    def is_open(self) -> bool:
        if self.state == CircuitBreakerState.OPEN:
            if time.time() - self.last_failure_time >= self.recovery_timeout:
                logger.warning(f"🟡 Circuit Breaker '{self.name}' em HALF_OPEN (testando recuperação)")
                self.state = CircuitBreakerState.HALF_OPEN
                return False
            return True
        return False

    def record_failure(self):
        self.failure_count += 1
        self.last_failure_time = time.time()

        logger.error(
            f"❌ Circuit Breaker '{self.name}' registrou falha "
            f"({self.failure_count}/{self.failure_threshold})"
        )

        if self.state == CircuitBreakerState.HALF_OPEN or self.failure_count >= self.failure_threshold:
            self.state = CircuitBreakerState.OPEN
            logger.error(
                f"🔴 Circuit Breaker '{self.name}' ABERTO! "
                f"Bloqueando requisições por {self.recovery_timeout}s"
            )

    def record_success(self):
        if self.state == CircuitBreakerState.HALF_OPEN:
            logger.info(f"✅ Circuit Breaker '{self.name}' recuperado, voltando para CLOSED")
        self.state = CircuitBreakerState.CLOSED
        self.failure_count = 0
        self.last_failure_time = None

    def reset(self):
        self.record_success()

    def status(self) -> dict:
        return {
            "state": self.state.value,
            "failure_count": self.failure_count,
            "failure_threshold": self.failure_threshold,
            "recovery_timeout": self.recovery_timeout,
        }


circuit_breakers: Dict[str, CircuitBreaker] = {}


def get_circuit_breaker(service_name: str, failure_threshold: int = 5,
                        recovery_timeout: int = 60) -> CircuitBreaker:
    if service_name not in circuit_breakers:
        circuit_breakers[service_name] = CircuitBreaker(
            name=service_name,
            failure_threshold=failure_threshold,
            recovery_timeout=recovery_timeout,
        )
    return circuit_breakers[service_name]


def circuit_breaker_decorator(
    service_name: str = "default",
    failure_threshold: int = 5,
    recovery_timeout: int = 60,
    max_retries: int = 3,
    backoff_factor: float = 1.0,
    retry_on: tuple = (Exception,),
):
    """
    Circuit Breaker + retry com backoff exponencial (tenacity).

    Args:
        service_name: chave do breaker compartilhado
        failure_threshold: falhas antes de abrir
        recovery_timeout: segundos para tentar recuperar
        max_retries: tentativas totais
        backoff_factor: multiplicador do backoff (2^x * fator)
        retry_on: exceções que disparam nova tentativa
    """
    breaker = get_circuit_breaker(service_name, failure_threshold, recovery_timeout)

    def decorator(func: Callable) -> Callable:

        @retry(
            stop=stop_after_attempt(max_retries),
            wait=wait_exponential(multiplier=backoff_factor, min=0, max=10),
            retry=retry_if_exception_type(retry_on) & retry_if_not_exception_type(CircuitBreakerOpen),
            reraise=True,
        )
        @wraps(func)
        def wrapper(*args, **kwargs):
            if breaker.is_open():
                raise CircuitBreakerOpen(f"Circuit Breaker '{service_name}' está ABERTO")

            try:
                result = func(*args, **kwargs)
            except retry_on as e:
                breaker.record_failure()
                logger.error(f"Erro em {service_name}: {e}")
                raise

            breaker.record_success()
            return result

        return wrapper

    return decorator


def get_all_circuit_breakers_status() -> dict:
    return {name: breaker.status() for name, breaker in circuit_breakers.items()}
