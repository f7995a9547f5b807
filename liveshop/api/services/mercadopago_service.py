"""
Integração com Mercado Pago (Checkout Pro)
==========================================

Cria preferências de pagamento para compra de pacotes extras e upgrade de
plano, e consulta pagamentos para confirmar aprovações.

O núcleo nunca assume pagamento aprovado sem consultar o provedor.
"""

import logging
from typing import Dict, List, Optional

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from liveshop.core.circuit_breaker import circuit_breaker_decorator
from liveshop.core.config import config

logger = logging.getLogger(__name__)

SENSITIVE_KEYS = ("access_token", "secret", "security_code", "card_number", "identification")


class MercadoPagoError(Exception):
    """Erro retornado pela API do Mercado Pago"""

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.status_code = status_code
        super().__init__(message)


class MercadoPagoUnavailable(MercadoPagoError):
    """Falha de conexão ou 5xx (pode ser re-tentada)"""
    pass


class MercadoPagoService:
    """Cliente HTTP do Mercado Pago com retry e circuit breaker"""

    def __init__(self, access_token: Optional[str] = None):
        self.access_token = access_token or config.MERCADOPAGO_ACCESS_TOKEN
        self.base_url = config.MERCADOPAGO_API_URL.rstrip("/")
        self.is_sandbox = config.mercadopago_is_sandbox

        self.session = requests.Session()
        retry_strategy = Retry(
            total=3,
            backoff_factor=1,
            status_forcelist=[429, 502, 503, 504],
            allowed_methods=["GET"],
        )
        adapter = HTTPAdapter(max_retries=retry_strategy)
        self.session.mount("https://", adapter)
        self.session.mount("http://", adapter)
        self.session.headers.update({
            "Content-Type": "application/json",
            "Accept": "application/json",
        })

        logger.info(
            f"🔧 [MercadoPagoService] {config.MERCADOPAGO_ENVIRONMENT.upper()} | {self.base_url}"
        )
        if not self.access_token:
            logger.warning("⚠️ [MercadoPagoService] MERCADOPAGO_ACCESS_TOKEN não configurado")

    @circuit_breaker_decorator(
        service_name="mercadopago",
        failure_threshold=5,
        recovery_timeout=60,
        max_retries=3,
        retry_on=(MercadoPagoUnavailable,),
    )
    def _make_request(
        self,
        method: str,
        endpoint: str,
        data: Optional[Dict] = None,
        params: Optional[Dict] = None,
        idempotency_key: Optional[str] = None,
    ) -> Dict:
        url = f"{self.base_url}{endpoint}"
        headers = {"Authorization": f"Bearer {self.access_token}"}
        if idempotency_key:
            headers["X-Idempotency-Key"] = idempotency_key

        logger.info(f"📤 [Request] {method} {url}")
        if data:
            logger.debug(f"📦 [Payload] {self._mask_sensitive_data(data)}")

        try:
            response = self.session.request(
                method=method,
                url=url,
                json=data,
                params=params,
                headers=headers,
                timeout=30,
            )
        except requests.exceptions.RequestException as e:
            logger.error(f"❌ Erro de conexão com Mercado Pago: {e}")
            raise MercadoPagoUnavailable(f"Erro de conexão: {e}")

        logger.info(f"📥 [Response] Status: {response.status_code}")

        if response.status_code >= 400:
            try:
                error_message = response.json().get("message", "Erro desconhecido")
            except ValueError:
                error_message = response.text or "Erro desconhecido"

            if response.status_code == 401:
                logger.error("❌ ERRO 401: credenciais do Mercado Pago inválidas")

            logger.error(f"❌ Erro {response.status_code}: {error_message}")
            error_class = MercadoPagoUnavailable if response.status_code >= 500 else MercadoPagoError
            raise error_class(error_message, status_code=response.status_code)

        return response.json()

    def _mask_sensitive_data(self, data: Dict) -> Dict:
        if not isinstance(data, dict):
            return data

        masked = {}
        for key, value in data.items():
            if any(sk in key.lower() for sk in SENSITIVE_KEYS) and isinstance(value, str):
                masked[key] = f"{value[:4]}...{value[-4:]}" if len(value) > 8 else "****"
            elif isinstance(value, dict):
                masked[key] = self._mask_sensitive_data(value)
            else:
                masked[key] = value
        return masked

    # ═══════════════════════════════════════════════════════════
    # CHECKOUT PRO
    # ═══════════════════════════════════════════════════════════

    def create_preference(
        self,
        purchase_id: int,
        title: str,
        quantity: int,
        unit_price: float,
        payer_email: Optional[str] = None,
    ) -> Dict:
        """
        Cria a preferência de pagamento.

        Returns:
            {"preference_id", "init_point"}; em sandbox o init_point é o de testes
        """
        payload = {
            "items": [{
                "id": str(purchase_id),
                "title": title,
                "quantity": quantity,
                "unit_price": float(unit_price),
                "currency_id": config.PAYMENT_CURRENCY,
            }],
            "external_reference": str(purchase_id),
            "back_urls": {
                "success": f"{config.FRONTEND_URL}/compras/{purchase_id}?status=success",
                "failure": f"{config.FRONTEND_URL}/compras/{purchase_id}?status=failure",
                "pending": f"{config.FRONTEND_URL}/compras/{purchase_id}?status=pending",
            },
            "auto_return": "approved",
        }
        if payer_email:
            payload["payer"] = {"email": payer_email}
        if config.MERCADOPAGO_NOTIFICATION_URL:
            payload["notification_url"] = config.MERCADOPAGO_NOTIFICATION_URL

        response = self._make_request(
            "POST",
            "/checkout/preferences",
            data=payload,
            idempotency_key=f"purchase-{purchase_id}",
        )

        init_point = response.get("sandbox_init_point") if self.is_sandbox else None
        return {
            "preference_id": response["id"],
            "init_point": init_point or response.get("init_point"),
        }

    def get_payment(self, payment_id: str) -> Dict:
        return self._make_request("GET", f"/v1/payments/{payment_id}")

    def search_payments(self, external_reference: str) -> List[Dict]:
        """Pagamentos de uma compra, do mais recente para o mais antigo"""
        response = self._make_request(
            "GET",
            "/v1/payments/search",
            params={
                "external_reference": external_reference,
                "sort": "date_created",
                "criteria": "desc",
            },
        )
        return response.get("results", [])
