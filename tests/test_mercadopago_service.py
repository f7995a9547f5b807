"""
Testes do Serviço Mercado Pago
==============================
Cliente HTTP com requests mockado: preferências, consulta de pagamentos,
erros do provedor e circuit breaker.
"""

from unittest.mock import MagicMock, patch

import pytest

from liveshop.api.services.mercadopago_service import MercadoPagoError, MercadoPagoService
from liveshop.core.circuit_breaker import CircuitBreakerOpen, CircuitBreakerState, get_circuit_breaker


# ═══════════════════════════════════════════════════════════
# FIXTURES
# ═══════════════════════════════════════════════════════════

@pytest.fixture
def mp_service():
    """Cria instância do serviço Mercado Pago em sandbox"""
    with patch("liveshop.api.services.mercadopago_service.config") as mock_config:
        mock_config.MERCADOPAGO_ACCESS_TOKEN = "TEST-TOKEN"
        mock_config.MERCADOPAGO_API_URL = "https://api.mercadopago.com"
        mock_config.MERCADOPAGO_ENVIRONMENT = "sandbox"
        mock_config.MERCADOPAGO_NOTIFICATION_URL = "https://api.example.com/webhook/mercadopago"
        mock_config.mercadopago_is_sandbox = True
        mock_config.FRONTEND_URL = "https://example.com"
        mock_config.PAYMENT_CURRENCY = "ARS"

        service = MercadoPagoService()
        yield service


def make_response(status_code=200, payload=None):
    response = MagicMock()
    response.status_code = status_code
    response.json.return_value = payload or {}
    response.text = ""
    return response


# ═══════════════════════════════════════════════════════════
# PREFERÊNCIAS
# ═══════════════════════════════════════════════════════════

class TestCreatePreference:

    def test_sandbox_uses_sandbox_init_point(self, mp_service):
        response = make_response(201, {
            "id": "pref-1",
            "init_point": "https://www.mercadopago.com.ar/checkout/v1/redirect?pref_id=pref-1",
            "sandbox_init_point": "https://sandbox.mercadopago.com.ar/checkout/v1/redirect?pref_id=pref-1",
        })

        with patch.object(mp_service.session, "request", return_value=response) as mock_request:
            result = mp_service.create_preference(
                purchase_id=7, title="Pacote de vivos extras", quantity=1,
                unit_price=15000, payer_email="loja@example.com",
            )

        assert result["preference_id"] == "pref-1"
        assert result["init_point"].startswith("https://sandbox.")

        kwargs = mock_request.call_args.kwargs
        assert kwargs["method"] == "POST"
        assert kwargs["url"] == "https://api.mercadopago.com/checkout/preferences"
        assert kwargs["headers"]["Authorization"] == "Bearer TEST-TOKEN"
        assert kwargs["headers"]["X-Idempotency-Key"] == "purchase-7"

        payload = kwargs["json"]
        assert payload["external_reference"] == "7"
        assert payload["items"][0]["unit_price"] == 15000.0
        assert payload["items"][0]["currency_id"] == "ARS"
        assert payload["payer"] == {"email": "loja@example.com"}
        assert payload["notification_url"] == "https://api.example.com/webhook/mercadopago"

    def test_client_error_is_not_retried(self, mp_service):
        response = make_response(400, {"message": "invalid unit_price"})

        with patch.object(mp_service.session, "request", return_value=response) as mock_request:
            with pytest.raises(MercadoPagoError) as exc_info:
                mp_service.create_preference(purchase_id=7, title="x", quantity=1, unit_price=0)

        assert exc_info.value.status_code == 400
        assert "invalid unit_price" in str(exc_info.value)
        assert mock_request.call_count == 1


# ═══════════════════════════════════════════════════════════
# PAGAMENTOS
# ═══════════════════════════════════════════════════════════

class TestPayments:

    def test_get_payment(self, mp_service):
        response = make_response(200, {"id": 123, "status": "approved", "external_reference": "7"})

        with patch.object(mp_service.session, "request", return_value=response) as mock_request:
            payment = mp_service.get_payment("123")

        assert payment["status"] == "approved"
        assert mock_request.call_args.kwargs["url"].endswith("/v1/payments/123")

    def test_search_payments_by_reference(self, mp_service):
        response = make_response(200, {"results": [{"id": 1, "status": "pending"}]})

        with patch.object(mp_service.session, "request", return_value=response) as mock_request:
            results = mp_service.search_payments("7")

        assert results == [{"id": 1, "status": "pending"}]
        assert mock_request.call_args.kwargs["params"]["external_reference"] == "7"

    def test_search_without_results(self, mp_service):
        with patch.object(mp_service.session, "request", return_value=make_response(200, {})):
            assert mp_service.search_payments("7") == []


# ═══════════════════════════════════════════════════════════
# CIRCUIT BREAKER E MASCARAMENTO
# ═══════════════════════════════════════════════════════════

class TestResilience:

    def test_open_circuit_blocks_calls(self, mp_service):
        breaker = get_circuit_breaker("mercadopago")
        for _ in range(breaker.failure_threshold):
            breaker.record_failure()
        assert breaker.state == CircuitBreakerState.OPEN

        with patch.object(mp_service.session, "request") as mock_request:
            with pytest.raises(CircuitBreakerOpen):
                mp_service.get_payment("123")

        mock_request.assert_not_called()

    def test_success_closes_half_open_circuit(self, mp_service):
        breaker = get_circuit_breaker("mercadopago")
        breaker.state = CircuitBreakerState.HALF_OPEN
        breaker.failure_count = 5

        with patch.object(mp_service.session, "request", return_value=make_response(200, {"id": 1})):
            mp_service.get_payment("1")

        assert breaker.state == CircuitBreakerState.CLOSED
        assert breaker.failure_count == 0

    def test_mask_sensitive_data(self, mp_service):
        masked = mp_service._mask_sensitive_data({
            "access_token": "APP_USR-1234567890",
            "payer": {"email": "loja@example.com", "identification": {"number": "123"}},
        })

        assert masked["access_token"] == "APP_...7890"
        assert masked["payer"]["email"] == "loja@example.com"
