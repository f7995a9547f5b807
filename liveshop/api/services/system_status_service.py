# liveshop/api/services/system_status_service.py

from liveshop.api.scheduler import list_jobs
from liveshop.core.circuit_breaker import get_all_circuit_breakers_status
from liveshop.core.config import config
from liveshop.core.utils.dates import utcnow


def fetch_system_status() -> dict:
    """Snapshot somente-leitura dos sweepers para o painel operacional"""
    return {
        "notifications": {
            "enabled": config.NOTIFICATIONS_ENABLED,
            "intervalMinutes": config.NOTIFICATIONS_INTERVAL_MINUTES,
            "windowMinutes": config.NOTIFICATIONS_WINDOW_MINUTES,
        },
        "sanctions": {
            "enabled": config.SANCTIONS_ENABLED,
            "intervalMinutes": config.SANCTIONS_INTERVAL_MINUTES,
        },
        "streams": {
            "enabled": config.STREAMS_LIFECYCLE_ENABLED,
            "intervalMinutes": config.STREAMS_LIFECYCLE_INTERVAL_MINUTES,
        },
        "environment": config.ENVIRONMENT,
        "serverTime": utcnow().isoformat(),
        "jobs": list_jobs(),
        "circuitBreakers": get_all_circuit_breakers_status(),
    }
