from typing import Optional

from fastapi import APIRouter

from liveshop.api.jobs.agenda import release_agenda_suspensions
from liveshop.api.jobs.notifications import run_notifications
from liveshop.api.jobs.reels import expire_reels
from liveshop.api.jobs.sanctions import run_sanctions
from liveshop.api.jobs.streams_lifecycle import run_streams_lifecycle
from liveshop.api.services.system_status_service import fetch_system_status
from liveshop.core.database import check_database_health

router = APIRouter(tags=["System"], prefix="/system")


@router.get("/status")
def system_status():
    return fetch_system_status()


@router.get("/health")
def health_check():
    db_health = check_database_health()
    return {
        "status": "healthy" if db_health["healthy"] else "unhealthy",
        "database": db_health,
    }


# ═══════════════════════════════════════════════════════════
# DISPARO MANUAL DOS SWEEPERS
# ═══════════════════════════════════════════════════════════

@router.post("/jobs/streams-lifecycle")
def trigger_streams_lifecycle():
    return run_streams_lifecycle()


@router.post("/jobs/sanctions")
def trigger_sanctions():
    return run_sanctions()


@router.post("/jobs/notifications")
def trigger_notifications(minutes_ahead: Optional[int] = None):
    return run_notifications(minutes_ahead)


@router.post("/jobs/reels-expiration")
def trigger_reels_expiration():
    return expire_reels()


@router.post("/jobs/agenda-release")
def trigger_agenda_release():
    return release_agenda_suspensions()
