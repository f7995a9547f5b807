# liveshop/api/scheduler.py
"""
Sistema de Agendamento de Tarefas
=================================

Sweepers periódicos (intervalo configurável):
- ✅ Ciclo de vida dos vivos
- ✅ Motor de sanções
- ✅ Lembretes de vivos
- ✅ Expiração de historias
- ✅ Liberação de agendas suspensas

Resets de cupo (cron no fuso das lojas):
- ✅ Semanal de vivos (segunda 00:00)
- ✅ Diário de historias (00:00)
"""

import logging
from datetime import datetime, timezone

from apscheduler.events import EVENT_JOB_ERROR, EVENT_JOB_EXECUTED
from apscheduler.schedulers.asyncio import AsyncIOScheduler

from liveshop.api.jobs.agenda import release_agenda_suspensions
from liveshop.api.jobs.notifications import run_notifications
from liveshop.api.jobs.quotas import reset_daily_reel_quotas, reset_weekly_live_quotas
from liveshop.api.jobs.reels import expire_reels
from liveshop.api.jobs.sanctions import run_sanctions
from liveshop.api.jobs.streams_lifecycle import run_streams_lifecycle
from liveshop.core.config import config

logger = logging.getLogger(__name__)

scheduler = AsyncIOScheduler(
    timezone="UTC",
    job_defaults={
        'coalesce': True,
        'max_instances': 1,
        'misfire_grace_time': 300
    }
)


def job_listener(event):
    """Loga sucesso e erro de todos os jobs agendados"""
    if event.exception:
        logger.error("job_failed", extra={
            "job_id": event.job_id,
            "scheduled_time": event.scheduled_run_time.isoformat() if event.scheduled_run_time else None,
            "error": str(event.exception),
            "traceback": event.traceback
        })
    else:
        logger.info("job_completed", extra={
            "job_id": event.job_id,
            "scheduled_time": event.scheduled_run_time.isoformat() if event.scheduled_run_time else None,
            "execution_time": datetime.now(timezone.utc).isoformat(),
            "result": event.retval,
        })


def register_jobs():
    """Registra os jobs conforme as flags de habilitação da configuração"""

    # ═══════════════════════════════════════════════════════════
    # SWEEPERS (Alta Frequência)
    # ═══════════════════════════════════════════════════════════

    if config.STREAMS_LIFECYCLE_ENABLED:
        scheduler.add_job(
            run_streams_lifecycle,
            'interval',
            minutes=config.STREAMS_LIFECYCLE_INTERVAL_MINUTES,
            id='streams_lifecycle_job',
            name='Ciclo de Vida dos Vivos',
            replace_existing=True,
        )

    if config.SANCTIONS_ENABLED:
        scheduler.add_job(
            run_sanctions,
            'interval',
            minutes=config.SANCTIONS_INTERVAL_MINUTES,
            id='sanctions_job',
            name='Motor de Sanções',
            replace_existing=True,
        )

    if config.NOTIFICATIONS_ENABLED:
        scheduler.add_job(
            run_notifications,
            'interval',
            minutes=config.NOTIFICATIONS_INTERVAL_MINUTES,
            id='notifications_job',
            name='Lembretes de Vivos',
            replace_existing=True,
        )

    scheduler.add_job(
        expire_reels,
        'interval',
        minutes=config.REELS_EXPIRATION_INTERVAL_MINUTES,
        id='reels_expiration_job',
        name='Expiração de Historias',
        replace_existing=True,
    )

    scheduler.add_job(
        release_agenda_suspensions,
        'interval',
        minutes=15,
        id='agenda_release_job',
        name='Liberação de Agendas Suspensas',
        replace_existing=True,
    )

    # ═══════════════════════════════════════════════════════════
    # RESETS DE CUPO (fuso das lojas)
    # ═══════════════════════════════════════════════════════════

    scheduler.add_job(
        reset_weekly_live_quotas,
        'cron',
        day_of_week='mon',
        hour='0',
        minute='0',
        timezone=config.TIMEZONE,
        id='weekly_live_reset_job',
        name='Reset Semanal de Vivos',
        replace_existing=True,
    )

    scheduler.add_job(
        reset_daily_reel_quotas,
        'cron',
        hour='0',
        minute='0',
        timezone=config.TIMEZONE,
        id='daily_reel_reset_job',
        name='Reset Diário de Historias',
        replace_existing=True,
    )


def start_scheduler():
    logger.info("⚙️  Configurando e iniciando o agendador de tarefas...")

    scheduler.add_listener(job_listener, EVENT_JOB_EXECUTED | EVENT_JOB_ERROR)
    register_jobs()
    scheduler.start()

    logger.info("✅ Agendador iniciado com sucesso!")
    logger.info(f"📋 Jobs configurados: {[job.id for job in scheduler.get_jobs()]}")


def stop_scheduler():
    if scheduler.running:
        logger.info("⏹️  Parando o agendador...")
        scheduler.shutdown(wait=True)
        logger.info("✅ Agendador parado com sucesso!")


def list_jobs():
    """Lista os jobs agendados (painel de sistema)"""
    return [
        {
            "id": job.id,
            "name": job.name,
            "next_run": job.next_run_time.isoformat() if getattr(job, "next_run_time", None) else None,
            "trigger": str(job.trigger),
        }
        for job in scheduler.get_jobs()
    ]
