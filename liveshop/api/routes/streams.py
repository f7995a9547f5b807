from typing import Optional

from fastapi import APIRouter, status

from liveshop.api.schemas.stream import (
    StreamCreate, StreamLikeCreate, StreamLikeOut, StreamOut, StreamRatingCreate, StreamReason,
    StreamReminderCreate, StreamReminderOut, StreamReportCreate, StreamReportOut, StreamUpdate,
)
from liveshop.api.services.notification_service import NotificationService
from liveshop.api.services.sanction_service import SanctionService
from liveshop.api.services.stream_feedback_service import StreamFeedbackService
from liveshop.api.services.stream_lifecycle_service import StreamLifecycleService
from liveshop.api.services.stream_scheduler_service import StreamSchedulerService
from liveshop.core.database import GetDBDep
from liveshop.core.utils.enums import ReportStatus

router = APIRouter(tags=["Streams"], prefix="/streams")


@router.post("", response_model=StreamOut, status_code=status.HTTP_201_CREATED)
def schedule_stream(payload: StreamCreate, db: GetDBDep):
    return StreamSchedulerService(db).schedule_stream(**payload.model_dump())


@router.get("/agenda", response_model=list[StreamOut])
def list_agenda(db: GetDBDep, limit: int = 100):
    return StreamSchedulerService(db).list_agenda(limit)


@router.get("/reports", response_model=list[StreamReportOut])
def list_reports(db: GetDBDep, status: Optional[ReportStatus] = None, stream_id: Optional[int] = None):
    return StreamFeedbackService(db).list_reports(status, stream_id)


@router.post("/reports/{report_id}/resolve", response_model=StreamReportOut)
def resolve_report(report_id: int, db: GetDBDep):
    return StreamFeedbackService(db).resolve_report(report_id)


@router.post("/reports/{report_id}/reject", response_model=StreamReportOut)
def reject_report(report_id: int, db: GetDBDep):
    return StreamFeedbackService(db).reject_report(report_id)


@router.get("/{stream_id}", response_model=StreamOut)
def get_stream(stream_id: int, db: GetDBDep):
    return StreamSchedulerService(db).get_stream(stream_id)


@router.patch("/{stream_id}", response_model=StreamOut)
def update_stream(stream_id: int, payload: StreamUpdate, db: GetDBDep):
    return StreamSchedulerService(db).update_stream(stream_id, **payload.model_dump(exclude_unset=True))


@router.post("/{stream_id}/cancel", response_model=StreamOut)
def cancel_stream(stream_id: int, payload: StreamReason, db: GetDBDep):
    return StreamSchedulerService(db).cancel_stream(stream_id, payload.reason)


# ═══════════════════════════════════════════════════════════
# OVERRIDES (ADMIN / LOJA)
# ═══════════════════════════════════════════════════════════

@router.post("/{stream_id}/start", response_model=StreamOut)
def start_stream(stream_id: int, db: GetDBDep):
    return StreamLifecycleService(db).start_stream(stream_id)


@router.post("/{stream_id}/finish", response_model=StreamOut)
def finish_stream(stream_id: int, db: GetDBDep):
    return StreamLifecycleService(db).finish_stream(stream_id)


@router.post("/{stream_id}/extend", response_model=StreamOut)
def extend_stream(stream_id: int, db: GetDBDep):
    return StreamLifecycleService(db).extend_stream(stream_id)


@router.post("/{stream_id}/ban", response_model=StreamOut)
def ban_stream(stream_id: int, payload: StreamReason, db: GetDBDep):
    return StreamLifecycleService(db).ban_stream(stream_id, payload.reason)


@router.post("/{stream_id}/reprogram", response_model=StreamOut)
def reprogram_missed(stream_id: int, db: GetDBDep):
    """Cria o vivo de reposição de um MISSED"""
    return SanctionService(db).reprogram_missed(stream_id)


# ═══════════════════════════════════════════════════════════
# ESPECTADORES
# ═══════════════════════════════════════════════════════════

@router.post("/{stream_id}/reports", response_model=StreamReportOut, status_code=status.HTTP_201_CREATED)
def report_stream(stream_id: int, payload: StreamReportCreate, db: GetDBDep):
    return StreamFeedbackService(db).report_stream(stream_id, payload.reporter_id, payload.reason)


@router.post("/{stream_id}/ratings", response_model=StreamOut)
def rate_stream(stream_id: int, payload: StreamRatingCreate, db: GetDBDep):
    return StreamFeedbackService(db).rate_stream(stream_id, payload.rater_id, payload.rating, payload.comment)


@router.post("/{stream_id}/like", response_model=StreamLikeOut)
def toggle_like(stream_id: int, payload: StreamLikeCreate, db: GetDBDep):
    return StreamFeedbackService(db).toggle_like(stream_id, payload.user_id)


@router.post("/{stream_id}/reminders", response_model=StreamReminderOut, status_code=status.HTTP_201_CREATED)
def register_reminder(stream_id: int, payload: StreamReminderCreate, db: GetDBDep):
    return NotificationService(db).register_reminder(stream_id, payload.user_id)
