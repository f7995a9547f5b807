from fastapi import APIRouter, status

from liveshop.api.schemas.reel import ReelCreate, ReelOut, ReelProcessingComplete
from liveshop.api.services.reel_service import ReelService
from liveshop.core.database import GetDBDep

router = APIRouter(tags=["Reels"], prefix="/reels")


@router.post("", response_model=ReelOut, status_code=status.HTTP_201_CREATED)
def publish_reel(payload: ReelCreate, db: GetDBDep):
    return ReelService(db).publish_reel(**payload.model_dump())


@router.get("/feed", response_model=list[ReelOut])
def list_feed(db: GetDBDep, limit: int = 50):
    return ReelService(db).list_feed(limit=limit)


@router.post("/{reel_id}/complete", response_model=ReelOut)
def complete_processing(reel_id: int, payload: ReelProcessingComplete, db: GetDBDep):
    return ReelService(db).complete_processing(reel_id, payload.video_url, payload.thumbnail_url)


@router.post("/{reel_id}/hide", response_model=ReelOut)
def hide_reel(reel_id: int, db: GetDBDep):
    return ReelService(db).hide_reel(reel_id)


@router.post("/{reel_id}/reactivate", response_model=ReelOut)
def reactivate_reel(reel_id: int, db: GetDBDep):
    return ReelService(db).reactivate_reel(reel_id)


@router.post("/{reel_id}/views", response_model=ReelOut)
def register_view(reel_id: int, db: GetDBDep):
    return ReelService(db).register_view(reel_id)
