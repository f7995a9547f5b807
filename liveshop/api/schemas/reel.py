from datetime import datetime
from typing import List, Optional

from pydantic import Field

from liveshop.api.schemas.base_schema import AppBaseModel
from liveshop.core.utils.enums import ReelOrigin, ReelStatus, ReelType, SocialPlatform


class ReelCreate(AppBaseModel):
    shop_id: int
    platform: SocialPlatform
    type: ReelType = ReelType.VIDEO
    video_url: Optional[str] = None
    photo_urls: List[str] = Field(default_factory=list)
    thumbnail_url: Optional[str] = None
    duration_seconds: int = Field(10, ge=1, le=90)
    processing_job_id: Optional[str] = None


class ReelProcessingComplete(AppBaseModel):
    video_url: str
    thumbnail_url: Optional[str] = None


class ReelOut(AppBaseModel):
    id: int
    shop_id: int
    type: ReelType
    platform: SocialPlatform
    video_url: Optional[str] = None
    photo_urls: List[str]
    thumbnail_url: Optional[str] = None
    duration_seconds: int
    status: ReelStatus
    origin: ReelOrigin
    created_at: datetime
    expires_at: datetime
    views: int
