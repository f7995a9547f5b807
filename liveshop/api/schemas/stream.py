from datetime import datetime
from typing import Optional

from pydantic import Field

from liveshop.api.schemas.base_schema import AppBaseModel
from liveshop.core.utils.enums import ReportStatus, SocialPlatform, StreamStatus


class StreamCreate(AppBaseModel):
    shop_id: int
    title: str = Field(..., min_length=1, max_length=160)
    scheduled_at: datetime
    platform: SocialPlatform
    description: Optional[str] = None
    cover_image: Optional[str] = None
    url: Optional[str] = None
    is_admin_override: bool = False


class StreamUpdate(AppBaseModel):
    title: Optional[str] = Field(None, min_length=1, max_length=160)
    scheduled_at: Optional[datetime] = None
    platform: Optional[SocialPlatform] = None
    description: Optional[str] = None
    cover_image: Optional[str] = None
    url: Optional[str] = None
    is_admin_override: bool = False


class StreamReason(AppBaseModel):
    reason: Optional[str] = None


class StreamOut(AppBaseModel):
    id: int
    shop_id: int
    title: str
    description: Optional[str] = None
    cover_image: Optional[str] = None
    status: StreamStatus
    scheduled_at: datetime
    scheduled_time: str
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None
    extension_count: int
    platform: SocialPlatform
    url: str
    views: int
    likes: int
    report_count: int
    is_visible: bool
    rating: Optional[float] = None
    rating_count: int
    status_reason: Optional[str] = None
    replaces_stream_id: Optional[int] = None


class StreamReportCreate(AppBaseModel):
    reporter_id: str
    reason: str = Field(..., min_length=1, max_length=255)


class StreamReportOut(AppBaseModel):
    id: int
    stream_id: int
    reporter_id: str
    reason: str
    status: ReportStatus
    created_at: datetime
    resolved_at: Optional[datetime] = None


class StreamRatingCreate(AppBaseModel):
    rater_id: str
    rating: int = Field(..., ge=1, le=5)
    comment: Optional[str] = None


class StreamLikeCreate(AppBaseModel):
    user_id: str


class StreamLikeOut(AppBaseModel):
    stream_id: int
    liked: bool
    likes: int


class StreamReminderCreate(AppBaseModel):
    user_id: str


class StreamReminderOut(AppBaseModel):
    id: int
    stream_id: int
    user_id: str
    notified_at: Optional[datetime] = None
