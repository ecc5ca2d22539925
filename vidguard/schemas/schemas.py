"""
VidGuard API Schemas — Pydantic v2 models for request/response validation.
"""
from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from vidguard.models.models import SensitivityStatus, Video, VideoStatus


# ═══════════════════════════════════════════════════════════════════════
# Video Record
# ═══════════════════════════════════════════════════════════════════════

class SensitivitySchema(BaseModel):
    status: SensitivityStatus = SensitivityStatus.PENDING
    reason: str = ""
    confidence: float = Field(0.0, ge=0.0, le=1.0)
    checked_at: Optional[datetime] = None
    details: Optional[Dict[str, Any]] = None


class ErrorSchema(BaseModel):
    message: str
    timestamp: Optional[datetime] = None


class VideoRecordSchema(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    tenant_id: Optional[str] = None
    owner_id: Optional[str] = None
    original_name: str = ""
    storage_path: str
    thumbnail_path: Optional[str] = None
    status: VideoStatus

    duration_seconds: Optional[float] = None
    width: Optional[int] = None
    height: Optional[int] = None
    bitrate: Optional[int] = None
    codec: Optional[str] = None
    frame_rate: Optional[float] = None

    analysis_requested: bool = False
    analysis_done: bool = False
    analysis_retries: int = 0
    last_analysis_attempt: Optional[datetime] = None
    processing_start_time: Optional[datetime] = None
    processing_end_time: Optional[datetime] = None
    error: Optional[ErrorSchema] = None
    sensitivity: SensitivitySchema

    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_video(cls, video: Video) -> "VideoRecordSchema":
        return cls.model_validate(video)


class VideoStats(BaseModel):
    total: int = 0
    uploaded: int = 0
    processing: int = 0
    processed: int = 0
    failed: int = 0
    pending: int = 0
    safe: int = 0
    sensitive: int = 0
    error: int = 0


class VideoListResponse(BaseModel):
    count: int
    stats: VideoStats
    data: List[VideoRecordSchema]


# ═══════════════════════════════════════════════════════════════════════
# Analysis
# ═══════════════════════════════════════════════════════════════════════

class TriggerResponse(BaseModel):
    success: bool = True
    message: str = "Analysis started in background"
    video_id: str


class AnalysisEventSchema(BaseModel):
    event: str
    video_id: str
    sequence: int
    timestamp: float
    data: Dict[str, Any] = Field(default_factory=dict)
