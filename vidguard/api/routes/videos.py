"""
VidGuard API — Video analysis routes.

  - POST /videos/{id}/analyze  — trigger analysis (returns immediately)
  - POST /videos/{id}/reset    — explicit reset to uploaded / pending
  - GET  /videos/{id}          — current record
  - GET  /videos               — listing with per-status statistics
  - GET  /videos/{id}/events   — replay buffered analysis events
"""
from __future__ import annotations

import logging
from typing import List, Optional

from fastapi import APIRouter, HTTPException, Query

from vidguard.core.config import get_settings
from vidguard.core.events import event_hub
from vidguard.core.exceptions import (
    AdmissionError,
    AlreadyAnalyzedError,
    AnalysisInProgressError,
    InvalidTransitionError,
    VideoNotFoundError,
)
from vidguard.models.models import SensitivityStatus, VideoStatus
from vidguard.schemas.schemas import (
    AnalysisEventSchema,
    TriggerResponse,
    VideoListResponse,
    VideoRecordSchema,
    VideoStats,
)
from vidguard.services.analysis.analysis_service import analysis_service
from vidguard.services.analysis.store import video_store

logger = logging.getLogger(__name__)
settings = get_settings()
router = APIRouter(prefix="/videos", tags=["Videos"])


def _admission_status(exc: AdmissionError) -> int:
    if isinstance(exc, VideoNotFoundError):
        return 404
    if isinstance(exc, (AlreadyAnalyzedError, AnalysisInProgressError)):
        return 409
    return 400


@router.get("", response_model=VideoListResponse)
async def list_videos(
    status: Optional[VideoStatus] = None,
    sensitivity: Optional[SensitivityStatus] = None,
    tenant_id: Optional[str] = None,
    limit: int = Query(200, ge=1, le=1000),
):
    """List videos, newest first, with status and verdict counts."""
    videos = await video_store.list(status=status, sensitivity=sensitivity, tenant_id=tenant_id, limit=limit)
    return VideoListResponse(
        count=len(videos),
        stats=VideoStats(**video_store.summarize(videos)),
        data=[VideoRecordSchema.from_video(v) for v in videos],
    )


@router.get("/{video_id}", response_model=VideoRecordSchema)
async def get_video(video_id: str):
    video = await video_store.get(video_id)
    if not video:
        raise HTTPException(status_code=404, detail="Video not found")
    return VideoRecordSchema.from_video(video)


@router.post("/{video_id}/analyze", response_model=TriggerResponse, status_code=202)
async def trigger_analysis(video_id: str):
    """
    Start sensitivity analysis in the background.

    The outcome is only observable through the record and the
    ``analysis-complete`` event.
    """
    try:
        await analysis_service.trigger(video_id)
    except AdmissionError as e:
        raise HTTPException(status_code=_admission_status(e), detail=str(e))
    return TriggerResponse(video_id=video_id)


@router.post("/{video_id}/reset", response_model=VideoRecordSchema)
async def reset_analysis(video_id: str):
    """Revert a processed or failed video to ``uploaded`` with a pending verdict."""
    if analysis_service.is_in_flight(video_id):
        raise HTTPException(status_code=409, detail="Analysis already in progress")
    try:
        video = await video_store.reset(video_id, lease_seconds=settings.analysis_lease_seconds)
    except AdmissionError as e:
        raise HTTPException(status_code=_admission_status(e), detail=str(e))
    except InvalidTransitionError as e:
        raise HTTPException(status_code=409, detail=str(e))
    return VideoRecordSchema.from_video(video)


@router.get("/{video_id}/events", response_model=List[AnalysisEventSchema])
async def replay_events(
    video_id: str,
    after: int = Query(0, ge=0, description="Last sequence number already seen"),
    limit: int = Query(500, ge=1, le=1000),
):
    """Buffered analysis events for a video (in-memory, best effort)."""
    return [
        AnalysisEventSchema(**e.to_dict())
        for e in event_hub.replay(video_id, after_sequence=after, limit=limit)
    ]
