"""
VidGuard Video Store — persistence gateway for video records.

The pipeline reads a record with ``get`` and writes it back with ``save``
before and after every stage. ``save`` overwrites every analysis-owned column
in one statement; the thumbnail column is owned by the thumbnail generator and
is written separately through ``set_thumbnail`` so the two concurrent writers
never clobber each other.

Admission uses ``try_admit``: a single conditional UPDATE that only matches
rows with ``analysis_requested = false AND analysis_done = false``, which makes
the check-and-mark atomic across processes.
"""
from __future__ import annotations

import logging
from collections import Counter
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from vidguard.core.database import async_session_factory
from vidguard.core.exceptions import AlreadyAnalyzedError, AnalysisInProgressError, VideoNotFoundError
from vidguard.models.models import SensitivityStatus, Video, VideoStatus, utcnow

logger = logging.getLogger(__name__)

INTERRUPTED_MESSAGE = "analysis interrupted"

# Columns the analysis pipeline owns; thumbnail_path is written by set_thumbnail only.
ANALYSIS_COLUMNS = (
    "status",
    "duration_seconds", "width", "height", "bitrate", "codec", "frame_rate",
    "analysis_requested", "analysis_done", "analysis_retries",
    "last_analysis_attempt", "processing_start_time", "processing_end_time",
    "error_message", "error_at",
    "sensitivity_status", "sensitivity_reason", "sensitivity_confidence",
    "sensitivity_checked_at", "sensitivity_details",
)


def is_stale(video: Video, lease_seconds: Optional[float], now: Optional[datetime] = None) -> bool:
    """True when an in-flight run has outlived ``lease_seconds``."""
    if lease_seconds is None or video.processing_start_time is None:
        return False
    started = video.processing_start_time
    if started.tzinfo is None:
        started = started.replace(tzinfo=timezone.utc)
    return (now or utcnow()) - started > timedelta(seconds=lease_seconds)


class VideoStore:
    """Async record store over SQLAlchemy."""

    def __init__(self, session_factory: Optional[async_sessionmaker[AsyncSession]] = None):
        self._session_factory = session_factory or async_session_factory

    # ── Reads ────────────────────────────────────────────────────────────

    async def get(self, video_id: str) -> Optional[Video]:
        async with self._session_factory() as db:
            return await db.get(Video, video_id)

    async def list(
        self,
        status: Optional[VideoStatus] = None,
        sensitivity: Optional[SensitivityStatus] = None,
        tenant_id: Optional[str] = None,
        limit: int = 200,
    ) -> List[Video]:
        query = select(Video).order_by(Video.created_at.desc())
        if status:
            query = query.where(Video.status == status)
        if sensitivity:
            query = query.where(Video.sensitivity_status == sensitivity)
        if tenant_id:
            query = query.where(Video.tenant_id == tenant_id)
        query = query.limit(limit)

        async with self._session_factory() as db:
            result = await db.execute(query)
            return list(result.scalars().all())

    async def list_retryable(self, max_retries: int, limit: int = 20) -> List[str]:
        """Ids of failed videos that still have retry budget left."""
        query = (
            select(Video.id)
            .where(
                Video.status == VideoStatus.FAILED,
                Video.analysis_requested.is_(False),
                Video.analysis_done.is_(False),
                Video.analysis_retries < max_retries,
            )
            .order_by(Video.updated_at.asc())
            .limit(limit)
        )
        async with self._session_factory() as db:
            result = await db.execute(query)
            return [str(r[0]) for r in result.all()]

    # ── Writes ───────────────────────────────────────────────────────────

    async def create(
        self,
        storage_path: str,
        original_name: str = "",
        tenant_id: Optional[str] = None,
        owner_id: Optional[str] = None,
    ) -> Video:
        """Register an uploaded file (status ``uploaded``, sensitivity ``pending``)."""
        video = Video(
            storage_path=storage_path,
            original_name=original_name or storage_path,
            tenant_id=tenant_id,
            owner_id=owner_id,
            status=VideoStatus.UPLOADED,
            analysis_requested=False,
            analysis_done=False,
            analysis_retries=0,
            sensitivity_status=SensitivityStatus.PENDING,
            sensitivity_reason="",
            sensitivity_confidence=0.0,
        )
        async with self._session_factory() as db:
            db.add(video)
            await db.commit()
            await db.refresh(video)
        logger.info(f"Registered video {video.id} ({video.original_name})")
        return video

    async def save(self, video: Video) -> None:
        values = {col: getattr(video, col) for col in ANALYSIS_COLUMNS}
        async with self._session_factory() as db:
            result = await db.execute(
                update(Video).where(Video.id == video.id).values(**values)
            )
            await db.commit()
        if result.rowcount == 0:
            raise VideoNotFoundError(video.id)

    async def set_thumbnail(self, video_id: str, path: str) -> None:
        async with self._session_factory() as db:
            await db.execute(
                update(Video).where(Video.id == video_id).values(thumbnail_path=path)
            )
            await db.commit()

    async def try_admit(self, video_id: str) -> Video:
        """
        Atomically mark a video as requested/processing.

        Raises the matching AdmissionError when the row is missing, already
        analyzed, or already in flight.
        """
        now = utcnow()
        async with self._session_factory() as db:
            result = await db.execute(
                update(Video)
                .where(
                    Video.id == video_id,
                    Video.analysis_requested.is_(False),
                    Video.analysis_done.is_(False),
                )
                .values(
                    analysis_requested=True,
                    status=VideoStatus.PROCESSING,
                    processing_start_time=now,
                    processing_end_time=None,
                    error_message=None,
                    error_at=None,
                )
            )
            await db.commit()

            if result.rowcount == 1:
                return await db.get(Video, video_id, populate_existing=True)

            video = await db.get(Video, video_id)
            if video is None:
                raise VideoNotFoundError(video_id)
            if video.analysis_done:
                raise AlreadyAnalyzedError(video_id)
            raise AnalysisInProgressError(video_id)

    async def reset(self, video_id: str, lease_seconds: Optional[float] = None) -> Video:
        """
        Explicit reset back to ``uploaded``; refused while a run is in flight.

        With ``lease_seconds`` a run that started longer ago than the lease is
        taken to be dead and the record is reset anyway.
        """
        async with self._session_factory() as db:
            video = await db.get(Video, video_id)
            if video is None:
                raise VideoNotFoundError(video_id)
            if video.analysis_requested:
                if not is_stale(video, lease_seconds):
                    raise AnalysisInProgressError(video_id)
                logger.warning(f"Resetting stale in-flight run for {video_id}")
                video.mark_failed(INTERRUPTED_MESSAGE)
            video.reset_analysis()
            await db.commit()
            await db.refresh(video)
        logger.info(f"Reset analysis state for video {video_id}")
        return video

    async def reclaim_stale(self, lease_seconds: float, now: Optional[datetime] = None) -> List[str]:
        """
        Fail runs left in ``processing`` past their lease by a dead process.

        Returns the reclaimed ids; they become eligible for the retry sweep.
        """
        now = now or utcnow()
        cutoff = now - timedelta(seconds=lease_seconds)
        stale = (
            Video.status == VideoStatus.PROCESSING,
            Video.analysis_requested.is_(True),
            Video.processing_start_time < cutoff,
        )
        async with self._session_factory() as db:
            result = await db.execute(select(Video.id).where(*stale))
            video_ids = [str(r[0]) for r in result.all()]
            if not video_ids:
                return []
            await db.execute(
                update(Video)
                .where(Video.id.in_(video_ids), *stale)
                .values(
                    status=VideoStatus.FAILED,
                    analysis_requested=False,
                    processing_end_time=now,
                    error_message=INTERRUPTED_MESSAGE,
                    error_at=now,
                )
            )
            await db.commit()
        logger.warning(f"Reclaimed {len(video_ids)} stale analysis runs")
        return video_ids

    # ── Aggregates ───────────────────────────────────────────────────────

    @staticmethod
    def summarize(videos: List[Video]) -> Dict[str, int]:
        """Per-status and per-verdict counts for a listing."""
        statuses = Counter(VideoStatus(v.status).value for v in videos)
        verdicts = Counter(SensitivityStatus(v.sensitivity_status).value for v in videos)
        stats = {"total": len(videos)}
        stats.update({s.value: statuses.get(s.value, 0) for s in VideoStatus})
        stats.update({s.value: verdicts.get(s.value, 0) for s in SensitivityStatus})
        return stats


video_store = VideoStore()
