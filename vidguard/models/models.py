"""
VidGuard ORM Models — the video record and its analysis lifecycle.

Lifecycle::

    uploaded ──► processing ──► processed
                    ▲    │
                    │    └────► failed ──┐
                    └────────────────────┘   (re-trigger while retries remain)

    processed / failed ──► uploaded          (explicit reset only)
"""
from __future__ import annotations

import enum
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from sqlalchemy import JSON, Boolean, DateTime, Enum, Float, Index, Integer, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from vidguard.core.database import Base
from vidguard.core.exceptions import InvalidTransitionError


# ═══════════════════════════════════════════════════════════════════════
# Enums
# ═══════════════════════════════════════════════════════════════════════

class VideoStatus(str, enum.Enum):
    UPLOADED = "uploaded"
    PROCESSING = "processing"
    PROCESSED = "processed"
    FAILED = "failed"


class SensitivityStatus(str, enum.Enum):
    PENDING = "pending"
    SAFE = "safe"
    SENSITIVE = "sensitive"
    ERROR = "error"


ALLOWED_TRANSITIONS: Dict[VideoStatus, frozenset] = {
    VideoStatus.UPLOADED: frozenset({VideoStatus.PROCESSING}),
    VideoStatus.PROCESSING: frozenset({VideoStatus.PROCESSED, VideoStatus.FAILED}),
    VideoStatus.PROCESSED: frozenset({VideoStatus.UPLOADED}),
    VideoStatus.FAILED: frozenset({VideoStatus.PROCESSING, VideoStatus.UPLOADED}),
}


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ═══════════════════════════════════════════════════════════════════════
# Video
# ═══════════════════════════════════════════════════════════════════════

class Video(Base):
    __tablename__ = "videos"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    tenant_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True, index=True)
    owner_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    original_name: Mapped[str] = mapped_column(String(512), default="")
    storage_path: Mapped[str] = mapped_column(String(1024))
    thumbnail_path: Mapped[Optional[str]] = mapped_column(String(1024), nullable=True)
    status: Mapped[VideoStatus] = mapped_column(Enum(VideoStatus), default=VideoStatus.UPLOADED, index=True)

    # Probe metadata
    duration_seconds: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    width: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    height: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    bitrate: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    codec: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    frame_rate: Mapped[Optional[float]] = mapped_column(Float, nullable=True)

    # Analysis bookkeeping
    analysis_requested: Mapped[bool] = mapped_column(Boolean, default=False)
    analysis_done: Mapped[bool] = mapped_column(Boolean, default=False)
    analysis_retries: Mapped[int] = mapped_column(Integer, default=0)
    last_analysis_attempt: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    processing_start_time: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    processing_end_time: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    error_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    error_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    # Sensitivity verdict
    sensitivity_status: Mapped[SensitivityStatus] = mapped_column(
        Enum(SensitivityStatus), default=SensitivityStatus.PENDING, index=True,
    )
    sensitivity_reason: Mapped[str] = mapped_column(String(256), default="")
    sensitivity_confidence: Mapped[float] = mapped_column(Float, default=0.0)
    sensitivity_checked_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    sensitivity_details: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(),
    )

    __table_args__ = (
        Index("ix_videos_status_retries", "status", "analysis_retries"),
    )

    # ── Nested views ─────────────────────────────────────────────────────

    @property
    def sensitivity(self) -> Dict[str, Any]:
        return {
            "status": self.sensitivity_status,
            "reason": self.sensitivity_reason,
            "confidence": self.sensitivity_confidence,
            "checked_at": self.sensitivity_checked_at,
            "details": self.sensitivity_details,
        }

    @property
    def error(self) -> Optional[Dict[str, Any]]:
        if self.error_message is None:
            return None
        return {"message": self.error_message, "timestamp": self.error_at}

    # ── State machine ────────────────────────────────────────────────────

    def transition_to(self, target: VideoStatus) -> None:
        current = VideoStatus(self.status or VideoStatus.UPLOADED)
        if target == current:
            return
        if target not in ALLOWED_TRANSITIONS[current]:
            raise InvalidTransitionError(current.value, target.value)
        self.status = target

    def record_verdict(
        self,
        status: SensitivityStatus,
        reason: str,
        confidence: float,
        details: Optional[dict] = None,
        at: Optional[datetime] = None,
    ) -> None:
        at = at or utcnow()
        self.sensitivity_status = status
        self.sensitivity_reason = reason
        self.sensitivity_confidence = confidence
        self.sensitivity_details = details
        self.sensitivity_checked_at = at

    def mark_processed(self, at: Optional[datetime] = None) -> None:
        self.transition_to(VideoStatus.PROCESSED)
        self.analysis_done = True
        self.analysis_requested = False
        self.processing_end_time = at or utcnow()
        self.error_message = None
        self.error_at = None

    def mark_failed(self, message: str, at: Optional[datetime] = None) -> None:
        at = at or utcnow()
        self.transition_to(VideoStatus.FAILED)
        self.analysis_requested = False
        self.processing_end_time = at
        self.error_message = message[:2000]
        self.error_at = at

    def reset_analysis(self) -> None:
        """Explicit external reset: back to ``uploaded`` with a pending verdict."""
        self.transition_to(VideoStatus.UPLOADED)
        self.analysis_requested = False
        self.analysis_done = False
        self.analysis_retries = 0
        self.last_analysis_attempt = None
        self.processing_start_time = None
        self.processing_end_time = None
        self.error_message = None
        self.error_at = None
        self.sensitivity_status = SensitivityStatus.PENDING
        self.sensitivity_reason = ""
        self.sensitivity_confidence = 0.0
        self.sensitivity_checked_at = None
        self.sensitivity_details = None

    def __repr__(self) -> str:
        return f"<Video {self.id} status={self.status} sensitivity={self.sensitivity_status}>"
