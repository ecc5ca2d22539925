"""Exception hierarchy for VidGuard."""
from __future__ import annotations


class VidGuardError(Exception):
    """Base exception for all VidGuard errors."""

    pass


# ── Admission ────────────────────────────────────────────────────────────

class AdmissionError(VidGuardError):
    """Raised synchronously when an analysis trigger is refused."""

    reason = "rejected"

    def __init__(self, video_id: str, message: str | None = None):
        self.video_id = video_id
        super().__init__(message or f"{self.reason}: {video_id}")


class VideoNotFoundError(AdmissionError):
    reason = "not_found"

    def __init__(self, video_id: str):
        super().__init__(video_id, "Video not found")


class AlreadyAnalyzedError(AdmissionError):
    reason = "already_analyzed"

    def __init__(self, video_id: str):
        super().__init__(video_id, "Video already analyzed")


class AnalysisInProgressError(AdmissionError):
    reason = "already_in_progress"

    def __init__(self, video_id: str):
        super().__init__(video_id, "Analysis already in progress")


# ── Media ────────────────────────────────────────────────────────────────

class MediaToolError(VidGuardError):
    """Raised when an ffmpeg/ffprobe invocation fails or times out."""

    pass


class FrameExtractionError(MediaToolError):
    """Raised when frames could not be materialized for a run."""

    pass


# ── State machine ────────────────────────────────────────────────────────

class InvalidTransitionError(VidGuardError):
    """Raised on a video status change the lifecycle does not allow."""

    def __init__(self, current: str, target: str):
        self.current = current
        self.target = target
        super().__init__(f"Cannot move video from {current!r} to {target!r}")
