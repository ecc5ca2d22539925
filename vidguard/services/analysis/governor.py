"""
VidGuard Retry/Failure Governor.

Wraps one analysis run for one video:

  - refuses to start extraction once the retry budget is spent and records a
    terminal ``error`` verdict instead
  - otherwise counts the attempt, runs the pipeline and turns any exception
    into a recorded failure plus a failure completion event
  - removes the run's frame directory on every exit path
"""
from __future__ import annotations

import asyncio
import enum
import logging
import shutil
import time
from pathlib import Path
from typing import Awaitable, Callable, Optional

from vidguard.core.exceptions import VideoNotFoundError
from vidguard.core.metrics import ANALYSIS_DURATION, ANALYSIS_RUNS
from vidguard.models.models import SensitivityStatus, Video, VideoStatus, utcnow
from vidguard.services.analysis.progress import AnalysisStage, ProgressReporter
from vidguard.services.analysis.store import INTERRUPTED_MESSAGE

logger = logging.getLogger(__name__)

MAX_RETRIES_REASON = "max retries exceeded"

Pipeline = Callable[[Video, Path, ProgressReporter], Awaitable[Video]]


class RunOutcome(str, enum.Enum):
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    TERMINAL_FAILURE = "terminal_failure"


class RetryGovernor:
    def __init__(self, store, hub, max_retries: int, frames_root: str | Path):
        self.store = store
        self.hub = hub
        self.max_retries = max_retries
        self.frames_root = Path(frames_root)

    def frame_dir(self, video_id: str) -> Path:
        return self.frames_root / video_id

    async def run(self, video_id: str, pipeline: Pipeline) -> RunOutcome:
        started = time.monotonic()
        progress = ProgressReporter(self.hub, video_id)
        frame_dir = self.frame_dir(video_id)
        outcome = RunOutcome.FAILED

        try:
            video = await self.store.get(video_id)
            if video is None:
                raise VideoNotFoundError(video_id)

            if video.analysis_retries >= self.max_retries:
                await self._record_terminal_failure(video, progress, started)
                outcome = RunOutcome.TERMINAL_FAILURE
                return outcome

            video.analysis_retries += 1
            video.last_analysis_attempt = utcnow()
            await self.store.save(video)
            logger.info(f"Analysis attempt {video.analysis_retries}/{self.max_retries} for {video_id}")
            progress.tick(AnalysisStage.QUEUED)

            self._cleanup(frame_dir)
            video = await pipeline(video, frame_dir, progress)

            progress.complete(
                success=True,
                status=VideoStatus(video.status).value,
                sensitivity_status=SensitivityStatus(video.sensitivity_status).value,
                confidence=video.sensitivity_confidence,
                reason=video.sensitivity_reason,
                processing_time=time.monotonic() - started,
            )
            outcome = RunOutcome.SUCCEEDED
            logger.info(
                f"✓ Analyzed {video_id}: {video.sensitivity_status.value} "
                f"({video.sensitivity_confidence}) — {video.sensitivity_reason}"
            )
            return outcome

        except asyncio.CancelledError:
            logger.warning(f"Analysis cancelled for {video_id}; releasing the record")
            await asyncio.shield(self._record_failure(video_id, INTERRUPTED_MESSAGE, progress, started))
            raise

        except Exception as e:
            logger.exception(f"✗ Analysis failed for {video_id}: {e}")
            await self._record_failure(video_id, str(e) or e.__class__.__name__, progress, started)
            outcome = RunOutcome.FAILED
            return outcome

        finally:
            self._cleanup(frame_dir)
            ANALYSIS_RUNS.labels(outcome.value).inc()
            ANALYSIS_DURATION.observe(time.monotonic() - started)

    # ── Failure Recording ────────────────────────────────────────────────

    async def _record_terminal_failure(
        self, video: Video, progress: ProgressReporter, started: float,
    ) -> None:
        now = utcnow()
        video.record_verdict(
            SensitivityStatus.ERROR,
            MAX_RETRIES_REASON,
            0.0,
            {"analysis_retries": video.analysis_retries, "max_retries": self.max_retries},
            at=now,
        )
        video.mark_failed(MAX_RETRIES_REASON, at=now)
        await self.store.save(video)
        logger.warning(f"Retry budget exhausted for {video.id} ({video.analysis_retries} attempts)")
        progress.complete(
            success=False,
            status=VideoStatus.FAILED.value,
            sensitivity_status=SensitivityStatus.ERROR.value,
            confidence=0.0,
            reason=MAX_RETRIES_REASON,
            processing_time=time.monotonic() - started,
            error=MAX_RETRIES_REASON,
        )

    async def _record_failure(
        self, video_id: str, message: str, progress: ProgressReporter, started: float,
    ) -> None:
        video: Optional[Video] = None
        try:
            video = await self.store.get(video_id)
            if video is not None and not video.analysis_done:
                video.mark_failed(message)
                await self.store.save(video)
        except Exception:
            logger.exception(f"Could not record failure for {video_id}")

        progress.complete(
            success=False,
            status=VideoStatus.FAILED.value,
            sensitivity_status=(
                SensitivityStatus(video.sensitivity_status).value
                if video is not None else SensitivityStatus.PENDING.value
            ),
            confidence=video.sensitivity_confidence if video is not None else 0.0,
            reason=video.sensitivity_reason if video is not None else "",
            processing_time=time.monotonic() - started,
            error=message,
        )

    # ── Cleanup ──────────────────────────────────────────────────────────

    @staticmethod
    def _cleanup(frame_dir: Path) -> None:
        """Remove the run's transient frames."""
        try:
            shutil.rmtree(frame_dir, ignore_errors=True)
        except Exception as e:
            logger.warning(f"Cleanup failed for {frame_dir}: {e}")
