"""
VidGuard Analysis Service — admission control and the sensitivity pipeline.

Pipeline (one detached asyncio task per admitted video):
 1. Probe metadata (ffprobe) — failures degrade to empty metadata
 2. Start thumbnail generation in the background (best effort)
 3. Sample K interior frames (ffmpeg, 320 px wide) into a run-owned directory
 4. Classify every frame concurrently (skin ratio; decode errors → 0)
 5. Aggregate ratios → decision rules → verdict
 6. Persist the verdict and publish completion

Everything from step 1 on runs under the RetryGovernor, which bounds attempts,
records failures and removes the frame directory on every exit path.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, List, Optional, Sequence, Set

import numpy as np

from vidguard.core.config import Settings, get_settings
from vidguard.core.events import event_hub
from vidguard.core.exceptions import AdmissionError, AnalysisInProgressError
from vidguard.core.metrics import ADMISSION_REJECTIONS, FRAME_DECODE_FAILURES, FRAMES_CLASSIFIED, VERDICTS
from vidguard.ml.sensitivity.decision_engine import DecisionThresholds, decide
from vidguard.ml.vision.skin_classifier import aggregate_ratios, skin_ratio
from vidguard.models.models import Video
from vidguard.services.analysis.governor import RetryGovernor, RunOutcome
from vidguard.services.analysis.progress import AnalysisStage, ProgressReporter
from vidguard.services.analysis.store import video_store
from vidguard.services.media.ffmpeg_toolkit import decode_raster, media_toolkit
from vidguard.services.media.frame_sampler import FrameSampler, SampledFrame
from vidguard.services.media.metadata import extract_metadata
from vidguard.services.media.thumbnail_service import ThumbnailService

logger = logging.getLogger(__name__)


@dataclass
class AnalysisTicket:
    """Handle returned by an accepted trigger."""

    video_id: str
    task: asyncio.Task

    async def wait(self) -> RunOutcome:
        return await self.task


class AnalysisService:
    """Orchestrates admission and the per-video analysis run."""

    def __init__(
        self,
        store=None,
        toolkit=None,
        hub=None,
        decoder: Optional[Callable[[Path], np.ndarray]] = None,
        settings: Optional[Settings] = None,
        decide_fn=decide,
    ):
        self.settings = settings or get_settings()
        self.store = store or video_store
        self.toolkit = toolkit or media_toolkit
        self.hub = hub or event_hub
        self.decoder = decoder or decode_raster
        self.decide_fn = decide_fn
        self.thresholds = DecisionThresholds.from_settings(self.settings)

        self.governor = RetryGovernor(
            self.store, self.hub,
            max_retries=self.settings.max_analysis_retries,
            frames_root=self.settings.frames_dir,
        )
        self.sampler = FrameSampler(
            self.toolkit,
            count=self.settings.frame_sample_count,
            width=self.settings.frame_width,
        )
        self.thumbnails = ThumbnailService(
            self.toolkit, self.store,
            thumbnail_dir=self.settings.thumbnail_dir,
            width=self.settings.thumbnail_width,
        )

        self._locks: Dict[str, asyncio.Lock] = {}
        self._in_flight: Set[str] = set()
        self._background: Set[asyncio.Task] = set()

    # ── Admission Control ────────────────────────────────────────────────

    def is_in_flight(self, video_id: str) -> bool:
        return video_id in self._in_flight

    async def trigger(self, video_id: str) -> AnalysisTicket:
        """
        Admit a video for analysis and start the run in the background.

        Raises VideoNotFoundError, AlreadyAnalyzedError or
        AnalysisInProgressError without starting any work.
        """
        lock = self._locks.setdefault(video_id, asyncio.Lock())
        async with lock:
            try:
                if video_id in self._in_flight:
                    raise AnalysisInProgressError(video_id)
                await self.store.try_admit(video_id)
            except AdmissionError as e:
                ADMISSION_REJECTIONS.labels(e.reason).inc()
                logger.info(f"Analysis trigger rejected for {video_id}: {e}")
                raise
            self._in_flight.add(video_id)

        task = asyncio.create_task(self._run(video_id), name=f"analysis-{video_id}")
        self._track(task)
        logger.info(f"Analysis started in background for {video_id}")
        return AnalysisTicket(video_id=video_id, task=task)

    async def _run(self, video_id: str) -> RunOutcome:
        try:
            return await self.governor.run(video_id, self._pipeline)
        finally:
            self._in_flight.discard(video_id)
            lock = self._locks.get(video_id)
            if lock is not None and not lock.locked():
                self._locks.pop(video_id, None)

    # ── Pipeline ─────────────────────────────────────────────────────────

    async def _pipeline(self, video: Video, frame_dir: Path, progress: ProgressReporter) -> Video:
        source = self.resolve_source(video.storage_path)

        progress.tick(AnalysisStage.METADATA)
        meta = await extract_metadata(self.toolkit, source)
        video.duration_seconds = meta.duration
        video.width = meta.width
        video.height = meta.height
        video.bitrate = meta.bitrate
        video.codec = meta.codec
        video.frame_rate = meta.frame_rate
        await self.store.save(video)

        self._track(asyncio.create_task(
            self.thumbnails.generate_if_missing(video.id, source, video.thumbnail_path, meta.duration),
            name=f"thumbnail-{video.id}",
        ))

        ratios: List[float] = []
        if meta.has_video_stream:
            progress.tick(AnalysisStage.SAMPLING)
            frames = await self.sampler.sample(source, meta.duration, frame_dir)
            progress.tick(AnalysisStage.CLASSIFYING)
            ratios = await self.classify_frames(frames)
        else:
            logger.warning(f"No video stream in {source}; skipping frame sampling")

        progress.tick(AnalysisStage.AGGREGATING)
        stats = aggregate_ratios(ratios)

        progress.tick(AnalysisStage.DECIDING)
        decision = self.decide_fn(stats, meta.duration, meta.has_video_stream, self.thresholds)

        progress.tick(AnalysisStage.SAVING)
        video.record_verdict(decision.status, decision.reason, decision.confidence, decision.details)
        video.mark_processed()
        await self.store.save(video)
        VERDICTS.labels(decision.status.value).inc()

        progress.tick(AnalysisStage.COMPLETE)
        return video

    # ── Frame Classification ─────────────────────────────────────────────

    async def classify_frames(self, frames: Sequence[SampledFrame]) -> List[float]:
        """Skin ratio per frame; a frame that fails to decode counts as 0."""
        results = await asyncio.gather(
            *(asyncio.to_thread(self._classify_frame, f.path) for f in frames),
            return_exceptions=True,
        )
        ratios: List[float] = []
        for frame, result in zip(frames, results):
            if isinstance(result, Exception):
                logger.warning(f"Frame {frame.index} ({frame.path.name}) failed to decode: {result}")
                FRAME_DECODE_FAILURES.inc()
                ratios.append(0.0)
            elif isinstance(result, BaseException):
                raise result
            else:
                ratios.append(result)
        FRAMES_CLASSIFIED.inc(len(frames))
        return ratios

    def _classify_frame(self, path: Path) -> float:
        pixels = self.decoder(path)
        return skin_ratio(
            pixels,
            base_stride=self.settings.pixel_base_stride,
            sample_limit=self.settings.pixel_sample_limit,
        )

    # ── Helpers ──────────────────────────────────────────────────────────

    def resolve_source(self, storage_path: str) -> Path:
        path = Path(storage_path)
        return path if path.is_absolute() else Path(self.settings.media_root) / path

    def _track(self, task: asyncio.Task) -> None:
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def drain(self) -> None:
        """Wait for every run and thumbnail task started by this service."""
        while self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)


analysis_service = AnalysisService()
