"""Prometheus instruments for the analysis pipeline."""
from __future__ import annotations

from prometheus_client import Counter, Histogram

ANALYSIS_RUNS = Counter(
    "vidguard_analysis_runs_total",
    "Analysis runs by outcome",
    ["outcome"],
)

ANALYSIS_DURATION = Histogram(
    "vidguard_analysis_duration_seconds",
    "Wall time of one analysis run",
    buckets=(1, 2.5, 5, 10, 30, 60, 120, 300, 600),
)

ADMISSION_REJECTIONS = Counter(
    "vidguard_admission_rejections_total",
    "Analysis triggers refused by admission control",
    ["reason"],
)

FRAMES_CLASSIFIED = Counter(
    "vidguard_frames_classified_total",
    "Frames passed through the pixel classifier",
)

FRAME_DECODE_FAILURES = Counter(
    "vidguard_frame_decode_failures_total",
    "Frames whose raster could not be decoded (ratio degraded to 0)",
)

VERDICTS = Counter(
    "vidguard_verdicts_total",
    "Sensitivity verdicts issued",
    ["status"],
)
