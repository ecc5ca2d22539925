"""
Frame sampling — evenly spaced interior timestamps.

For a duration ``D`` and ``K`` samples the timestamps are ``i * D / (K + 1)``
for ``i = 1..K``, so neither the first nor the last instant is used. Unknown
or zero durations get a single frame at the midpoint ``D / 2``.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import List

from vidguard.core.exceptions import FrameExtractionError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SampledFrame:
    index: int
    timestamp: float
    path: Path


def sample_timestamps(duration: float, count: int = 8) -> List[float]:
    if count < 1:
        raise ValueError(f"count must be >= 1, got {count}")
    if not duration or duration <= 0:
        return [max(duration or 0.0, 0.0) / 2]
    step = duration / (count + 1)
    return [i * step for i in range(1, count + 1)]


class FrameSampler:
    """Materializes sampled frames into a run-owned directory."""

    def __init__(self, toolkit, count: int = 8, width: int = 320):
        self.toolkit = toolkit
        self.count = count
        self.width = width

    async def sample(self, source: str | Path, duration: float, out_dir: Path) -> List[SampledFrame]:
        timestamps = sample_timestamps(duration, self.count)
        paths = await self.toolkit.extract_frames(source, timestamps, out_dir, self.width)
        if not paths:
            raise FrameExtractionError(f"No frames extracted from {source}")
        logger.info(f"Sampled {len(paths)} frames from {Path(source).name} into {out_dir}")
        return [
            SampledFrame(index=i, timestamp=round(ts, 3), path=Path(p))
            for i, (ts, p) in enumerate(zip(timestamps, paths))
        ]
