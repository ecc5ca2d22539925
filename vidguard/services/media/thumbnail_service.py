"""
Best-effort thumbnail generation.

Runs beside the analysis, never blocks it, and never raises: every failure
is logged and dropped.
"""
from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

from vidguard.core.config import get_settings

logger = logging.getLogger(__name__)
settings = get_settings()


def thumbnail_timestamp(duration: float) -> float:
    ts = min(1.0, 0.1 * (duration or 0.0))
    return ts if ts > 0 else 1.0


class ThumbnailService:
    def __init__(self, toolkit, store, thumbnail_dir: Optional[str] = None, width: Optional[int] = None):
        self.toolkit = toolkit
        self.store = store
        self.thumbnail_dir = Path(thumbnail_dir or settings.thumbnail_dir)
        self.width = width or settings.thumbnail_width

    async def generate_if_missing(self, video_id: str, source: str | Path, thumbnail_path: Optional[str], duration: float) -> Optional[Path]:
        if thumbnail_path:
            return None
        target = self.thumbnail_dir / f"{video_id}.jpg"
        try:
            out = await self.toolkit.generate_thumbnail(
                source, thumbnail_timestamp(duration), target, self.width,
            )
            await self.store.set_thumbnail(video_id, str(out))
            logger.info(f"Thumbnail generated for {video_id}")
            return out
        except Exception as e:
            logger.warning(f"Thumbnail generation failed for {video_id}: {e}")
            return None
