"""
VidGuard Media Toolkit — ffprobe/ffmpeg wrappers and raster decoding.

All decoder invocations run in worker threads so the event loop stays free
while ffmpeg works. ``settings.media_timeout_seconds`` bounds each call when
set; expiry raises MediaToolError like any other decoder failure.
"""
from __future__ import annotations

import asyncio
import json
import logging
import subprocess
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

import numpy as np
from PIL import Image

from vidguard.core.config import get_settings
from vidguard.core.exceptions import FrameExtractionError, MediaToolError

logger = logging.getLogger(__name__)
settings = get_settings()


def decode_raster(path: str | Path) -> np.ndarray:
    """Decode an image file to an ``(H, W, 3)`` uint8 RGB array."""
    with Image.open(path) as img:
        return np.asarray(img.convert("RGB"), dtype=np.uint8)


class MediaToolkit:
    """Probing and frame materialization backed by the ffmpeg CLI."""

    def __init__(
        self,
        ffmpeg_binary: Optional[str] = None,
        ffprobe_binary: Optional[str] = None,
        timeout: Optional[float] = None,
    ):
        self.ffmpeg = ffmpeg_binary or settings.ffmpeg_binary
        self.ffprobe = ffprobe_binary or settings.ffprobe_binary
        self.timeout = timeout if timeout is not None else settings.media_timeout_seconds

    # ── Process Runner ───────────────────────────────────────────────────

    def _run(self, cmd: List[str]) -> subprocess.CompletedProcess:
        try:
            return subprocess.run(
                cmd, check=True, capture_output=True, text=True, timeout=self.timeout,
            )
        except FileNotFoundError as e:
            raise MediaToolError(f"{cmd[0]} not found on PATH") from e
        except subprocess.TimeoutExpired as e:
            raise MediaToolError(f"{cmd[0]} timed out after {self.timeout}s") from e
        except subprocess.CalledProcessError as e:
            stderr = (e.stderr or "").strip()[-500:]
            raise MediaToolError(f"{cmd[0]} exited with {e.returncode}: {stderr}") from e

    # ── Probe ────────────────────────────────────────────────────────────

    async def probe(self, path: str | Path) -> Dict[str, Any]:
        """Raw ffprobe JSON: ``{"format": {...}, "streams": [...]}``."""
        cmd = [
            self.ffprobe, "-v", "quiet", "-print_format", "json",
            "-show_format", "-show_streams", str(path),
        ]
        out = await asyncio.to_thread(self._run, cmd)
        try:
            return json.loads(out.stdout or "{}")
        except json.JSONDecodeError as e:
            raise MediaToolError(f"Unparseable ffprobe output for {path}") from e

    # ── Frames ───────────────────────────────────────────────────────────

    async def extract_frame(
        self, path: str | Path, timestamp: float, out_path: str | Path, width: int,
    ) -> Path:
        """Grab a single frame at ``timestamp`` seconds, scaled to ``width`` px wide."""
        out_path = Path(out_path)
        cmd = [
            self.ffmpeg, "-ss", f"{timestamp:.3f}", "-i", str(path),
            "-frames:v", "1", "-vf", f"scale={width}:-2", "-q:v", "3",
            str(out_path), "-y", "-loglevel", "error",
        ]
        await asyncio.to_thread(self._run, cmd)
        if not out_path.exists():
            raise MediaToolError(f"ffmpeg produced no frame at {timestamp:.3f}s")
        return out_path

    async def extract_frames(
        self,
        path: str | Path,
        timestamps: Sequence[float],
        out_dir: str | Path,
        width: int,
    ) -> List[Path]:
        """Materialize one JPEG per timestamp into ``out_dir``."""
        out_dir = Path(out_dir)
        out_dir.mkdir(parents=True, exist_ok=True)
        frames: List[Path] = []
        for i, ts in enumerate(timestamps):
            target = out_dir / f"frame_{i:03d}.jpg"
            try:
                frames.append(await self.extract_frame(path, ts, target, width))
            except MediaToolError as e:
                raise FrameExtractionError(f"Frame {i} at {ts:.3f}s: {e}") from e
        return frames

    async def generate_thumbnail(
        self, path: str | Path, timestamp: float, out_path: str | Path, width: int,
    ) -> Path:
        out_path = Path(out_path)
        out_path.parent.mkdir(parents=True, exist_ok=True)
        return await self.extract_frame(path, timestamp, out_path, width)


media_toolkit = MediaToolkit()
