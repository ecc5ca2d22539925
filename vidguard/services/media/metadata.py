"""
Metadata extraction from ffprobe output.

Probe failure is not fatal: the caller gets an all-default VideoMetadata
with ``has_video_stream=False`` and the decision rules turn that into a
verdict instead of a pipeline error.
"""
from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)


@dataclass
class VideoMetadata:
    duration: float = 0.0
    width: Optional[int] = None
    height: Optional[int] = None
    bitrate: Optional[int] = None
    codec: Optional[str] = None
    frame_rate: float = 0.0
    has_video_stream: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def parse_frame_rate(value: Optional[str]) -> float:
    """``"30000/1001"`` → 29.97; zero denominators and junk map to 0."""
    if not value:
        return 0.0
    if "/" not in value:
        try:
            return float(value)
        except ValueError:
            return 0.0
    num, _, den = value.partition("/")
    try:
        num_f, den_f = float(num), float(den)
    except ValueError:
        return 0.0
    if den_f == 0:
        return 0.0
    return round(num_f / den_f, 3)


def _to_int(value: Any) -> Optional[int]:
    try:
        return int(value) if value not in (None, "", "N/A") else None
    except (TypeError, ValueError):
        return None


def _to_float(value: Any) -> float:
    try:
        return float(value) if value not in (None, "", "N/A") else 0.0
    except (TypeError, ValueError):
        return 0.0


def parse_probe(probe: Dict[str, Any]) -> VideoMetadata:
    fmt = probe.get("format") or {}
    streams = probe.get("streams") or []
    video_stream = next((s for s in streams if s.get("codec_type") == "video"), None)

    duration = _to_float(fmt.get("duration"))
    if not duration and video_stream:
        duration = _to_float(video_stream.get("duration"))

    if video_stream is None:
        return VideoMetadata(duration=duration, bitrate=_to_int(fmt.get("bit_rate")))

    return VideoMetadata(
        duration=duration,
        width=_to_int(video_stream.get("width")),
        height=_to_int(video_stream.get("height")),
        bitrate=_to_int(fmt.get("bit_rate")),
        codec=video_stream.get("codec_name"),
        frame_rate=parse_frame_rate(video_stream.get("r_frame_rate")),
        has_video_stream=True,
    )


async def extract_metadata(toolkit, path: str | Path) -> VideoMetadata:
    """Probe ``path`` through ``toolkit``; any failure yields empty metadata."""
    try:
        probe = await toolkit.probe(path)
    except Exception as e:
        logger.warning(f"Probe failed for {path}, continuing with empty metadata: {e}")
        return VideoMetadata()
    meta = parse_probe(probe)
    logger.info(
        f"Probed {Path(path).name}: {meta.duration:.1f}s "
        f"{meta.width}x{meta.height} {meta.codec} @ {meta.frame_rate}fps"
    )
    return meta
