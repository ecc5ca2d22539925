"""
VidGuard Pixel Classifier — skin-tone ratio per frame.

Two independent colour-space heuristics are evaluated per sampled pixel and a
pixel counts as skin when either holds:

  RGB rule     R>95, G>40, B>20, R>G, R>B, max-min>15, |R-G|>15
  YCbCr rule   Y>80, 85<=Cb<=135, 135<=Cr<=180  (BT.601 full-range)

Large frames are subsampled on both axes with a stride chosen so that at most
roughly ``sample_limit`` pixels are inspected.
"""
from __future__ import annotations

import math
from dataclasses import asdict, dataclass
from typing import Dict, Sequence

import numpy as np


@dataclass(frozen=True)
class FrameStatistics:
    avg: float
    max: float
    frame_count: int

    def to_dict(self) -> Dict[str, float]:
        return asdict(self)


def sampling_stride(total_pixels: int, base_stride: int = 1, sample_limit: int = 10000) -> int:
    if total_pixels <= 0:
        return max(base_stride, 1)
    return max(base_stride, math.ceil(math.sqrt(total_pixels / sample_limit)), 1)


def rgb_skin_mask(r: np.ndarray, g: np.ndarray, b: np.ndarray) -> np.ndarray:
    spread = np.maximum(np.maximum(r, g), b) - np.minimum(np.minimum(r, g), b)
    return (
        (r > 95) & (g > 40) & (b > 20)
        & (r > g) & (r > b)
        & (spread > 15)
        & (np.abs(r - g) > 15)
    )


def ycbcr_skin_mask(r: np.ndarray, g: np.ndarray, b: np.ndarray) -> np.ndarray:
    y = 0.299 * r + 0.587 * g + 0.114 * b
    cb = 128 - 0.168736 * r - 0.331264 * g + 0.5 * b
    cr = 128 + 0.5 * r - 0.418688 * g - 0.081312 * b
    return (y > 80) & (cb >= 85) & (cb <= 135) & (cr >= 135) & (cr <= 180)


def skin_mask(rgb: np.ndarray) -> np.ndarray:
    """Boolean mask over an ``(..., 3)`` RGB array."""
    px = rgb[..., :3].astype(np.float64)
    r, g, b = px[..., 0], px[..., 1], px[..., 2]
    return rgb_skin_mask(r, g, b) | ycbcr_skin_mask(r, g, b)


def skin_ratio(pixels: np.ndarray, base_stride: int = 1, sample_limit: int = 10000) -> float:
    """Fraction of sampled pixels flagged as skin, in ``[0, 1]``."""
    if pixels.ndim != 3 or pixels.shape[0] == 0 or pixels.shape[1] == 0:
        return 0.0
    h, w = pixels.shape[:2]
    stride = sampling_stride(h * w, base_stride, sample_limit)
    sampled = pixels[::stride, ::stride]
    total = sampled.shape[0] * sampled.shape[1]
    if total == 0:
        return 0.0
    return float(np.count_nonzero(skin_mask(sampled))) / total


def aggregate_ratios(ratios: Sequence[float]) -> FrameStatistics:
    if not ratios:
        return FrameStatistics(avg=0.0, max=0.0, frame_count=0)
    return FrameStatistics(
        avg=round(sum(ratios) / len(ratios), 4),
        max=round(max(ratios), 4),
        frame_count=len(ratios),
    )
