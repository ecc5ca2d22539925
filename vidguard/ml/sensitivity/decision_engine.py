"""
VidGuard Sensitivity Decision Engine.

Pure mapping from aggregate frame statistics to a verdict. Rules are checked
in order and the first match wins:

  1. no video stream                    → error,     confidence 0
  2. duration below the minimum         → safe,      confidence 0.5
  3. avg or max above its threshold     → sensitive, confidence min(cap, max(avg, max))
  4. anything else                      → safe,      confidence 1 - min(avg, 0.5)

Input is aggregate statistics only; output is a Decision.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from vidguard.ml.vision.skin_classifier import FrameStatistics
from vidguard.models.models import SensitivityStatus

REASON_NO_VIDEO = "no video stream detected"
REASON_TOO_SHORT = "too short for analysis"
REASON_BOTH = "consistent skin-tone exposure detected across frames"
REASON_AVG = "elevated average skin-tone exposure across frames"
REASON_MAX = "high skin-tone exposure detected in at least one frame"
REASON_NORMAL = "normal visual content detected"


@dataclass(frozen=True)
class DecisionThresholds:
    min_duration: float = 5.0
    avg_threshold: float = 0.3
    max_threshold: float = 0.45
    confidence_cap: float = 0.95

    @classmethod
    def from_settings(cls, settings) -> "DecisionThresholds":
        return cls(
            min_duration=settings.min_duration_seconds,
            avg_threshold=settings.avg_skin_threshold,
            max_threshold=settings.max_skin_threshold,
            confidence_cap=settings.sensitive_confidence_cap,
        )

    def to_dict(self) -> Dict[str, float]:
        return {
            "avg": self.avg_threshold,
            "max": self.max_threshold,
            "min_duration": self.min_duration,
        }


@dataclass(frozen=True)
class Decision:
    status: SensitivityStatus
    reason: str
    confidence: float
    details: Dict[str, Any] = field(default_factory=dict)


def _confidence(value: float) -> float:
    return round(min(1.0, max(0.0, value)), 3)


def decide(
    stats: FrameStatistics,
    duration: float,
    has_video_stream: bool,
    thresholds: Optional[DecisionThresholds] = None,
) -> Decision:
    t = thresholds or DecisionThresholds()
    details = {
        "skin_ratio": stats.avg,
        "max_skin_ratio": stats.max,
        "frame_count": stats.frame_count,
        "thresholds": t.to_dict(),
    }

    if not has_video_stream:
        return Decision(SensitivityStatus.ERROR, REASON_NO_VIDEO, 0.0, details)

    if (duration or 0.0) < t.min_duration:
        return Decision(SensitivityStatus.SAFE, REASON_TOO_SHORT, 0.5, details)

    avg_hit = stats.avg > t.avg_threshold
    max_hit = stats.max > t.max_threshold
    if avg_hit or max_hit:
        if avg_hit and max_hit:
            reason = REASON_BOTH
        elif avg_hit:
            reason = REASON_AVG
        else:
            reason = REASON_MAX
        confidence = min(t.confidence_cap, max(stats.avg, stats.max))
        return Decision(SensitivityStatus.SENSITIVE, reason, _confidence(confidence), details)

    return Decision(
        SensitivityStatus.SAFE, REASON_NORMAL, _confidence(1 - min(stats.avg, 0.5)), details,
    )
