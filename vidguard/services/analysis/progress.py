"""Stage progress ticks for one analysis run."""
from __future__ import annotations

import enum
import logging
from typing import Any, Dict, Optional

from vidguard.core.events import ANALYSIS_COMPLETE, PROGRESS

logger = logging.getLogger(__name__)


class AnalysisStage(enum.Enum):
    QUEUED = (5, "queued")
    METADATA = (15, "extracting metadata")
    SAMPLING = (30, "sampling frames")
    CLASSIFYING = (50, "classifying frames")
    AGGREGATING = (70, "aggregating results")
    DECIDING = (85, "applying decision rules")
    SAVING = (95, "saving results")
    COMPLETE = (100, "analysis complete")

    @property
    def percent(self) -> int:
        return self.value[0]

    @property
    def label(self) -> str:
        return self.value[1]


class ProgressReporter:
    """Emits strictly increasing progress ticks and one completion event."""

    def __init__(self, hub, video_id: str):
        self.hub = hub
        self.video_id = video_id
        self.last_percent = 0
        self.completed = False

    def tick(self, stage: AnalysisStage) -> bool:
        if stage.percent <= self.last_percent:
            return False
        self.last_percent = stage.percent
        self._emit(PROGRESS, {"progress": stage.percent, "stage": stage.label})
        return True

    def complete(
        self,
        success: bool,
        status: str,
        sensitivity_status: str,
        confidence: float,
        reason: str,
        processing_time: float,
        error: Optional[str] = None,
    ) -> None:
        if self.completed:
            return
        self.completed = True
        payload: Dict[str, Any] = {
            "success": success,
            "status": status,
            "sensitivity_status": sensitivity_status,
            "confidence": confidence,
            "reason": reason,
            "processing_time": round(processing_time, 3),
        }
        if error is not None:
            payload["error"] = error
        self._emit(ANALYSIS_COMPLETE, payload)

    def _emit(self, event_name: str, payload: Dict[str, Any]) -> None:
        try:
            self.hub.emit(event_name, {"video_id": self.video_id, **payload})
        except Exception as e:
            logger.warning(f"Dropping {event_name} event for {self.video_id}: {e}")
