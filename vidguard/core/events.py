"""
VidGuard Event Streaming — analysis progress via WebSocket + SSE.

The pipeline emits two event names, both keyed by ``video_id``:

  progress           — stage ticks with a percentage and a human label
  analysis-complete  — terminal event carrying the final verdict

Delivery is fire-and-forget. Each subscriber owns a bounded queue and an
event that does not fit is dropped for that subscriber only, so a slow or
absent consumer never stalls the pipeline. Every event carries a per-video
sequence number; a bounded in-memory buffer lets late subscribers catch up,
but consumers must re-read the video record after ``analysis-complete``.
"""
from __future__ import annotations

import asyncio
import json
import logging
import time
from collections import OrderedDict, deque
from dataclasses import asdict, dataclass, field
from typing import Any, AsyncIterator, Deque, Dict, List, Optional, Set

from vidguard.core.config import get_settings

logger = logging.getLogger(__name__)
settings = get_settings()

PROGRESS = "progress"
ANALYSIS_COMPLETE = "analysis-complete"


@dataclass
class AnalysisEvent:
    event: str
    video_id: str
    sequence: int
    timestamp: float = field(default_factory=time.time)
    data: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), default=str)

    def to_sse(self) -> str:
        return f"id: {self.sequence}\nevent: {self.event}\ndata: {self.to_json()}\n\n"


class Subscription:
    """A listener's private, bounded mailbox."""

    def __init__(self, video_id: Optional[str] = None, maxsize: int = 256):
        self.video_id = video_id
        self.dropped = 0
        self._queue: asyncio.Queue[AnalysisEvent] = asyncio.Queue(maxsize=maxsize)

    def matches(self, event: AnalysisEvent) -> bool:
        return self.video_id is None or self.video_id == event.video_id

    def offer(self, event: AnalysisEvent) -> bool:
        try:
            self._queue.put_nowait(event)
            return True
        except asyncio.QueueFull:
            self.dropped += 1
            return False

    async def get(self) -> AnalysisEvent:
        return await self._queue.get()

    def pending(self) -> int:
        return self._queue.qsize()

    def __aiter__(self) -> "Subscription":
        return self

    async def __anext__(self) -> AnalysisEvent:
        return await self.get()


class AnalysisEventHub:
    """
    Central hub for analysis event broadcasting.

    - Fans events out to subscriber queues without awaiting anyone
    - Numbers events per video so clients can detect gaps
    - Keeps a bounded buffer for replay (last N events)
    """

    def __init__(self, buffer_size: int = 1000, queue_size: int = 256, sequence_capacity: int = 10000):
        self._subscribers: Set[Subscription] = set()
        self._buffer: Deque[AnalysisEvent] = deque(maxlen=buffer_size)
        # Least recently active videos are forgotten first; a forgotten video
        # restarts at sequence 1
        self._sequences: "OrderedDict[str, int]" = OrderedDict()
        self._sequence_capacity = sequence_capacity
        self._queue_size = queue_size
        self._stats = {
            "total_events_emitted": 0,
            "total_events_dropped": 0,
        }

    # ── Subscription Lifecycle ───────────────────────────────────────────

    def subscribe(self, video_id: Optional[str] = None) -> Subscription:
        sub = Subscription(video_id=video_id, maxsize=self._queue_size)
        self._subscribers.add(sub)
        logger.info(f"Analysis subscriber added (video={video_id}, total={len(self._subscribers)})")
        return sub

    def unsubscribe(self, sub: Subscription) -> None:
        self._subscribers.discard(sub)
        logger.info(f"Analysis subscriber removed (total={len(self._subscribers)})")

    # ── Event Emission ───────────────────────────────────────────────────

    def emit(self, event_name: str, payload: Dict[str, Any]) -> AnalysisEvent:
        """Broadcast an event to every matching subscriber and buffer it."""
        video_id = str(payload["video_id"])
        sequence = self._next_sequence(video_id)
        event = AnalysisEvent(
            event=event_name,
            video_id=video_id,
            sequence=sequence,
            data={k: v for k, v in payload.items() if k != "video_id"},
        )
        self._buffer.append(event)
        self._stats["total_events_emitted"] += 1

        for sub in list(self._subscribers):
            if sub.matches(event) and not sub.offer(event):
                self._stats["total_events_dropped"] += 1
        return event

    def _next_sequence(self, video_id: str) -> int:
        sequence = self._sequences.pop(video_id, 0) + 1
        self._sequences[video_id] = sequence
        while len(self._sequences) > self._sequence_capacity:
            self._sequences.popitem(last=False)
        return sequence

    # ── Replay ───────────────────────────────────────────────────────────

    def replay(
        self,
        video_id: Optional[str] = None,
        after_sequence: int = 0,
        limit: int = 500,
    ) -> List[AnalysisEvent]:
        """
        Buffered events for catchup, oldest first.

        Sequences are per video, so ``after_sequence`` needs a ``video_id``.
        """
        if video_id is None:
            if after_sequence:
                raise ValueError("after_sequence requires a video_id")
            events = list(self._buffer)
        else:
            events = [
                e for e in self._buffer
                if e.video_id == video_id and e.sequence > after_sequence
            ]
        return events[-limit:]

    def last_sequence(self, video_id: str) -> int:
        return self._sequences.get(video_id, 0)

    # ── SSE Fallback Generator ───────────────────────────────────────────

    async def sse_stream(
        self,
        video_id: Optional[str] = None,
        after_sequence: Optional[int] = None,
        heartbeat_seconds: float = 15.0,
    ) -> AsyncIterator[str]:
        """Async generator for Server-Sent Events fallback."""
        sub = self.subscribe(video_id)
        try:
            if after_sequence is not None and video_id is not None:
                for event in self.replay(video_id, after_sequence):
                    yield event.to_sse()
            while True:
                try:
                    event = await asyncio.wait_for(sub.get(), timeout=heartbeat_seconds)
                except asyncio.TimeoutError:
                    yield ": heartbeat\n\n"
                    continue
                yield event.to_sse()
        finally:
            self.unsubscribe(sub)

    # ── Stats ────────────────────────────────────────────────────────────

    def get_stats(self) -> Dict[str, Any]:
        return {
            **self._stats,
            "active_subscribers": len(self._subscribers),
            "buffer_size": len(self._buffer),
            "buffer_capacity": self._buffer.maxlen,
            "tracked_videos": len(self._sequences),
        }


# Module-level singleton
event_hub = AnalysisEventHub(
    buffer_size=settings.event_buffer_size,
    queue_size=settings.event_subscriber_queue_size,
    sequence_capacity=settings.event_sequence_capacity,
)
