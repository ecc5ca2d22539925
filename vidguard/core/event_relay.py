"""
VidGuard Event Relay — analysis events across processes over Redis pub/sub.

Celery workers run the pipeline outside the API process, so their hub has no
WebSocket/SSE subscribers. Workers publish through ``RedisEventPublisher``
and the API process runs an ``EventRelay`` that feeds every message into its
own ``AnalysisEventHub``, where sequence numbers are assigned.
"""
from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Dict, Optional, Union

import redis
import redis.asyncio as aioredis

from vidguard.core.config import get_settings
from vidguard.core.events import AnalysisEvent, AnalysisEventHub

logger = logging.getLogger(__name__)
settings = get_settings()


class RedisEventPublisher:
    """Hub stand-in for worker processes; ``emit`` publishes instead of fanning out."""

    def __init__(self, url: Optional[str] = None, channel: Optional[str] = None, client=None):
        self.channel = channel or settings.event_relay_channel
        self._client = client or redis.Redis.from_url(url or settings.event_relay_url)

    def emit(self, event_name: str, payload: Dict[str, Any]) -> None:
        message = json.dumps({"event": event_name, "payload": payload}, default=str)
        self._client.publish(self.channel, message)

    def close(self) -> None:
        self._client.close()


class EventRelay:
    """Subscribes to the relay channel and re-emits into a local hub."""

    def __init__(
        self,
        hub: AnalysisEventHub,
        url: Optional[str] = None,
        channel: Optional[str] = None,
        client=None,
        reconnect_seconds: float = 5.0,
    ):
        self.hub = hub
        self.channel = channel or settings.event_relay_channel
        self._client = client or aioredis.Redis.from_url(url or settings.event_relay_url)
        self.reconnect_seconds = reconnect_seconds
        self._task: Optional[asyncio.Task] = None
        self.relayed = 0

    def dispatch(self, raw: Union[bytes, str]) -> Optional[AnalysisEvent]:
        """Re-emit one published message; malformed messages are logged and skipped."""
        try:
            message = json.loads(raw)
            event_name = message["event"]
            payload = dict(message["payload"])
        except (ValueError, TypeError, KeyError) as e:
            logger.warning(f"Skipping malformed relay message: {e}")
            return None
        if "video_id" not in payload:
            logger.warning("Skipping relay message without video_id")
            return None
        self.relayed += 1
        return self.hub.emit(event_name, payload)

    async def _listen(self) -> None:
        pubsub = self._client.pubsub()
        await pubsub.subscribe(self.channel)
        logger.info(f"Event relay subscribed to {self.channel}")
        try:
            async for message in pubsub.listen():
                if message.get("type") == "message":
                    self.dispatch(message["data"])
        finally:
            await pubsub.aclose()

    async def _run(self) -> None:
        while True:
            try:
                await self._listen()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.warning(f"Event relay connection lost: {e}; retrying in {self.reconnect_seconds}s")
            await asyncio.sleep(self.reconnect_seconds)

    def start(self) -> None:
        if self._task is None:
            self._task = asyncio.create_task(self._run(), name="event-relay")

    async def stop(self) -> None:
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        await self._client.aclose()
