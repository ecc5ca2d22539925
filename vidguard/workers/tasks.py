"""
VidGuard Celery Worker Tasks

Asynchronous task definitions for:
- Running one video's analysis to completion
- Periodically re-triggering failed analyses that still have retry budget
"""
from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List

from celery import Celery

from vidguard.core.config import get_settings
from vidguard.core.exceptions import AdmissionError

settings = get_settings()
logger = logging.getLogger(__name__)

# ── Celery App ───────────────────────────────────────────────────────────

celery_app = Celery(
    "vidguard",
    broker=settings.celery_broker_url,
    backend=settings.celery_result_backend,
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    task_acks_late=True,
    worker_prefetch_multiplier=1,
    task_default_queue="default",
    task_routes={
        "vidguard.workers.tasks.analyze_video_task": {"queue": "analysis"},
        "vidguard.workers.tasks.retry_failed_analyses_task": {"queue": "analysis"},
    },
)

# ── Periodic Tasks ───────────────────────────────────────────────────────

celery_app.conf.beat_schedule = {
    "retry-failed-analyses": {
        "task": "vidguard.workers.tasks.retry_failed_analyses_task",
        "schedule": float(settings.retry_sweep_interval_seconds),
    },
    "health-check-every-minute": {
        "task": "vidguard.workers.tasks.health_check_task",
        "schedule": 60.0,
    },
}


# ── Helpers ──────────────────────────────────────────────────────────────

def run_async(coro):
    """Run an async coroutine from sync Celery task."""
    loop = asyncio.new_event_loop()
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


def worker_event_hub():
    """Hub for runs started in the worker: relayed to the API process when enabled."""
    if settings.event_relay_enabled:
        from vidguard.core.event_relay import RedisEventPublisher
        return RedisEventPublisher()
    from vidguard.core.events import event_hub
    return event_hub


async def _analyze(video_ids: List[str]) -> Dict[str, Any]:
    """Trigger each video and wait for every accepted run to finish."""
    from vidguard.services.analysis.analysis_service import AnalysisService

    # Fresh service per event loop; asyncio primitives are loop-bound
    hub = worker_event_hub()
    service = AnalysisService(hub=hub)
    results: Dict[str, Any] = {}
    tickets = []
    try:
        for video_id in video_ids:
            try:
                tickets.append(await service.trigger(video_id))
            except AdmissionError as e:
                results[video_id] = {"accepted": False, "reason": e.reason}
        for ticket in tickets:
            outcome = await ticket.wait()
            results[ticket.video_id] = {"accepted": True, "outcome": outcome.value}
        await service.drain()
    finally:
        close = getattr(hub, "close", None)
        if close is not None:
            close()
    return results


async def _in_fresh_pool(coro):
    """Await ``coro`` then drop pooled connections bound to this loop."""
    from vidguard.core.database import engine

    try:
        return await coro
    finally:
        await engine.dispose()


async def _sweep() -> Dict[str, Any]:
    from vidguard.services.analysis.store import video_store

    await video_store.reclaim_stale(settings.analysis_lease_seconds)
    video_ids = await video_store.list_retryable(
        settings.max_analysis_retries, limit=settings.retry_sweep_batch_size,
    )
    if not video_ids:
        return {"retried": 0}
    logger.info(f"Re-triggering {len(video_ids)} failed analyses")
    return {"retried": len(video_ids), "results": await _analyze(video_ids)}


# ── Tasks ────────────────────────────────────────────────────────────────

@celery_app.task(name="vidguard.workers.tasks.analyze_video_task")
def analyze_video_task(video_id: str):
    """Run the sensitivity pipeline for one video inside the worker."""
    logger.info(f"Analyzing video: {video_id}")
    result = run_async(_in_fresh_pool(_analyze([video_id])))[video_id]
    logger.info(f"Analysis task finished for {video_id}: {result}")
    return result


@celery_app.task(name="vidguard.workers.tasks.retry_failed_analyses_task")
def retry_failed_analyses_task():
    """Re-trigger failed videos whose retry budget is not yet spent."""
    try:
        return run_async(_in_fresh_pool(_sweep()))
    except Exception as e:
        logger.error(f"Retry sweep failed: {e}")
        return {"retried": 0, "error": str(e)}


@celery_app.task(name="vidguard.workers.tasks.health_check_task")
def health_check_task():
    """Periodic health check — ensures workers are alive."""
    return {"status": "healthy", "timestamp": datetime.now(timezone.utc).isoformat()}
