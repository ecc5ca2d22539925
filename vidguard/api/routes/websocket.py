"""
VidGuard API — WebSocket & SSE routes for live analysis events.

WebSocket primary, SSE fallback. Supports:
  - Per-video filtering (``video_id`` query param)
  - Replay of buffered events after a sequence number
"""
from __future__ import annotations

import asyncio
import json
import logging
from typing import Optional

from fastapi import APIRouter, Query, WebSocket, WebSocketDisconnect
from fastapi.responses import StreamingResponse

from vidguard.core.events import event_hub

logger = logging.getLogger(__name__)
router = APIRouter(tags=["WebSocket"])


@router.websocket("/ws/analysis")
async def analysis_websocket(
    ws: WebSocket,
    video_id: Optional[str] = Query(None),
    after: Optional[int] = Query(None),
):
    """
    WebSocket endpoint for live ``progress`` / ``analysis-complete`` events.

    Query params:
      video_id: only forward events for this video
      after: replay buffered events newer than this sequence (needs video_id)
    """
    await ws.accept()
    sub = event_hub.subscribe(video_id)
    sender: Optional[asyncio.Task] = None

    async def pump():
        async for event in sub:
            await ws.send_text(event.to_json())

    try:
        # Subscribed before the replay snapshot, so live events queue up behind it
        if after is not None and video_id:
            for event in event_hub.replay(video_id, after_sequence=after):
                await ws.send_text(event.to_json())

        sender = asyncio.create_task(pump())

        while True:
            try:
                msg = json.loads(await ws.receive_text())
            except json.JSONDecodeError:
                continue
            if msg.get("type") == "ping":
                await ws.send_text(json.dumps({"type": "pong"}))

    except WebSocketDisconnect:
        pass
    except Exception as e:
        logger.error(f"WebSocket error: {e}")
    finally:
        event_hub.unsubscribe(sub)
        if sender is not None:
            sender.cancel()
            try:
                await sender
            except asyncio.CancelledError:
                pass
            except Exception as e:
                logger.warning(f"WebSocket sender stopped: {e}")


@router.get("/sse/analysis")
async def analysis_sse(
    video_id: Optional[str] = Query(None),
    after: Optional[int] = Query(None),
):
    """SSE fallback endpoint for clients without WebSocket support."""
    return StreamingResponse(
        event_hub.sse_stream(video_id=video_id, after_sequence=after),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",
        },
    )


@router.get("/ws/stats")
async def websocket_stats():
    """Event hub statistics."""
    return event_hub.get_stats()
