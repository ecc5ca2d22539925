"""
VidGuard — Main FastAPI Application

Rule-based video sensitivity analysis service.
"""
from __future__ import annotations

import logging
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from prometheus_client import make_asgi_app

from vidguard.core.config import get_settings
from vidguard.core.database import init_db

settings = get_settings()

# ── Logging ──────────────────────────────────────────────────────────────

logging.basicConfig(level=settings.log_level.upper(), format="%(message)s")

structlog.configure(
    processors=[
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.dev.set_exc_info,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.dev.ConsoleRenderer(),
    ],
    wrapper_class=structlog.make_filtering_bound_logger(
        logging.getLevelName(settings.log_level.upper())
    ),
)

logger = structlog.get_logger()


# ── Lifespan ─────────────────────────────────────────────────────────────

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup / shutdown hooks."""
    from vidguard.core.event_relay import EventRelay
    from vidguard.core.events import event_hub
    from vidguard.services.analysis.analysis_service import analysis_service
    from vidguard.services.analysis.store import video_store

    logger.info("Starting VidGuard", version=settings.app_version)
    await init_db()
    await video_store.reclaim_stale(settings.analysis_lease_seconds)

    relay = None
    if settings.event_relay_enabled:
        relay = EventRelay(event_hub)
        relay.start()

    logger.info(
        "VidGuard ready",
        max_retries=settings.max_analysis_retries,
        frame_samples=settings.frame_sample_count,
        event_relay=relay is not None,
    )

    yield

    await analysis_service.drain()
    if relay is not None:
        await relay.stop()
    logger.info("Shutting down VidGuard")


# ── App ──────────────────────────────────────────────────────────────────

app = FastAPI(
    title="VidGuard",
    description="Rule-based video sensitivity analysis",
    version=settings.app_version,
    lifespan=lifespan,
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Restrict in production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Prometheus metrics
metrics_app = make_asgi_app()
app.mount("/metrics", metrics_app)

# ── Routes ───────────────────────────────────────────────────────────────

from vidguard.api.routes import videos, websocket  # noqa: E402

app.include_router(videos.router, prefix=settings.api_prefix)
app.include_router(websocket.router, prefix=settings.api_prefix)


@app.get("/")
async def root():
    return {
        "name": settings.app_name,
        "description": "Rule-based video sensitivity analysis",
        "version": settings.app_version,
        "docs": "/docs",
    }


@app.get("/health")
async def health():
    return {"status": "healthy"}
