"""
VidGuard Core Settings — sensitivity analysis pipeline.

Every value can be overridden from the environment with the ``VIDGUARD_``
prefix (e.g. ``VIDGUARD_MAX_ANALYSIS_RETRIES=5``) or from a local ``.env``.
"""
from __future__ import annotations

from functools import lru_cache
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8",
        env_prefix="VIDGUARD_", case_sensitive=False,
    )

    # ── App ──────────────────────────────────────────────────────────────
    app_name: str = "VidGuard"
    app_version: str = "1.0.0"
    debug: bool = False
    log_level: str = "INFO"
    api_prefix: str = "/api/v1"

    # ── PostgreSQL ───────────────────────────────────────────────────────
    db_host: str = "postgres"
    db_port: int = 5432
    db_user: str = "vidguard"
    db_password: str = "vidguard_secret"
    db_name: str = "vidguard"
    database_url_override: Optional[str] = None

    @property
    def database_url(self) -> str:
        if self.database_url_override:
            return self.database_url_override
        return (
            f"postgresql+asyncpg://{self.db_user}:{self.db_password}"
            f"@{self.db_host}:{self.db_port}/{self.db_name}"
        )

    # ── Redis / Celery ───────────────────────────────────────────────────
    celery_broker_url: str = "redis://redis:6379/1"
    celery_result_backend: str = "redis://redis:6379/2"

    # ── Media Tooling ────────────────────────────────────────────────────
    ffmpeg_binary: str = "ffmpeg"
    ffprobe_binary: str = "ffprobe"
    # None = no timeout on decoder calls; expiry is a pipeline failure
    media_timeout_seconds: Optional[float] = None
    media_root: str = "/app/uploads"
    frames_dir: str = "/tmp/vidguard/frames"
    thumbnail_dir: str = "/app/uploads/thumbnails"
    frame_width: int = 320
    thumbnail_width: int = 640

    # ── Analysis ─────────────────────────────────────────────────────────
    max_analysis_retries: int = 3
    # A run still `processing` after this long is treated as interrupted
    analysis_lease_seconds: int = 3600
    frame_sample_count: int = 8
    pixel_sample_limit: int = 10000
    pixel_base_stride: int = 1

    # Decision rules
    min_duration_seconds: float = 5.0
    avg_skin_threshold: float = 0.3
    max_skin_threshold: float = 0.45
    sensitive_confidence_cap: float = 0.95

    # ── Events ───────────────────────────────────────────────────────────
    event_buffer_size: int = 1000
    event_subscriber_queue_size: int = 256
    event_sequence_capacity: int = 10000
    # Worker runs publish here; the API process relays into its hub
    event_relay_url: str = "redis://redis:6379/3"
    event_relay_channel: str = "vidguard:analysis-events"
    event_relay_enabled: bool = True

    # ── Worker ───────────────────────────────────────────────────────────
    retry_sweep_interval_seconds: int = 300
    retry_sweep_batch_size: int = 20


@lru_cache()
def get_settings() -> Settings:
    return Settings()
