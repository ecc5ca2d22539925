import asyncio
import os
import tempfile
from pathlib import Path

_TEST_ROOT = Path(tempfile.mkdtemp(prefix="vidguard_tests_"))
os.environ.setdefault("VIDGUARD_DATABASE_URL_OVERRIDE", f"sqlite+aiosqlite:///{_TEST_ROOT / 'global.db'}")
os.environ.setdefault("VIDGUARD_FRAMES_DIR", str(_TEST_ROOT / "frames"))
os.environ.setdefault("VIDGUARD_THUMBNAIL_DIR", str(_TEST_ROOT / "thumbnails"))
os.environ.setdefault("VIDGUARD_MEDIA_ROOT", str(_TEST_ROOT / "uploads"))
os.environ.setdefault("VIDGUARD_EVENT_RELAY_ENABLED", "false")

import pytest  # noqa: E402
from PIL import Image  # noqa: E402
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine  # noqa: E402

from vidguard.core.config import Settings  # noqa: E402
from vidguard.core.database import init_db  # noqa: E402
from vidguard.core.events import AnalysisEventHub  # noqa: E402
from vidguard.core.exceptions import MediaToolError  # noqa: E402
from vidguard.services.analysis.analysis_service import AnalysisService  # noqa: E402
from vidguard.services.analysis.store import VideoStore  # noqa: E402

SKIN = (220, 170, 140)
NON_SKIN = (20, 60, 200)


def probe_payload(duration=30.0, with_video=True):
    streams = [{"codec_type": "audio", "codec_name": "aac"}]
    if with_video:
        streams.insert(0, {
            "codec_type": "video",
            "codec_name": "h264",
            "width": 1280,
            "height": 720,
            "r_frame_rate": "30000/1001",
        })
    return {
        "format": {"duration": str(duration), "bit_rate": "1500000"},
        "streams": streams,
    }


class FakeToolkit:
    """Stands in for ffmpeg/ffprobe; writes solid-colour PNG frames."""

    def __init__(self, probe=None, colors=None, fail_extraction=False, fail_thumbnail=False):
        self.probe_result = probe if probe is not None else probe_payload()
        self.colors = colors or [NON_SKIN]
        self.fail_extraction = fail_extraction
        self.fail_thumbnail = fail_thumbnail
        self.extract_calls = []
        self.thumbnail_calls = []
        self.gate = None

    async def probe(self, path):
        if isinstance(self.probe_result, Exception):
            raise self.probe_result
        return self.probe_result

    async def extract_frames(self, path, timestamps, out_dir, width):
        self.extract_calls.append((str(path), list(timestamps), Path(out_dir)))
        if self.gate is not None:
            await self.gate.wait()
        if self.fail_extraction:
            raise MediaToolError("ffmpeg exited with 1: invalid data")
        out_dir = Path(out_dir)
        out_dir.mkdir(parents=True, exist_ok=True)
        paths = []
        for i, _ in enumerate(timestamps):
            color = self.colors[i % len(self.colors)]
            target = out_dir / f"frame_{i:03d}.png"
            if color is None:
                target.write_bytes(b"not an image")
            else:
                Image.new("RGB", (64, 36), color).save(target)
            paths.append(target)
        return paths

    async def generate_thumbnail(self, path, timestamp, out_path, width):
        self.thumbnail_calls.append((str(path), timestamp))
        if self.fail_thumbnail:
            raise MediaToolError("thumbnail failed")
        out_path = Path(out_path)
        out_path.parent.mkdir(parents=True, exist_ok=True)
        Image.new("RGB", (64, 36), NON_SKIN).save(out_path, format="JPEG")
        return out_path


@pytest.fixture
def test_settings(tmp_path):
    return Settings(
        frames_dir=str(tmp_path / "frames"),
        thumbnail_dir=str(tmp_path / "thumbnails"),
        media_root=str(tmp_path / "uploads"),
        max_analysis_retries=3,
        frame_sample_count=8,
    )


@pytest.fixture
async def engine(tmp_path):
    eng = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    await init_db(bind=eng)
    yield eng
    await eng.dispose()


@pytest.fixture
def store(engine):
    return VideoStore(async_sessionmaker(engine, expire_on_commit=False))


@pytest.fixture
def hub():
    return AnalysisEventHub(buffer_size=500, queue_size=500)


@pytest.fixture
def toolkit():
    return FakeToolkit()


@pytest.fixture
def make_service(store, hub, test_settings):
    def _make(toolkit):
        return AnalysisService(store=store, toolkit=toolkit, hub=hub, settings=test_settings)

    return _make


@pytest.fixture
async def uploaded_video(store):
    return await store.create("clip.mp4", original_name="clip.mp4", tenant_id="tenant-1")


async def settle(service):
    await service.drain()
    await asyncio.sleep(0)
