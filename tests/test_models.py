import pytest

from vidguard.core.exceptions import InvalidTransitionError
from vidguard.models.models import SensitivityStatus, Video, VideoStatus


def make_video(**kwargs):
    defaults = dict(
        id="v1",
        storage_path="clip.mp4",
        status=VideoStatus.UPLOADED,
        analysis_requested=False,
        analysis_done=False,
        analysis_retries=0,
        sensitivity_status=SensitivityStatus.PENDING,
        sensitivity_reason="",
        sensitivity_confidence=0.0,
    )
    defaults.update(kwargs)
    return Video(**defaults)


@pytest.mark.parametrize(
    "current, target",
    [
        (VideoStatus.UPLOADED, VideoStatus.PROCESSING),
        (VideoStatus.PROCESSING, VideoStatus.PROCESSED),
        (VideoStatus.PROCESSING, VideoStatus.FAILED),
        (VideoStatus.FAILED, VideoStatus.PROCESSING),
        (VideoStatus.PROCESSED, VideoStatus.UPLOADED),
        (VideoStatus.FAILED, VideoStatus.UPLOADED),
    ],
)
def test_allowed_transitions(current, target):
    video = make_video(status=current)
    video.transition_to(target)
    assert video.status == target


@pytest.mark.parametrize(
    "current, target",
    [
        (VideoStatus.UPLOADED, VideoStatus.PROCESSED),
        (VideoStatus.UPLOADED, VideoStatus.FAILED),
        (VideoStatus.PROCESSED, VideoStatus.PROCESSING),
        (VideoStatus.PROCESSED, VideoStatus.FAILED),
        (VideoStatus.PROCESSING, VideoStatus.UPLOADED),
    ],
)
def test_forbidden_transitions(current, target):
    video = make_video(status=current)
    with pytest.raises(InvalidTransitionError):
        video.transition_to(target)
    assert video.status == current


def test_mark_processed_closes_the_run():
    video = make_video(status=VideoStatus.PROCESSING, analysis_requested=True)
    video.mark_processed()
    assert video.status == VideoStatus.PROCESSED
    assert video.analysis_done is True
    assert video.analysis_requested is False
    assert video.processing_end_time is not None


def test_mark_failed_records_error():
    video = make_video(status=VideoStatus.PROCESSING, analysis_requested=True)
    video.mark_failed("ffmpeg exited with 1")
    assert video.status == VideoStatus.FAILED
    assert video.analysis_requested is False
    assert video.error["message"] == "ffmpeg exited with 1"
    assert video.error["timestamp"] == video.error_at


def test_reset_returns_to_pending():
    video = make_video(status=VideoStatus.PROCESSED, analysis_done=True, analysis_retries=2)
    video.record_verdict(SensitivityStatus.SENSITIVE, "x", 0.8, {"skin_ratio": 0.5})
    video.reset_analysis()
    assert video.status == VideoStatus.UPLOADED
    assert video.analysis_done is False
    assert video.analysis_retries == 0
    assert video.sensitivity["status"] == SensitivityStatus.PENDING
    assert video.sensitivity["details"] is None
    assert video.error is None


def test_reset_refused_while_processing():
    video = make_video(status=VideoStatus.PROCESSING, analysis_requested=True)
    with pytest.raises(InvalidTransitionError):
        video.reset_analysis()
