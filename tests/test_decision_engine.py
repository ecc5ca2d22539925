import itertools

import pytest

from vidguard.core.config import Settings
from vidguard.ml.sensitivity.decision_engine import (
    REASON_AVG,
    REASON_BOTH,
    REASON_MAX,
    REASON_NORMAL,
    DecisionThresholds,
    decide,
)
from vidguard.ml.vision.skin_classifier import FrameStatistics
from vidguard.models.models import SensitivityStatus


def stats(avg, mx, count=8):
    return FrameStatistics(avg=avg, max=mx, frame_count=count)


def test_short_video_is_safe_with_half_confidence():
    d = decide(stats(0.9, 0.9), duration=3.0, has_video_stream=True)
    assert d.status == SensitivityStatus.SAFE
    assert d.confidence == 0.5
    assert "too short" in d.reason


def test_consistent_detection_is_sensitive():
    d = decide(stats(0.5, 0.5), duration=30.0, has_video_stream=True)
    assert d.status == SensitivityStatus.SENSITIVE
    assert d.confidence == 0.5
    assert d.reason == REASON_BOTH
    assert "across frames" in d.reason


def test_missing_video_stream_is_an_error_verdict():
    d = decide(stats(0.0, 0.0, 0), duration=30.0, has_video_stream=False)
    assert d.status == SensitivityStatus.ERROR
    assert d.confidence == 0.0
    assert "no video stream" in d.reason


def test_no_video_stream_wins_over_short_duration():
    d = decide(stats(0.0, 0.0, 0), duration=0.0, has_video_stream=False)
    assert d.status == SensitivityStatus.ERROR


def test_low_skin_is_safe():
    d = decide(stats(0.1, 0.1), duration=30.0, has_video_stream=True)
    assert d.status == SensitivityStatus.SAFE
    assert d.confidence == 0.9
    assert d.reason == REASON_NORMAL


def test_average_only_trigger():
    d = decide(stats(0.35, 0.4), duration=30.0, has_video_stream=True)
    assert d.status == SensitivityStatus.SENSITIVE
    assert d.reason == REASON_AVG
    assert d.confidence == 0.4


def test_max_only_trigger():
    d = decide(stats(0.1, 0.6), duration=30.0, has_video_stream=True)
    assert d.status == SensitivityStatus.SENSITIVE
    assert d.reason == REASON_MAX
    assert d.confidence == 0.6


def test_thresholds_are_exclusive():
    d = decide(stats(0.3, 0.45), duration=30.0, has_video_stream=True)
    assert d.status == SensitivityStatus.SAFE
    assert d.confidence == 0.7


def test_sensitive_confidence_is_capped():
    d = decide(stats(1.0, 1.0), duration=30.0, has_video_stream=True)
    assert d.confidence == 0.95


def test_safe_confidence_floor():
    # avg can sit above 0.3 only when the rule is loosened
    loose = DecisionThresholds(avg_threshold=0.9, max_threshold=0.9)
    d = decide(stats(0.8, 0.8), duration=30.0, has_video_stream=True, thresholds=loose)
    assert d.status == SensitivityStatus.SAFE
    assert d.confidence == 0.5


def test_details_carry_statistics_and_thresholds():
    d = decide(stats(0.2, 0.3, 5), duration=12.0, has_video_stream=True)
    assert d.details["skin_ratio"] == 0.2
    assert d.details["max_skin_ratio"] == 0.3
    assert d.details["frame_count"] == 5
    assert d.details["thresholds"] == {"avg": 0.3, "max": 0.45, "min_duration": 5.0}


def test_decision_is_deterministic():
    args = (stats(0.31, 0.2), 42.0, True)
    assert decide(*args) == decide(*args)


@pytest.mark.parametrize(
    "avg, mx, duration, has_stream",
    list(itertools.product([0.0, 0.1, 0.3, 0.5, 1.0], [0.0, 0.45, 0.9, 1.0], [0.0, 4.9, 5.0, 600.0], [True, False])),
)
def test_confidence_always_in_unit_interval(avg, mx, duration, has_stream):
    d = decide(stats(avg, mx), duration, has_stream)
    assert 0.0 <= d.confidence <= 1.0
    assert d.confidence == round(d.confidence, 3)


def test_thresholds_from_settings():
    s = Settings(min_duration_seconds=10.0, avg_skin_threshold=0.2, max_skin_threshold=0.4)
    t = DecisionThresholds.from_settings(s)
    assert (t.min_duration, t.avg_threshold, t.max_threshold) == (10.0, 0.2, 0.4)
    d = decide(stats(0.1, 0.1), duration=8.0, has_video_stream=True, thresholds=t)
    assert "too short" in d.reason
