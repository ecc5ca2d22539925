import numpy as np
import pytest

from vidguard.ml.vision.skin_classifier import (
    aggregate_ratios,
    rgb_skin_mask,
    sampling_stride,
    skin_mask,
    skin_ratio,
    ycbcr_skin_mask,
)


def solid(color, h=100, w=100):
    frame = np.zeros((h, w, 3), dtype=np.uint8)
    frame[:, :] = color
    return frame


def channels(color):
    r, g, b = (np.array([float(c)]) for c in color)
    return r, g, b


def test_non_skin_frame_has_zero_ratio():
    assert skin_ratio(solid((20, 60, 200))) == 0.0
    assert skin_ratio(solid((0, 0, 0))) == 0.0
    assert skin_ratio(solid((255, 255, 255))) == 0.0


def test_skin_frame_has_full_ratio():
    assert skin_ratio(solid((220, 170, 140))) == 1.0


def test_rgb_rule_alone_is_enough():
    color = (250, 100, 30)
    assert rgb_skin_mask(*channels(color))[0]
    assert not ycbcr_skin_mask(*channels(color))[0]
    assert skin_ratio(solid(color)) == 1.0


def test_ycbcr_rule_alone_is_enough():
    # |R-G| = 10 fails the RGB rule
    color = (150, 140, 110)
    assert not rgb_skin_mask(*channels(color))[0]
    assert ycbcr_skin_mask(*channels(color))[0]
    assert skin_ratio(solid(color)) == 1.0


def test_rgb_rule_boundaries_are_strict():
    # R exactly 95 is not above the bound
    assert not rgb_skin_mask(*channels((95, 50, 30)))[0]
    assert rgb_skin_mask(*channels((96, 50, 30)))[0]


def test_half_skin_frame():
    frame = solid((20, 60, 200))
    frame[:, :50] = (220, 170, 140)
    assert skin_ratio(frame) == pytest.approx(0.5)


def test_mask_ignores_alpha_channel():
    rgba = np.zeros((4, 4, 4), dtype=np.uint8)
    rgba[..., :3] = (220, 170, 140)
    rgba[..., 3] = 0
    assert skin_mask(rgba).all()


@pytest.mark.parametrize(
    "total, base, expected",
    [
        (10000, 1, 1),
        (57600, 1, 3),
        (1920 * 1080, 1, 15),
        (100, 4, 4),
        (0, 1, 1),
    ],
)
def test_sampling_stride(total, base, expected):
    assert sampling_stride(total, base_stride=base, sample_limit=10000) == expected


def test_large_frame_is_subsampled_to_the_limit():
    frame = solid((220, 170, 140), h=180, w=320)
    stride = sampling_stride(180 * 320)
    sampled = frame[::stride, ::stride]
    assert sampled.shape[0] * sampled.shape[1] <= 10000
    assert skin_ratio(frame) == 1.0


def test_empty_frame_ratio_is_zero():
    assert skin_ratio(np.zeros((0, 0, 3), dtype=np.uint8)) == 0.0


def test_aggregate_rounds_to_four_places():
    stats = aggregate_ratios([0.1, 0.2, 0.35])
    assert stats.avg == 0.2167
    assert stats.max == 0.35
    assert stats.frame_count == 3


def test_aggregate_of_nothing_is_zero():
    stats = aggregate_ratios([])
    assert (stats.avg, stats.max, stats.frame_count) == (0.0, 0.0, 0)
