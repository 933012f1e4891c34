import pytest

from gpxanalyzer.analyze.trends import detect_trends
from gpxanalyzer.model import ProfileSample, TrendDirection


def profile(eles, step_m=100.0):
    return [
        ProfileSample(segment_index=0, point_index=i, distance_m=i * step_m, elevation=e, elapsed_s=None, speed_mps=None)
        for i, e in enumerate(eles)
    ]


def test_climb_then_descent_ignores_small_wiggles():
    trends = detect_trends(profile([0, 30, 25, 60, 10, 15, 0]), min_amplitude=20)

    assert [t.direction for t in trends] == [TrendDirection.UP, TrendDirection.DOWN]
    up, down = trends
    assert (up.start.point_index, up.end.point_index) == (0, 3)
    assert (down.start.point_index, down.end.point_index) == (3, 6)
    assert up.amplitude_m == 60
    assert up.length_m == 300.0
    assert up.grade == pytest.approx(0.2)
    assert down.grade == pytest.approx(-60 / 300.0)


def test_noise_below_threshold_gives_no_trends():
    assert detect_trends(profile([100, 105, 98, 103, 101]), min_amplitude=20) == []


def test_starting_with_descent():
    trends = detect_trends(profile([50, 40, 20, 25]), min_amplitude=20)

    assert len(trends) == 1
    assert trends[0].direction is TrendDirection.DOWN
    assert trends[0].end.elevation == 20


def test_missing_elevations_are_skipped():
    trends = detect_trends(profile([0, None, 25, None]), min_amplitude=20)

    assert len(trends) == 1
    assert trends[0].end.point_index == 2


@pytest.mark.parametrize("eles", [[], [None, None], [42]])
def test_degenerate_profiles(eles):
    assert detect_trends(profile(eles), min_amplitude=5) == []


def test_min_amplitude_must_be_positive():
    with pytest.raises(ValueError):
        detect_trends(profile([0, 100]), min_amplitude=0)
