import datetime as dt

import pytest

from gpxanalyzer.analyze.smoothing import DROP_MERGED, DROP_SPEED, smooth
from gpxanalyzer.config import SmoothingConfig
from gpxanalyzer.errors import AnalysisCancelled
from gpxanalyzer.model import TrackPoint
from gpxanalyzer.util.cancel import CancellationToken

T0 = dt.datetime(2026, 1, 3, 8, 0, tzinfo=dt.timezone.utc)


def walk(lats, eles=None, step_s=60, timed=True):
    """Points along the 7E meridian, one fix every `step_s` seconds."""
    eles = eles or [None] * len(lats)
    return [
        TrackPoint(
            lat=lat,
            lon=7.0,
            ele=ele,
            time=T0 + dt.timedelta(seconds=i * step_s) if timed else None,
        )
        for i, (lat, ele) in enumerate(zip(lats, eles))
    ]


def test_noop_config_passes_points_through():
    pts = walk([46.0, 46.001, 46.002], eles=[100.0, None, 120.0])

    out = list(smooth(pts))

    assert [(p.lat, p.lon, p.ele, p.time) for p in out] == [(p.lat, p.lon, p.ele, p.time) for p in pts]
    assert [p.index for p in out] == [0, 1, 2]
    assert not any(p.adjusted or p.dropped for p in out)


def test_min_separation_merges_close_points():
    pts = walk([46.0, 46.000001, 46.001])
    cfg = SmoothingConfig(min_separation_m=1.0)

    kept = list(smooth(pts, cfg))
    diag = list(smooth(pts, cfg, include_dropped=True))

    assert [p.index for p in kept] == [0, 2]
    assert [(p.index, p.dropped, p.drop_reason) for p in diag] == [
        (0, False, None),
        (1, True, DROP_MERGED),
        (2, False, None),
    ]


def test_speed_spike_dropped_against_last_retained_point():
    # ~1.85 m/s walking; the third fix jumps 1.1 km in a minute.
    pts = walk([46.0, 46.001, 46.011, 46.002, 46.003])

    out = list(smooth(pts, SmoothingConfig(max_speed_mps=5.0), include_dropped=True))

    assert [p.index for p in out if not p.dropped] == [0, 1, 3, 4]
    assert out[2].drop_reason == DROP_SPEED


def test_duplicate_timestamp_with_displacement_reads_as_fast():
    pts = walk([46.0, 46.001], step_s=0)
    out = list(smooth(pts, SmoothingConfig(max_speed_mps=50.0)))
    assert [p.index for p in out] == [0]


def test_untimed_points_skip_speed_check():
    pts = walk([46.0, 46.5], timed=False)
    out = list(smooth(pts, SmoothingConfig(max_speed_mps=1.0)))
    assert len(out) == 2


def test_elevation_trailing_moving_average():
    pts = walk([46.0, 46.001, 46.002, 46.003, 46.004], eles=[100.0, 110.0, None, 120.0, 130.0])

    out = list(smooth(pts, SmoothingConfig(elevation_window=3)))

    assert [p.ele for p in out] == [100.0, 105.0, None, 110.0, 120.0]
    assert [p.adjusted for p in out] == [False, True, False, True, True]
    assert out[1].ele_adjustment == pytest.approx(-5.0)
    assert out[4].ele_adjustment == pytest.approx(-10.0)
    # Horizontal position is never altered.
    assert [p.lat for p in out] == [p.lat for p in pts]


def test_smoothed_sequence_is_restartable():
    pts = walk([46.0, 46.001, 46.011, 46.002], eles=[1.0, 2.0, 3.0, 4.0])
    seq = smooth(pts, SmoothingConfig(max_speed_mps=5.0, elevation_window=2))

    assert list(seq) == list(seq)


def test_filtering_is_idempotent():
    pts = walk([46.0, 46.000001, 46.001, 46.011, 46.002], eles=[1.0, 2.0, 3.0, 4.0, 5.0])
    cfg = SmoothingConfig(max_speed_mps=5.0, min_separation_m=1.0)

    once = list(smooth(pts, cfg))
    twice = list(smooth(once, cfg))

    assert len(once) < len(pts)
    assert twice == once


def test_source_points_untouched():
    pts = tuple(walk([46.0, 46.001], eles=[100.0, 200.0]))
    before = list(pts)

    out = list(smooth(pts, SmoothingConfig(elevation_window=2)))

    assert list(pts) == before
    assert out[1].ele == 150.0 and pts[1].ele == 200.0


def test_cancellation_checked_between_points():
    token = CancellationToken()
    token.cancel()

    with pytest.raises(AnalysisCancelled):
        list(smooth(walk([46.0, 46.001]), cancel=token))
