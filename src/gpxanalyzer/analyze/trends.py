# gpxanalyzer/analyze/trends.py
"""
Climb/descent detection over an elevation profile.

A zig-zag with hysteresis: a run only reverses once elevation has moved
`min_amplitude` meters back from the run's extreme, so jitter smaller than
the threshold never splits a climb. Samples without elevation are skipped.
"""

from __future__ import annotations

from typing import Iterable, Optional

from gpxanalyzer.model import ElevationTrend, ProfileSample, TrendDirection

DEFAULT_MIN_AMPLITUDE_M = 20.0


def detect_trends(
    profile: Iterable[ProfileSample],
    min_amplitude: float = DEFAULT_MIN_AMPLITUDE_M,
) -> list[ElevationTrend]:
    if min_amplitude <= 0:
        raise ValueError(f"min_amplitude must be positive, got {min_amplitude}")

    trends: list[ElevationTrend] = []
    direction: Optional[TrendDirection] = None
    lo = hi = None
    pivot = extreme = None

    for s in profile:
        e = s.elevation
        if e is None:
            continue

        if direction is None:
            if lo is None:
                lo = hi = s
                continue
            if e > hi.elevation:
                hi = s
            if e < lo.elevation:
                lo = s
            if hi.elevation - lo.elevation >= min_amplitude:
                # s just became the new high or the new low.
                if hi is s:
                    direction, pivot = TrendDirection.UP, lo
                else:
                    direction, pivot = TrendDirection.DOWN, hi
                extreme = s
            continue

        if direction is TrendDirection.UP:
            if e > extreme.elevation:
                extreme = s
            elif extreme.elevation - e >= min_amplitude:
                trends.append(ElevationTrend(direction, pivot, extreme))
                direction, pivot, extreme = TrendDirection.DOWN, extreme, s
        else:
            if e < extreme.elevation:
                extreme = s
            elif e - extreme.elevation >= min_amplitude:
                trends.append(ElevationTrend(direction, pivot, extreme))
                direction, pivot, extreme = TrendDirection.UP, extreme, s

    if direction is not None:
        trends.append(ElevationTrend(direction, pivot, extreme))
    return trends
