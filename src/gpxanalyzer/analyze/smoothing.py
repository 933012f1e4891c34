# gpxanalyzer/analyze/smoothing.py
"""
GPS noise filtering for a single segment.

One forward pass, comparing each fix with the last *retained* fix:
  - closer than min_separation_m       -> dropped ("merged")
  - implied speed above max_speed_mps  -> dropped ("speed")
  - otherwise retained; its elevation becomes the trailing moving average
    of the last `elevation_window` retained elevations

Points without a timestamp (or after an untimed retained fix) skip the speed
check. Points without elevation keep None and do not enter the window.

`smooth()` returns a restartable lazy sequence: iterating it twice over the
same input runs the pass twice and yields identical values. The source
points are never modified.
"""

from __future__ import annotations

import logging
from collections import deque
from typing import Iterator, Optional, Sequence

from gpxanalyzer.config import SmoothingConfig
from gpxanalyzer.geo.distance import DistanceMode, distance
from gpxanalyzer.model import SmoothedPoint

logger = logging.getLogger(__name__)

DROP_MERGED = "merged"
DROP_SPEED = "speed"

# Floor for the time delta of a speed check; duplicate timestamps with any
# displacement therefore read as a very high speed.
_MIN_DT_S = 1e-3


class SmoothedSequence:
    """
    Lazy, restartable result of `smooth()`.

    `points` must be re-iterable (a list/tuple/Segment) for repeated
    iteration to yield the same output.
    """

    def __init__(
        self,
        points: Sequence,
        config: SmoothingConfig,
        *,
        mode: DistanceMode = DistanceMode.GREAT_CIRCLE,
        include_dropped: bool = False,
        cancel=None,
    ) -> None:
        self.points = points
        self.config = config
        # Filtering works on geographic points; planar runs measure the
        # filter distances on the sphere.
        self.mode = DistanceMode.GEODESIC if mode is DistanceMode.GEODESIC else DistanceMode.GREAT_CIRCLE
        self.include_dropped = include_dropped
        self.cancel = cancel

    def __iter__(self) -> Iterator[SmoothedPoint]:
        cfg = self.config
        window: deque[float] = deque(maxlen=max(1, cfg.elevation_window))
        last = None
        dropped = 0

        for i, p in enumerate(self.points):
            if self.cancel is not None:
                self.cancel.raise_if_cancelled()

            # Re-smoothing a smoothed sequence keeps the source indices.
            index = getattr(p, "index", i)

            reason = None
            if last is not None:
                reason = self._drop_reason(last, p)
            if reason is not None:
                dropped += 1
                if self.include_dropped:
                    yield SmoothedPoint(
                        lat=p.lat, lon=p.lon, ele=p.ele, time=p.time,
                        index=index, dropped=True, drop_reason=reason,
                    )
                continue

            ele = p.ele
            adjustment = 0.0
            if ele is not None:
                window.append(ele)
                if len(window) > 1:
                    avg = sum(window) / len(window)
                    adjustment = avg - ele
                    ele = avg

            last = p
            yield SmoothedPoint(
                lat=p.lat,
                lon=p.lon,
                ele=ele,
                time=p.time,
                index=index,
                adjusted=adjustment != 0.0,
                ele_adjustment=adjustment,
            )

        if dropped:
            logger.debug("Smoothing dropped %d point(s)", dropped)

    def _drop_reason(self, last, p) -> Optional[str]:
        cfg = self.config
        d = distance(last, p, self.mode)

        if cfg.min_separation_m > 0.0 and d < cfg.min_separation_m:
            return DROP_MERGED

        if cfg.max_speed_mps is not None and last.time is not None and p.time is not None:
            dt = (p.time - last.time).total_seconds()
            if d / max(dt, _MIN_DT_S) > cfg.max_speed_mps:
                return DROP_SPEED

        return None


def smooth(
    points: Sequence,
    config: Optional[SmoothingConfig] = None,
    *,
    mode: DistanceMode = DistanceMode.GREAT_CIRCLE,
    include_dropped: bool = False,
    cancel=None,
) -> SmoothedSequence:
    """
    Filter one segment's points (TrackPoints or SmoothedPoints).

    Dropped points are omitted unless include_dropped=True, in which case
    they appear flagged with `dropped=True` and a `drop_reason`.
    """
    return SmoothedSequence(
        points,
        config if config is not None else SmoothingConfig(),
        mode=mode,
        include_dropped=include_dropped,
        cancel=cancel,
    )
