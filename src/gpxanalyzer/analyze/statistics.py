# gpxanalyzer/analyze/statistics.py
"""
Streaming statistics over track points.

StatisticsAccumulator is a single-pass fold: callers feed points one at a
time (segment by segment) and read a TrackStatistics at the end. Nothing
but running totals and the previous point is retained, so a generator of
points is folded without materializing it.

Pairs are formed between consecutive points of the same segment only.
"""

from __future__ import annotations

import datetime as _dt
import logging
from typing import Iterable, Optional

from gpxanalyzer.config import AnalysisConfig
from gpxanalyzer.errors import ConfigError, ProjectionError
from gpxanalyzer.geo.distance import DistanceMode, distance, elevation_delta
from gpxanalyzer.geo.ecef import CentroidAccumulator
from gpxanalyzer.geo.projection import (
    DEFERRED_PROJECTIONS,
    ProjectionDefinition,
    Projector,
    resolve_projection,
)
from gpxanalyzer.model import BoundingBox, ProfileSample, Segment, TrackStatistics

logger = logging.getLogger(__name__)


class _Fold:
    """Running totals for one segment, or for the whole track."""

    def __init__(self) -> None:
        self.distance_m = 0.0
        self.gain_m = 0.0
        self.loss_m = 0.0
        self.min_speed: Optional[float] = None
        self.max_speed: Optional[float] = None
        self.timed_distance_m = 0.0
        self.timed_s = 0.0
        self.timed_pairs = 0
        self.min_lat: Optional[float] = None
        self.max_lat: Optional[float] = None
        self.min_lon: Optional[float] = None
        self.max_lon: Optional[float] = None
        self.min_ele: Optional[float] = None
        self.max_ele: Optional[float] = None
        self.first_time: Optional[_dt.datetime] = None
        self.last_time: Optional[_dt.datetime] = None
        self.point_count = 0
        self.centroid = CentroidAccumulator()

    def add_point(self, p) -> None:
        self.point_count += 1
        if self.min_lat is None:
            self.min_lat = self.max_lat = p.lat
            self.min_lon = self.max_lon = p.lon
        else:
            self.min_lat = min(self.min_lat, p.lat)
            self.max_lat = max(self.max_lat, p.lat)
            self.min_lon = min(self.min_lon, p.lon)
            self.max_lon = max(self.max_lon, p.lon)
        if p.ele is not None:
            self.min_ele = p.ele if self.min_ele is None else min(self.min_ele, p.ele)
            self.max_ele = p.ele if self.max_ele is None else max(self.max_ele, p.ele)
        if p.time is not None:
            if self.first_time is None:
                self.first_time = p.time
            self.last_time = p.time
        self.centroid.add(p.lat, p.lon)

    def add_pair(self, d: float, gain: float, loss: float, dt: Optional[float], speed: Optional[float]) -> None:
        self.distance_m += d
        self.gain_m += gain
        self.loss_m += loss
        if speed is not None:
            self.timed_pairs += 1
            self.timed_distance_m += d
            self.timed_s += dt
            self.min_speed = speed if self.min_speed is None else min(self.min_speed, speed)
            self.max_speed = speed if self.max_speed is None else max(self.max_speed, speed)

    @property
    def span_s(self) -> Optional[float]:
        if self.first_time is None:
            return None
        return (self.last_time - self.first_time).total_seconds()

    def bounding_box(self) -> Optional[BoundingBox]:
        if self.min_lat is None:
            return None
        return BoundingBox(self.min_lat, self.min_lon, self.max_lat, self.max_lon)

    def avg_speed(self, epsilon: float) -> Optional[float]:
        if not self.timed_pairs:
            return None
        return self.timed_distance_m / max(self.timed_s, epsilon)


class StatisticsAccumulator:
    """
    Single-pass TrackStatistics builder.

        acc = StatisticsAccumulator(config, definition)
        for seg in segments:
            acc.begin_segment()
            for p in seg:
                acc.add(p)
        stats = acc.result()

    For DistanceMode.PLANAR each point is projected on the fly with a
    Projector owned by this accumulator. Its definition is `definition`, or
    else `config.projection`; a deferred name ("utm:auto", "local") is
    resolved from the first point added. Planar mode with neither raises
    ConfigError here, before any point is folded.
    With collect_profile=True a ProfileSample is kept per point in
    `self.profile`.
    """

    def __init__(
        self,
        config: Optional[AnalysisConfig] = None,
        definition: Optional[ProjectionDefinition] = None,
        *,
        collect_profile: Optional[bool] = None,
    ) -> None:
        self.config = config if config is not None else AnalysisConfig()
        self.mode = self.config.distance_mode
        self.epsilon = self.config.speed_epsilon_s
        self.cancel = self.config.cancel
        self.definition = definition

        self._projector: Optional[Projector] = None
        self._deferred: Optional[str] = None
        if self.mode is DistanceMode.PLANAR:
            if definition is None:
                spec = self.config.projection
                if spec is None:
                    raise ConfigError("planar distance mode requires a projection")
                if isinstance(spec, str) and spec.strip().lower() in DEFERRED_PROJECTIONS:
                    self._deferred = spec
                else:
                    self.definition = resolve_projection(spec)
            if self._deferred is None:
                self._projector = Projector(self.definition)

        if collect_profile is None:
            collect_profile = self.config.collect_profile
        self.profile: Optional[list[ProfileSample]] = [] if collect_profile else None

        self._total = _Fold()
        self._segments: list[_Fold] = []
        self._segment: Optional[_Fold] = None
        self._prev = None
        self._prev_xy = None
        self._cum_distance = 0.0
        self.skipped = 0

    def begin_segment(self) -> None:
        """Start a new segment; the next point does not pair with the previous one."""
        self._segment = _Fold()
        self._segments.append(self._segment)
        self._prev = None
        self._prev_xy = None

    def add(self, p, segment_index: Optional[int] = None, point_index: Optional[int] = None) -> None:
        """Fold one point (anything with lat/lon/ele/time) into the totals."""
        if self.cancel is not None:
            self.cancel.raise_if_cancelled()
        if self._deferred is not None:
            self.definition = resolve_projection(self._deferred, p)
            self._projector = Projector(self.definition)
            self._deferred = None
        if self._segment is None:
            self.begin_segment()
        seg = self._segment
        si = len(self._segments) - 1 if segment_index is None else segment_index
        pi = seg.point_count if point_index is None else point_index

        xy = None
        if self._projector is not None:
            try:
                xy = self._projector.project(p, si, pi)
            except ProjectionError as e:
                if not self.config.skip_unprojectable:
                    raise
                self.skipped += 1
                logger.warning("Skipping point %d/%d: %s", si, pi, e)
                return

        speed = None
        if self._prev is not None:
            prev = self._prev
            if xy is not None:
                d = distance(self._prev_xy, xy, DistanceMode.PLANAR, self._projector)
            else:
                d = distance(prev, p, self.mode)
            gain, loss = elevation_delta(prev, p)
            dt = None
            if prev.time is not None and p.time is not None:
                dt = (p.time - prev.time).total_seconds()
                speed = d / max(dt, self.epsilon)
            seg.add_pair(d, gain, loss, dt, speed)
            self._total.add_pair(d, gain, loss, dt, speed)
            self._cum_distance += d

        seg.add_point(p)
        self._total.add_point(p)
        self._prev = p
        self._prev_xy = xy

        if self.profile is not None:
            elapsed = None
            if p.time is not None and self._total.first_time is not None:
                elapsed = (p.time - self._total.first_time).total_seconds()
            self.profile.append(
                ProfileSample(
                    segment_index=si,
                    point_index=pi,
                    distance_m=self._cum_distance,
                    elevation=p.ele,
                    elapsed_s=elapsed,
                    speed_mps=speed,
                )
            )

    def _stats(self, fold: _Fold, *, duration_s, segment_count, segments=()) -> TrackStatistics:
        return TrackStatistics(
            total_distance_m=fold.distance_m,
            elevation_gain_m=fold.gain_m,
            elevation_loss_m=fold.loss_m,
            min_speed_mps=fold.min_speed,
            max_speed_mps=fold.max_speed,
            avg_speed_mps=fold.avg_speed(self.epsilon),
            bounding_box=fold.bounding_box(),
            duration_s=duration_s,
            point_count=fold.point_count,
            segment_count=segment_count,
            min_elevation=fold.min_ele,
            max_elevation=fold.max_ele,
            elapsed_s=fold.span_s,
            center=fold.centroid.result(),
            segments=segments,
        )

    def result(self) -> TrackStatistics:
        per_segment = tuple(
            self._stats(f, duration_s=f.span_s, segment_count=1) for f in self._segments
        )
        durations = [s.duration_s for s in per_segment if s.duration_s is not None]
        return self._stats(
            self._total,
            duration_s=sum(durations) if durations else None,
            segment_count=len(self._segments),
            segments=per_segment,
        )


def aggregate_segments(
    segments: Iterable[Iterable],
    config: Optional[AnalysisConfig] = None,
    definition: Optional[ProjectionDefinition] = None,
) -> TrackStatistics:
    """Fold several segments (iterables of points) into one TrackStatistics."""
    acc = StatisticsAccumulator(config, definition)
    for seg in segments:
        acc.begin_segment()
        for p in seg:
            acc.add(p)
    return acc.result()


def aggregate(
    points: Iterable,
    config: Optional[AnalysisConfig] = None,
    definition: Optional[ProjectionDefinition] = None,
) -> TrackStatistics:
    """
    Fold one ordered point sequence into TrackStatistics.

    A `Segment` is treated as one segment; any other iterable of points
    likewise. Use aggregate_segments for multi-segment input.
    """
    if isinstance(points, Segment):
        points = points.points
    return aggregate_segments([points], config, definition)
