# gpxanalyzer/model.py
"""
Immutable value types shared by every stage of the analysis pipeline.

`Track`, `Segment` and `TrackPoint` are produced by the parser and never
mutated afterwards. `ProjectedPoint`, `SmoothedPoint` and `ProfileSample`
are per-run derived values. `TrackStatistics` is the long-lived result.

All types are plain frozen dataclasses; `to_dict()` helpers return
JSON-ready structures with ISO-8601 (UTC, Z) timestamps.
"""

from __future__ import annotations

import datetime as _dt
import math
from collections import Counter
from dataclasses import asdict, dataclass, field, is_dataclass
from enum import Enum
from typing import Any, Iterator, Optional

LAT_RANGE = (-90.0, 90.0)
LON_RANGE = (-180.0, 180.0)


def format_time(dt: _dt.datetime) -> str:
    """Format a tz-aware datetime as UTC with a Z suffix."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=_dt.timezone.utc)
    return dt.astimezone(_dt.timezone.utc).isoformat().replace("+00:00", "Z")


def _jsonable(value: Any) -> Any:
    if is_dataclass(value) and not isinstance(value, type):
        return _jsonable(asdict(value))
    if isinstance(value, _dt.datetime):
        return format_time(value)
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, dict):
        return {k: _jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    if isinstance(value, float) and not math.isfinite(value):
        return None
    return value


def to_jsonable(obj: Any) -> Any:
    """Convert a model dataclass (or a structure of them) to plain JSON types."""
    return _jsonable(obj)


# ---------------------------------------------------------------------------
# Parsed track model
# ---------------------------------------------------------------------------
@dataclass(frozen=True)
class TrackPoint:
    """A single fix. Latitude/longitude in degrees, elevation in meters."""

    lat: float
    lon: float
    ele: Optional[float] = None
    time: Optional[_dt.datetime] = None


@dataclass(frozen=True)
class Segment:
    """A contiguous recording interval."""

    points: tuple[TrackPoint, ...] = ()

    def __len__(self) -> int:
        return len(self.points)

    def __iter__(self) -> Iterator[TrackPoint]:
        return iter(self.points)


@dataclass(frozen=True)
class Track:
    """
    Top-level parsed entity.

    An empty track (no segments, or only empty segments) is a valid,
    representable state; `is_empty` tells the two apart from a real track.
    """

    name: Optional[str] = None
    time: Optional[_dt.datetime] = None
    segments: tuple[Segment, ...] = ()
    creator: Optional[str] = None
    author: Optional[str] = None

    @property
    def point_count(self) -> int:
        return sum(len(s) for s in self.segments)

    @property
    def is_empty(self) -> bool:
        return self.point_count == 0

    def iter_points(self) -> Iterator[tuple[int, int, TrackPoint]]:
        """Yield (segment_index, point_index, point) in document order."""
        for si, seg in enumerate(self.segments):
            for pi, p in enumerate(seg.points):
                yield si, pi, p

    def to_dict(self) -> dict[str, Any]:
        return to_jsonable(self)


# ---------------------------------------------------------------------------
# Parse report
# ---------------------------------------------------------------------------
class RejectReason(str, Enum):
    INVALID_COORDINATE = "invalid_coordinate"
    NON_FINITE_COORDINATE = "non_finite_coordinate"
    LATITUDE_OUT_OF_RANGE = "latitude_out_of_range"
    LONGITUDE_OUT_OF_RANGE = "longitude_out_of_range"
    TIME_NOT_MONOTONIC = "time_not_monotonic"
    INVALID_ELEVATION = "invalid_elevation"
    INVALID_TIME = "invalid_time"


@dataclass(frozen=True)
class RejectedPoint:
    segment_index: int
    point_index: int
    reason: RejectReason
    detail: str = ""


@dataclass(frozen=True)
class FieldWarning:
    """A non-fatal oddity: an optional field treated as absent, a missing version, ..."""

    message: str
    segment_index: Optional[int] = None
    point_index: Optional[int] = None


@dataclass(frozen=True)
class ParseReport:
    rejected: tuple[RejectedPoint, ...] = ()
    warnings: tuple[FieldWarning, ...] = ()
    track_count: int = 0
    accepted_count: int = 0

    @property
    def rejected_count(self) -> int:
        return len(self.rejected)

    def rejected_by_reason(self) -> dict[RejectReason, int]:
        return dict(Counter(r.reason for r in self.rejected))

    def to_dict(self) -> dict[str, Any]:
        d = to_jsonable(self)
        d["rejected_count"] = self.rejected_count
        return d


@dataclass(frozen=True)
class ParseResult:
    track: Track
    report: ParseReport


# ---------------------------------------------------------------------------
# Per-run derived values
# ---------------------------------------------------------------------------
@dataclass(frozen=True)
class ProjectedPoint:
    """
    Planar (x, y) for a source point.

    `segment_index`/`point_index` refer back to the source `TrackPoint` in
    its `Track`; elevation and time are never copied.
    """

    x: float
    y: float
    segment_index: int = 0
    point_index: int = 0


@dataclass(frozen=True)
class SmoothedPoint:
    """
    A TrackPoint-shaped value after filtering.

    `index` is the position in the input sequence. `adjusted` is true when
    the elevation was changed, by `ele_adjustment` meters. `dropped` points
    only appear when the caller asks for diagnostics.
    """

    lat: float
    lon: float
    ele: Optional[float]
    time: Optional[_dt.datetime]
    index: int
    adjusted: bool = False
    ele_adjustment: float = 0.0
    dropped: bool = False
    drop_reason: Optional[str] = None


@dataclass(frozen=True)
class GeoPoint:
    lat: float
    lon: float


@dataclass(frozen=True)
class BoundingBox:
    min_lat: float
    min_lon: float
    max_lat: float
    max_lon: float

    @property
    def southwest(self) -> GeoPoint:
        return GeoPoint(self.min_lat, self.min_lon)

    @property
    def northeast(self) -> GeoPoint:
        return GeoPoint(self.max_lat, self.max_lon)


@dataclass(frozen=True)
class ProfileSample:
    """One point of the distance/elevation/speed profile."""

    segment_index: int
    point_index: int
    distance_m: float
    elevation: Optional[float]
    elapsed_s: Optional[float]
    speed_mps: Optional[float]

    @property
    def pace_s_per_km(self) -> Optional[float]:
        if not self.speed_mps:
            return None
        return 1000.0 / self.speed_mps


@dataclass(frozen=True)
class TrackStatistics:
    """
    Aggregate result.

    Distance/elevation fields are never negative. Speed fields are None
    (not zero) when no timed pair exists; `duration_s` is None when no
    point carries a timestamp.
    """

    total_distance_m: float = 0.0
    elevation_gain_m: float = 0.0
    elevation_loss_m: float = 0.0
    min_speed_mps: Optional[float] = None
    max_speed_mps: Optional[float] = None
    avg_speed_mps: Optional[float] = None
    bounding_box: Optional[BoundingBox] = None
    duration_s: Optional[float] = None
    point_count: int = 0
    segment_count: int = 0
    min_elevation: Optional[float] = None
    max_elevation: Optional[float] = None
    elapsed_s: Optional[float] = None
    center: Optional[GeoPoint] = None
    segments: tuple["TrackStatistics", ...] = field(default=())

    @property
    def average_pace_s_per_km(self) -> Optional[float]:
        if not self.avg_speed_mps:
            return None
        return 1000.0 / self.avg_speed_mps

    def to_dict(self) -> dict[str, Any]:
        d = to_jsonable(self)
        d["average_pace_s_per_km"] = self.average_pace_s_per_km
        for sd, s in zip(d["segments"], self.segments):
            sd["average_pace_s_per_km"] = s.average_pace_s_per_km
        return d


class TrendDirection(str, Enum):
    UP = "up"
    DOWN = "down"


@dataclass(frozen=True)
class ElevationTrend:
    """A sustained climb or descent between two profile samples."""

    direction: TrendDirection
    start: ProfileSample
    end: ProfileSample

    @property
    def amplitude_m(self) -> float:
        return abs((self.end.elevation or 0.0) - (self.start.elevation or 0.0))

    @property
    def length_m(self) -> float:
        return self.end.distance_m - self.start.distance_m

    @property
    def grade(self) -> Optional[float]:
        """Average grade as a fraction (0.08 == 8%), signed by direction."""
        if self.length_m <= 0:
            return None
        sign = 1.0 if self.direction is TrendDirection.UP else -1.0
        return sign * self.amplitude_m / self.length_m

