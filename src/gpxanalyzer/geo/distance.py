# gpxanalyzer/geo/distance.py
"""
Point-to-point geometry for gpxanalyzer.

distance():
  - GREAT_CIRCLE: haversine on the mean Earth radius (the default)
  - GEODESIC:     WGS84 ellipsoid via pyproj.Geod
  - PLANAR:       Euclidean distance between two ProjectedPoints of the same
                  definition, divided by the projection's local scale factor

elevation_delta():
  gain/loss between two fixes; a pair with a missing elevation contributes
  nothing to either.
"""

from __future__ import annotations

import math
from enum import Enum
from typing import Optional, Protocol, Union

from haversine import Unit, haversine
from pyproj import Geod

from gpxanalyzer.geo.projection import MERCATOR_RADIUS_M, ProjectionDefinition, Projector
from gpxanalyzer.model import ProjectedPoint

# Read-only; Geod holds ellipsoid constants only.
_WGS84_GEOD = Geod(ellps="WGS84")

_MERCATOR_HALF_PERIOD_M = math.pi * MERCATOR_RADIUS_M


class DistanceMode(str, Enum):
    GREAT_CIRCLE = "great_circle"
    GEODESIC = "geodesic"
    PLANAR = "planar"


class HasLatLon(Protocol):
    lat: float
    lon: float


class HasElevation(Protocol):
    ele: Optional[float]


def great_circle_m(a: HasLatLon, b: HasLatLon) -> float:
    """
    Haversine distance in meters.

    The haversine term uses sin^2 of half the longitude difference, so a
    pair straddling +/-180 degrees yields the short way round.
    """
    return haversine((a.lat, a.lon), (b.lat, b.lon), unit=Unit.METERS)


def geodesic_m(a: HasLatLon, b: HasLatLon) -> float:
    """Ellipsoidal (WGS84) distance in meters."""
    _, _, d = _WGS84_GEOD.inv(a.lon, a.lat, b.lon, b.lat)
    return float(d)


def planar_m(
    a: ProjectedPoint,
    b: ProjectedPoint,
    definition: Union[ProjectionDefinition, Projector, None] = None,
) -> float:
    """
    Euclidean distance between projected points, in meters.

    Without a definition the coordinates are taken to be true-scale meters.
    Pass a Projector rather than a bare definition when measuring many
    pairs; it keeps its PROJ handles between calls.

    Mercator x is periodic: a pair straddling the antimeridian is measured
    the short way round.
    """
    dx = b.x - a.x
    dy = b.y - a.y
    if definition is None:
        return math.hypot(dx, dy)

    projector = definition if isinstance(definition, Projector) else Projector(definition)
    if projector.definition.scale_model == "mercator":
        dx = (dx + _MERCATOR_HALF_PERIOD_M) % (2.0 * _MERCATOR_HALF_PERIOD_M) - _MERCATOR_HALF_PERIOD_M
    mid = ProjectedPoint(x=a.x + dx / 2.0, y=(a.y + b.y) / 2.0)
    return math.hypot(dx, dy) / projector.scale_at(mid)


def distance(
    a,
    b,
    mode: DistanceMode = DistanceMode.GREAT_CIRCLE,
    definition: Union[ProjectionDefinition, Projector, None] = None,
) -> float:
    """
    Distance between two points in meters.

    For PLANAR both points must be ProjectedPoints of `definition` (a
    ProjectionDefinition or a Projector built from one); otherwise
    anything with `lat`/`lon` attributes works.
    """
    if mode is DistanceMode.PLANAR:
        if not (isinstance(a, ProjectedPoint) and isinstance(b, ProjectedPoint)):
            raise TypeError("planar distance needs two ProjectedPoint values")
        return planar_m(a, b, definition)
    if mode is DistanceMode.GEODESIC:
        return geodesic_m(a, b)
    return great_circle_m(a, b)


def elevation_delta(a: HasElevation, b: HasElevation) -> tuple[float, float]:
    """Return (gain, loss) in meters from a to b; (0, 0) if either elevation is absent."""
    if a.ele is None or b.ele is None:
        return 0.0, 0.0
    diff = b.ele - a.ele
    if diff > 0:
        return diff, 0.0
    return 0.0, -diff
