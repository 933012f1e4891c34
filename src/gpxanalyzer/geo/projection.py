# gpxanalyzer/geo/projection.py
"""
Projection engine: geographic (lat/lon, WGS84) <-> planar (x/y, meters).

A `ProjectionDefinition` is an immutable description of a coordinate
reference system plus the domain in which we trust it. Definitions are
plain values and can be shared freely between runs and threads.

A `Projector` binds a definition to a backend:
  - "spherical_mercator": closed-form Web Mercator (EPSG:3857), no pyproj
  - "pyproj": any CRS PROJ understands (UTM zones, local azimuthal
    equidistant)

pyproj `Transformer` objects are built per Projector and never cached at
module level, so each analysis run owns its own backend state.

Out-of-domain coordinates raise ProjectionError instead of producing
NaN/inf or silently distorted values.
"""

from __future__ import annotations

import logging
import math
import re
from dataclasses import dataclass
from typing import Iterable, Iterator, Optional, Union

from haversine import Unit, haversine
from pyproj import Proj, Transformer
from pyproj.exceptions import ProjError

from gpxanalyzer.errors import ProjectionError
from gpxanalyzer.model import ProjectedPoint, TrackPoint

logger = logging.getLogger(__name__)

WGS84_CRS = "EPSG:4326"

# Web Mercator uses the WGS84 semi-major axis as a sphere radius.
MERCATOR_RADIUS_M = 6378137.0
MERCATOR_MAX_LAT = math.degrees(2.0 * math.atan(math.exp(math.pi)) - math.pi / 2.0)  # ~85.0511

# UTM is defined between 80S and 84N.
UTM_MIN_LAT = -80.0
UTM_MAX_LAT = 84.0
# Half-width of the longitude band accepted around a UTM central meridian:
# the zone itself (3 deg) plus one neighbouring zone on each side.
UTM_LON_HALF_WIDTH = 9.0

DEFAULT_LOCAL_RADIUS_M = 1_000_000.0

# Inverse results are compared to domain bounds with this slack (degrees) so
# that points projected right at the edge round-trip.
_INVERSE_SLACK_DEG = 1e-9


def wrap_lon_delta(d: float) -> float:
    """Wrap a longitude difference into [-180, 180)."""
    return (d + 180.0) % 360.0 - 180.0


def normalize_lon(lon: float) -> float:
    """Bring a longitude back into [-180, 180]; in-range values pass through."""
    if -180.0 <= lon <= 180.0:
        return lon
    return max(-180.0, min(180.0, wrap_lon_delta(lon)))


# ---------------------------------------------------------------------------
# Definitions
# ---------------------------------------------------------------------------
@dataclass(frozen=True)
class ProjectionDefinition:
    """
    Named planar coordinate reference system and its trusted domain.

    Attributes:
      name:          registry / display name (e.g. "web_mercator", "utm:33N")
      crs:           PROJ string or authority code understood by pyproj
      backend:       "spherical_mercator" or "pyproj"
      ellipsoid:     ellipsoid name (informational for spherical backend)
      datum:         datum name
      zone:          UTM zone number, when applicable
      south:         southern-hemisphere UTM variant
      min_lat/max_lat:     latitude bounds of the domain
      lon_center/lon_half_width: optional longitude band (wrapped)
      center_lat/center_lon/max_radius_m: optional radial domain
      scale_model:   "mercator" (scale = sec(lat)), "conformal" (point scale
                     read from PROJ) or "unit" (scale ~ 1)
    """

    name: str
    crs: str
    backend: str = "pyproj"
    ellipsoid: str = "WGS84"
    datum: str = "WGS84"
    zone: Optional[int] = None
    south: bool = False
    min_lat: float = -90.0
    max_lat: float = 90.0
    lon_center: Optional[float] = None
    lon_half_width: Optional[float] = None
    center_lat: Optional[float] = None
    center_lon: Optional[float] = None
    max_radius_m: Optional[float] = None
    scale_model: str = "unit"

    def contains(self, lat: float, lon: float, *, slack: float = 0.0) -> bool:
        """True if (lat, lon) lies inside this definition's domain."""
        if not (math.isfinite(lat) and math.isfinite(lon)):
            return False
        if lat < self.min_lat - slack or lat > self.max_lat + slack:
            return False
        if self.lon_center is not None and self.lon_half_width is not None:
            if abs(wrap_lon_delta(lon - self.lon_center)) > self.lon_half_width + slack:
                return False
        if self.max_radius_m is not None and self.center_lat is not None and self.center_lon is not None:
            if haversine(
                (self.center_lat, self.center_lon), (lat, lon), unit=Unit.METERS, normalize=True
            ) > self.max_radius_m:
                return False
        return True


WEB_MERCATOR = ProjectionDefinition(
    name="web_mercator",
    crs="EPSG:3857",
    backend="spherical_mercator",
    min_lat=-MERCATOR_MAX_LAT,
    max_lat=MERCATOR_MAX_LAT,
    scale_model="mercator",
)

# Registered, ready-made definitions. Parameterised families (UTM zones,
# local projections) are built by the factories below.
PROJECTIONS: dict[str, ProjectionDefinition] = {
    WEB_MERCATOR.name: WEB_MERCATOR,
}


def utm(zone: int, south: bool = False) -> ProjectionDefinition:
    """UTM zone definition on WGS84."""
    if not 1 <= zone <= 60:
        raise ValueError(f"UTM zone must be 1..60, got {zone}")
    crs = f"+proj=utm +zone={zone} +datum=WGS84 +units=m +no_defs"
    if south:
        crs += " +south"
    return ProjectionDefinition(
        name=f"utm:{zone}{'S' if south else 'N'}",
        crs=crs,
        zone=zone,
        south=south,
        min_lat=UTM_MIN_LAT,
        max_lat=UTM_MAX_LAT,
        lon_center=-183.0 + 6.0 * zone,
        lon_half_width=UTM_LON_HALF_WIDTH,
        scale_model="conformal",
    )


def utm_zone_number(lon: float) -> int:
    """Standard 6-degree zone number for a longitude (no Norway/Svalbard exceptions)."""
    lon = wrap_lon_delta(lon)
    return min(60, int((lon + 180.0) // 6.0) + 1)


def utm_for(lat: float, lon: float) -> ProjectionDefinition:
    """UTM definition of the zone containing (lat, lon)."""
    return utm(utm_zone_number(lon), south=lat < 0.0)


def local_aeqd(lat: float, lon: float, max_radius_m: float = DEFAULT_LOCAL_RADIUS_M) -> ProjectionDefinition:
    """Azimuthal equidistant projection centred on (lat, lon)."""
    return ProjectionDefinition(
        name=f"local:{lat:.6f},{lon:.6f}",
        crs=f"+proj=aeqd +lat_0={lat} +lon_0={lon} +datum=WGS84 +units=m",
        center_lat=lat,
        center_lon=lon,
        max_radius_m=max_radius_m,
    )


_UTM_NAME = re.compile(r"^utm:(\d{1,2})([NS])$", re.IGNORECASE)
DEFERRED_PROJECTIONS = ("utm:auto", "local")

ProjectionSpec = Union[ProjectionDefinition, str, None]


def is_known_projection(spec: ProjectionSpec) -> bool:
    """Syntactic check used by configuration validation (no reference point needed)."""
    if spec is None or isinstance(spec, ProjectionDefinition):
        return True
    name = spec.strip().lower()
    if name in PROJECTIONS or name in DEFERRED_PROJECTIONS:
        return True
    m = _UTM_NAME.match(name)
    return bool(m and 1 <= int(m.group(1)) <= 60)


def resolve_projection(
    spec: ProjectionSpec,
    reference: Optional[TrackPoint] = None,
) -> Optional[ProjectionDefinition]:
    """
    Turn a projection spec into a definition.

    Accepted names: registry keys ("web_mercator"), "utm:<zone><N|S>",
    "utm:auto" and "local" (both need a reference point, normally the
    first point of the track).
    """
    if spec is None or isinstance(spec, ProjectionDefinition):
        return spec

    name = spec.strip().lower()
    if name in PROJECTIONS:
        return PROJECTIONS[name]

    m = _UTM_NAME.match(name)
    if m:
        try:
            return utm(int(m.group(1)), south=m.group(2).upper() == "S")
        except ValueError as e:
            raise ProjectionError(str(e), projection=spec) from e

    if name in DEFERRED_PROJECTIONS:
        if reference is None:
            raise ProjectionError(f"projection {spec!r} needs a reference point", projection=spec)
        if name == "utm:auto":
            return utm_for(reference.lat, reference.lon)
        return local_aeqd(reference.lat, reference.lon)

    raise ProjectionError(f"unknown projection {spec!r}", projection=spec)


# ---------------------------------------------------------------------------
# Projectors
# ---------------------------------------------------------------------------
class Projector:
    """
    A definition bound to a backend, owned by a single run.

    project/unproject validate the domain on both sides and never return
    non-finite values.
    """

    def __init__(self, definition: ProjectionDefinition) -> None:
        self.definition = definition
        self._forward: Optional[Transformer] = None
        self._inverse: Optional[Transformer] = None
        self._proj: Optional[Proj] = None
        if definition.backend == "pyproj":
            try:
                self._forward = Transformer.from_crs(WGS84_CRS, definition.crs, always_xy=True)
                self._inverse = Transformer.from_crs(definition.crs, WGS84_CRS, always_xy=True)
            except ProjError as e:
                raise ProjectionError(
                    f"cannot build projection {definition.name!r}: {e}",
                    projection=definition.name,
                ) from e
        elif definition.backend != "spherical_mercator":
            raise ProjectionError(
                f"unknown projection backend {definition.backend!r}",
                projection=definition.name,
            )

    def _out_of_domain(self, lat: float, lon: float) -> ProjectionError:
        return ProjectionError(
            f"({lat}, {lon}) is outside the domain of {self.definition.name}",
            projection=self.definition.name,
            coordinate=(lat, lon),
        )

    def forward(self, lat: float, lon: float) -> tuple[float, float]:
        """(lat, lon) degrees -> (x, y) meters."""
        if not self.definition.contains(lat, lon):
            raise self._out_of_domain(lat, lon)

        if self._forward is None:
            x = MERCATOR_RADIUS_M * math.radians(lon)
            y = MERCATOR_RADIUS_M * math.log(math.tan(math.pi / 4.0 + math.radians(lat) / 2.0))
        else:
            try:
                x, y = self._forward.transform(lon, lat, errcheck=True)
            except ProjError as e:
                raise ProjectionError(
                    f"projection {self.definition.name} failed for ({lat}, {lon}): {e}",
                    projection=self.definition.name,
                    coordinate=(lat, lon),
                ) from e

        if not (math.isfinite(x) and math.isfinite(y)):
            raise self._out_of_domain(lat, lon)
        return x, y

    def inverse(self, x: float, y: float) -> tuple[float, float]:
        """(x, y) meters -> (lat, lon) degrees."""
        if not (math.isfinite(x) and math.isfinite(y)):
            raise ProjectionError(
                f"non-finite planar coordinate ({x}, {y})",
                projection=self.definition.name,
            )

        if self._inverse is None:
            if abs(x) > math.pi * MERCATOR_RADIUS_M * (1.0 + 1e-12):
                raise ProjectionError(
                    f"x={x} is outside the domain of {self.definition.name}",
                    projection=self.definition.name,
                )
            lon = math.degrees(x / MERCATOR_RADIUS_M)
            lat = math.degrees(2.0 * math.atan(math.exp(y / MERCATOR_RADIUS_M)) - math.pi / 2.0)
        else:
            try:
                lon, lat = self._inverse.transform(x, y, errcheck=True)
            except ProjError as e:
                raise ProjectionError(
                    f"inverse projection {self.definition.name} failed for ({x}, {y}): {e}",
                    projection=self.definition.name,
                ) from e

        # x = +/-pi*R comes back a few ulps past the antimeridian.
        lon = normalize_lon(lon)
        if not self.definition.contains(lat, lon, slack=_INVERSE_SLACK_DEG):
            raise self._out_of_domain(lat, lon)
        return lat, lon

    def scale_at(self, point: ProjectedPoint) -> float:
        """
        Ratio of projected length to true length near `point`.

        Mercator stretches by sec(lat). Conformal pyproj definitions (UTM)
        ask PROJ for the point scale, which includes k0 and the growth away
        from the central meridian. "unit" definitions (local azimuthal
        equidistant) are taken as true scale; radial distances from the
        centre are exact and the tangential error stays under 0.5% within
        the default 1000 km radius.
        """
        model = self.definition.scale_model
        if model == "mercator":
            lat = math.degrees(2.0 * math.atan(math.exp(point.y / MERCATOR_RADIUS_M)) - math.pi / 2.0)
            return 1.0 / math.cos(math.radians(lat))
        if model != "conformal":
            return 1.0

        try:
            if self._proj is None:
                self._proj = Proj(self.definition.crs)
            lon, lat = self._proj(point.x, point.y, inverse=True, errcheck=True)
            factors = self._proj.get_factors(lon, lat, errcheck=True)
        except ProjError as e:
            raise ProjectionError(
                f"no point scale for {self.definition.name} at ({point.x}, {point.y}): {e}",
                projection=self.definition.name,
            ) from e
        k = float(factors.meridional_scale)
        if not (math.isfinite(k) and k > 0.0):
            raise ProjectionError(
                f"invalid point scale {k} for {self.definition.name}",
                projection=self.definition.name,
            )
        return k

    def project(self, point: TrackPoint, segment_index: int = 0, point_index: int = 0) -> ProjectedPoint:
        x, y = self.forward(point.lat, point.lon)
        return ProjectedPoint(x=x, y=y, segment_index=segment_index, point_index=point_index)

    def unproject(self, point: ProjectedPoint) -> TrackPoint:
        lat, lon = self.inverse(point.x, point.y)
        return TrackPoint(lat=lat, lon=lon)


def project(point: TrackPoint, definition: ProjectionDefinition) -> ProjectedPoint:
    """Project one point. Builds a throwaway Projector; use project_points for batches."""
    return Projector(definition).project(point)


def unproject(point: ProjectedPoint, definition: ProjectionDefinition) -> TrackPoint:
    """Inverse of `project`; the result carries no elevation or time."""
    return Projector(definition).unproject(point)


def project_points(
    points: Iterable[tuple[int, int, TrackPoint]],
    definition: ProjectionDefinition,
    *,
    skip_unprojectable: bool = False,
    cancel=None,
) -> Iterator[ProjectedPoint]:
    """
    Lazily project (segment_index, point_index, point) triples, e.g. from
    `Track.iter_points()`.

    With skip_unprojectable=True, out-of-domain points are logged and
    omitted; otherwise the first one raises ProjectionError.
    """
    projector = Projector(definition)
    for si, pi, p in points:
        if cancel is not None:
            cancel.raise_if_cancelled()
        try:
            yield projector.project(p, si, pi)
        except ProjectionError as e:
            if not skip_unprojectable:
                raise
            logger.warning("Skipping point %d/%d: %s", si, pi, e)
