# gpxanalyzer/geo/ecef.py
"""
WGS84 geodetic <-> Earth-Centred Earth-Fixed conversion.

Used for the track centre: averaging in ECEF avoids the longitude wrap and
pole problems of averaging degrees directly.
"""

from __future__ import annotations

import math
from typing import Iterable, Optional

from gpxanalyzer.model import GeoPoint

WGS84_A = 6378137.0
WGS84_B = 6356752.314245
E2 = 1.0 - (WGS84_B * WGS84_B) / (WGS84_A * WGS84_A)
E2_PRIME = E2 / (1.0 - E2)


def geodetic_to_ecef(lat: float, lon: float, alt: float = 0.0) -> tuple[float, float, float]:
    phi = math.radians(lat)
    lam = math.radians(lon)
    sin_phi = math.sin(phi)
    cos_phi = math.cos(phi)

    # Radius of curvature in the prime vertical
    n = WGS84_A / math.sqrt(1.0 - E2 * sin_phi * sin_phi)

    x = (n + alt) * cos_phi * math.cos(lam)
    y = (n + alt) * cos_phi * math.sin(lam)
    z = (n * (1.0 - E2) + alt) * sin_phi
    return x, y, z


def ecef_to_geodetic(x: float, y: float, z: float) -> tuple[float, float, float]:
    """Bowring's closed-form approximation; sub-millimetre near the surface."""
    lon = math.atan2(y, x)
    p = math.hypot(x, y)

    theta = math.atan2(z * WGS84_A, p * WGS84_B)
    sin_t = math.sin(theta)
    cos_t = math.cos(theta)
    lat = math.atan2(
        z + E2_PRIME * WGS84_B * sin_t ** 3,
        p - E2 * WGS84_A * cos_t ** 3,
    )

    sin_phi = math.sin(lat)
    n = WGS84_A / math.sqrt(1.0 - E2 * sin_phi * sin_phi)
    cos_phi = math.cos(lat)
    if abs(cos_phi) > 1e-12:
        alt = p / cos_phi - n
    else:
        alt = abs(z) - WGS84_B
    return math.degrees(lat), math.degrees(lon), alt


class CentroidAccumulator:
    """Running ECEF sum; elevation is ignored (points are placed on the ellipsoid)."""

    def __init__(self) -> None:
        self.sx = 0.0
        self.sy = 0.0
        self.sz = 0.0
        self.count = 0

    def add(self, lat: float, lon: float) -> None:
        x, y, z = geodetic_to_ecef(lat, lon)
        self.sx += x
        self.sy += y
        self.sz += z
        self.count += 1

    def result(self) -> Optional[GeoPoint]:
        if self.count == 0:
            return None
        n = float(self.count)
        lat, lon, _ = ecef_to_geodetic(self.sx / n, self.sy / n, self.sz / n)
        return GeoPoint(lat=lat, lon=lon)


def centroid(points: Iterable) -> Optional[GeoPoint]:
    """Geometric centre of anything with lat/lon attributes, or None if empty."""
    acc = CentroidAccumulator()
    for p in points:
        acc.add(p.lat, p.lon)
    return acc.result()
