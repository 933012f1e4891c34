import pytest

from gpxanalyzer.geo.distance import DistanceMode, distance, elevation_delta, geodesic_m, great_circle_m
from gpxanalyzer.geo.ecef import centroid, ecef_to_geodetic, geodetic_to_ecef
from gpxanalyzer.geo.projection import WEB_MERCATOR, Projector, project, utm
from gpxanalyzer.model import ProjectedPoint, TrackPoint


@pytest.mark.parametrize("lat", [0.0, 45.0, -60.0])
@pytest.mark.parametrize("mode", [DistanceMode.GREAT_CIRCLE, DistanceMode.GEODESIC])
def test_antimeridian_crossing_is_short(lat, mode):
    a = TrackPoint(lat, 179.9)
    b = TrackPoint(lat, -179.9)

    d = distance(a, b, mode)

    assert 0 < d < 25_000


def test_great_circle_known_value():
    # 0.001 degree of latitude on the 6371.0088 km mean radius
    d = great_circle_m(TrackPoint(46.0, 7.0), TrackPoint(46.001, 7.0))
    assert d == pytest.approx(111.19508, abs=1e-3)


def test_geodesic_close_to_great_circle():
    a, b = TrackPoint(46.0, 7.0), TrackPoint(47.0, 8.0)
    assert geodesic_m(a, b) == pytest.approx(great_circle_m(a, b), rel=5e-3)


def test_distance_is_symmetric_and_zero_for_same_point():
    a, b = TrackPoint(46.0, 7.0), TrackPoint(46.5, 7.5)
    assert distance(a, b) == pytest.approx(distance(b, a))
    assert distance(a, a) == 0.0


def test_planar_right_triangle_is_summed_pairwise():
    pts = [ProjectedPoint(0.0, 0.0), ProjectedPoint(3.0, 0.0), ProjectedPoint(3.0, 4.0)]

    total = sum(distance(p, q, DistanceMode.PLANAR) for p, q in zip(pts, pts[1:]))

    assert total == pytest.approx(7.0)
    assert distance(pts[0], pts[2], DistanceMode.PLANAR) == pytest.approx(5.0)


def test_planar_mercator_removes_scale_factor():
    a, b = TrackPoint(60.0, 10.0), TrackPoint(60.0, 10.01)
    pa, pb = project(a, WEB_MERCATOR), project(b, WEB_MERCATOR)

    raw = distance(pa, pb, DistanceMode.PLANAR)
    scaled = distance(pa, pb, DistanceMode.PLANAR, WEB_MERCATOR)

    assert raw == pytest.approx(2.0 * scaled, rel=1e-6)
    assert scaled == pytest.approx(great_circle_m(a, b), rel=5e-3)


@pytest.mark.parametrize("lat", [0.0, 45.0, -60.0])
def test_planar_mercator_antimeridian_crossing_is_short(lat):
    a, b = TrackPoint(lat, 179.9), TrackPoint(lat, -179.9)
    pa, pb = project(a, WEB_MERCATOR), project(b, WEB_MERCATOR)

    d = distance(pa, pb, DistanceMode.PLANAR, WEB_MERCATOR)

    assert d == pytest.approx(great_circle_m(a, b), rel=5e-3)
    assert d == pytest.approx(distance(pb, pa, DistanceMode.PLANAR, WEB_MERCATOR))


@pytest.mark.parametrize(
    "a, b",
    [
        # eight degrees east of the zone 33 central meridian
        (TrackPoint(0.0, 23.0), TrackPoint(0.01, 23.0)),
        (TrackPoint(0.0, 23.0), TrackPoint(0.0, 23.01)),
        # on the central meridian, where only k0 applies
        (TrackPoint(46.0, 15.0), TrackPoint(46.01, 15.0)),
    ],
)
def test_planar_utm_matches_geodesic(a, b):
    projector = Projector(utm(33))
    pa, pb = projector.project(a), projector.project(b)

    d = distance(pa, pb, DistanceMode.PLANAR, projector)

    assert d == pytest.approx(geodesic_m(a, b), rel=1e-5)
    assert d == pytest.approx(distance(pa, pb, DistanceMode.PLANAR, utm(33)))


def test_planar_needs_projected_points():
    with pytest.raises(TypeError):
        distance(TrackPoint(0.0, 0.0), TrackPoint(0.0, 1.0), DistanceMode.PLANAR)


def test_elevation_sequence_gain_and_loss():
    pts = [TrackPoint(0.0, 0.0, ele=e) for e in (100, 150, 120, 180)]

    deltas = [elevation_delta(a, b) for a, b in zip(pts, pts[1:])]

    assert sum(g for g, _ in deltas) == 110
    assert sum(l for _, l in deltas) == 30


@pytest.mark.parametrize("a_ele, b_ele", [(None, 100.0), (100.0, None), (None, None)])
def test_missing_elevation_contributes_nothing(a_ele, b_ele):
    assert elevation_delta(TrackPoint(0, 0, ele=a_ele), TrackPoint(0, 0, ele=b_ele)) == (0.0, 0.0)


@pytest.mark.parametrize("lat, lon, alt", [(0.0, 0.0, 0.0), (46.0, 7.0, 1200.0), (-89.0, -170.0, 10.0), (90.0, 0.0, 0.0)])
def test_ecef_round_trip(lat, lon, alt):
    back = ecef_to_geodetic(*geodetic_to_ecef(lat, lon, alt))

    assert back[0] == pytest.approx(lat, abs=1e-7)
    if abs(lat) < 90.0:
        assert back[1] == pytest.approx(lon, abs=1e-7)
    assert back[2] == pytest.approx(alt, abs=1e-2)


def test_centroid_across_antimeridian():
    c = centroid([TrackPoint(10.0, 179.0), TrackPoint(10.0, -179.0)])

    assert abs(c.lon) == pytest.approx(180.0, abs=1e-6)
    assert c.lat == pytest.approx(10.0, abs=0.01)


def test_centroid_empty():
    assert centroid([]) is None
