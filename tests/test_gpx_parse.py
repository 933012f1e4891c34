import datetime as dt

import pytest

from gpxanalyzer.errors import ParseError
from gpxanalyzer.formats.gpx import GPX_10_NS, parse, parse_gpx_time
from gpxanalyzer.model import RejectReason

T0 = "2026-01-03T08:00:00Z"
T1 = "2026-01-03T08:01:00Z"
T2 = "2026-01-03T08:02:00Z"


def test_parse_sample_gpx(sample_gpx_bytes):
    result = parse(sample_gpx_bytes)
    track, report = result.track, result.report

    assert track.name == "Morning Loop"
    assert track.creator == "Garmin eTrex 32x"
    assert track.author == "Sam Walker"
    assert track.time == dt.datetime(2026, 1, 3, 7, 55, tzinfo=dt.timezone.utc)
    assert [len(s) for s in track.segments] == [4, 2]
    assert track.point_count == 6
    assert track.segments[0].points[2].ele is None
    assert track.segments[0].points[2].lat == 46.002

    assert report.track_count == 1
    assert report.accepted_count == 6
    assert report.rejected_count == 1
    assert report.rejected[0].reason is RejectReason.LATITUDE_OUT_OF_RANGE
    assert (report.rejected[0].segment_index, report.rejected[0].point_index) == (0, 2)


def test_latitude_91_is_rejected_and_rest_parses(make_gpx):
    doc = make_gpx([(46.0, 7.0, 10), (91, 7.0, 11), (46.001, 7.0, 12)])

    result = parse(doc)

    assert result.report.rejected_count == 1
    assert result.report.rejected_by_reason() == {RejectReason.LATITUDE_OUT_OF_RANGE: 1}
    assert [p.lat for p in result.track.segments[0]] == [46.0, 46.001]


def test_empty_trk_is_a_valid_empty_track():
    result = parse(f'<gpx version="1.1" xmlns="http://www.topografix.com/GPX/1/1"><trk></trk></gpx>')

    assert result.track.segments == ()
    assert result.track.is_empty
    assert result.report.track_count == 1
    assert result.report.rejected_count == 0


def test_document_without_tracks_is_empty():
    result = parse('<gpx version="1.1" creator="x"><metadata><name>n</name></metadata></gpx>')

    assert result.track.is_empty
    assert result.track.name == "n"
    assert result.report.track_count == 0


@pytest.mark.parametrize(
    "raw",
    [
        b"",
        "   \n",
        "<gpx version='1.1'><trk><trkseg>",
        "not xml at all",
    ],
)
def test_structurally_broken_documents_fail(raw):
    with pytest.raises(ParseError):
        parse(raw)


def test_wrong_root_element():
    with pytest.raises(ParseError, match="expected <gpx>"):
        parse('<kml version="1.1"/>')


def test_foreign_namespace_rejected():
    with pytest.raises(ParseError, match="namespace"):
        parse('<gpx version="1.1" xmlns="http://example.com/other"/>')


def test_unsupported_version():
    with pytest.raises(ParseError, match="version"):
        parse('<gpx version="2.0"/>')


def test_missing_version_is_a_warning(make_gpx):
    result = parse(make_gpx([(46.0, 7.0)], version=None))

    assert result.track.point_count == 1
    assert any("version" in w.message for w in result.report.warnings)


@pytest.mark.parametrize("attrs", ['lat="46.0"', 'lon="7.0"', ""])
def test_missing_coordinate_attribute_is_fatal(attrs):
    doc = (
        '<gpx version="1.1"><trk><trkseg>'
        '<trkpt lat="46.0" lon="7.0"/>'
        f"<trkpt {attrs}/>"
        "</trkseg></trk></gpx>"
    )
    with pytest.raises(ParseError) as exc:
        parse(doc)

    assert exc.value.segment_index == 0
    assert exc.value.point_index == 1


def test_trkpt_outside_trkseg_is_fatal():
    doc = '<gpx version="1.1"><trk><trkpt lat="46.0" lon="7.0"/></trk></gpx>'
    with pytest.raises(ParseError, match="trkseg"):
        parse(doc)


@pytest.mark.parametrize(
    "lat, lon, reason",
    [
        ("abc", "7.0", RejectReason.INVALID_COORDINATE),
        ("", "7.0", RejectReason.INVALID_COORDINATE),
        ("nan", "7.0", RejectReason.NON_FINITE_COORDINATE),
        ("46.0", "inf", RejectReason.NON_FINITE_COORDINATE),
        ("-90.5", "7.0", RejectReason.LATITUDE_OUT_OF_RANGE),
        ("46.0", "180.01", RejectReason.LONGITUDE_OUT_OF_RANGE),
    ],
)
def test_bad_coordinates_reject_point(make_gpx, lat, lon, reason):
    result = parse(make_gpx([(46.0, 7.0), (lat, lon), (46.001, 7.0)]))

    assert result.track.point_count == 2
    assert [r.reason for r in result.report.rejected] == [reason]


def test_range_bounds_are_inclusive(make_gpx):
    result = parse(make_gpx([(90, 180), (-90, -180)]))
    assert result.report.rejected_count == 0


def test_unparseable_elevation_is_absent_with_warning(make_gpx):
    result = parse(make_gpx([(46.0, 7.0, "high", T0)]))

    p = result.track.segments[0].points[0]
    assert p.ele is None
    assert p.time is not None
    assert result.report.rejected_count == 0
    assert len(result.report.warnings) == 1
    assert result.report.warnings[0].point_index == 0


def test_unparseable_time_is_absent_with_warning(make_gpx):
    result = parse(make_gpx([(46.0, 7.0, 100, "yesterday")]))

    p = result.track.segments[0].points[0]
    assert p.time is None
    assert p.ele == 100.0
    assert "time" in result.report.warnings[0].message


@pytest.mark.parametrize(
    "point, reason",
    [
        ((46.0, 7.0, "high", T0), RejectReason.INVALID_ELEVATION),
        ((46.0, 7.0, 100, "yesterday"), RejectReason.INVALID_TIME),
    ],
)
def test_strict_fields_rejects_unparseable_fields(make_gpx, point, reason):
    result = parse(make_gpx([point]), strict_fields=True)

    assert result.track.point_count == 0
    assert result.report.rejected[0].reason is reason


def test_backwards_timestamp_rejected_equal_kept(make_gpx):
    doc = make_gpx([(46.0, 7.0, 1, T1), (46.001, 7.0, 2, T1), (46.002, 7.0, 3, T0), (46.003, 7.0, 4, T2)])

    result = parse(doc)

    assert [p.ele for p in result.track.segments[0]] == [1, 2, 4]
    assert result.report.rejected[0].reason is RejectReason.TIME_NOT_MONOTONIC
    assert result.report.rejected[0].point_index == 2


def test_untimed_points_do_not_break_monotonic_check(make_gpx):
    doc = make_gpx([(46.0, 7.0, 1, T1), (46.001, 7.0, 2), (46.002, 7.0, 3, T0)])

    result = parse(doc)

    assert result.report.rejected[0].point_index == 2


def test_gpx_10_metadata_on_root():
    doc = (
        f'<gpx version="1.0" creator="old" xmlns="{GPX_10_NS}">'
        "<name>Legacy</name><author>Pat</author><time>2026-01-03T07:00:00Z</time>"
        '<trk><trkseg><trkpt lat="1.5" lon="2.5"><ele>3</ele></trkpt></trkseg></trk>'
        "</gpx>"
    )

    track = parse(doc).track

    assert track.name == "Legacy"
    assert track.author == "Pat"
    assert track.time.hour == 7
    assert track.segments[0].points[0].ele == 3.0


def test_no_namespace_accepted(make_gpx):
    result = parse(make_gpx([(1.0, 2.0, 3.0)], ns=""))
    assert result.track.point_count == 1


def test_only_first_track_is_analyzed():
    doc = (
        '<gpx version="1.1">'
        '<trk><name>a</name><trkseg><trkpt lat="1" lon="1"/></trkseg></trk>'
        '<trk><name>b</name><trkseg><trkpt lat="2" lon="2"/><trkpt lat="3" lon="3"/></trkseg></trk>'
        "</gpx>"
    )

    result = parse(doc)

    assert result.track.name == "a"
    assert result.track.point_count == 1
    assert result.report.track_count == 2
    assert any("2 tracks" in w.message for w in result.report.warnings)


def test_parse_is_referentially_transparent(sample_gpx_bytes):
    assert parse(sample_gpx_bytes) == parse(sample_gpx_bytes)


def test_track_to_dict_uses_z_timestamps(sample_gpx_bytes):
    d = parse(sample_gpx_bytes).track.to_dict()

    assert d["time"] == "2026-01-03T07:55:00Z"
    assert d["segments"][1]["points"][0]["time"] == "2026-01-03T08:30:00Z"


@pytest.mark.parametrize(
    "text, expected",
    [
        ("2026-01-02T21:14:44Z", dt.datetime(2026, 1, 2, 21, 14, 44, tzinfo=dt.timezone.utc)),
        ("2026-01-02T21:14:44.123Z", dt.datetime(2026, 1, 2, 21, 14, 44, 123000, tzinfo=dt.timezone.utc)),
        ("2026-01-02T21:14:44.1234567Z", dt.datetime(2026, 1, 2, 21, 14, 44, 123456, tzinfo=dt.timezone.utc)),
        ("2026-01-02T23:14:44+02:00", dt.datetime(2026, 1, 2, 21, 14, 44, tzinfo=dt.timezone.utc)),
        ("2026-01-02T21:14:44", dt.datetime(2026, 1, 2, 21, 14, 44, tzinfo=dt.timezone.utc)),
        ("  ", None),
        (None, None),
        ("garbage", None),
    ],
)
def test_parse_gpx_time(text, expected):
    assert parse_gpx_time(text) == expected
