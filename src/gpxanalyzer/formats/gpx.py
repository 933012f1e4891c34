# gpxanalyzer/formats/gpx.py
"""
GPX parsing for gpxanalyzer

This module is intentionally format-focused:
- GPX 1.0 / 1.1 namespace handling
- turning a byte/text buffer into a validated, immutable Track
- a parse report of rejected points and field warnings

Key design principle:
  One bad point never sinks a track. Coordinates that are present but out of
  range or unreadable reject that point only; a broken document (not
  well-formed XML, wrong root, unsupported version, trkpt missing lat/lon,
  trkpt outside trkseg) fails the whole parse with ParseError.

No file-system access happens here; callers hand in bytes or str.
"""

from __future__ import annotations

import datetime as _dt
import logging
import math
import re
from typing import Optional, Union
from xml.etree import ElementTree as ET

from gpxanalyzer.errors import ParseError, PointRejected
from gpxanalyzer.model import (
    LAT_RANGE,
    LON_RANGE,
    FieldWarning,
    ParseReport,
    ParseResult,
    RejectedPoint,
    RejectReason,
    Segment,
    Track,
    TrackPoint,
)

logger = logging.getLogger(__name__)

GPX_11_NS = "http://www.topografix.com/GPX/1/1"
GPX_10_NS = "http://www.topografix.com/GPX/1/0"
SUPPORTED_NAMESPACES = (GPX_11_NS, GPX_10_NS, "")
SUPPORTED_VERSIONS = ("1.0", "1.1")

_FRACTION = re.compile(r"\.(\d+)")


def qn(tag: str, ns: str = GPX_11_NS) -> str:
    """
    Build an ElementTree-qualified name for a GPX tag.

    ElementTree represents namespaced tags internally as
      "{namespace-uri}tag"
    and un-namespaced tags as plain "tag".
    """
    return f"{{{ns}}}{tag}" if ns else tag


def _split_tag(tag: str) -> tuple[str, str]:
    """'{ns}local' -> ('ns', 'local'); 'local' -> ('', 'local')."""
    if tag.startswith("{"):
        ns, _, local = tag[1:].partition("}")
        return ns, local
    return "", tag


def parse_gpx_time(text: Optional[str]) -> Optional[_dt.datetime]:
    """
    Parse an ISO-8601 timestamp commonly found in GPX <time> nodes.

    Expected examples:
      - "2026-01-02T21:14:44Z"
      - "2026-01-02T21:14:44.123Z"
      - "2026-01-02T21:14:44+00:00"

    Returns a tz-aware UTC datetime, or None if the text is empty or
    unparseable.
    """
    if not text:
        return None
    s = text.strip()
    if not s:
        return None

    # GPX times commonly use Z for UTC.
    if s.endswith(("Z", "z")):
        s = s[:-1] + "+00:00"

    # fromisoformat on 3.10 only takes 3 or 6 fractional digits.
    s = _FRACTION.sub(lambda m: "." + (m.group(1) + "000000")[:6], s, count=1)

    try:
        dt = _dt.datetime.fromisoformat(s)
    except ValueError:
        return None

    # Ensure tz-aware; if naive, assume UTC (conservative for GPX sources)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=_dt.timezone.utc)

    return dt.astimezone(_dt.timezone.utc)


def _parse_coordinate(raw: str, name: str, bounds: tuple[float, float], out_of_range: RejectReason) -> float:
    try:
        value = float(raw.strip())
    except ValueError:
        raise PointRejected(RejectReason.INVALID_COORDINATE, f"{name}={raw!r}") from None
    if not math.isfinite(value):
        raise PointRejected(RejectReason.NON_FINITE_COORDINATE, f"{name}={raw!r}")
    lo, hi = bounds
    if value < lo or value > hi:
        raise PointRejected(out_of_range, f"{name}={value}")
    return value


def _parse_elevation(text: Optional[str]) -> tuple[Optional[float], bool]:
    """Return (elevation, ok). Missing -> (None, True); unparseable -> (None, False)."""
    if text is None or not text.strip():
        return None, True
    try:
        value = float(text.strip())
    except ValueError:
        return None, False
    if not math.isfinite(value):
        return None, False
    return value, True


class _TrackBuilder:
    """Collects points, rejections and warnings for one <trk>."""

    def __init__(self, ns: str, *, strict_fields: bool) -> None:
        self.ns = ns
        self.strict_fields = strict_fields
        self.rejected: list[RejectedPoint] = []
        self.warnings: list[FieldWarning] = []
        self.accepted = 0

    def warn(self, message: str, si: Optional[int] = None, pi: Optional[int] = None) -> None:
        self.warnings.append(FieldWarning(message=message, segment_index=si, point_index=pi))

    def build_point(
        self,
        trkpt: ET.Element,
        si: int,
        pi: int,
        last_time: Optional[_dt.datetime],
    ) -> TrackPoint:
        lat_raw = trkpt.get("lat")
        lon_raw = trkpt.get("lon")
        if lat_raw is None or lon_raw is None:
            missing = "lat" if lat_raw is None else "lon"
            raise ParseError(
                f"trkpt {pi} in segment {si} has no '{missing}' attribute",
                segment_index=si,
                point_index=pi,
            )

        lat = _parse_coordinate(lat_raw, "lat", LAT_RANGE, RejectReason.LATITUDE_OUT_OF_RANGE)
        lon = _parse_coordinate(lon_raw, "lon", LON_RANGE, RejectReason.LONGITUDE_OUT_OF_RANGE)

        ele_text = trkpt.findtext(qn("ele", self.ns))
        ele, ele_ok = _parse_elevation(ele_text)
        if not ele_ok:
            if self.strict_fields:
                raise PointRejected(RejectReason.INVALID_ELEVATION, f"ele={ele_text!r}")
            self.warn(f"unparseable elevation {ele_text!r} treated as absent", si, pi)

        time_text = trkpt.findtext(qn("time", self.ns))
        time = parse_gpx_time(time_text)
        if time is None and time_text is not None and time_text.strip():
            if self.strict_fields:
                raise PointRejected(RejectReason.INVALID_TIME, f"time={time_text!r}")
            self.warn(f"unparseable time {time_text!r} treated as absent", si, pi)

        if time is not None and last_time is not None and time < last_time:
            raise PointRejected(
                RejectReason.TIME_NOT_MONOTONIC,
                f"{time.isoformat()} is before {last_time.isoformat()}",
            )

        return TrackPoint(lat=lat, lon=lon, ele=ele, time=time)

    def build_segment(self, trkseg: ET.Element, si: int) -> Segment:
        points: list[TrackPoint] = []
        last_time: Optional[_dt.datetime] = None

        for pi, trkpt in enumerate(trkseg.findall(qn("trkpt", self.ns))):
            try:
                p = self.build_point(trkpt, si, pi, last_time)
            except PointRejected as e:
                logger.debug("Rejected point %d/%d: %s", si, pi, e)
                self.rejected.append(RejectedPoint(si, pi, RejectReason(e.reason), e.detail))
                continue
            if p.time is not None:
                last_time = p.time
            points.append(p)

        self.accepted += len(points)
        return Segment(points=tuple(points))


def _text(el: Optional[ET.Element]) -> Optional[str]:
    if el is None or el.text is None:
        return None
    s = el.text.strip()
    return s or None


def _load_root(raw: Union[bytes, str]) -> ET.Element:
    if isinstance(raw, (bytes, bytearray)):
        empty = not bytes(raw).strip()
    else:
        empty = not raw.strip()
    if empty:
        raise ParseError("empty document")

    try:
        return ET.fromstring(raw)
    except ET.ParseError as e:
        raise ParseError(f"malformed GPX document: {e}") from e


def parse(raw: Union[bytes, str], *, strict_fields: bool = False) -> ParseResult:
    """
    Parse a GPX document into a Track plus a parse report.

    Only the first <trk> becomes the Track; report.track_count says how many
    the document held. A document without tracks, or with an empty <trk>,
    yields an empty Track.

    strict_fields=True rejects points whose <ele>/<time> text is present but
    unparseable instead of treating the field as absent.

    Raises:
      ParseError
    """
    root = _load_root(raw)

    ns, local = _split_tag(root.tag)
    if local != "gpx":
        raise ParseError(f"root element is <{local}>, expected <gpx>")
    if ns not in SUPPORTED_NAMESPACES:
        raise ParseError(f"unsupported GPX namespace {ns!r}")

    builder = _TrackBuilder(ns, strict_fields=strict_fields)

    version = root.get("version")
    if version is None:
        builder.warn("gpx element has no version attribute; assuming 1.1")
    elif version.strip() not in SUPPORTED_VERSIONS:
        raise ParseError(f"unsupported GPX version {version!r}")

    # trkpt must live in trkseg; anything else breaks segment integrity.
    for parent in root.iter():
        if parent.tag == qn("trkseg", ns):
            continue
        for child in parent:
            if child.tag == qn("trkpt", ns):
                _, parent_local = _split_tag(parent.tag)
                raise ParseError(f"<trkpt> found inside <{parent_local}>, expected <trkseg>")

    trks = root.findall(qn("trk", ns))

    # GPX 1.1 keeps document metadata in <metadata>; 1.0 puts it on the root.
    md = root.find(qn("metadata", ns))
    md_parent = md if md is not None else root
    md_name = _text(md_parent.find(qn("name", ns)))
    md_time_text = _text(md_parent.find(qn("time", ns)))
    md_time = parse_gpx_time(md_time_text)
    if md_time_text and md_time is None:
        builder.warn(f"unparseable metadata time {md_time_text!r} ignored")

    author_el = md_parent.find(qn("author", ns))
    if author_el is not None and len(author_el):
        author = _text(author_el.find(qn("name", ns)))
    else:
        author = _text(author_el)

    segments: list[Segment] = []
    trk_name: Optional[str] = None
    if trks:
        trk = trks[0]
        trk_name = _text(trk.find(qn("name", ns)))
        for si, trkseg in enumerate(trk.findall(qn("trkseg", ns))):
            segments.append(builder.build_segment(trkseg, si))
        if len(trks) > 1:
            builder.warn(f"document holds {len(trks)} tracks; only the first is analyzed")

    track = Track(
        name=trk_name or md_name,
        time=md_time,
        segments=tuple(segments),
        creator=root.get("creator"),
        author=author,
    )
    report = ParseReport(
        rejected=tuple(builder.rejected),
        warnings=tuple(builder.warnings),
        track_count=len(trks),
        accepted_count=builder.accepted,
    )

    logger.debug(
        "Parsed GPX: %d segment(s), %d point(s), %d rejected",
        len(track.segments), report.accepted_count, report.rejected_count,
    )
    return ParseResult(track=track, report=report)
