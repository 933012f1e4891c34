from pathlib import Path
import pytest

from gpxanalyzer.formats.gpx import GPX_11_NS


@pytest.fixture
def sample_gpx_path() -> Path:
    return Path(__file__).parent / "data" / "sample.gpx"


@pytest.fixture
def sample_gpx_bytes(sample_gpx_path) -> bytes:
    return sample_gpx_path.read_bytes()


def _trkpt(lat, lon, ele=None, time=None) -> str:
    children = ""
    if ele is not None:
        children += f"<ele>{ele}</ele>"
    if time is not None:
        children += f"<time>{time}</time>"
    return f'<trkpt lat="{lat}" lon="{lon}">{children}</trkpt>'


def build_gpx(*segments, name=None, version="1.1", ns=GPX_11_NS) -> str:
    """
    Build a GPX document with one <trk>.

    Each segment is a list of (lat, lon[, ele[, time]]) tuples; values are
    inserted verbatim so tests can pass malformed text.
    """
    segs = "".join(
        "<trkseg>" + "".join(_trkpt(*p) for p in seg) + "</trkseg>" for seg in segments
    )
    trk_name = f"<name>{name}</name>" if name else ""
    version_attr = f' version="{version}"' if version is not None else ""
    xmlns = f' xmlns="{ns}"' if ns else ""
    return f'<gpx{version_attr} creator="tests"{xmlns}><trk>{trk_name}{segs}</trk></gpx>'


@pytest.fixture
def make_gpx():
    return build_gpx
