# gpxanalyzer/analyze/track.py
"""
Track analysis pipeline for gpxanalyzer

analyze(raw, config) sequences:
  parse -> (projection pass, if requested) -> smoothing -> aggregation

It is stateless across calls: every run owns its projectors, smoothed
sequences and running totals. It either returns a complete AnalysisOutcome
or raises a PipelineError subclass.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Optional, Union

from gpxanalyzer.analyze.smoothing import smooth
from gpxanalyzer.analyze.statistics import StatisticsAccumulator
from gpxanalyzer.analyze.trends import detect_trends
from gpxanalyzer.config import AnalysisConfig
from gpxanalyzer.formats.gpx import parse
from gpxanalyzer.geo.projection import (
    DEFERRED_PROJECTIONS,
    ProjectionDefinition,
    project_points,
    resolve_projection,
)
from gpxanalyzer.model import (
    ElevationTrend,
    ParseReport,
    ProfileSample,
    ProjectedPoint,
    Track,
    TrackStatistics,
    to_jsonable,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AnalysisOutcome:
    """
    Result of one analyze() call.

    projected/profile/trends are None unless the config asked for them.
    """

    track: Track
    statistics: TrackStatistics
    parse_report: ParseReport
    projection: Optional[ProjectionDefinition] = None
    projected: Optional[tuple[ProjectedPoint, ...]] = None
    profile: Optional[tuple[ProfileSample, ...]] = None
    trends: Optional[tuple[ElevationTrend, ...]] = None

    def to_dict(self) -> dict[str, Any]:
        d = {
            "track": self.track.to_dict(),
            "statistics": self.statistics.to_dict(),
            "parse_report": self.parse_report.to_dict(),
            "projection": self.projection.name if self.projection is not None else None,
        }
        if self.projected is not None:
            d["projected"] = to_jsonable(list(self.projected))
        if self.profile is not None:
            d["profile"] = to_jsonable(list(self.profile))
        if self.trends is not None:
            d["trends"] = [
                {
                    "direction": t.direction.value,
                    "start_distance_m": t.start.distance_m,
                    "end_distance_m": t.end.distance_m,
                    "amplitude_m": t.amplitude_m,
                    "grade": t.grade,
                }
                for t in self.trends
            ]
        return d


def _resolve_for_track(config: AnalysisConfig, track: Track) -> Optional[ProjectionDefinition]:
    spec = config.projection
    if spec is None:
        return None
    first = next((p for _, _, p in track.iter_points()), None)
    if first is None and isinstance(spec, str) and spec.strip().lower() in DEFERRED_PROJECTIONS:
        # Nothing to centre on; an empty track needs no projection.
        return None
    return resolve_projection(spec, first)


def analyze(raw: Union[bytes, str], config: Optional[AnalysisConfig] = None) -> AnalysisOutcome:
    """
    Parse and analyze one GPX document.

    Raises:
      ConfigError, ParseError, ProjectionError, AnalysisCancelled
    """
    config = (config if config is not None else AnalysisConfig()).validate()
    cancel = config.cancel

    parsed = parse(raw, strict_fields=config.strict_fields)
    track = parsed.track
    if cancel is not None:
        cancel.raise_if_cancelled()

    definition = _resolve_for_track(config, track)

    projected = None
    if config.project_output and definition is not None:
        projected = tuple(
            project_points(
                track.iter_points(),
                definition,
                skip_unprojectable=config.skip_unprojectable,
                cancel=cancel,
            )
        )

    want_trends = config.trend_min_amplitude_m is not None
    acc = StatisticsAccumulator(
        config,
        definition,
        collect_profile=config.collect_profile or want_trends,
    )

    for si, seg in enumerate(track.segments):
        acc.begin_segment()
        if config.smoothing.is_noop:
            for pi, p in enumerate(seg.points):
                acc.add(p, si, pi)
        else:
            for sp in smooth(seg.points, config.smoothing, mode=config.distance_mode, cancel=cancel):
                acc.add(sp, si, sp.index)

    statistics = acc.result()

    profile = tuple(acc.profile) if acc.profile is not None else None
    trends = None
    if want_trends:
        trends = tuple(detect_trends(profile, config.trend_min_amplitude_m))

    logger.info(
        "Analyzed track %r: %d point(s) in %d segment(s), %.1f m, +%.1f/-%.1f m, %d rejected",
        track.name,
        statistics.point_count,
        statistics.segment_count,
        statistics.total_distance_m,
        statistics.elevation_gain_m,
        statistics.elevation_loss_m,
        parsed.report.rejected_count,
    )

    return AnalysisOutcome(
        track=track,
        statistics=statistics,
        parse_report=parsed.report,
        projection=definition,
        projected=projected,
        profile=profile if config.collect_profile else None,
        trends=trends,
    )
