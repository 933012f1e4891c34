#!/usr/bin/env python3
"""
gpxanalyze: analyze GPX file(s) from the command line.

All file-system access happens here; the analysis core only sees bytes.
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Optional

from gpxanalyzer.analyze.track import AnalysisOutcome, analyze
from gpxanalyzer.analyze.trends import DEFAULT_MIN_AMPLITUDE_M
from gpxanalyzer.config import AnalysisConfig, load_config
from gpxanalyzer.errors import GpxAnalyzerError, PipelineError
from gpxanalyzer.geo.distance import DistanceMode
from gpxanalyzer.util.logging import configure_logging, log, utc_now_iso

logger = logging.getLogger(__name__)

TSV_HEADER = (
    "file\tpoints\tsegments\trejected\tdistance_m\tgain_m\tloss_m\t"
    "duration_s\tavg_speed_mps\tmax_speed_mps"
)


@dataclass(frozen=True)
class FileResult:
    path: Path
    outcome: Optional[AnalysisOutcome] = None
    error: Optional[str] = None
    analyzed_at: Optional[str] = None


def _fmt(value: Optional[float], spec: str) -> str:
    return "-" if value is None else format(value, spec)


def print_report(path: Path, outcome: AnalysisOutcome, *, tsv: bool) -> None:
    stats = outcome.statistics
    rejected = outcome.parse_report.rejected_count
    if tsv:
        print(
            f"{path}\t"
            f"{stats.point_count}\t"
            f"{stats.segment_count}\t"
            f"{rejected}\t"
            f"{stats.total_distance_m:.2f}\t"
            f"{stats.elevation_gain_m:.1f}\t"
            f"{stats.elevation_loss_m:.1f}\t"
            f"{_fmt(stats.duration_s, '.1f')}\t"
            f"{_fmt(stats.avg_speed_mps, '.3f')}\t"
            f"{_fmt(stats.max_speed_mps, '.3f')}"
        )
        return

    print(f"\n{path}")
    if outcome.track.name:
        print(f"  name          : {outcome.track.name}")
    print(f"  points        : {stats.point_count}")
    print(f"  segments      : {stats.segment_count}")
    print(f"  rejected      : {rejected}")
    print(f"  distance (m)  : {stats.total_distance_m:.2f}")
    print(f"  gain (m)      : {stats.elevation_gain_m:.1f}")
    print(f"  loss (m)      : {stats.elevation_loss_m:.1f}")
    print(f"  elevation (m) : {_fmt(stats.min_elevation, '.1f')} .. {_fmt(stats.max_elevation, '.1f')}")
    print(f"  duration (s)  : {_fmt(stats.duration_s, '.1f')}")
    print(f"  elapsed (s)   : {_fmt(stats.elapsed_s, '.1f')}")
    print(f"  avg speed m/s : {_fmt(stats.avg_speed_mps, '.3f')}")
    print(f"  max speed m/s : {_fmt(stats.max_speed_mps, '.3f')}")
    print(f"  pace (s/km)   : {_fmt(stats.average_pace_s_per_km, '.0f')}")
    if stats.bounding_box is not None:
        sw, ne = stats.bounding_box.southwest, stats.bounding_box.northeast
        print(f"  bbox          : {sw.lat:.6f},{sw.lon:.6f} .. {ne.lat:.6f},{ne.lon:.6f}")
    if len(stats.segments) > 1:
        for i, seg in enumerate(stats.segments):
            print(f"  [{i}] {seg.point_count} pts, {seg.total_distance_m:.2f} m, {_fmt(seg.duration_s, '.1f')} s")
    if outcome.trends:
        for t in outcome.trends:
            print(
                f"  {t.direction.value:<4} {t.start.distance_m:9.1f} -> {t.end.distance_m:9.1f} m"
                f"  {t.amplitude_m:6.1f} m  grade {_fmt(t.grade and t.grade * 100.0, '.1f')}%"
            )


def build_config(args: argparse.Namespace) -> AnalysisConfig:
    """Merge CLI flags over the layered settings (env, TOML, defaults)."""
    settings = load_config()
    cfg = settings.analysis

    smoothing = settings.get_preset(args.preset) if args.preset else cfg.smoothing
    if args.max_speed is not None:
        smoothing = replace(smoothing, max_speed_mps=args.max_speed)
    if args.ele_window is not None:
        smoothing = replace(smoothing, elevation_window=args.ele_window)
    if args.min_sep is not None:
        smoothing = replace(smoothing, min_separation_m=args.min_sep)

    cfg = replace(cfg, smoothing=smoothing, collect_profile=args.profile)
    if args.mode is not None:
        cfg = replace(cfg, distance_mode=DistanceMode(args.mode))
    if args.projection is not None:
        cfg = replace(cfg, projection=args.projection)
    if args.strict:
        cfg = replace(cfg, strict_fields=True)
    if args.trends is not None:
        cfg = replace(cfg, trend_min_amplitude_m=args.trends)
    return cfg.validate()


def collect_paths(paths: list[str], root: Optional[str]) -> list[Path]:
    selected = [Path(p).expanduser() for p in paths]
    if root:
        selected.extend(sorted(Path(root).expanduser().rglob("*.gpx")))
    return selected


def analyze_file(path: Path, config: AnalysisConfig) -> FileResult:
    try:
        raw = path.read_bytes()
    except OSError as e:
        return FileResult(path, error=f"cannot read: {e}", analyzed_at=utc_now_iso())
    try:
        outcome = analyze(raw, config)
    except PipelineError as e:
        return FileResult(path, error=f"{type(e).__name__}: {e}", analyzed_at=utc_now_iso())
    return FileResult(path, outcome=outcome, analyzed_at=utc_now_iso())


def main(argv: Optional[list[str]] = None) -> int:
    ap = argparse.ArgumentParser(prog="gpxanalyze", description="gpxanalyzer: Analyze GPX file(s).")
    ap.add_argument("gpx", nargs="*",
                    help="One or more GPX files.")
    ap.add_argument("--root", default=None,
                    help="Also analyze every *.gpx below this directory.")
    ap.add_argument("--jobs", type=int, default=1,
                    help="Analyze this many files in parallel (default: 1).")
    out = ap.add_mutually_exclusive_group()
    out.add_argument("--tsv", action="store_true",
                     help="Print tab-separated output (good for piping).")
    out.add_argument("--json", action="store_true",
                     help="Print a JSON array with one object per file.")
    ap.add_argument("--mode", choices=[m.value for m in DistanceMode], default=None,
                    help="Distance mode (default: from config, else great_circle).")
    ap.add_argument("--projection", default=None,
                    help="web_mercator | utm:<zone><N|S> | utm:auto | local")
    ap.add_argument("--preset", default=None,
                    help="Smoothing preset (none, hiking, running, cycling, or from config).")
    ap.add_argument("--max-speed", type=float, default=None, help="Drop fixes implying more than this m/s.")
    ap.add_argument("--ele-window", type=int, default=None, help="Elevation moving-average window (points).")
    ap.add_argument("--min-sep", type=float, default=None, help="Merge fixes closer than this many meters.")
    ap.add_argument("--strict", action="store_true",
                    help="Reject points with unparseable <ele>/<time> instead of ignoring the field.")
    ap.add_argument("--profile", action="store_true",
                    help="Include the per-point profile (JSON output only).")
    ap.add_argument("--trends", type=float, nargs="?", const=DEFAULT_MIN_AMPLITUDE_M, default=None,
                    metavar="METERS", help="Detect climbs/descents of at least METERS (default 20).")
    ap.add_argument("--verbose", "-v", action="store_true", help="Debug logging.")

    args = ap.parse_args(argv)
    configure_logging(args.verbose)

    try:
        config = build_config(args)
    except GpxAnalyzerError as e:
        print(f"error: {e}", file=sys.stderr)
        return 2

    paths = collect_paths(args.gpx, args.root)
    if not paths:
        print("error: no GPX files given or found", file=sys.stderr)
        return 2

    jobs = max(1, args.jobs)
    if jobs == 1 or len(paths) == 1:
        results = [analyze_file(p, config) for p in paths]
    else:
        # Runs share only the immutable config.
        with ThreadPoolExecutor(max_workers=jobs) as ex:
            results = list(ex.map(lambda p: analyze_file(p, config), paths))

    if args.tsv:
        print(TSV_HEADER)

    json_rows = []
    failed = 0
    for r in results:
        if r.error is not None:
            failed += 1
            logger.error("%s: %s", r.path, r.error)
            if args.json:
                json_rows.append({"file": str(r.path), "analyzed_at": r.analyzed_at, "error": r.error})
            continue
        if args.json:
            json_rows.append({"file": str(r.path), "analyzed_at": r.analyzed_at, **r.outcome.to_dict()})
        else:
            print_report(r.path, r.outcome, tsv=args.tsv)

    if args.json:
        print(json.dumps(json_rows, indent=2))
    elif not args.tsv:
        print()
        log(f"analyzed {len(results)} file(s), {failed} failed")

    return 1 if failed else 0


if __name__ == "__main__":
    raise SystemExit(main())
