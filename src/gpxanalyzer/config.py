# gpxanalyzer/config.py
"""
gpxanalyzer configuration

Two layers live here:

1) Per-call configuration (`AnalysisConfig`, `SmoothingConfig`).
   The analysis core never reads global state: every `analyze` call gets one
   immutable AnalysisConfig. `validate()` rejects bad combinations before any
   input is touched.

2) Front-end settings (`load_config`).
   The CLI seeds its AnalysisConfig from layered settings. Precedence
   (highest to lowest) for any given value:
     1) CLI argument (handled by the CLI)
     2) Environment variables (GPXANALYZER_*)
     3) User config: ~/.config/gpxanalyzer/config.toml
     4) Repo config: <repo_root>/config/config.toml
     5) Hard defaults

This module uses Python's built-in tomllib on Python 3.11+, or `tomli`.

Example config.toml:

    [analysis]
    distance_mode = "great_circle"     # great_circle | geodesic | planar
    projection = "utm:auto"            # web_mercator | utm:33N | utm:auto | local
    preset = "hiking"
    strict_fields = false

    [smoothing.presets.trail]
    max_speed_mps = 6.0
    elevation_window = 7
    min_separation_m = 2.0
"""

from __future__ import annotations

import os
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

if sys.version_info >= (3, 11):
    import tomllib
else:
    import tomli as tomllib

from gpxanalyzer.errors import ConfigError
from gpxanalyzer.geo.distance import DistanceMode
from gpxanalyzer.geo.projection import ProjectionSpec, is_known_projection
from gpxanalyzer.util.cancel import CancellationToken


# ---------------------------------------------------------------------------
# Per-call configuration
# ---------------------------------------------------------------------------
@dataclass(frozen=True)
class SmoothingConfig:
    """
    Smoothing thresholds. The defaults disable every filter.

    max_speed_mps:    drop a point whose implied speed from the last retained
                      point exceeds this (None disables)
    elevation_window: width of the trailing moving average on elevation
                      (1 disables)
    min_separation_m: drop a point closer than this to the last retained
                      point (0 disables)
    """

    max_speed_mps: Optional[float] = None
    elevation_window: int = 1
    min_separation_m: float = 0.0

    @property
    def is_noop(self) -> bool:
        return self.max_speed_mps is None and self.elevation_window <= 1 and self.min_separation_m <= 0.0


# Provisional policy values; override them in config.toml.
SMOOTHING_PRESETS: dict[str, SmoothingConfig] = {
    "none": SmoothingConfig(),
    "hiking": SmoothingConfig(max_speed_mps=4.0, elevation_window=5, min_separation_m=1.0),
    "running": SmoothingConfig(max_speed_mps=8.0, elevation_window=5, min_separation_m=1.0),
    "cycling": SmoothingConfig(max_speed_mps=25.0, elevation_window=5, min_separation_m=2.0),
}


@dataclass(frozen=True)
class AnalysisConfig:
    """
    Everything one `analyze` call needs.

    distance_mode:       GREAT_CIRCLE (default), GEODESIC or PLANAR
    projection:          ProjectionDefinition, registered name, or None
    smoothing:           SmoothingConfig
    project_output:      return ProjectedPoints for rendering
    skip_unprojectable:  omit out-of-domain points instead of failing
    collect_profile:     return the per-point distance/elevation/speed profile
    trend_min_amplitude_m: detect climbs/descents at least this tall
    strict_fields:       reject points with unparseable <ele>/<time>
    speed_epsilon_s:     lower bound on a pair's time delta for speed
    cancel:              CancellationToken checked between points
    """

    distance_mode: DistanceMode = DistanceMode.GREAT_CIRCLE
    projection: ProjectionSpec = None
    smoothing: SmoothingConfig = field(default_factory=SmoothingConfig)
    project_output: bool = False
    skip_unprojectable: bool = False
    collect_profile: bool = False
    trend_min_amplitude_m: Optional[float] = None
    strict_fields: bool = False
    speed_epsilon_s: float = 1e-3
    cancel: Optional[CancellationToken] = field(default=None, compare=False)

    def __post_init__(self) -> None:
        # Accept plain strings for the mode ("planar", "great_circle", ...).
        if not isinstance(self.distance_mode, DistanceMode):
            try:
                mode = DistanceMode(str(self.distance_mode).strip().lower())
            except ValueError:
                raise ConfigError(f"unknown distance mode {self.distance_mode!r}") from None
            object.__setattr__(self, "distance_mode", mode)

    def validate(self) -> "AnalysisConfig":
        """Raise ConfigError on an invalid combination; return self otherwise."""
        if self.distance_mode is DistanceMode.PLANAR and self.projection is None:
            raise ConfigError("planar distance mode requires a projection")
        if self.project_output and self.projection is None:
            raise ConfigError("project_output requires a projection")
        if not is_known_projection(self.projection):
            raise ConfigError(f"unknown projection {self.projection!r}")

        s = self.smoothing
        if s.max_speed_mps is not None and s.max_speed_mps <= 0:
            raise ConfigError(f"max_speed_mps must be positive, got {s.max_speed_mps}")
        if not isinstance(s.elevation_window, int) or isinstance(s.elevation_window, bool):
            raise ConfigError(f"elevation_window must be an integer, got {s.elevation_window!r}")
        if s.elevation_window < 1:
            raise ConfigError(f"elevation_window must be >= 1, got {s.elevation_window}")
        if s.min_separation_m < 0:
            raise ConfigError(f"min_separation_m must be >= 0, got {s.min_separation_m}")
        if self.trend_min_amplitude_m is not None and self.trend_min_amplitude_m <= 0:
            raise ConfigError(f"trend_min_amplitude_m must be positive, got {self.trend_min_amplitude_m}")
        if self.speed_epsilon_s <= 0:
            raise ConfigError(f"speed_epsilon_s must be positive, got {self.speed_epsilon_s}")
        return self


# ---------------------------------------------------------------------------
# TOML loading helpers
# ---------------------------------------------------------------------------
def _load_toml(path: Path) -> dict[str, Any]:
    """
    Parse a TOML file at `path`.

    Behavior:
    - If the file does not exist, return an empty dict (non-fatal).
    - If the file exists but is invalid TOML, raise ConfigError
      with a clear, user-facing message.
    """
    if not path.is_file():
        return {}

    try:
        return tomllib.loads(path.read_text(encoding="utf-8")) or {}
    except (tomllib.TOMLDecodeError, UnicodeDecodeError) as e:
        # Wrap parsing errors with file context for usability
        raise ConfigError(f"Failed to parse TOML config: {path} ({e})") from e


# ---------------------------------------------------------------------------
# Generic coercion helpers
# ---------------------------------------------------------------------------
def _as_bool(v: Any, default: bool) -> bool:
    """
    Coerce loosely-typed config values into booleans.

    Accepts common truthy / falsy representations so that TOML and
    environment variables behave consistently.
    """
    if v is None:
        return default
    if isinstance(v, bool):
        return v
    if isinstance(v, (int, float)):
        return bool(v)
    if isinstance(v, str):
        s = v.strip().lower()
        if s in ("true", "yes", "y", "1", "on"):
            return True
        if s in ("false", "no", "n", "0", "off"):
            return False
    return default


def _as_float(v: Any, key: str) -> Optional[float]:
    if v is None or v == "":
        return None
    try:
        return float(v)
    except (TypeError, ValueError):
        raise ConfigError(f"{key}: expected a number, got {v!r}") from None


def _as_int(v: Any, key: str) -> Optional[int]:
    if v is None or v == "":
        return None
    try:
        return int(v)
    except (TypeError, ValueError):
        raise ConfigError(f"{key}: expected an integer, got {v!r}") from None


def _smoothing_from_block(block: dict[str, Any], base: SmoothingConfig, label: str) -> SmoothingConfig:
    """Overlay a raw TOML/env block onto `base`; unknown keys are ignored."""
    max_speed = _as_float(block.get("max_speed_mps"), f"{label}.max_speed_mps")
    window = _as_int(block.get("elevation_window"), f"{label}.elevation_window")
    min_sep = _as_float(block.get("min_separation_m"), f"{label}.min_separation_m")
    return SmoothingConfig(
        max_speed_mps=max_speed if max_speed is not None else base.max_speed_mps,
        elevation_window=window if window is not None else base.elevation_window,
        min_separation_m=min_sep if min_sep is not None else base.min_separation_m,
    )


# ---------------------------------------------------------------------------
# Repo discovery
# ---------------------------------------------------------------------------
def find_repo_root(start: Path) -> Optional[Path]:
    """
    Walk upward from `start` looking for a directory holding `config/config.toml`.
    """
    start = start.resolve()
    for p in [start] + list(start.parents):
        if (p / "config" / "config.toml").is_file():
            return p
    return None


def default_user_config_path() -> Path:
    return Path.home() / ".config" / "gpxanalyzer" / "config.toml"


# ---------------------------------------------------------------------------
# Typed settings
# ---------------------------------------------------------------------------
@dataclass(frozen=True)
class GpxAnalyzerSettings:
    """
    Fully merged front-end settings.

    Attributes:
    - analysis: the AnalysisConfig the CLI starts from
    - preset:   name of the smoothing preset that seeded analysis.smoothing
    - presets:  every known smoothing preset (built-in + configured)
    - source:   provenance map showing where each value came from
    """

    analysis: AnalysisConfig
    preset: str
    presets: dict[str, SmoothingConfig]
    source: dict[str, str]

    def get_preset(self, name: Optional[str]) -> SmoothingConfig:
        """
        Return the requested preset, falling back to the configured one.

        Raises ConfigError for an unknown explicit name.
        """
        if name is None:
            return self.presets[self.preset]
        if name not in self.presets:
            known = ", ".join(sorted(self.presets))
            raise ConfigError(f"unknown smoothing preset {name!r} (known: {known})")
        return self.presets[name]


ENV_MAP = {
    "GPXANALYZER_DISTANCE_MODE": "analysis.distance_mode",
    "GPXANALYZER_PROJECTION": "analysis.projection",
    "GPXANALYZER_PRESET": "analysis.preset",
    "GPXANALYZER_STRICT_FIELDS": "analysis.strict_fields",
    "GPXANALYZER_MAX_SPEED_MPS": "smoothing.max_speed_mps",
    "GPXANALYZER_ELEVATION_WINDOW": "smoothing.elevation_window",
    "GPXANALYZER_MIN_SEPARATION_M": "smoothing.min_separation_m",
}


# ---------------------------------------------------------------------------
# Main config loader
# ---------------------------------------------------------------------------
def load_config(
    repo_root: Optional[Path] = None,
    repo_config_path: Optional[Path] = None,
    user_config_path: Optional[Path] = None,
    environ: Optional[dict[str, str]] = None,
) -> GpxAnalyzerSettings:
    """
    Load, merge, and normalize front-end settings.

    This function is the single authoritative entry point for the CLI's
    defaults. The analysis core never calls it.
    """
    env = os.environ if environ is None else environ

    # Locate repo and config files
    if repo_root is None:
        repo_root = find_repo_root(Path.cwd())
    if repo_config_path is None and repo_root is not None:
        repo_config_path = repo_root / "config" / "config.toml"
    if user_config_path is None:
        user_config_path = default_user_config_path()

    layers = [
        ("repo", repo_config_path, _load_toml(repo_config_path) if repo_config_path else {}),
        ("user", user_config_path, _load_toml(user_config_path) if user_config_path else {}),
    ]

    # ------------------------------------------------------------------
    # Defaults
    # ------------------------------------------------------------------
    values: dict[str, Any] = {
        "analysis.distance_mode": DistanceMode.GREAT_CIRCLE.value,
        "analysis.projection": None,
        "analysis.preset": "none",
        "analysis.strict_fields": False,
    }
    src = {k: "default" for k in values}
    presets: dict[str, SmoothingConfig] = dict(SMOOTHING_PRESETS)
    src["smoothing.presets"] = "default"
    smoothing_overrides: dict[str, Any] = {}

    # ------------------------------------------------------------------
    # Repo, then user config (user overrides repo)
    # ------------------------------------------------------------------
    for label, path, cfg in layers:
        analysis = cfg.get("analysis", {}) or {}
        for key in ("distance_mode", "projection", "preset", "strict_fields"):
            if key in analysis:
                values[f"analysis.{key}"] = analysis[key]
                src[f"analysis.{key}"] = f"{label}:{path}"

        smoothing = cfg.get("smoothing", {}) or {}
        raw_presets = smoothing.get("presets", {}) or {}
        if isinstance(raw_presets, dict) and raw_presets:
            for pname, block in raw_presets.items():
                if not isinstance(block, dict):
                    continue
                base = presets.get(str(pname), SmoothingConfig())
                presets[str(pname)] = _smoothing_from_block(block, base, f"smoothing.presets.{pname}")
            src["smoothing.presets"] = f"{label}:{path}"

        for key in ("max_speed_mps", "elevation_window", "min_separation_m"):
            if key in smoothing:
                smoothing_overrides[key] = smoothing[key]
                src[f"smoothing.{key}"] = f"{label}:{path}"

    # ------------------------------------------------------------------
    # Environment variable overrides (highest non-CLI precedence)
    # ------------------------------------------------------------------
    for var, key in ENV_MAP.items():
        raw = env.get(var)
        if raw is None or raw == "":
            continue
        section, name = key.split(".", 1)
        if section == "analysis":
            values[key] = raw
        else:
            smoothing_overrides[name] = raw
        src[key] = f"env:{var}"

    preset = str(values["analysis.preset"])
    if preset not in presets:
        known = ", ".join(sorted(presets))
        raise ConfigError(f"unknown smoothing preset {preset!r} (known: {known})")

    smoothing_cfg = _smoothing_from_block(smoothing_overrides, presets[preset], "smoothing")

    projection = values["analysis.projection"]
    if isinstance(projection, str) and projection.strip().lower() in ("", "none"):
        projection = None

    analysis_cfg = AnalysisConfig(
        distance_mode=values["analysis.distance_mode"],
        projection=projection,
        smoothing=smoothing_cfg,
        strict_fields=_as_bool(values["analysis.strict_fields"], False),
    )

    return GpxAnalyzerSettings(
        analysis=analysis_cfg,
        preset=preset,
        presets=presets,
        source=src,
    )
