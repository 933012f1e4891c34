# gpxanalyzer/errors.py

"""
gpxanalyzer.errors

Central exception hierarchy for gpxanalyzer.

Rationale:
  - Modules raise specific, meaningful errors.
  - Callers can catch GpxAnalyzerError (broad), PipelineError (anything
    `analyze` can raise) or specific subclasses (narrow).
"""

from __future__ import annotations

from typing import Optional


class GpxAnalyzerError(RuntimeError):
    """Base class for all gpxanalyzer runtime errors."""


# ---- Pipeline (fatal) errors -------------------

class PipelineError(GpxAnalyzerError):
    """A fatal error that aborts the current analysis run."""


class ParseError(PipelineError):
    """The GPX document is malformed, unsupported, or structurally broken."""

    def __init__(
        self,
        message: str,
        *,
        segment_index: Optional[int] = None,
        point_index: Optional[int] = None,
    ) -> None:
        super().__init__(message)
        self.segment_index = segment_index
        self.point_index = point_index


class ConfigError(PipelineError):
    """Invalid configuration combination, detected before processing begins."""


class ProjectionError(PipelineError):
    """A coordinate lies outside the valid domain of a projection."""

    def __init__(
        self,
        message: str,
        *,
        projection: Optional[str] = None,
        coordinate: Optional[tuple[float, float]] = None,
    ) -> None:
        super().__init__(message)
        self.projection = projection
        self.coordinate = coordinate


class AnalysisCancelled(PipelineError):
    """Cooperative cancellation was observed mid-run."""


# ---- Point-level (non-fatal) errors ------------

class PointRejected(GpxAnalyzerError):
    """
    A single track point failed validation.

    Raised while building a point and caught by the parser, which records it
    in the parse report instead of aborting.
    """

    def __init__(self, reason: str, detail: str = "") -> None:
        label = getattr(reason, "value", reason)
        super().__init__(f"{label}: {detail}" if detail else label)
        self.reason = reason
        self.detail = detail
