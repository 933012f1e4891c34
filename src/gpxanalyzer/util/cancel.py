# gpxanalyzer/util/cancel.py
"""
Cooperative cancellation for long-running analysis.
"""

from __future__ import annotations

import threading

from gpxanalyzer.errors import AnalysisCancelled


class CancellationToken:
    """
    A one-way cancellation flag shared between a caller and one analysis run.

    Workers call `raise_if_cancelled()` between point steps; any thread may
    call `cancel()`.
    """

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise AnalysisCancelled("analysis cancelled")

    def __repr__(self) -> str:
        return f"CancellationToken(cancelled={self.cancelled})"
