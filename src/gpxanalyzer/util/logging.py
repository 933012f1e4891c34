# gpxanalyzer/util/logging.py
from __future__ import annotations

import datetime
import logging
import sys

_CONSOLE_FORMAT = "%(asctime)s  %(levelname)-7s %(name)s: %(message)s"


def utc_now_iso() -> str:
    """Return current UTC timestamp as ISO-8601 string."""
    return datetime.datetime.now(datetime.timezone.utc).isoformat()


def log(msg: str) -> None:
    """Print a timestamped log line (local time with timezone)."""
    ts = datetime.datetime.now().astimezone().isoformat(timespec="seconds")
    print(f"{ts}  {msg}")


class _LocalIsoFormatter(logging.Formatter):
    """Render record times the same way `log()` does."""

    def formatTime(self, record: logging.LogRecord, datefmt: str | None = None) -> str:
        ts = datetime.datetime.fromtimestamp(record.created).astimezone()
        return ts.isoformat(timespec="seconds")


def configure_logging(verbose: bool = False) -> None:
    """
    Attach a stderr handler to the gpxanalyzer logger.

    Library modules only create loggers; front ends call this once.
    Calling it again replaces the previous handler.
    """
    logger = logging.getLogger("gpxanalyzer")
    for h in list(logger.handlers):
        if getattr(h, "_gpxanalyzer_console", False):
            logger.removeHandler(h)

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(_LocalIsoFormatter(_CONSOLE_FORMAT))
    handler._gpxanalyzer_console = True  # type: ignore[attr-defined]
    logger.addHandler(handler)
    logger.setLevel(logging.DEBUG if verbose else logging.INFO)
