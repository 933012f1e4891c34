import logging
import threading

import pytest

from gpxanalyzer.errors import AnalysisCancelled, PipelineError, PointRejected
from gpxanalyzer.model import RejectReason
from gpxanalyzer.util.cancel import CancellationToken
from gpxanalyzer.util.logging import configure_logging, log, utc_now_iso


def test_cancellation_token_across_threads():
    token = CancellationToken()
    token.raise_if_cancelled()

    t = threading.Thread(target=token.cancel)
    t.start()
    t.join()

    assert token.cancelled
    with pytest.raises(AnalysisCancelled) as exc:
        token.raise_if_cancelled()
    assert isinstance(exc.value, PipelineError)


def test_point_rejected_message_uses_reason_code():
    e = PointRejected(RejectReason.LATITUDE_OUT_OF_RANGE, "lat=91.0")
    assert str(e) == "latitude_out_of_range: lat=91.0"
    assert e.reason is RejectReason.LATITUDE_OUT_OF_RANGE


def test_log_prints_timestamped_line(capsys):
    log("hello")
    out = capsys.readouterr().out
    assert out.rstrip().endswith("  hello")


def test_utc_now_iso_is_utc():
    assert utc_now_iso().endswith("+00:00")


def test_configure_logging_replaces_its_handler():
    logger = logging.getLogger("gpxanalyzer")
    before = list(logger.handlers)
    try:
        configure_logging()
        configure_logging(verbose=True)
        added = [h for h in logger.handlers if h not in before]
        assert len(added) == 1
        assert logger.level == logging.DEBUG
    finally:
        for h in list(logger.handlers):
            if h not in before:
                logger.removeHandler(h)
        logger.setLevel(logging.NOTSET)
