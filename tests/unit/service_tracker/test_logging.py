import io
import json
import logging
import sys

import pytest

from service_tracker.logging import JSONFormatter, TrackerContextFilter, setup_logging


@pytest.fixture
def package_logger():
    logger = logging.getLogger("service_tracker")
    saved = (list(logger.handlers), logger.level, logger.propagate)
    yield logger
    logger.handlers[:] = saved[0]
    logger.setLevel(saved[1])
    logger.propagate = saved[2]


def test_json_output_includes_tracker_and_extras(package_logger) -> None:
    stream = io.StringIO()
    setup_logging(service_name="tracker-test", level="debug", json_format=True, stream=stream)

    adapter = logging.LoggerAdapter(
        logging.getLogger("service_tracker.scheduler"),
        {"application": "manta", "service": "moray"},
    )
    adapter.info("published %d address(es)", 2)

    entry = json.loads(stream.getvalue().strip())
    assert entry["level"] == "INFO"
    assert entry["process"] == "tracker-test"
    assert entry["tracker"] == "manta/moray"
    assert entry["logger"] == "service_tracker.scheduler"
    assert entry["message"] == "published 2 address(es)"
    assert entry["application"] == "manta"
    assert entry["trace_id"] == "0" * 32


def test_text_output_without_trace_context(package_logger) -> None:
    stream = io.StringIO()
    setup_logging(service_name="tracker-test", enable_trace_context=False, stream=stream)

    logging.getLogger("service_tracker.pool").warning("tag removed")

    line = stream.getvalue()
    assert "WARNING  [tracker-test] - service_tracker.pool: tag removed" in line
    assert "trace=" not in line


def test_level_filters_records(package_logger) -> None:
    stream = io.StringIO()
    setup_logging(level="warning", stream=stream)

    logging.getLogger("service_tracker.enumerator").info("not shown")

    assert stream.getvalue() == ""


def test_off_silences_everything(package_logger) -> None:
    stream = io.StringIO()
    setup_logging(level="OFF", stream=stream)

    logging.getLogger("service_tracker").critical("not shown")

    assert stream.getvalue() == ""


def test_json_formatter_serializes_exceptions() -> None:
    try:
        raise ValueError("bad record")
    except ValueError:
        record = logging.LogRecord(
            "service_tracker.addresses", logging.ERROR, __file__, 1, "lookup failed", None, None
        )
        record.exc_info = sys.exc_info()
    TrackerContextFilter("tracker-test", with_trace=False).filter(record)

    entry = json.loads(JSONFormatter().format(record))

    assert entry["error"]["type"] == "ValueError"
    assert entry["error"]["message"] == "bad record"
    assert entry["tracker"] == "-"
    assert "trace_id" not in entry
