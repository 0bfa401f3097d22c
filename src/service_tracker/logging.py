"""
Logging setup for the service tracker.

Modules log through ``logging.getLogger(__name__)``; this module only installs
the handler. Every record is labelled with the process name, the tracker it
belongs to (``<application>/<service>``, taken from the scheduler's adapter
extras) and, when enabled, the active opentelemetry trace and span ids.
Output is either one text line or one JSON object per record.
"""

import json
import logging
import sys
from datetime import datetime, timezone

from opentelemetry import trace

LOGGER_NAME = "service_tracker"

TEXT_FORMAT = "%(asctime)s %(levelname)-8s [%(process_label)s] %(tracker)s %(name)s: %(message)s"
TRACE_TEXT_FORMAT = (
    "%(asctime)s %(levelname)-8s [%(process_label)s] %(tracker)s "
    "trace=%(trace_id)s/%(span_id)s %(name)s: %(message)s"
)

LOG_LEVELS = {
    "CRITICAL": logging.CRITICAL,
    "ERROR": logging.ERROR,
    "WARNING": logging.WARNING,
    "INFO": logging.INFO,
    "DEBUG": logging.DEBUG,
    "NOTSET": logging.NOTSET,
}
LOG_OFF_LEVEL = "OFF"
NO_TRACKER = "-"
EMPTY_TRACE_ID = "0" * 32
EMPTY_SPAN_ID = "0" * 16

# Attributes every LogRecord carries, plus the ones added by TrackerContextFilter
_RECORD_ATTRS = frozenset(vars(logging.makeLogRecord({}))) | {
    "message",
    "asctime",
    "process_label",
    "tracker",
    "trace_id",
    "span_id",
}


class TrackerContextFilter(logging.Filter):
    """Label records with the process, the tracker and the active span."""

    def __init__(self, process_label: str, with_trace: bool = True):
        super().__init__()
        self.process_label = process_label
        self.with_trace = with_trace

    def filter(self, record: logging.LogRecord) -> bool:
        record.process_label = self.process_label

        application = getattr(record, "application", None)
        service = getattr(record, "service", None)
        record.tracker = f"{application}/{service}" if application and service else NO_TRACKER

        if self.with_trace:
            record.trace_id, record.span_id = _current_trace_ids()
        return True


def _current_trace_ids() -> tuple[str, str]:
    span = trace.get_current_span()
    if not span.is_recording():
        return EMPTY_TRACE_ID, EMPTY_SPAN_ID
    context = span.get_span_context()
    return format(context.trace_id, "032x"), format(context.span_id, "016x")


class JSONFormatter(logging.Formatter):
    """One JSON object per record, carrying adapter extras as top-level keys."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "time": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "process": getattr(record, "process_label", None),
            "tracker": getattr(record, "tracker", NO_TRACKER),
            "logger": record.name,
            "message": record.getMessage(),
        }

        trace_id = getattr(record, "trace_id", None)
        if trace_id is not None:
            entry["trace_id"] = trace_id
            entry["span_id"] = getattr(record, "span_id", EMPTY_SPAN_ID)

        if record.exc_info and record.exc_info[0] is not None:
            entry["error"] = {
                "type": record.exc_info[0].__name__,
                "message": str(record.exc_info[1]),
                "traceback": self.formatException(record.exc_info),
            }

        entry.update(
            (key, value) for key, value in vars(record).items() if key not in _RECORD_ATTRS
        )
        return json.dumps(entry, default=str, ensure_ascii=False)


def setup_logging(
    service_name: str = "service-tracker",
    level: str = "INFO",
    json_format: bool = False,
    enable_trace_context: bool = True,
    stream=None,
) -> logging.Logger:
    """
    Install a single handler on the ``service_tracker`` logger.

    Args:
        service_name: Process label shown on every record
        level: Log level name, or "OFF" to silence output
        json_format: Emit JSON objects instead of text lines
        enable_trace_context: Include opentelemetry trace/span ids
        stream: Output stream (default: stdout)

    Returns:
        The configured package logger
    """
    package_logger = logging.getLogger(LOGGER_NAME)
    package_logger.handlers.clear()
    package_logger.propagate = False

    level = level.upper()
    if level == LOG_OFF_LEVEL:
        package_logger.setLevel(logging.CRITICAL + 1)
    else:
        package_logger.setLevel(LOG_LEVELS.get(level, logging.INFO))

    handler = logging.StreamHandler(stream or sys.stdout)
    handler.addFilter(TrackerContextFilter(service_name, with_trace=enable_trace_context))
    if json_format:
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(
            logging.Formatter(TRACE_TEXT_FORMAT if enable_trace_context else TEXT_FORMAT)
        )

    package_logger.addHandler(handler)
    return package_logger
