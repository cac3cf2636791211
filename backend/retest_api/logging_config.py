"""
Structured JSON logging.

Every record is one JSON object on stdout carrying its channel
(http, db, retest, aggregator), the current request ID, business context
such as student and assignment IDs, and free-form extra metadata.
Channel loggers live under the "retest_api." namespace.
"""

import logging
import json
import uuid
from datetime import datetime, timezone
from contextvars import ContextVar

from retest_api.config import LOG_LEVEL

LOGGER_NAMESPACE = "retest_api"
CHANNELS = ("http", "db", "retest", "aggregator")

# Set per request by the middleware in main.py
request_id_var: ContextVar[str] = ContextVar("request_id", default="")


def _utc_timestamp() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%f")[:-3] + "Z"


def _channel_from_name(name: str) -> str:
    prefix = LOGGER_NAMESPACE + "."
    return name[len(prefix):] if name.startswith(prefix) else name


class StructuredJsonFormatter(logging.Formatter):
    """
    Renders a record as:
    - timestamp: ISO 8601, UTC, millisecond precision
    - level, message, channel
    - context: request_id plus whatever the caller passed
    - extra: metrics such as duration_ms or status_code
    - exception: formatted traceback, only when exc_info was given
    """

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "timestamp": _utc_timestamp(),
            "level": record.levelname,
            "message": record.getMessage(),
            "channel": getattr(record, "channel", None) or _channel_from_name(record.name),
            "context": {
                "request_id": request_id_var.get(""),
                **(getattr(record, "context", None) or {})
            },
            "extra": getattr(record, "extra_data", None) or {}
        }
        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(log_entry, default=str)


def setup_logging(level: str = LOG_LEVEL) -> logging.Logger:
    """Install the JSON handler on the root logger. Safe to call twice."""
    numeric_level = getattr(logging, level, logging.INFO)

    root_logger = logging.getLogger()
    root_logger.setLevel(numeric_level)
    if not any(isinstance(h.formatter, StructuredJsonFormatter) for h in root_logger.handlers):
        handler = logging.StreamHandler()
        handler.setFormatter(StructuredJsonFormatter())
        root_logger.addHandler(handler)

    for channel in CHANNELS:
        get_logger(channel).setLevel(numeric_level)
    return root_logger


def get_logger(channel: str) -> logging.Logger:
    if channel not in CHANNELS:
        raise ValueError("Unknown log channel: {}".format(channel))
    return logging.getLogger("{}.{}".format(LOGGER_NAMESPACE, channel))


def log_with_context(logger: logging.Logger, level: str, message: str,
                     context: dict = None, extra_data: dict = None,
                     exc_info: bool = False):
    """
    Emit one structured entry on a channel logger.

    Args:
        logger: Channel logger from get_logger()
        level: Level name (DEBUG, INFO, WARNING, ERROR)
        message: Human-readable message
        context: Business identifiers (student_id, retest_assignment_id, ...)
        extra_data: Metrics (duration_ms, percentage, ...)
        exc_info: Attach the exception currently being handled
    """
    logger.log(
        getattr(logging, level.upper(), logging.INFO),
        message,
        exc_info=exc_info,
        extra={"context": context or {}, "extra_data": extra_data or {},
               "channel": _channel_from_name(logger.name)}
    )


def generate_request_id() -> str:
    return str(uuid.uuid4())
