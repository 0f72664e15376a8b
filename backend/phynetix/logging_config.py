"""
Structured JSON logging configuration.

Every log line is one JSON object on stdout with a channel (http, db, auth,
grading, ranking), the current request id and whatever business context the
caller attaches (attempt_id, user_id, test_id). The grading engine relies on
this to make every scoring decision reconstructable from logs.
"""

import logging
import json
import os
import uuid
from datetime import datetime, timezone
from contextvars import ContextVar

# Set per HTTP request by the middleware in main.py
request_id_var: ContextVar[str] = ContextVar("request_id", default="")

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

CHANNELS = ["http", "db", "auth", "grading", "ranking"]


class StructuredJsonFormatter(logging.Formatter):
    """
    Formats a record as a single JSON log entry.

    Keys: timestamp (UTC, millisecond precision), level, message, channel,
    context (always includes request_id) and extra.
    """

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "timestamp": datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%f")[:-3] + "Z",
            "level": record.levelname,
            "message": record.getMessage(),
            "channel": getattr(record, "channel", record.name.split(".")[-1] if "." in record.name else "app"),
            "context": {
                "request_id": request_id_var.get(""),
                **(getattr(record, "context", {}) or {})
            },
            "extra": getattr(record, "extra_data", {}) or {}
        }
        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(log_entry, default=str)


def setup_logging():
    """Install the JSON formatter on the root logger and register channel loggers."""
    handler = logging.StreamHandler()
    handler.setFormatter(StructuredJsonFormatter())

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, LOG_LEVEL, logging.INFO))
    root_logger.handlers = [handler]

    for channel in CHANNELS:
        logging.getLogger(f"phynetix.{channel}").setLevel(getattr(logging, LOG_LEVEL, logging.INFO))

    return root_logger


def get_logger(channel: str) -> logging.Logger:
    """Return the logger for one of the CHANNELS."""
    return logging.getLogger(f"phynetix.{channel}")


def log_with_context(logger: logging.Logger, level: str, message: str,
                     context: dict = None, extra_data: dict = None,
                     exc_info: bool = False):
    """
    Emit a structured log entry.

    Args:
        logger: channel logger from get_logger()
        level: INFO, WARNING, ERROR or DEBUG
        message: human-readable message
        context: business identifiers (attempt_id, user_id, test_id)
        extra_data: metrics and details (score, duration_ms, counts)
        exc_info: attach the active exception traceback
    """
    log_level = getattr(logging, level.upper(), logging.INFO)
    logger.log(
        log_level,
        message,
        exc_info=exc_info,
        extra={"context": context or {}, "extra_data": extra_data or {}, "channel": logger.name.split(".")[-1]}
    )


def generate_request_id() -> str:
    return str(uuid.uuid4())
