"""Structured JSON logging for the media pipeline.

Each record becomes one JSON line carrying severity, timestamp, message,
the emitting logger and any pipeline context passed through ``extra``
(job id, stage, retry category and attempt). Classified failures attached
as exception info are serialized with their category and status.
"""

import json
import logging
import sys
from datetime import UTC, datetime
from typing import TextIO

from media_pipeline.utils.errors import ClassifiedError

EXTRA_FIELDS: tuple[str, ...] = (
    "job_id",
    "stage",
    "duration_seconds",
    "error",
    "category",
    "attempt",
)


class StructuredJsonFormatter(logging.Formatter):
    """Format log records as JSON lines."""

    SEVERITY_MAP: dict[int, str] = {
        logging.DEBUG: "DEBUG",
        logging.INFO: "INFO",
        logging.WARNING: "WARNING",
        logging.ERROR: "ERROR",
        logging.CRITICAL: "CRITICAL",
    }

    def format(self, record: logging.LogRecord) -> str:
        created = datetime.fromtimestamp(record.created, UTC)
        log_entry: dict[str, object] = {
            "timestamp": created.strftime("%Y-%m-%dT%H:%M:%SZ"),
            "severity": self.SEVERITY_MAP.get(record.levelno, "DEFAULT"),
            "message": record.getMessage(),
            "logger": record.name,
        }

        for key in EXTRA_FIELDS:
            value = getattr(record, key, None)
            if value is not None:
                log_entry[key] = value

        exc = record.exc_info[1] if record.exc_info else None
        if exc is not None:
            log_entry["exception"] = f"{type(exc).__name__}: {exc}"
            if isinstance(exc, ClassifiedError):
                log_entry["classified_error"] = exc.to_dict()

        return json.dumps(log_entry, default=str)


def configure_logging(level: int = logging.INFO, stream: TextIO | None = None) -> None:
    """Route root logging through StructuredJsonFormatter.

    Stdout is left to result and metrics lines, so records go to stderr
    unless another stream is given. Calling this again replaces the handler
    installed by the previous call.
    """
    root = logging.getLogger()
    root.setLevel(level)
    for handler in list(root.handlers):
        if isinstance(handler.formatter, StructuredJsonFormatter):
            root.removeHandler(handler)

    handler = logging.StreamHandler(stream or sys.stderr)
    handler.setFormatter(StructuredJsonFormatter())
    root.addHandler(handler)
