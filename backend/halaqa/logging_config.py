"""
Structured JSON logging configuration.

Provides structured logging with channels (http, store, students, photos,
auth), request ID tracking, and context-rich log entries. All log output is
valid JSON written to stdout so it can be shipped as-is by the host.

Every entry's context carries the request id and, once a bearer token has
been verified, the actor making the request ("admin" or "student:<id>").
Entries about one student carry its ``student_id``.
"""

import logging
import json
import os
import uuid
from datetime import datetime, timezone
from contextvars import ContextVar

# ──────────────────────────────────────────────────────────────
# Per-request context. The middleware sets the request id and
# token verification sets the actor; both are attached to every
# log entry produced while handling that request.
# ──────────────────────────────────────────────────────────────
request_id_var: ContextVar[str] = ContextVar("request_id", default="")
actor_var: ContextVar[str] = ContextVar("actor", default="")

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

CHANNELS = ["http", "store", "students", "photos", "auth"]


class StructuredJsonFormatter(logging.Formatter):
    """
    Formatter that renders each record as a single JSON object.

    Keys:
    - timestamp: when the record was created, ISO 8601 UTC
    - level: Log severity (INFO, WARNING, ERROR, DEBUG)
    - message: Human-readable log message
    - channel: Log source category (http, store, students, photos, auth)
    - context: request_id, actor and student_id when known
    - extra: Additional metadata (ip, duration_ms, photo, ...)
    """

    def format(self, record: logging.LogRecord) -> str:
        created = datetime.fromtimestamp(record.created, timezone.utc)
        context = {"request_id": request_id_var.get("")}
        actor = actor_var.get("")
        if actor:
            context["actor"] = actor
        context.update(getattr(record, "context", None) or {})

        log_entry = {
            "timestamp": created.strftime("%Y-%m-%dT%H:%M:%S.%f")[:-3] + "Z",
            "level": record.levelname,
            "message": record.getMessage(),
            "channel": getattr(record, "channel", record.name.rsplit(".", 1)[-1]),
            "context": context,
            "extra": getattr(record, "extra_data", None) or {},
        }
        # Student names and surahs are Arabic; keep them readable
        return json.dumps(log_entry, default=str, ensure_ascii=False)


def setup_logging():
    """
    Configure the root logger and the channel loggers.

    All output goes to stdout through one handler using the JSON formatter.
    """
    handler = logging.StreamHandler()
    handler.setFormatter(StructuredJsonFormatter())

    level = getattr(logging, LOG_LEVEL, logging.INFO)
    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers = [handler]

    for channel in CHANNELS:
        get_logger(channel).setLevel(level)

    return root_logger


def get_logger(channel: str) -> logging.Logger:
    """Get the logger for a channel (http, store, students, photos, auth)."""
    return logging.getLogger(f"halaqa.{channel}")


def log_with_context(logger: logging.Logger, level: str, message: str,
                     context: dict = None, extra_data: dict = None,
                     student_id: str = None):
    """
    Emit a structured log entry with business context and extra metadata.

    Args:
        logger: The channel logger to use
        level: Log level string (INFO, WARNING, ERROR, DEBUG)
        message: Human-readable log message
        context: Business context dict (subject, role, ...)
        extra_data: Additional metadata dict (duration_ms, path, ...)
        student_id: The student the entry is about, if any
    """
    context = dict(context or {})
    if student_id is not None:
        context["student_id"] = student_id
    logger.log(
        getattr(logging, level.upper(), logging.INFO),
        message,
        extra={"context": context, "extra_data": extra_data or {},
               "channel": logger.name.rsplit(".", 1)[-1]}
    )


def generate_request_id() -> str:
    """Generate a new UUID for request tracking."""
    return str(uuid.uuid4())
