"""Logging configuration for attempt-service.

WHAT GETS LOGGED WHERE
------------------------
  Request summary   RequestContextMiddleware, one INFO line per request
                    with method, path, status and duration.
  Lifecycle         attempts_service / grading_service, INFO on start,
                    submit and evaluate, WARNING on every rejection the
                    engine turns into a 4xx.
  Events            events.py, ERROR (with traceback) when an event could
                    not be enqueued. The request still succeeds.

Metrics (counts, latencies) live in attempt_service/core/metrics.py; logs
answer "what happened to THIS attempt", metrics answer "how often".

TWO FORMATTERS
----------------
  _ContainerFormatter  human-readable, single-line, for local dev.
  _JsonFormatter       JSON Lines for production log aggregation.

Lifecycle logs pass attempt_id, assessment_id and student_id via
``extra=``; the JSON formatter lifts them to top-level keys so a support
query like ``attempt_id == "..."`` returns the full history of one attempt
across API replicas and the worker.

Set LOG_JSON=true in production to switch to JSON output.
"""

from __future__ import annotations

import json
import logging
import sys


class _ContainerFormatter(logging.Formatter):
    """Single-line formatter tuned for container stdout.

    - Always: ISO-8601 timestamp, level, logger name, message
    - WARNING+: appends [filename:lineno]
    - ERROR/CRITICAL: stack trace included when exc_info is present
    """

    _BASE_FMT = "%(asctime)s %(levelname)-8s %(name)s  %(message)s"
    _LOC_SUFFIX = "  [%(filename)s:%(lineno)d]"

    def __init__(self) -> None:
        super().__init__(datefmt="%Y-%m-%dT%H:%M:%S%z")

    def formatTime(self, record: logging.LogRecord, datefmt: str | None = None) -> str:
        base = super().formatTime(record, datefmt)
        ms = int(record.msecs)
        # Insert .NNN before the timezone offset (last 5 chars: +0000)
        return f"{base[:-5]}.{ms:03d}{base[-5:]}"

    def format(self, record: logging.LogRecord) -> str:
        if record.levelno >= logging.WARNING:
            self._style._fmt = self._BASE_FMT + self._LOC_SUFFIX
        else:
            self._style._fmt = self._BASE_FMT
        return super().format(record)


class _JsonFormatter(logging.Formatter):
    """JSON formatter: one object per line.

    Request fields come from RequestContextMiddleware; attempt fields come
    from the services' ``extra=`` arguments.
    """

    _CONTEXT_FIELDS = (
        # request
        "request_id",
        "method",
        "path",
        "status_code",
        "duration_ms",
        # attempt lifecycle
        "attempt_id",
        "assessment_id",
        "student_id",
        # worker
        "task_id",
        "queue",
    )

    def __init__(self) -> None:
        super().__init__(datefmt="%Y-%m-%dT%H:%M:%S%z")

    def format(self, record: logging.LogRecord) -> str:
        log_entry: dict[str, object] = {
            "timestamp": self.formatTime(record),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        for key in self._CONTEXT_FIELDS:
            value = getattr(record, key, None)
            if value is not None:
                log_entry[key] = value

        if record.exc_info and record.exc_info[0] is not None:
            log_entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_entry, default=str)


def setup_logging(level_name: str, *, json_format: bool = False) -> None:
    """Configure the root logger for container environments.

    Args:
        level_name: Log level string (debug/info/warning/error)
        json_format: If True, emit JSON lines. Controlled by LOG_JSON.
    """
    level = getattr(logging, level_name.upper(), logging.INFO)

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(_JsonFormatter() if json_format else _ContainerFormatter())

    root = logging.getLogger()
    root.setLevel(level)
    root.handlers.clear()
    root.addHandler(handler)

    # sqlalchemy.engine is quiet unless the engine was built with echo=True
    for name in (
        "uvicorn",
        "uvicorn.access",
        "uvicorn.error",
        "httpcore",
        "httpx",
        "asyncio",
    ):
        logging.getLogger(name).setLevel(max(level, logging.WARNING))
