"""Structured JSON logging for the API, the report worker and tooling scripts.

Every line carries the service metadata and, inside an active span, the trace
ids. Context bound by the report scheduler (``run_mode``, ``item_id``,
``worker``...) is grouped under ``report`` so cron runs can be filtered on one
key; any other bound values land under ``context``.
"""

from __future__ import annotations

import json
import logging
import sys
from typing import Any, Dict, Mapping

from loguru import logger
from opentelemetry import trace

REPORT_CONTEXT_KEYS = frozenset({"worker", "run_mode", "run_now", "item_id", "period_id", "window_end_ms"})

_STDLIB_RECORD_ATTRS = frozenset(vars(logging.makeLogRecord({}))) | {"message", "asctime"}


class InterceptHandler(logging.Handler):
    """Forward stdlib records (uvicorn, redis) to Loguru."""

    def emit(self, record: logging.LogRecord) -> None:  # pragma: no cover - bridging glue
        try:
            level: str | int = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        # Attribute the line to the caller, not to the logging module.
        frame, depth = logging.currentframe(), 2
        while frame is not None and frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back
            depth += 1

        extra = {key: value for key, value in vars(record).items() if key not in _STDLIB_RECORD_ATTRS}
        logger.bind(**extra).opt(depth=depth, exception=record.exc_info).log(level, record.getMessage())


def build_log_payload(record: Mapping[str, Any], metadata: Mapping[str, str]) -> Dict[str, Any]:
    payload: Dict[str, Any] = {
        "timestamp": record["time"].isoformat(),
        "level": record["level"].name.lower(),
        "message": record["message"],
        "logger": record["name"],
        **metadata,
    }

    span_context = trace.get_current_span().get_span_context()
    if span_context.is_valid:
        payload["trace_id"] = f"{span_context.trace_id:032x}"
        payload["span_id"] = f"{span_context.span_id:016x}"

    report = {key: value for key, value in record["extra"].items() if key in REPORT_CONTEXT_KEYS}
    context = {key: value for key, value in record["extra"].items() if key not in REPORT_CONTEXT_KEYS}
    if report:
        payload["report"] = report
    if context:
        payload["context"] = context

    exception = record["exception"]
    if exception is not None and exception.type is not None:
        payload["exception"] = {"type": exception.type.__name__, "message": str(exception.value)}
    return payload


def configure_logging(*, service_name: str, environment: str, version: str, level: str = "INFO") -> None:
    """Replace Loguru's default sink with one JSON line per record on stdout."""

    metadata = {"service": service_name, "environment": environment, "version": version}

    def _sink(message: Any) -> None:
        sys.stdout.write(json.dumps(build_log_payload(message.record, metadata), default=str) + "\n")

    logger.remove()
    logger.add(_sink, level=level.upper(), backtrace=False, diagnose=False)

    logging.basicConfig(handlers=[InterceptHandler()], level=0, force=True)
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
