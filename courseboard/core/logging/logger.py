"""
Courseboard Logging Subsystem

Purpose
-------
Provide an async-safe logging subsystem that is the single source of truth
for Courseboard observability, offering:

- Structured JSON logs for aggregation and analysis.
- LogContext-based propagation of operation context via ContextVars.
- Correlation IDs for end-to-end traceability of a submission through
  aggregation, persistence and the follow-up rank sweep.
- Async-safe logging via a QueueHandler + QueueListener architecture.
- Bounded log queue with graceful degradation on overload.
- Console output (JSON in production, plain text elsewhere) plus an optional
  rotating JSON file handler.

Responsibilities
----------------
- Initialize and configure the global logging stack.
- Enrich all log records with contextual fields:
  - learner_id, course_id
  - operation, component
  - correlation_id, request_id
- Avoid blocking the asyncio event loop with synchronous handler I/O.
- Provide simple helper APIs:
  - get_logger()
  - LogContext (sync + async context manager)
  - set_log_context() / clear_log_context()

Design Decisions
----------------
- JSONFormatter is the canonical representation.
- ContextFilter uses ContextVars to safely enrich logs in async code.
- Extra fields passed via `logger.info("msg", extra={...})` are merged into JSON.
- A nested LogContext keeps the enclosing correlation id, so a rank sweep
  scheduled from a submission logs under the submission's id.

Dependencies
------------
- courseboard.core.config.config.Config
"""

from __future__ import annotations

import json
import logging
import queue
import sys
import uuid
from contextvars import ContextVar, Token
from dataclasses import dataclass
from datetime import datetime, timezone
from logging import Logger
from logging.handlers import (
    QueueHandler,
    QueueListener,
    TimedRotatingFileHandler,
)
from pathlib import Path
from typing import Any, Dict, List, Optional

from courseboard.core.config.config import Config


# ============================================================================
# Request / Operation Context (ContextVars)
# ============================================================================

_request_context: ContextVar[Dict[str, Any]] = ContextVar(
    "request_context",
    default={},
)

CONTEXT_FIELDS = ("learner_id", "course_id", "component", "operation")


# ============================================================================
# Config / Environment
# ============================================================================


@dataclass(frozen=True, slots=True)
class LoggerConfig:
    """Configuration for the logging subsystem."""

    CONSOLE_FORMAT: str = "%(asctime)s | %(levelname)-8s | %(name)-36s | %(message)s"
    DATE_FORMAT: str = "%Y-%m-%d %H:%M:%S"

    DAILY_BASENAME: str = "courseboard_daily.json.log"
    DAILY_BACKUP_COUNT: int = 1

    QUEUE_MAX_SIZE: int = 10_000

    @property
    def environment(self) -> str:
        return str(getattr(Config, "ENVIRONMENT", "development")).lower()

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    @property
    def logs_dir(self) -> Path:
        return Path(Config.LOGS_DIR).resolve()

    @property
    def log_level(self) -> int:
        level_name = getattr(Config, "LOG_LEVEL", "INFO")
        if not isinstance(level_name, str):
            level_name = "INFO"
        return getattr(logging, level_name.upper(), logging.INFO)

    @property
    def use_json(self) -> bool:
        json_flag = getattr(Config, "LOG_JSON", None)
        if json_flag is None:
            return self.is_production
        return bool(json_flag)

    @property
    def log_to_file(self) -> bool:
        return bool(getattr(Config, "LOG_TO_FILE", False))


LOGGER_CONFIG = LoggerConfig()

_log_queue: Optional["queue.Queue[logging.LogRecord]"] = None
_records_dropped: int = 0


# ============================================================================
# Filters & Formatters
# ============================================================================


class ContextFilter(logging.Filter):
    """Copies the current LogContext onto every record (emitting task only)."""

    def filter(self, record: logging.LogRecord) -> bool:  # type: ignore[override]
        context: Dict[str, Any] = _request_context.get({})

        for field in CONTEXT_FIELDS:
            setattr(record, field, context.get(field) or "N/A")
        if record.component == "N/A":
            record.component = record.name.split(".", 1)[0]

        correlation_id = context.get("correlation_id") or context.get("request_id") or "N/A"
        record.correlation_id = correlation_id
        record.request_id = context.get("request_id") or correlation_id
        return True


class JSONFormatter(logging.Formatter):
    """One JSON object per record; context fields at top level, the rest under `extra`."""

    STANDARD_ATTRS = frozenset(
        logging.LogRecord("", 0, "", 0, "", None, None).__dict__
    ) | {"message", "asctime", "taskName"}

    CONTEXT_ATTRS = frozenset(CONTEXT_FIELDS) | {"correlation_id", "request_id"}

    def format(self, record: logging.LogRecord) -> str:  # type: ignore[override]
        created_dt = datetime.fromtimestamp(record.created, tz=timezone.utc)

        log_data: Dict[str, Any] = {
            "timestamp": created_dt.isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        for attr in sorted(self.CONTEXT_ATTRS):
            value = getattr(record, attr, None)
            if value not in (None, "N/A"):
                log_data[attr] = value

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        extra = {
            key: val
            for key, val in record.__dict__.items()
            if key not in self.STANDARD_ATTRS
            and key not in self.CONTEXT_ATTRS
            and not key.startswith("_")
        }
        if extra:
            log_data["extra"] = extra

        return json.dumps(log_data, ensure_ascii=False, default=str)


# ============================================================================
# Queue Handler & Listener
# ============================================================================


class CourseboardQueueHandler(QueueHandler):
    def enqueue(self, record: logging.LogRecord) -> None:  # type: ignore[override]
        global _records_dropped
        try:
            self.queue.put_nowait(record)
        except queue.Full:
            _records_dropped += 1
            sys.stderr.write("Courseboard logging queue full; dropping log record.\n")


class CourseboardQueueListener(QueueListener):
    def handleError(self, record: logging.LogRecord) -> None:  # type: ignore[override]
        sys.stderr.write("Courseboard logging handler error while processing record.\n")


def records_dropped() -> int:
    return _records_dropped


# ============================================================================
# Global Setup
# ============================================================================

_queue_listener: Optional[QueueListener] = None


def _build_console_handler() -> logging.Handler:
    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(LOGGER_CONFIG.log_level)

    if LOGGER_CONFIG.use_json:
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(
            logging.Formatter(fmt=LOGGER_CONFIG.CONSOLE_FORMAT, datefmt=LOGGER_CONFIG.DATE_FORMAT)
        )
    return handler


def _build_daily_file_handler() -> logging.Handler:
    LOGGER_CONFIG.logs_dir.mkdir(parents=True, exist_ok=True)
    log_file = LOGGER_CONFIG.logs_dir / LOGGER_CONFIG.DAILY_BASENAME

    handler = TimedRotatingFileHandler(
        filename=str(log_file),
        when="midnight",
        interval=1,
        backupCount=LOGGER_CONFIG.DAILY_BACKUP_COUNT,
        encoding="utf-8",
        utc=True,
    )
    handler.setLevel(LOGGER_CONFIG.log_level)
    handler.setFormatter(JSONFormatter())
    return handler


def setup_logging() -> None:
    global _queue_listener, _log_queue, _records_dropped

    root = logging.getLogger()

    if getattr(root, "_courseboard_logging_initialized", False):
        return

    _records_dropped = 0

    root.setLevel(LOGGER_CONFIG.log_level)
    root.handlers.clear()
    root.filters.clear()

    handlers: List[logging.Handler] = [_build_console_handler()]
    if LOGGER_CONFIG.log_to_file:
        handlers.append(_build_daily_file_handler())

    _log_queue = queue.Queue(LOGGER_CONFIG.QUEUE_MAX_SIZE)

    _queue_listener = CourseboardQueueListener(
        _log_queue,
        *handlers,
        respect_handler_level=True,
    )
    _queue_listener.start()

    # Context must be captured on the emitting task, not the listener thread.
    queue_handler = CourseboardQueueHandler(_log_queue)
    queue_handler.setLevel(LOGGER_CONFIG.log_level)
    queue_handler.addFilter(ContextFilter())

    root.addHandler(queue_handler)

    for noisy in ("sqlalchemy.engine", "aiosqlite", "asyncio"):
        logging.getLogger(noisy).setLevel(logging.WARNING)

    setattr(root, "_courseboard_logging_initialized", True)

    logging.getLogger(__name__).info(
        "Logging initialized",
        extra={
            "environment": LOGGER_CONFIG.environment,
            "log_level": logging.getLevelName(LOGGER_CONFIG.log_level),
            "json": LOGGER_CONFIG.use_json,
            "log_to_file": LOGGER_CONFIG.log_to_file,
            "queue_max_size": LOGGER_CONFIG.QUEUE_MAX_SIZE,
        },
    )


def shutdown_logging() -> None:
    global _queue_listener, _log_queue

    root = logging.getLogger()

    if not getattr(root, "_courseboard_logging_initialized", False):
        return

    logging.getLogger(__name__).info(
        "Shutting down logging subsystem.", extra={"records_dropped": _records_dropped}
    )

    if _queue_listener:
        try:
            _queue_listener.stop()
        except Exception:
            sys.stderr.write("Error while stopping logging queue listener.\n")
        finally:
            _queue_listener = None

    for handler in list(root.handlers):
        handler.flush()
        handler.close()
        root.removeHandler(handler)

    setattr(root, "_courseboard_logging_initialized", False)
    _log_queue = None


# ============================================================================
# Public API
# ============================================================================


def get_logger(name: str) -> Logger:
    return logging.getLogger(name)


class LogContext:
    """
    Scoped log context for one operation.

    Fields not given are recorded as "N/A" so an inner scope never reports a
    learner it is not working on. The correlation id is inherited from the
    enclosing scope unless one is passed explicitly.

    Usage:
        async with LogContext(learner_id=..., course_id=..., operation="submit_score"):
            ...
    """

    def __init__(
        self,
        learner_id: Optional[str] = None,
        course_id: Optional[str] = None,
        component: Optional[str] = None,
        operation: Optional[str] = None,
        correlation_id: Optional[str] = None,
        request_id: Optional[str] = None,
        **extra: Any,
    ) -> None:
        parent = _request_context.get({})
        effective = (
            correlation_id
            or request_id
            or parent.get("correlation_id")
            or self._generate_correlation_id()
        )

        self.context: Dict[str, Any] = {
            **parent,
            "learner_id": str(learner_id) if learner_id is not None else "N/A",
            "course_id": str(course_id) if course_id is not None else "N/A",
            "component": component,
            "operation": operation,
            "correlation_id": effective,
            "request_id": request_id or parent.get("request_id") or effective,
            **extra,
        }

        self._token: Optional[Token[Dict[str, Any]]] = None

    @property
    def correlation_id(self) -> str:
        return self.context["correlation_id"]

    @staticmethod
    def _generate_correlation_id() -> str:
        return uuid.uuid4().hex[:8]

    def __enter__(self) -> "LogContext":
        self._token = _request_context.set(self.context)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        if self._token is not None:
            _request_context.reset(self._token)
            self._token = None

    async def __aenter__(self) -> "LogContext":
        return self.__enter__()

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        self.__exit__(exc_type, exc_val, exc_tb)


def set_log_context(
    learner_id: Optional[str] = None,
    course_id: Optional[str] = None,
    component: Optional[str] = None,
    operation: Optional[str] = None,
    correlation_id: Optional[str] = None,
    request_id: Optional[str] = None,
    **extra: Any,
) -> None:
    """Merge fields into the current context without opening a new scope."""
    current = _request_context.get({}).copy()

    given = {
        "learner_id": learner_id,
        "course_id": course_id,
        "component": component,
        "operation": operation,
    }
    for field, value in given.items():
        if value is not None:
            current[field] = str(value)

    if correlation_id:
        current["correlation_id"] = correlation_id
    if request_id:
        current["request_id"] = request_id
        current.setdefault("correlation_id", request_id)

    current.update(extra)
    _request_context.set(current)


def get_log_context() -> Dict[str, Any]:
    return dict(_request_context.get({}))


def clear_log_context() -> None:
    _request_context.set({})


# Initialize logging automatically
setup_logging()
