# ============================================================================
# STRUCTURED LOGGING
# ============================================================================
# STATUS: Core - Structured logging with context
# PURPOSE: Consistent, queryable logging across scheduler, closer and worker
# CREATED: 19 OCT 2026
# ============================================================================
"""
Structured Logging

Provides structured, JSON-formatted logging for the job queue.

Features:
- Component-based loggers
- Contextual fields (job_id, worker_name, queue, command)
- JSON output for log aggregation
- Named checkpoints (job_locked, job_closed, retry_scheduled)

Usage:
    from core.logging import get_logger, log_context

    logger = get_logger("worker.loop")

    with log_context(job_id=42, worker_name="worker-a"):
        logger.info("Running job", extra={"queue": "default"})
"""

import contextvars
import json
import logging
import os
import sys
from contextlib import contextmanager
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional, Tuple, Union


class ComponentType(str, Enum):
    """Component types for logging categorization."""
    SCHEDULER = "scheduler"
    CLOSER = "closer"
    WORKER = "worker"
    REPOSITORY = "repository"
    SERVICE = "service"


@dataclass
class LogContext:
    """
    Context for structured logging.

    Held in a context variable so concurrent asyncio tasks keep their own.
    """
    job_id: Optional[Any] = None
    worker_name: Optional[str] = None
    queue: Optional[str] = None
    command: Optional[str] = None
    component: Optional[str] = None
    operation: Optional[str] = None
    extra: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dict, excluding None values."""
        result = {}
        for key, value in asdict(self).items():
            if value is not None and key != "extra":
                result[key] = value
        if self.extra:
            result.update(self.extra)
        return result


_context_stack: contextvars.ContextVar[Tuple[LogContext, ...]] = contextvars.ContextVar(
    "jobqueue_log_context", default=()
)


def get_current_context() -> LogContext:
    """Get current logging context."""
    stack = _context_stack.get()
    if stack:
        return stack[-1]
    return LogContext()


@contextmanager
def log_context(**kwargs):
    """
    Context manager for adding logging context.

    Args:
        **kwargs: Context fields to add

    Example:
        with log_context(job_id=42, queue="mail"):
            logger.info("Closing job")
    """
    # Merge with parent context
    parent = get_current_context()
    new_context = LogContext(
        job_id=kwargs.get("job_id", parent.job_id),
        worker_name=kwargs.get("worker_name", parent.worker_name),
        queue=kwargs.get("queue", parent.queue),
        command=kwargs.get("command", parent.command),
        component=kwargs.get("component", parent.component),
        operation=kwargs.get("operation", parent.operation),
        extra={**parent.extra, **kwargs.get("extra", {})},
    )

    token = _context_stack.set(_context_stack.get() + (new_context,))
    try:
        yield new_context
    finally:
        _context_stack.reset(token)


def _utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


class StructuredFormatter(logging.Formatter):
    """
    JSON formatter for structured logging.

    Outputs log records as JSON for easy parsing by log aggregators.
    """

    def __init__(
        self,
        include_timestamp: bool = True,
        include_level: bool = True,
        include_logger: bool = True,
        include_context: bool = True,
        include_source: bool = True,
    ):
        super().__init__()
        self.include_timestamp = include_timestamp
        self.include_level = include_level
        self.include_logger = include_logger
        self.include_context = include_context
        self.include_source = include_source

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        log_data: Dict[str, Any] = {}

        if self.include_timestamp:
            log_data["timestamp"] = _utc_timestamp()

        if self.include_level:
            log_data["level"] = record.levelname

        if self.include_logger:
            log_data["logger"] = record.name

        log_data["message"] = record.getMessage()

        if self.include_context:
            context_dict = get_current_context().to_dict()
            if context_dict:
                log_data["context"] = context_dict

        # Include extra fields from record
        if hasattr(record, "extra") and record.extra:
            log_data["data"] = record.extra

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        if self.include_source:
            log_data["source"] = {
                "file": record.filename,
                "line": record.lineno,
                "function": record.funcName,
            }

        return json.dumps(log_data, default=str)


class HumanFormatter(logging.Formatter):
    """
    Human-readable formatter for development.

    Includes context fields inline for easy reading.
    """

    def format(self, record: logging.LogRecord) -> str:
        """Format log record for human reading."""
        timestamp = datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M:%S")
        level = record.levelname.ljust(8)

        context = get_current_context()
        context_parts = []
        if context.job_id is not None:
            context_parts.append(f"job={context.job_id}")
        if context.worker_name:
            context_parts.append(f"worker={context.worker_name}")
        if context.queue:
            context_parts.append(f"queue={context.queue}")

        context_str = f" [{', '.join(context_parts)}]" if context_parts else ""

        message = record.getMessage()

        extra_str = ""
        if hasattr(record, "extra") and record.extra:
            extra_str = f" {record.extra}"

        result = f"{timestamp} {level} {record.name}{context_str}: {message}{extra_str}"

        if record.exc_info:
            result += f"\n{self.formatException(record.exc_info)}"

        return result


class ContextLogger(logging.LoggerAdapter):
    """
    Logger adapter that includes context in log records.

    Automatically includes the current log context in all log messages.
    """

    def process(self, msg, kwargs):
        """Process log record to include context."""
        extra = dict(kwargs.get("extra", {}))
        if self.extra.get("component"):
            extra.setdefault("component", self.extra["component"])
        extra.update(get_current_context().to_dict())

        # Store as attribute for formatter access
        kwargs["extra"] = {"extra": extra}

        return msg, kwargs


def get_logger(
    name: str,
    component: Optional[ComponentType] = None,
) -> ContextLogger:
    """
    Get a context-aware logger.

    Args:
        name: Logger name (e.g., "worker.loop")
        component: Optional component type for categorization

    Returns:
        ContextLogger instance
    """
    base_logger = logging.getLogger(name)
    component_value = component.value if component is not None else None
    return ContextLogger(base_logger, {"component": component_value})


def configure_logging(
    level: Union[str, int] = "INFO",
    json_output: bool = False,
    include_source: bool = True,
) -> None:
    """
    Configure logging for the application.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR)
        json_output: Use JSON format (for production)
        include_source: Include source file/line info (JSON format only)
    """
    if isinstance(level, str):
        level = getattr(logging, level.upper(), logging.INFO)

    if json_output or os.getenv("LOG_FORMAT", "").lower() == "json":
        formatter: logging.Formatter = StructuredFormatter(
            include_context=True,
            include_source=include_source,
        )
    else:
        formatter = HumanFormatter()

    root = logging.getLogger()
    root.setLevel(level)

    for handler in root.handlers[:]:
        root.removeHandler(handler)

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)
    root.addHandler(handler)


# ============================================================================
# CHECKPOINT LOGGING
# ============================================================================

def log_checkpoint(
    name: str,
    data: Optional[Dict[str, Any]] = None,
    logger: Optional[logging.Logger] = None,
) -> None:
    """
    Log a named checkpoint.

    Checkpoints are named markers that can be queried to follow a job
    through lock, run, close and retry.

    Args:
        name: Checkpoint name (e.g., "job_locked", "job_closed")
        data: Optional checkpoint data
        logger: Optional specific logger to use
    """
    if logger is None:
        logger = logging.getLogger("checkpoint")

    checkpoint_data: Dict[str, Any] = {
        "checkpoint": name,
        "timestamp": _utc_timestamp(),
    }

    context = get_current_context()
    if context.job_id is not None:
        checkpoint_data["job_id"] = context.job_id
    if context.worker_name:
        checkpoint_data["worker_name"] = context.worker_name

    if data:
        checkpoint_data["data"] = data

    logger.info(f"CHECKPOINT: {name}", extra={"extra": checkpoint_data})


# ============================================================================
# EXPORTS
# ============================================================================

__all__ = [
    "ComponentType",
    "LogContext",
    "StructuredFormatter",
    "HumanFormatter",
    "ContextLogger",
    "get_logger",
    "configure_logging",
    "log_context",
    "get_current_context",
    "log_checkpoint",
]
