"""
Structured logging configuration with run and item correlation.
Provides a JSON logging format suitable for log aggregation of long exports.
"""

import functools
import json
import logging
import os
import sys
import time
import uuid
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Optional, TextIO

run_id_var: ContextVar[str] = ContextVar("run_id", default="")
item_ordinal_var: ContextVar[Optional[int]] = ContextVar("item_ordinal", default=None)


def generate_run_id() -> str:
    """Generate a new run ID."""
    return str(uuid.uuid4())


def get_run_id() -> str:
    """Get run ID for the current context."""
    return run_id_var.get()


def set_item_ordinal(ordinal: Optional[int]) -> None:
    """Set the ordinal of the item currently in the pipeline."""
    item_ordinal_var.set(ordinal)


def get_item_ordinal() -> Optional[int]:
    """Get the ordinal of the item currently in the pipeline."""
    return item_ordinal_var.get()


class StructuredJsonFormatter(logging.Formatter):
    """
    JSON formatter for structured logging.
    One object per line, carrying the run and item correlation fields.
    """

    def __init__(self, service_name: str = "product-feed"):
        super().__init__()
        self.service_name = service_name

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "service": self.service_name,
            "run_id": get_run_id(),
            "item_ordinal": get_item_ordinal(),
        }

        if record.funcName:
            log_data["function"] = record.funcName
        if record.lineno:
            log_data["line"] = record.lineno

        if hasattr(record, "destination"):
            log_data["destination"] = record.destination
        if hasattr(record, "stage"):
            log_data["stage"] = record.stage

        if hasattr(record, "extra_data") and isinstance(record.extra_data, dict):
            log_data["data"] = record.extra_data

        if record.exc_info:
            log_data["exception"] = {
                "type": record.exc_info[0].__name__ if record.exc_info[0] else None,
                "message": str(record.exc_info[1]) if record.exc_info[1] else None,
            }

        if hasattr(record, "duration_ms"):
            log_data["duration_ms"] = record.duration_ms
        if hasattr(record, "metrics"):
            log_data["metrics"] = record.metrics

        return json.dumps(log_data, default=str)


class ContextualLogger(logging.LoggerAdapter):
    """
    Logger adapter that automatically includes contextual information.
    """

    def process(self, msg, kwargs):
        extra = kwargs.get("extra", {})
        extra["run_id"] = get_run_id()
        extra["item_ordinal"] = get_item_ordinal()
        kwargs["extra"] = extra
        return msg, kwargs


def configure_logging(
    level: str = "INFO",
    service_name: str = "product-feed",
    json_format: Optional[bool] = None,
    stream: Optional[TextIO] = None,
) -> ContextualLogger:
    """
    Configure structured logging for feed runs.

    Log records go to standard error so that standard output stays
    available as a feed destination.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR)
        service_name: Name of the service for log identification
        json_format: Force JSON output; defaults to FEED_LOG_FORMAT=json
        stream: Stream for the handler, standard error when omitted

    Returns:
        Configured contextual logger
    """
    log_level = getattr(logging, level.upper(), logging.INFO)

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler(stream or sys.stderr)
    handler.setLevel(log_level)

    if json_format is None:
        json_format = os.environ.get("FEED_LOG_FORMAT", "").lower() == "json"

    if json_format:
        handler.setFormatter(StructuredJsonFormatter(service_name))
    else:
        handler.setFormatter(
            logging.Formatter(
                "[%(levelname)s] %(asctime)s - %(name)s - %(message)s"
            )
        )

    root_logger.addHandler(handler)

    logging.getLogger("boto3").setLevel(logging.WARNING)
    logging.getLogger("botocore").setLevel(logging.WARNING)
    logging.getLogger("urllib3").setLevel(logging.WARNING)

    return ContextualLogger(root_logger, {})


class LogContext:
    """
    Context manager for adding temporary logging context.

    Example:
        with LogContext(run_id="123", item_ordinal=7):
            logger.info("Writing product")
    """

    def __init__(self, **context):
        self.context = context
        self._tokens = []

    def __enter__(self):
        if "run_id" in self.context:
            self._tokens.append(run_id_var.set(self.context["run_id"]))
        if "item_ordinal" in self.context:
            self._tokens.append(item_ordinal_var.set(self.context["item_ordinal"]))
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        for token in reversed(self._tokens):
            token.var.reset(token)
        self._tokens.clear()
        return False


def log_execution_time(logger: logging.Logger):
    """
    Decorator to log function execution time.

    Example:
        @log_execution_time(logger)
        def write(self, source):
            ...
    """

    def decorator(func):
        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            start_time = time.perf_counter()
            try:
                result = func(*args, **kwargs)
                duration_ms = (time.perf_counter() - start_time) * 1000
                logger.info(
                    f"{func.__name__} completed",
                    extra={"duration_ms": round(duration_ms, 2)},
                )
                return result
            except Exception as e:
                duration_ms = (time.perf_counter() - start_time) * 1000
                logger.error(
                    f"{func.__name__} failed after {duration_ms:.2f}ms: {e}",
                    extra={"duration_ms": round(duration_ms, 2)},
                    exc_info=True,
                )
                raise
        return wrapper
    return decorator
