"""
Custom exceptions for the product feed writer.
Provides structured error handling with rich context for debugging and monitoring.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional
from enum import Enum


class ErrorSeverity(Enum):
    """Severity levels for errors."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class ErrorCategory(Enum):
    """Categories of errors for routing and handling."""
    VALIDATION = "validation"
    PIPELINE_STAGE = "pipeline_stage"
    CONFIGURATION = "configuration"
    SINK_IO = "sink_io"
    SOURCE_IO = "source_io"


@dataclass
class ErrorContext:
    """Rich context for error tracking and debugging."""
    run_id: Optional[str] = None
    item_ordinal: Optional[int] = None
    field_name: Optional[str] = None
    stage_category: Optional[str] = None
    stage_index: Optional[int] = None
    destination: Optional[str] = None
    timestamp: str = field(
        default_factory=lambda: datetime.now(timezone.utc).isoformat()
    )
    additional_data: dict = field(default_factory=dict)

    def to_dict(self) -> dict:
        """Convert context to dictionary for logging."""
        return {
            "run_id": self.run_id,
            "item_ordinal": self.item_ordinal,
            "field_name": self.field_name,
            "stage_category": self.stage_category,
            "stage_index": self.stage_index,
            "destination": self.destination,
            "timestamp": self.timestamp,
            **self.additional_data,
        }


class FeedError(Exception):
    """Base exception for all feed writer errors."""

    def __init__(
        self,
        message: str,
        context: Optional[ErrorContext] = None,
        severity: ErrorSeverity = ErrorSeverity.MEDIUM,
        category: ErrorCategory = ErrorCategory.PIPELINE_STAGE,
        retryable: bool = False,
        original_exception: Optional[Exception] = None,
    ):
        super().__init__(message)
        self.message = message
        self.context = context or ErrorContext()
        self.severity = severity
        self.category = category
        self.retryable = retryable
        self.original_exception = original_exception

    @property
    def item_ordinal(self) -> Optional[int]:
        return self.context.item_ordinal

    def to_dict(self) -> dict:
        """Serialize exception for logging and monitoring."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "severity": self.severity.value,
            "category": self.category.value,
            "retryable": self.retryable,
            "context": self.context.to_dict(),
            "original_exception": (
                repr(self.original_exception) if self.original_exception else None
            ),
        }


class ConfigurationError(FeedError):
    """Raised when configuration is invalid or missing."""

    def __init__(
        self,
        message: str,
        config_key: str,
        context: Optional[ErrorContext] = None,
        original_exception: Optional[Exception] = None,
    ):
        ctx = context or ErrorContext()
        ctx.additional_data["config_key"] = config_key

        super().__init__(
            message=message,
            context=ctx,
            severity=ErrorSeverity.CRITICAL,
            category=ErrorCategory.CONFIGURATION,
            original_exception=original_exception,
        )
        self.config_key = config_key


class ValidationError(FeedError):
    """Raised when a product is missing a required field at serialization time."""

    def __init__(
        self,
        message: str,
        field_name: str,
        item_ordinal: Optional[int] = None,
        context: Optional[ErrorContext] = None,
    ):
        ctx = context or ErrorContext()
        ctx.field_name = field_name
        ctx.item_ordinal = item_ordinal

        super().__init__(
            message=message,
            context=ctx,
            severity=ErrorSeverity.LOW,
            category=ErrorCategory.VALIDATION,
        )
        self.field_name = field_name


class PipelineStageError(FeedError):
    """Raised when a processor, filter or mapper fails for an item."""

    def __init__(
        self,
        message: str,
        stage_category: str,
        stage_index: int,
        item_ordinal: Optional[int] = None,
        context: Optional[ErrorContext] = None,
        original_exception: Optional[Exception] = None,
    ):
        ctx = context or ErrorContext()
        ctx.stage_category = stage_category
        ctx.stage_index = stage_index
        ctx.item_ordinal = item_ordinal

        super().__init__(
            message=message,
            context=ctx,
            severity=ErrorSeverity.MEDIUM,
            category=ErrorCategory.PIPELINE_STAGE,
            original_exception=original_exception,
        )
        self.stage_category = stage_category
        self.stage_index = stage_index


class SinkError(FeedError):
    """Raised when the destination cannot be opened, written or closed."""

    def __init__(
        self,
        message: str,
        destination: str,
        operation: str,
        context: Optional[ErrorContext] = None,
        original_exception: Optional[Exception] = None,
    ):
        ctx = context or ErrorContext()
        ctx.destination = destination
        ctx.additional_data["operation"] = operation

        super().__init__(
            message=message,
            context=ctx,
            severity=ErrorSeverity.HIGH,
            category=ErrorCategory.SINK_IO,
            retryable=True,
            original_exception=original_exception,
        )
        self.destination = destination
        self.operation = operation


class S3SinkError(SinkError):
    """Raised when S3 operations fail."""

    def __init__(
        self,
        message: str,
        bucket: str,
        key: str,
        operation: str = "PutObject",
        context: Optional[ErrorContext] = None,
        original_exception: Optional[Exception] = None,
    ):
        ctx = context or ErrorContext()
        ctx.additional_data["s3_bucket"] = bucket
        ctx.additional_data["s3_key"] = key

        super().__init__(
            message=message,
            destination=f"s3://{bucket}/{key}",
            operation=operation,
            context=ctx,
            original_exception=original_exception,
        )
        self.bucket = bucket
        self.key = key


class SourceError(FeedError):
    """Raised when the item source cannot be opened or read."""

    def __init__(
        self,
        message: str,
        source: str,
        context: Optional[ErrorContext] = None,
        original_exception: Optional[Exception] = None,
    ):
        ctx = context or ErrorContext()
        ctx.additional_data["source"] = source

        super().__init__(
            message=message,
            context=ctx,
            severity=ErrorSeverity.HIGH,
            category=ErrorCategory.SOURCE_IO,
            retryable=True,
            original_exception=original_exception,
        )
        self.source = source
