"""
Domain exceptions for Courseboard.

Purpose
-------
Define the structured, domain-specific exception hierarchy for leaderboard
logic. Services raise these for rejected submissions and missing resources;
callers (HTTP handlers, workers, the admin CLI) translate them into responses.

Design Notes
------------
- All domain exceptions inherit from `CourseboardDomainException`.
- Each exception carries:
  - `message`: human-readable description
  - `details`: additional structured context (dict-like)
  - `severity`: `ErrorSeverity` value for logging/alerting
  - `is_retryable`: whether the operation can be retried
  - `error_code`: short, stable identifier for programmatic use
- Infrastructure failures (database unavailable, timeouts) are NOT wrapped
  here; they propagate as the driver/SQLAlchemy exception.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, Optional


class ErrorSeverity(Enum):
    """Error severity levels for logging and alerting."""

    DEBUG = "debug"
    INFO = "info"  # Caller-fixable (validation, not found)
    WARNING = "warning"  # Handled but notable (exhausted retries)
    ERROR = "error"
    CRITICAL = "critical"


class CourseboardDomainException(Exception):
    """
    Base exception for all Courseboard domain-level errors.

    Args:
        message: Human-readable error message
        details: Additional structured data about the error (dict-like)
        severity: Error severity level for logging handlers
        is_retryable: Whether the operation can be retried
        error_code: Optional code for programmatic handling

    Example:
        >>> raise CourseboardDomainException(
        ...     "Submission rejected",
        ...     {"reason": "unknown kind"}
        ... )
    """

    DEFAULT_SEVERITY: ErrorSeverity = ErrorSeverity.ERROR
    DEFAULT_RETRYABLE: bool = False

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        severity: Optional[ErrorSeverity] = None,
        is_retryable: Optional[bool] = None,
        error_code: Optional[str] = None,
    ) -> None:
        self.message: str = message
        self.details: Dict[str, Any] = details or {}
        self.severity: ErrorSeverity = severity or self.DEFAULT_SEVERITY
        self.is_retryable: bool = (
            is_retryable if is_retryable is not None else self.DEFAULT_RETRYABLE
        )
        self.error_code: str = error_code or self.__class__.__name__
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for logging/serialization."""
        return {
            "error_type": self.__class__.__name__,
            "error_code": self.error_code,
            "message": self.message,
            "details": self.details,
            "severity": self.severity.value,
            "is_retryable": self.is_retryable,
        }

    def __str__(self) -> str:
        details_str = f" | Details: {self.details}" if self.details else ""
        return f"[{self.error_code}] {self.message}{details_str}"

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"message={self.message!r}, "
            f"details={self.details!r}, "
            f"severity={self.severity.value!r}, "
            f"is_retryable={self.is_retryable!r}"
            ")"
        )


class NotFoundError(CourseboardDomainException):
    """
    Raised when a requested resource cannot be found.

    Args:
        resource_type: Type of resource (e.g., "Course", "LedgerEntry")
        identifier: Optional identifier for the missing resource
    """

    DEFAULT_SEVERITY = ErrorSeverity.INFO
    DEFAULT_RETRYABLE = False

    def __init__(self, resource_type: str, identifier: Optional[Any] = None) -> None:
        self.resource_type = resource_type
        self.identifier = identifier

        if identifier is not None:
            message = f"{resource_type} not found: {identifier}"
        else:
            message = f"{resource_type} not found"

        super().__init__(
            message,
            details={
                "resource_type": resource_type,
                "identifier": identifier,
            },
            error_code=f"{resource_type.upper()}_NOT_FOUND",
        )


class ValidationError(CourseboardDomainException):
    """
    Raised when caller input fails domain validation.

    Covers malformed payloads, empty assessments, catalog references that do
    not resolve, and skill tests that cannot count toward a course.

    Args:
        field: Name of the field that failed validation
        message: Explanation of why validation failed
    """

    DEFAULT_SEVERITY = ErrorSeverity.INFO
    DEFAULT_RETRYABLE = False

    def __init__(self, field: str, message: str) -> None:
        self.field = field
        self.validation_message = message
        error_message = f"Validation error for {field}: {message}"
        super().__init__(
            error_message,
            details={
                "field": field,
                "validation_message": message,
            },
            error_code=f"VALIDATION_{field.upper()}",
        )


class InvalidOperationError(CourseboardDomainException):
    """
    Raised when an action is not allowed in the current state.

    Args:
        action: Description of the invalid action
        reason: Explanation of why it's not allowed

    Example:
        >>> raise InvalidOperationError(
        ...     "force_resweep",
        ...     "course_id must be provided"
        ... )
    """

    DEFAULT_SEVERITY = ErrorSeverity.INFO
    DEFAULT_RETRYABLE = False

    def __init__(self, action: str, reason: str) -> None:
        self.action = action
        self.reason = reason
        message = f"Invalid operation '{action}': {reason}"
        super().__init__(
            message,
            details={
                "action": action,
                "reason": reason,
            },
            error_code="INVALID_OPERATION",
        )


class ConcurrencyConflictError(CourseboardDomainException):
    """
    Raised when a ledger write keeps losing optimistic-version races.

    The submission was not applied; the caller may resubmit.

    Args:
        operation: Operation that gave up
        attempts: Number of attempts made
    """

    DEFAULT_SEVERITY = ErrorSeverity.WARNING
    DEFAULT_RETRYABLE = True

    def __init__(self, operation: str, attempts: int) -> None:
        self.operation = operation
        self.attempts = attempts
        super().__init__(
            f"Concurrent updates prevented '{operation}' after {attempts} attempts",
            details={"operation": operation, "attempts": attempts},
            error_code="CONCURRENCY_CONFLICT",
        )


def is_transient_error(exc: Exception) -> bool:
    """
    Check if an exception represents a transient error that can be retried.

    Args:
        exc: Exception to check

    Returns:
        True if error is retryable, False otherwise.
    """
    if isinstance(exc, CourseboardDomainException):
        return exc.is_retryable
    return False


def get_error_severity(exc: Exception) -> ErrorSeverity:
    """
    Get the severity level of an exception for logging.

    Args:
        exc: Exception to check

    Returns:
        ErrorSeverity level.
    """
    if isinstance(exc, CourseboardDomainException):
        return exc.severity
    return ErrorSeverity.ERROR


def should_alert(exc: Exception) -> bool:
    """True if severity is ERROR or CRITICAL."""
    severity = get_error_severity(exc)
    return severity in (ErrorSeverity.ERROR, ErrorSeverity.CRITICAL)
