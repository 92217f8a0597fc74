"""
Courseboard Shared Module

Purpose
-------
Foundations used by every feature module:
- Domain exceptions and error classification
- Base service and repository patterns

Infrastructure (database, Redis, logging) lives under `courseboard.core`;
this package only builds on it.
"""

from courseboard.modules.shared.base_repository import BaseRepository
from courseboard.modules.shared.base_service import BaseService
from courseboard.modules.shared.exceptions import (
    ConcurrencyConflictError,
    CourseboardDomainException,
    ErrorSeverity,
    InvalidOperationError,
    NotFoundError,
    ValidationError,
    get_error_severity,
    is_transient_error,
    should_alert,
)

__all__ = [
    "BaseRepository",
    "BaseService",
    "ConcurrencyConflictError",
    "CourseboardDomainException",
    "ErrorSeverity",
    "InvalidOperationError",
    "NotFoundError",
    "ValidationError",
    "get_error_severity",
    "is_transient_error",
    "should_alert",
]
