"""
Input validation layer for Courseboard.

Purpose
-------
Single place for low-level checks on caller-supplied values (identifiers,
page numbers, limits, raw scores) before they reach services or the domain
model.

Responsibilities
----------------
- Validate and convert inputs to the right type
- Enforce bounds on numbers and lengths on strings
- Validate choice inputs against allowed options
- Raise `ValidationError` with a caller-actionable message

Non-Responsibilities
--------------------
- Business rules (services and the domain model own those)
- Persistence constraints

Observability
-------------
Every failure is logged at debug level with `field_name`, `raw_value` and
`reason`.
"""

from __future__ import annotations

import math
from typing import Any, NoReturn, Optional, Sequence

from courseboard.core.logging.logger import get_logger
from courseboard.modules.shared.exceptions import ValidationError

logger = get_logger(__name__)


def _raise_validation_error(field_name: str, value: Any, message: str) -> NoReturn:
    """Log and raise a ValidationError."""
    logger.debug(
        "Input validation failed",
        extra={
            "field_name": field_name,
            "raw_value": repr(value),
            "reason": message,
        },
    )
    raise ValidationError(field_name, message)


class InputValidator:
    """
    Stateless validators. Each returns the converted value or raises
    `ValidationError`.
    """

    # =========================================================================
    # INTEGER VALIDATION
    # =========================================================================

    @staticmethod
    def validate_integer(
        value: Any,
        field_name: str,
        min_value: Optional[int] = None,
        max_value: Optional[int] = None,
        allow_zero: bool = True,
    ) -> int:
        """
        Validate and convert value to integer with optional bounds checking.

        Args:
            value: Input value to validate (string, int, etc.)
            field_name: Name of field for error messages/logging
            min_value: Minimum allowed value (inclusive)
            max_value: Maximum allowed value (inclusive)
            allow_zero: Whether zero is acceptable

        Returns:
            Validated integer value

        Raises:
            ValidationError: If validation fails
        """
        if value is None:
            _raise_validation_error(field_name, value, "Value is required")

        if isinstance(value, bool):
            _raise_validation_error(field_name, value, f"Must be a whole number, got '{value}'")

        if isinstance(value, float) and not value.is_integer():
            _raise_validation_error(field_name, value, f"Must be a whole number, got '{value}'")

        try:
            int_value = int(value)
        except (ValueError, TypeError):
            _raise_validation_error(field_name, value, f"Must be a whole number, got '{value}'")

        if not allow_zero and int_value == 0:
            _raise_validation_error(field_name, int_value, "Cannot be zero")

        if min_value is not None and int_value < min_value:
            _raise_validation_error(
                field_name,
                int_value,
                f"Must be at least {min_value}, got {int_value}",
            )

        if max_value is not None and int_value > max_value:
            _raise_validation_error(
                field_name,
                int_value,
                f"Cannot exceed {max_value}, got {int_value}",
            )

        return int_value

    @staticmethod
    def validate_positive_integer(
        value: Any,
        field_name: str,
        max_value: Optional[int] = None,
    ) -> int:
        """Validate that value is a strictly positive integer (>= 1)."""
        return InputValidator.validate_integer(
            value=value,
            field_name=field_name,
            min_value=1,
            max_value=max_value,
            allow_zero=False,
        )

    @staticmethod
    def validate_non_negative_integer(
        value: Any,
        field_name: str,
        max_value: Optional[int] = None,
    ) -> int:
        """Validate that value is a non-negative integer (>= 0)."""
        return InputValidator.validate_integer(
            value=value,
            field_name=field_name,
            min_value=0,
            max_value=max_value,
        )

    # =========================================================================
    # NUMBER VALIDATION
    # =========================================================================

    @staticmethod
    def validate_number(
        value: Any,
        field_name: str,
        min_value: Optional[float] = None,
        max_value: Optional[float] = None,
    ) -> float:
        """Validate a finite real number (scores, percentages, durations)."""
        if value is None:
            _raise_validation_error(field_name, value, "Value is required")

        if isinstance(value, bool):
            _raise_validation_error(field_name, value, f"Must be a number, got '{value}'")

        try:
            number = float(value)
        except (ValueError, TypeError):
            _raise_validation_error(field_name, value, f"Must be a number, got '{value}'")

        if not math.isfinite(number):
            _raise_validation_error(field_name, value, "Must be a finite number")

        if min_value is not None and number < min_value:
            _raise_validation_error(
                field_name, number, f"Must be at least {min_value}, got {number}"
            )

        if max_value is not None and number > max_value:
            _raise_validation_error(
                field_name, number, f"Cannot exceed {max_value}, got {number}"
            )

        return number

    # =========================================================================
    # STRING VALIDATION
    # =========================================================================

    @staticmethod
    def validate_string(
        value: Any,
        field_name: str,
        min_length: int = 1,
        max_length: Optional[int] = None,
    ) -> str:
        """
        Validate a string identifier or label.

        Leading and trailing whitespace is stripped before length checks.
        """
        if value is None:
            _raise_validation_error(field_name, value, "Value is required")

        if not isinstance(value, (str, int)) or isinstance(value, bool):
            _raise_validation_error(field_name, value, "Must be a string")

        text = str(value).strip()

        if len(text) < min_length:
            if min_length == 1:
                _raise_validation_error(field_name, value, "Cannot be empty")
            _raise_validation_error(
                field_name, value, f"Must be at least {min_length} characters"
            )

        if max_length is not None and len(text) > max_length:
            _raise_validation_error(
                field_name, value, f"Cannot exceed {max_length} characters"
            )

        return text

    # =========================================================================
    # CHOICE VALIDATION
    # =========================================================================

    @staticmethod
    def validate_choice(
        value: Any,
        field_name: str,
        choices: Sequence[str],
        case_sensitive: bool = False,
    ) -> str:
        """Validate that value is one of `choices`; returns the canonical choice."""
        if value is None:
            _raise_validation_error(field_name, value, "Value is required")

        text = str(value).strip()
        for choice in choices:
            if text == choice or (not case_sensitive and text.lower() == choice.lower()):
                return choice

        _raise_validation_error(
            field_name,
            value,
            f"Must be one of: {', '.join(choices)}",
        )
