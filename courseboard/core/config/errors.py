"""
Configuration error hierarchy for Courseboard.

Exception Hierarchy
-------------------
ConfigError (base)
├── ConfigValidationError (schema/type validation failures)
└── ConfigInitializationError (startup/init failures)
"""


class ConfigError(Exception):
    """
    Base exception for all configuration-related errors.

    Example
    -------
    >>> try:
    ...     await ConfigManager.initialize()
    ... except ConfigError as e:
    ...     logger.error(f"Config operation failed: {e}")
    """

    pass


class ConfigValidationError(ConfigError):
    """
    Raised when a YAML config file is structurally invalid.

    This exception is raised when:
    - A file does not parse as YAML
    - A file's top level is not a mapping
    """

    pass


class ConfigInitializationError(ConfigError):
    """
    Raised when ConfigManager initialization fails.

    This is a critical error that typically requires intervention
    before the application can continue.
    """

    pass


__all__ = [
    "ConfigError",
    "ConfigValidationError",
    "ConfigInitializationError",
]
