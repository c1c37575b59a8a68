"""
Configuration error hierarchy for the ranking core (2025).

Purpose
-------
Provides domain-specific exceptions for configuration problems with clear
error classification and helpful error messages.

Exception Hierarchy
-------------------
ConfigError (base)
├── ConfigValidationError (schema/type validation failures)
└── ConfigInitializationError (startup/init failures)
"""


class ConfigError(Exception):
    """
    Base exception for all configuration-related errors.

    All configuration exceptions inherit from this class to enable
    catching all config-related errors with a single except clause.
    """


class ConfigValidationError(ConfigError):
    """
    Raised when configuration validation fails.

    This exception is raised when:
    - A value is not one of the supported choices
    - A scope tag is malformed
    - Required fields are missing

    Example
    -------
    >>> try:
    ...     LockService(backend="zookeeper")
    ... except ConfigValidationError as e:
    ...     logger.error(f"Validation failed: {e}")
    """


class ConfigInitializationError(ConfigError):
    """
    Raised when a configured backend cannot be brought up.

    This is a critical error that typically requires intervention
    before the service can continue (e.g. LOCK_BACKEND=redis but Redis
    was never initialized).
    """


__all__ = [
    "ConfigError",
    "ConfigValidationError",
    "ConfigInitializationError",
]
