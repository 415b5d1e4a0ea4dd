"""Configuration for neo-roles: settings, constants and logging."""

from .constants import (
    WILDCARD,
    AuditAction,
    DEFAULT_BATCH_SIZE,
    DEFAULT_AUDIT_LOG_LIMIT,
    MAX_AUDIT_LOG_LIMIT,
    TRANSIENT_ERROR_MARKERS,
)
from .settings import RoleSettings, get_settings
from .logging_config import LoggingConfig, LogFormat, LogLevel, LogVerbosity, setup_logging, get_logger

__all__ = [
    # Constants
    "WILDCARD",
    "AuditAction",
    "DEFAULT_BATCH_SIZE",
    "DEFAULT_AUDIT_LOG_LIMIT",
    "MAX_AUDIT_LOG_LIMIT",
    "TRANSIENT_ERROR_MARKERS",

    # Settings
    "RoleSettings",
    "get_settings",

    # Logging
    "LoggingConfig",
    "LogFormat",
    "LogLevel",
    "LogVerbosity",
    "setup_logging",
    "get_logger",
]
