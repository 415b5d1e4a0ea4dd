"""Shared utilities for neo-roles."""

from .error_handling import database_error_handler, log_database_operation

__all__ = [
    "database_error_handler",
    "log_database_operation",
]
