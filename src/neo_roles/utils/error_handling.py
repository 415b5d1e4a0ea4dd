"""Standardized error handling utilities for store operations."""

import logging
import functools
import time
from typing import Callable, Any, Optional, Dict

from ..core.exceptions import DatabaseError, NeoRolesError

logger = logging.getLogger(__name__)


def database_error_handler(
    operation_name: str,
    log_level: int = logging.ERROR,
    context_fields: Optional[Dict[str, str]] = None
):
    """Decorator that turns store failures into DatabaseError.

    neo-roles errors are re-raised untouched, so a wrapped function can map
    driver errors it understands (a duplicate key, say) to domain errors
    itself. Any other exception is logged with the operation context and
    re-raised as ``DatabaseError`` chained to the original.

    Args:
        operation_name: Name of the operation for logging
        log_level: Logging level (default: ERROR)
        context_fields: Additional context fields for logging

    Usage:
        @database_error_handler("load user roles")
        async def _load_user_roles(self, store, user_id):
            ...
    """
    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        async def wrapper(*args, **kwargs) -> Any:
            try:
                return await func(*args, **kwargs)

            except NeoRolesError:
                raise

            except Exception as e:
                operation_context = {"operation": operation_name, "function": func.__name__}
                if context_fields:
                    operation_context.update(context_fields)

                context_str = ", ".join(f"{k}={v}" for k, v in operation_context.items())
                logger.log(log_level, f"Failed to {operation_name}: {e} | Context: {context_str}")

                raise DatabaseError(
                    f"Failed to {operation_name}: {e}",
                    details={"operation": operation_name},
                ) from e

        return wrapper
    return decorator


def log_database_operation(operation_name: str, log_level: int = logging.DEBUG):
    """Decorator for logging store operations with execution timing."""
    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        async def wrapper(*args, **kwargs) -> Any:
            start_time = time.perf_counter()
            try:
                return await func(*args, **kwargs)
            finally:
                duration_ms = (time.perf_counter() - start_time) * 1000
                logger.log(log_level, f"{operation_name} finished in {duration_ms:.2f}ms")

        return wrapper
    return decorator
