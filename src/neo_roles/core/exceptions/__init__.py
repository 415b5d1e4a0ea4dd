"""Exceptions module for neo-roles.

This module provides the complete exception hierarchy for neo-roles and
the kind predicates callers use instead of inspecting message text.
"""

from .base import (
    NeoRolesError,
    create_error_response,
)

from .domain import (
    # Configuration Errors
    ConfigurationError,

    # Validation Errors
    ValidationError,
    InvalidScopeError,
    InvalidRoleError,
    InvalidPermissionError,

    # Authorization Errors
    AuthorizationError,
    UnauthorizedError,
    CannotAssignError,

    # Assignment State Errors
    AssignmentError,
    RoleAlreadyAssignedError,
    RoleNotAssignedError,

    # Context Errors
    ContextError,
    NoUserIDError,
    NoActorIDError,

    # Database Errors
    DatabaseError,
)


def is_unauthorized(error: BaseException) -> bool:
    """Check if an error is an authorization error."""
    return isinstance(error, UnauthorizedError)


def is_invalid_scope(error: BaseException) -> bool:
    """Check if an error is due to an undefined scope type."""
    return isinstance(error, InvalidScopeError)


def is_invalid_role(error: BaseException) -> bool:
    """Check if an error is due to an undefined role."""
    return isinstance(error, InvalidRoleError)


def is_invalid_permission(error: BaseException) -> bool:
    return isinstance(error, InvalidPermissionError)


def is_cannot_assign(error: BaseException) -> bool:
    """Check if an error is due to lacking assignment authority."""
    return isinstance(error, CannotAssignError)


def is_role_already_assigned(error: BaseException) -> bool:
    return isinstance(error, RoleAlreadyAssignedError)


def is_role_not_assigned(error: BaseException) -> bool:
    return isinstance(error, RoleNotAssignedError)


def is_database_error(error: BaseException) -> bool:
    return isinstance(error, DatabaseError)


__all__ = [
    # Base
    "NeoRolesError",
    "create_error_response",

    # Configuration
    "ConfigurationError",

    # Validation
    "ValidationError",
    "InvalidScopeError",
    "InvalidRoleError",
    "InvalidPermissionError",

    # Authorization
    "AuthorizationError",
    "UnauthorizedError",
    "CannotAssignError",

    # Assignment state
    "AssignmentError",
    "RoleAlreadyAssignedError",
    "RoleNotAssignedError",

    # Context
    "ContextError",
    "NoUserIDError",
    "NoActorIDError",

    # Database
    "DatabaseError",

    # Predicates
    "is_unauthorized",
    "is_invalid_scope",
    "is_invalid_role",
    "is_invalid_permission",
    "is_cannot_assign",
    "is_role_already_assigned",
    "is_role_not_assigned",
    "is_database_error",
]
