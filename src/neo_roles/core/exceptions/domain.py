"""Domain-specific exceptions for neo-roles.

Validation, authorization, assignment-state, context and persistence
failures. Each class can be tested by type, or through the ``is_*``
predicates exported by the package.
"""

from .base import NeoRolesError


# Configuration Errors
class ConfigurationError(NeoRolesError):
    """Raised when the registry or settings are inconsistent."""
    pass


# Validation Errors
class ValidationError(NeoRolesError):
    """Base class for registry validation failures."""
    pass


class InvalidScopeError(ValidationError):
    """Raised when a scope type is not defined in the registry."""
    pass


class InvalidRoleError(ValidationError):
    """Raised when a role is not defined for a scope type."""
    pass


class InvalidPermissionError(ValidationError):
    """Raised when a permission string is malformed."""
    pass


# Authorization Errors
class AuthorizationError(NeoRolesError):
    """Base class for authorization-related errors."""
    pass


class UnauthorizedError(AuthorizationError):
    """Raised when a user lacks the required role or permission."""
    pass


class CannotAssignError(AuthorizationError):
    """Raised when an actor may not assign or revoke a role."""
    pass


# Assignment State Errors
class AssignmentError(NeoRolesError):
    """Base class for role assignment state errors."""
    pass


class RoleAlreadyAssignedError(AssignmentError):
    """Raised when the user already holds the role in the scope."""
    pass


class RoleNotAssignedError(AssignmentError):
    """Raised when the user does not hold the role in the scope."""
    pass


# Context Errors
class ContextError(NeoRolesError):
    """Base class for missing request context values."""
    pass


class NoUserIDError(ContextError):
    """Raised when no subject user id is available."""
    pass


class NoActorIDError(ContextError):
    """Raised when a write is attempted without an actor id."""
    pass


# Database Errors
class DatabaseError(NeoRolesError):
    """Raised when a store operation fails."""
    pass
