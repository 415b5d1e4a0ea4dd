"""neo-roles: scope-aware multi-role authorization for async Python services.

Define scopes and roles once with a RegistryBuilder, back them with a
RoleStore, and use RoleService for checks and audited role changes.
"""

from .__version__ import __version__

from .config import (
    RoleSettings,
    get_settings,
    setup_logging,
    AuditAction,
)

from .core.exceptions import (
    NeoRolesError,
    ConfigurationError,
    ValidationError,
    InvalidScopeError,
    InvalidRoleError,
    InvalidPermissionError,
    AuthorizationError,
    UnauthorizedError,
    CannotAssignError,
    AssignmentError,
    RoleAlreadyAssignedError,
    RoleNotAssignedError,
    ContextError,
    NoUserIDError,
    NoActorIDError,
    DatabaseError,
    create_error_response,
)

from .core.value_objects import (
    Scope,
    AuditContext,
)

from .features.roles import (
    PermissionMatcher,
    match_permission,
    match_any_permission,
    Registry,
    RegistryBuilder,
    RoleAssignment,
    RoleRevocation,
    UserRoles,
    AuditEntry,
    AuditLogFilter,
    RoleStore,
    Checker,
    AssignmentService,
    RoleService,
    TransactionMetrics,
    is_transient_error,
    AsyncPGRoleStore,
    create_pool,
)

__all__ = [
    "__version__",

    # Configuration
    "RoleSettings",
    "get_settings",
    "setup_logging",
    "AuditAction",

    # Exceptions
    "NeoRolesError",
    "ConfigurationError",
    "ValidationError",
    "InvalidScopeError",
    "InvalidRoleError",
    "InvalidPermissionError",
    "AuthorizationError",
    "UnauthorizedError",
    "CannotAssignError",
    "AssignmentError",
    "RoleAlreadyAssignedError",
    "RoleNotAssignedError",
    "ContextError",
    "NoUserIDError",
    "NoActorIDError",
    "DatabaseError",
    "create_error_response",

    # Value objects
    "Scope",
    "AuditContext",

    # Roles
    "PermissionMatcher",
    "match_permission",
    "match_any_permission",
    "Registry",
    "RegistryBuilder",
    "RoleAssignment",
    "RoleRevocation",
    "UserRoles",
    "AuditEntry",
    "AuditLogFilter",
    "RoleStore",
    "Checker",
    "AssignmentService",
    "RoleService",
    "TransactionMetrics",
    "is_transient_error",
    "AsyncPGRoleStore",
    "create_pool",
]
