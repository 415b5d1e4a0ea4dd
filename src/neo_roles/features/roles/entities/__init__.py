"""Role entities package.

Domain entities, the registry and the store protocol for role management.
"""

from .permission import (
    PermissionMatcher,
    DEFAULT_MATCHER,
    match_permission,
    match_any_permission,
)
from .registry import (
    Registry,
    RegistryBuilder,
    ScopeBuilder,
    RoleBuilder,
    ScopeDefinition,
    RoleDefinition,
)
from .assignment import RoleAssignment, RoleRevocation, ScopeHierarchy, UserRoles
from .audit import AuditEntry, AuditLogFilter
from .protocols import RoleStore

__all__ = [
    # Permissions
    "PermissionMatcher",
    "DEFAULT_MATCHER",
    "match_permission",
    "match_any_permission",

    # Registry
    "Registry",
    "RegistryBuilder",
    "ScopeBuilder",
    "RoleBuilder",
    "ScopeDefinition",
    "RoleDefinition",

    # Assignments
    "RoleAssignment",
    "RoleRevocation",
    "ScopeHierarchy",
    "UserRoles",

    # Audit
    "AuditEntry",
    "AuditLogFilter",

    # Protocols
    "RoleStore",
]
