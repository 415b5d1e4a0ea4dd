"""Roles feature for neo-roles.

Feature-First architecture for scope-aware role management:
- entities/: Registry, permission matching, assignments, audit entries and the store protocol
- services/: Checks, assignment coordination, retry and transaction monitoring
- repositories/: AsyncPG store implementation
"""

# Core role entities and protocols
from .entities import (
    PermissionMatcher, DEFAULT_MATCHER, match_permission, match_any_permission,
    Registry, RegistryBuilder, ScopeDefinition, RoleDefinition,
    RoleAssignment, RoleRevocation, ScopeHierarchy, UserRoles,
    AuditEntry, AuditLogFilter, RoleStore,
)

# Role service orchestration
from .services import (
    Checker, AssignmentService, RoleService,
    TransactionMonitor, TransactionMetrics,
    RetryPolicy, is_transient_error,
)

# Concrete store implementations
from .repositories import AsyncPGRoleStore, create_pool

__all__ = [
    # Entities
    "PermissionMatcher",
    "DEFAULT_MATCHER",
    "match_permission",
    "match_any_permission",
    "Registry",
    "RegistryBuilder",
    "ScopeDefinition",
    "RoleDefinition",
    "RoleAssignment",
    "RoleRevocation",
    "ScopeHierarchy",
    "UserRoles",
    "AuditEntry",
    "AuditLogFilter",

    # Protocols
    "RoleStore",

    # Services
    "Checker",
    "AssignmentService",
    "RoleService",
    "TransactionMonitor",
    "TransactionMetrics",
    "RetryPolicy",
    "is_transient_error",

    # Store Implementations
    "AsyncPGRoleStore",
    "create_pool",
]
