"""Authorization checks for one user's role assignments.

A Checker is built from a user's :class:`UserRoles` as loaded from the store
and answers role, permission and assignment-authority questions without any
further I/O (except :meth:`Checker.get_child_scopes`). It does not mutate
anything and can be shared between tasks.
"""

import logging
from typing import Iterable, List, Optional

from ....core.exceptions import ConfigurationError
from ..entities import DEFAULT_MATCHER, PermissionMatcher, Registry, RoleStore, UserRoles

logger = logging.getLogger(__name__)


class Checker:
    """Role and permission checks scoped to a single user."""

    def __init__(
        self,
        user_id: str,
        roles: UserRoles,
        registry: Registry,
        store: Optional[RoleStore] = None,
        matcher: PermissionMatcher = DEFAULT_MATCHER,
    ):
        self.user_id = user_id
        self.roles = roles
        self.registry = registry
        self._store = store
        self._matcher = matcher

    def __repr__(self) -> str:
        return f"Checker(user_id={self.user_id!r}, assignments={len(self.roles)})"

    # Roles

    def can(self, role: str, scope_type: str, scope_id: str) -> bool:
        """Check if the user holds a role in a scope (wildcard assignments included)."""
        return self.roles.has_role(role, scope_type, scope_id)

    def has_any_role(self, roles: Iterable[str], scope_type: str, scope_id: str) -> bool:
        held = self.roles.get_roles(scope_type, scope_id)
        return any(role in held for role in roles)

    def has_all_roles(self, roles: Iterable[str], scope_type: str, scope_id: str) -> bool:
        held = self.roles.get_roles(scope_type, scope_id)
        return all(role in held for role in roles)

    def get_roles(self, scope_type: str, scope_id: str) -> List[str]:
        return self.roles.get_roles(scope_type, scope_id)

    # Permissions

    def get_permissions(self, scope_type: str, scope_id: str) -> List[str]:
        """Union of the permission patterns of every role held in the scope."""
        permissions: List[str] = []
        for role in self.roles.get_roles(scope_type, scope_id):
            for pattern in self.registry.get_permissions(role, scope_type):
                if pattern not in permissions:
                    permissions.append(pattern)
        return permissions

    def has_permission(self, permission: str, scope_type: str, scope_id: str) -> bool:
        """Check if any role held in the scope grants the permission."""
        return self._matcher.match_any(self.get_permissions(scope_type, scope_id), permission)

    def has_any_permission(self, permissions: Iterable[str], scope_type: str, scope_id: str) -> bool:
        patterns = self.get_permissions(scope_type, scope_id)
        return any(self._matcher.match_any(patterns, p) for p in permissions)

    def has_all_permissions(self, permissions: Iterable[str], scope_type: str, scope_id: str) -> bool:
        patterns = self.get_permissions(scope_type, scope_id)
        return all(self._matcher.match_any(patterns, p) for p in permissions)

    # Assignment authority

    def can_assign_role(self, target_role: str, scope_type: str, scope_id: str) -> bool:
        """Check if any role held in the scope may assign ``target_role``."""
        return any(
            self.registry.can_role_assign(role, target_role, scope_type)
            for role in self.roles.get_roles(scope_type, scope_id)
        )

    def get_assignable_roles(self, scope_type: str, scope_id: str) -> List[str]:
        """Roles the user may assign in a scope, with ``*`` expanded to the scope's roles."""
        scope = self.registry.get_scope(scope_type)
        if scope is None:
            return []

        assignable: List[str] = []
        for role in self.roles.get_roles(scope_type, scope_id):
            role_def = scope.get_role(role)
            if role_def is None:
                continue
            for name in role_def.can_assign:
                candidates = scope.get_roles() if name == "*" else [name]
                for candidate in candidates:
                    if candidate not in assignable:
                        assignable.append(candidate)
        return assignable

    # Scope queries

    def has_role_in_any_scope(self, role: str, scope_type: str) -> bool:
        return any(
            a.scope_type == scope_type and a.role == role
            for a in self.roles.assignments
        )

    def get_scopes_with_role(self, role: str, scope_type: str) -> List[str]:
        return [
            a.scope_id for a in self.roles.assignments
            if a.scope_type == scope_type and a.role == role
        ]

    def get_scopes_with_any_role(self, scope_type: str) -> List[str]:
        scope_ids: List[str] = []
        for a in self.roles.assignments:
            if a.scope_type == scope_type and a.scope_id not in scope_ids:
                scope_ids.append(a.scope_id)
        return scope_ids

    @property
    def is_empty(self) -> bool:
        return self.roles.is_empty

    async def get_child_scopes(
        self,
        child_scope_type: str,
        parent_scope_type: str,
        parent_scope_id: str,
        role: Optional[str] = None
    ) -> List[str]:
        """Child scope ids under a parent where the user holds any (or the given) role.

        Reads the parent columns denormalized onto assignments, which are
        filled at assign time and back-filled by ``set_scope_parent``.
        """
        if self._store is None:
            raise ConfigurationError(
                "Checker was created without a store; child scope queries are unavailable",
                user_id=self.user_id,
            )
        return await self._store.list_child_scope_ids(
            self.user_id, child_scope_type, parent_scope_type, parent_scope_id, role
        )
