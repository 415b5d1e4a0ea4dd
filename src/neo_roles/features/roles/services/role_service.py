"""Role service for business logic orchestration.

Single entry point for applications: authorization checks and read queries
backed by a RoleStore, plus the audited write operations of
:class:`AssignmentService`.
"""

import logging
from typing import Awaitable, Callable, Iterable, List, Optional, Sequence, TypeVar

from ....config.settings import RoleSettings
from ....core.exceptions import NoUserIDError, UnauthorizedError
from ....core.value_objects import AuditContext
from ....utils.error_handling import database_error_handler
from ..entities import (
    AuditEntry,
    AuditLogFilter,
    Registry,
    RoleAssignment,
    RoleRevocation,
    RoleStore,
    UserRoles,
)
from .assignment_service import AssignmentService
from .checker import Checker
from .transaction_monitor import TransactionMetrics

logger = logging.getLogger(__name__)

T = TypeVar("T")


class RoleService:
    """Service orchestrating role checks, queries and assignment changes."""

    def __init__(
        self,
        store: RoleStore,
        registry: Registry,
        assignments: Optional[AssignmentService] = None,
    ):
        self.store = store
        self.registry = registry
        self.assignments = assignments or AssignmentService(store, registry)

    @classmethod
    def from_settings(cls, store: RoleStore, registry: Registry, settings: RoleSettings) -> "RoleService":
        return cls(store, registry, AssignmentService.from_settings(store, registry, settings))

    # Loading

    @database_error_handler("get user roles")
    async def get_user_roles(self, user_id: str) -> UserRoles:
        """Load every assignment of a user."""
        return UserRoles(user_id, await self.store.list_assignments(user_id))

    async def get_checker(self, user_id: str) -> Checker:
        """Load a user's roles into a Checker for repeated checks within one request."""
        return Checker(user_id, await self.get_user_roles(user_id), self.registry, self.store)

    async def get_checker_for(self, context: AuditContext) -> Checker:
        """Checker for the authenticated user of ``context``.

        Raises:
            NoUserIDError: The context carries no user id
        """
        if context is None or not context.user_id:
            raise NoUserIDError("No user id in context")
        return await self.get_checker(context.user_id)

    # Checks. Any failure to load roles denies.

    async def can(self, user_id: str, role: str, scope_type: str, scope_id: str) -> bool:
        """Check if a user holds a role in a scope."""
        checker = await self._checker_or_none(user_id, "role check")
        return checker is not None and checker.can(role, scope_type, scope_id)

    async def has_permission(self, user_id: str, permission: str, scope_type: str, scope_id: str) -> bool:
        """Check if any role the user holds in a scope grants a permission."""
        checker = await self._checker_or_none(user_id, "permission check")
        return checker is not None and checker.has_permission(permission, scope_type, scope_id)

    async def has_any_role(self, user_id: str, roles: Iterable[str], scope_type: str, scope_id: str) -> bool:
        checker = await self._checker_or_none(user_id, "role check")
        return checker is not None and checker.has_any_role(roles, scope_type, scope_id)

    async def can_assign_role(self, user_id: str, target_role: str, scope_type: str, scope_id: str) -> bool:
        checker = await self._checker_or_none(user_id, "assignment authority check")
        return checker is not None and checker.can_assign_role(target_role, scope_type, scope_id)

    async def check_exists(self, user_id: str, role: str, scope_type: str, scope_id: str) -> bool:
        """Check if exactly this assignment row exists; wildcard rows do not count."""
        try:
            return await self.store.exists(user_id, role, scope_type, scope_id)
        except Exception as e:
            logger.error(f"Assignment existence check failed for {user_id}, denying: {e}")
            return False

    async def require_role(self, user_id: str, role: str, scope_type: str, scope_id: str) -> None:
        """Raise UnauthorizedError unless the user holds the role in the scope."""
        if not await self.can(user_id, role, scope_type, scope_id):
            raise UnauthorizedError(
                f"Role '{role}' required",
                user_id=user_id, role=role, scope_type=scope_type, scope_id=scope_id,
            )

    async def require_permission(self, user_id: str, permission: str, scope_type: str, scope_id: str) -> None:
        """Raise UnauthorizedError unless the user has the permission in the scope."""
        if not await self.has_permission(user_id, permission, scope_type, scope_id):
            raise UnauthorizedError(
                f"Permission '{permission}' required",
                details={"permission": permission},
                user_id=user_id, scope_type=scope_type, scope_id=scope_id,
            )

    async def _checker_or_none(self, user_id: str, check_name: str) -> Optional[Checker]:
        try:
            return await self.get_checker(user_id)
        except Exception as e:
            logger.error(f"Failed to load roles for {check_name} of {user_id}, denying: {e}")
            return None

    # Queries

    @database_error_handler("get scope members")
    async def get_scope_members(
        self,
        scope_type: str,
        scope_id: str,
        role: Optional[str] = None
    ) -> List[RoleAssignment]:
        """Assignments in exactly this scope, optionally for one role."""
        return await self.store.list_scope_members(scope_type, scope_id, role)

    @database_error_handler("get child scopes")
    async def get_child_scopes(
        self,
        user_id: str,
        child_scope_type: str,
        parent_scope_type: str,
        parent_scope_id: str,
        role: Optional[str] = None
    ) -> List[str]:
        """Child scope ids under a parent where the user holds any (or the given) role."""
        return await self.store.list_child_scope_ids(
            user_id, child_scope_type, parent_scope_type, parent_scope_id, role
        )

    @database_error_handler("count roles")
    async def count_roles(self, user_id: str, scope_type: str, scope_id: str) -> int:
        """Count a user's roles in a scope, wildcard assignments included."""
        return await self.store.count_roles(user_id, scope_type, scope_id)

    @database_error_handler("count all roles")
    async def count_all_roles(self) -> int:
        return await self.store.count_all()

    @database_error_handler("get audit log")
    async def get_audit_log(self, audit_filter: Optional[AuditLogFilter] = None) -> List[AuditEntry]:
        """Audit entries matching the filter, newest first."""
        return await self.store.list_audit_entries(audit_filter or AuditLogFilter())

    # Writes

    async def assign(self, user_id: str, role: str, scope_type: str, scope_id: str, *, context: AuditContext) -> RoleAssignment:
        return await self.assignments.assign(user_id, role, scope_type, scope_id, context=context)

    async def assign_direct(self, user_id: str, role: str, scope_type: str, scope_id: str, *, context: AuditContext) -> None:
        await self.assignments.assign_direct(user_id, role, scope_type, scope_id, context=context)

    async def assign_with_retry(self, user_id: str, role: str, scope_type: str, scope_id: str, *, context: AuditContext) -> None:
        await self.assignments.assign_with_retry(user_id, role, scope_type, scope_id, context=context)

    async def assign_multiple(self, assignments: Sequence[RoleAssignment], *, context: AuditContext) -> int:
        return await self.assignments.assign_multiple(assignments, context=context)

    async def assign_multiple_with_retry(self, assignments: Sequence[RoleAssignment], *, context: AuditContext) -> int:
        return await self.assignments.assign_multiple_with_retry(assignments, context=context)

    async def revoke(self, user_id: str, role: str, scope_type: str, scope_id: str, *, context: AuditContext) -> None:
        await self.assignments.revoke(user_id, role, scope_type, scope_id, context=context)

    async def revoke_all(self, user_id: str, scope_type: str, scope_id: str, *, context: AuditContext) -> List[str]:
        return await self.assignments.revoke_all(user_id, scope_type, scope_id, context=context)

    async def revoke_multiple(self, revocations: Sequence[RoleRevocation], *, context: AuditContext) -> int:
        return await self.assignments.revoke_multiple(revocations, context=context)

    async def transaction(self, fn: Callable[[RoleStore], Awaitable[T]]) -> T:
        return await self.assignments.transaction(fn)

    async def set_scope_parent(self, scope_type: str, scope_id: str, parent_scope_type: str, parent_scope_id: str) -> int:
        return await self.assignments.set_scope_parent(scope_type, scope_id, parent_scope_type, parent_scope_id)

    # Transaction health

    def get_transaction_metrics(self) -> TransactionMetrics:
        return self.assignments.monitor.get_metrics()

    def reset_transaction_metrics(self) -> None:
        self.assignments.monitor.reset()

    def is_transaction_healthy(self) -> bool:
        return self.assignments.monitor.is_healthy()
