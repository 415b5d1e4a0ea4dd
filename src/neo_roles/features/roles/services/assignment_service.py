"""Authorized, audited role assignment changes.

Every write follows the same steps: validate the role against the registry,
authorize the actor from their own assignments, persist through the store,
then append an audit entry. Validation and authorization failures raise
before anything is written. Store failures surface as DatabaseError. Audit
failures are logged and never fail the change itself.

Concurrent assign and revoke of the same (user, role, scope) are only
ordered by the store's unique constraint and isolation level; the final
state of such a race is whichever write commits last.
"""

import logging
import time
from contextlib import contextmanager
from datetime import timedelta
from typing import Awaitable, Callable, Iterator, List, Optional, Sequence, TypeVar

from ....config.constants import DEFAULT_BATCH_SIZE, AuditAction
from ....config.settings import RoleSettings
from ....core.exceptions import (
    CannotAssignError,
    InvalidScopeError,
    NeoRolesError,
    NoActorIDError,
    RoleAlreadyAssignedError,
    RoleNotAssignedError,
)
from ....core.value_objects import AuditContext
from ....utils.error_handling import database_error_handler
from ..entities import (
    AuditEntry,
    Registry,
    RoleAssignment,
    RoleRevocation,
    RoleStore,
    ScopeHierarchy,
    UserRoles,
)
from .checker import Checker
from .retry import RetryPolicy, retry_async
from .transaction_monitor import TransactionMonitor

logger = logging.getLogger(__name__)

T = TypeVar("T")


class AssignmentService:
    """Coordinates role assignment writes against a RoleStore."""

    def __init__(
        self,
        store: RoleStore,
        registry: Registry,
        monitor: Optional[TransactionMonitor] = None,
        retry_policy: Optional[RetryPolicy] = None,
        batch_size: int = DEFAULT_BATCH_SIZE,
    ):
        self.store = store
        self.registry = registry
        self.monitor = monitor or TransactionMonitor()
        self.retry_policy = retry_policy or RetryPolicy()
        self.batch_size = batch_size

    @classmethod
    def from_settings(cls, store: RoleStore, registry: Registry, settings: RoleSettings) -> "AssignmentService":
        return cls(
            store=store,
            registry=registry,
            monitor=TransactionMonitor(
                min_transactions=settings.health_min_transactions,
                max_failure_rate=settings.health_max_failure_rate,
                max_average_duration=timedelta(seconds=settings.health_max_average_duration_seconds),
            ),
            retry_policy=RetryPolicy.from_settings(settings),
            batch_size=settings.batch_size,
        )

    # Public operations

    async def assign(
        self,
        user_id: str,
        role: str,
        scope_type: str,
        scope_id: str,
        *,
        context: AuditContext,
    ) -> RoleAssignment:
        """Assign a role after checking the actor may grant it.

        Raises:
            InvalidScopeError / InvalidRoleError: Role not defined for the scope type
            NoActorIDError: Context carries neither actor nor user id
            CannotAssignError: Actor holds no role that may assign ``role`` here
            RoleAlreadyAssignedError: Target already holds exactly this assignment
            DatabaseError: Store failure
        """
        with self._record():
            return await self._assign(user_id, role, scope_type, scope_id, context)

    async def revoke(
        self,
        user_id: str,
        role: str,
        scope_type: str,
        scope_id: str,
        *,
        context: AuditContext,
    ) -> None:
        """Revoke a role after checking the actor may manage it.

        Raises:
            RoleNotAssignedError: Target does not hold exactly this assignment
            plus the validation, authorization and store errors of :meth:`assign`.
        """
        with self._record():
            await self._revoke(user_id, role, scope_type, scope_id, context)

    async def revoke_all(
        self,
        user_id: str,
        scope_type: str,
        scope_id: str,
        *,
        context: AuditContext,
    ) -> List[str]:
        """Revoke every role a user holds in exactly this scope.

        Each role is revoked and audited individually; failures are logged and
        skipped. Returns the roles actually revoked.
        """
        with self._record():
            self.registry.validate_scope(scope_type)
            self._require_actor(context, user_id=user_id, scope_type=scope_type, scope_id=scope_id)

            roles = await self._list_role_names(self.store, user_id, scope_type, scope_id, False)
            revoked: List[str] = []
            for role in roles:
                try:
                    await self._revoke(user_id, role, scope_type, scope_id, context)
                except NeoRolesError as e:
                    logger.warning(f"Failed to revoke role {role} from {user_id} in {scope_type}:{scope_id}: {e}")
                    continue
                revoked.append(role)
            return revoked

    async def assign_direct(
        self,
        user_id: str,
        role: str,
        scope_type: str,
        scope_id: str,
        *,
        context: AuditContext,
    ) -> None:
        """Insert an assignment without loading roles or authorizing the actor.

        For trusted callers such as provisioning jobs. The insert ignores
        conflicts; if nothing was inserted RoleAlreadyAssignedError is raised.
        """
        with self._record():
            await self._assign_direct(user_id, role, scope_type, scope_id, context)

    async def assign_with_retry(
        self,
        user_id: str,
        role: str,
        scope_type: str,
        scope_id: str,
        *,
        context: AuditContext,
    ) -> None:
        """:meth:`assign_direct`, retried on transient store errors."""
        with self._record():
            await retry_async(
                lambda: self._assign_direct(user_id, role, scope_type, scope_id, context),
                self.retry_policy,
                operation_name="assign_with_retry",
            )

    async def assign_multiple(
        self,
        assignments: Sequence[RoleAssignment],
        *,
        context: AuditContext,
    ) -> int:
        """Assign many roles in one transaction, all or nothing.

        Every row is validated and authorized before the transaction opens.
        Returns the number of rows inserted.
        """
        with self._record():
            return await self._assign_multiple(assignments, context)

    async def assign_multiple_with_retry(
        self,
        assignments: Sequence[RoleAssignment],
        *,
        context: AuditContext,
    ) -> int:
        """:meth:`assign_multiple`, retried on transient store errors."""
        with self._record():
            return await retry_async(
                lambda: self._assign_multiple(assignments, context),
                self.retry_policy,
                operation_name="assign_multiple_with_retry",
            )

    async def revoke_multiple(
        self,
        revocations: Sequence[RoleRevocation],
        *,
        context: AuditContext,
    ) -> int:
        """Revoke many roles in one transaction.

        Rows the target does not hold are skipped. Returns the number revoked.
        """
        with self._record():
            actor_id = self._require_actor(context)
            if not revocations:
                return 0

            for revocation in revocations:
                self.registry.validate_role(revocation.role, revocation.scope_type)
            actor_roles = await self._load_user_roles(self.store, actor_id)
            for revocation in revocations:
                self._authorize(
                    actor_id, actor_roles, revocation.user_id,
                    revocation.role, revocation.scope_type, revocation.scope_id,
                )

            return await self._revoke_rows(revocations, actor_roles, context)

    async def transaction(self, fn: Callable[[RoleStore], Awaitable[T]]) -> T:
        """Run ``fn`` with a transaction-bound store; nested calls use savepoints."""
        with self._record():
            async with self.store.transaction() as tx:
                return await fn(tx)

    async def set_scope_parent(
        self,
        scope_type: str,
        scope_id: str,
        parent_scope_type: str,
        parent_scope_id: str,
    ) -> int:
        """Link a scope instance to its parent and back-fill existing assignments.

        Returns the number of assignments updated.
        """
        with self._record():
            scope = self.registry.validate_scope(scope_type)
            self.registry.validate_scope(parent_scope_type)
            if scope.parent_scope != parent_scope_type:
                raise InvalidScopeError(
                    f"Scope type '{scope_type}' does not declare parent scope type '{parent_scope_type}'",
                    scope_type=scope_type,
                    scope_id=scope_id,
                )

            return await self._link_scope_parent(
                ScopeHierarchy(
                    scope_type=scope_type,
                    scope_id=scope_id,
                    parent_scope_type=parent_scope_type,
                    parent_scope_id=parent_scope_id,
                )
            )

    # Operation bodies

    async def _assign(
        self,
        user_id: str,
        role: str,
        scope_type: str,
        scope_id: str,
        context: AuditContext,
    ) -> RoleAssignment:
        self.registry.validate_role(role, scope_type)
        actor_id = self._require_actor(context, user_id=user_id, role=role, scope_type=scope_type, scope_id=scope_id)

        actor_roles = await self._load_user_roles(self.store, actor_id)
        self._authorize(actor_id, actor_roles, user_id, role, scope_type, scope_id)

        if await self._exists(self.store, user_id, role, scope_type, scope_id):
            raise RoleAlreadyAssignedError(
                f"User already holds role '{role}'",
                user_id=user_id, role=role, scope_type=scope_type, scope_id=scope_id,
            )

        previous_roles = await self._list_role_names(self.store, user_id, scope_type, scope_id, True)
        assignment = await self._resolve_parent(
            self.store,
            RoleAssignment(user_id=user_id, role=role, scope_type=scope_type, scope_id=scope_id),
        )
        await self._insert_assignment(self.store, assignment)
        logger.info(f"Assigned role {role} to {user_id} in {scope_type}:{scope_id} by {actor_id}")

        await self._write_audit(
            self.store,
            AuditEntry.create(
                context,
                AuditAction.ASSIGNED,
                target_user_id=user_id,
                role=role,
                scope_type=scope_type,
                scope_id=scope_id,
                actor_roles=actor_roles.get_roles(scope_type, scope_id),
                previous_roles=previous_roles,
                new_roles=previous_roles if role in previous_roles else previous_roles + [role],
            ),
        )
        return assignment

    async def _revoke(
        self,
        user_id: str,
        role: str,
        scope_type: str,
        scope_id: str,
        context: AuditContext,
    ) -> None:
        self.registry.validate_role(role, scope_type)
        actor_id = self._require_actor(context, user_id=user_id, role=role, scope_type=scope_type, scope_id=scope_id)

        actor_roles = await self._load_user_roles(self.store, actor_id)
        self._authorize(actor_id, actor_roles, user_id, role, scope_type, scope_id)

        not_assigned = RoleNotAssignedError(
            f"User does not hold role '{role}'",
            user_id=user_id, role=role, scope_type=scope_type, scope_id=scope_id,
        )
        if not await self._exists(self.store, user_id, role, scope_type, scope_id):
            raise not_assigned

        previous_roles = await self._list_role_names(self.store, user_id, scope_type, scope_id, True)
        deleted = await self._delete_assignment(self.store, user_id, role, scope_type, scope_id)
        if deleted == 0:
            # Removed concurrently between the existence check and the delete
            raise not_assigned
        logger.info(f"Revoked role {role} from {user_id} in {scope_type}:{scope_id} by {actor_id}")

        new_roles = list(previous_roles)
        if role in new_roles:
            new_roles.remove(role)
        await self._write_audit(
            self.store,
            AuditEntry.create(
                context,
                AuditAction.REVOKED,
                target_user_id=user_id,
                role=role,
                scope_type=scope_type,
                scope_id=scope_id,
                actor_roles=actor_roles.get_roles(scope_type, scope_id),
                previous_roles=previous_roles,
                new_roles=new_roles,
            ),
        )

    async def _assign_direct(
        self,
        user_id: str,
        role: str,
        scope_type: str,
        scope_id: str,
        context: AuditContext,
    ) -> None:
        self.registry.validate_role(role, scope_type)
        self._require_actor(context, user_id=user_id, role=role, scope_type=scope_type, scope_id=scope_id)

        assignment = RoleAssignment(user_id=user_id, role=role, scope_type=scope_type, scope_id=scope_id)
        inserted = await self._insert_assignment(self.store, assignment, ignore_conflict=True)
        if inserted == 0:
            raise RoleAlreadyAssignedError(
                f"User already holds role '{role}'",
                user_id=user_id, role=role, scope_type=scope_type, scope_id=scope_id,
            )

        await self._write_audit(
            self.store,
            AuditEntry.create(
                context,
                AuditAction.ASSIGNED,
                target_user_id=user_id,
                role=role,
                scope_type=scope_type,
                scope_id=scope_id,
            ),
        )

    async def _assign_multiple(self, assignments: Sequence[RoleAssignment], context: AuditContext) -> int:
        actor_id = self._require_actor(context)
        if not assignments:
            return 0

        for assignment in assignments:
            self.registry.validate_role(assignment.role, assignment.scope_type)
        actor_roles = await self._load_user_roles(self.store, actor_id)
        for assignment in assignments:
            self._authorize(
                actor_id, actor_roles, assignment.user_id,
                assignment.role, assignment.scope_type, assignment.scope_id,
            )

        return await self._insert_rows(assignments, actor_roles, context)

    @database_error_handler("assign roles in bulk")
    async def _insert_rows(
        self,
        assignments: Sequence[RoleAssignment],
        actor_roles: UserRoles,
        context: AuditContext,
    ) -> int:
        async with self.store.transaction() as tx:
            rows = [await self._resolve_parent(tx, a) for a in assignments]
            inserted = await tx.insert_assignments(rows, self.batch_size)
            for row in rows:
                await self._write_audit(
                    tx,
                    AuditEntry.create(
                        context,
                        AuditAction.ASSIGNED,
                        target_user_id=row.user_id,
                        role=row.role,
                        scope_type=row.scope_type,
                        scope_id=row.scope_id,
                        actor_roles=actor_roles.get_roles(row.scope_type, row.scope_id),
                        metadata={"bulk": True},
                    ),
                )
        logger.info(f"Assigned {inserted} roles in bulk")
        return inserted

    @database_error_handler("revoke roles in bulk")
    async def _revoke_rows(
        self,
        revocations: Sequence[RoleRevocation],
        actor_roles: UserRoles,
        context: AuditContext,
    ) -> int:
        revoked = 0
        async with self.store.transaction() as tx:
            for r in revocations:
                if not await tx.exists(r.user_id, r.role, r.scope_type, r.scope_id):
                    continue
                if await tx.delete_assignment(r.user_id, r.role, r.scope_type, r.scope_id) == 0:
                    continue
                revoked += 1
                await self._write_audit(
                    tx,
                    AuditEntry.create(
                        context,
                        AuditAction.REVOKED,
                        target_user_id=r.user_id,
                        role=r.role,
                        scope_type=r.scope_type,
                        scope_id=r.scope_id,
                        actor_roles=actor_roles.get_roles(r.scope_type, r.scope_id),
                        metadata={"bulk": True},
                    ),
                )
        logger.info(f"Revoked {revoked} of {len(revocations)} roles in bulk")
        return revoked

    @database_error_handler("set scope parent")
    async def _link_scope_parent(self, hierarchy: ScopeHierarchy) -> int:
        async with self.store.transaction() as tx:
            await tx.insert_scope_parent(hierarchy)
            return await tx.update_assignment_parents(
                hierarchy.scope_type,
                hierarchy.scope_id,
                hierarchy.parent_scope_type,
                hierarchy.parent_scope_id,
            )

    # Helpers

    @contextmanager
    def _record(self) -> Iterator[None]:
        start = time.perf_counter()
        success = False
        try:
            yield
            success = True
        finally:
            self.monitor.record(timedelta(seconds=time.perf_counter() - start), success)

    def _require_actor(self, context: AuditContext, **error_context: str) -> str:
        actor_id = context.effective_actor_id if context is not None else None
        if not actor_id:
            raise NoActorIDError("Actor id is required for role changes", **error_context)
        return actor_id

    def _authorize(
        self,
        actor_id: str,
        actor_roles: UserRoles,
        target_user_id: str,
        role: str,
        scope_type: str,
        scope_id: str,
    ) -> None:
        # A user with no roles at all may grant themselves their first role
        if actor_id == target_user_id and actor_roles.is_empty:
            logger.info(f"Bootstrap assignment of {role} for {actor_id} in {scope_type}:{scope_id}")
            return

        checker = Checker(actor_id, actor_roles, self.registry, self.store)
        if not checker.can_assign_role(role, scope_type, scope_id):
            raise CannotAssignError(
                f"Actor cannot assign role '{role}'",
                actor_id=actor_id,
                user_id=target_user_id,
                role=role,
                scope_type=scope_type,
                scope_id=scope_id,
            )

    async def _resolve_parent(self, store: RoleStore, assignment: RoleAssignment) -> RoleAssignment:
        """Fill parent columns from the scope hierarchy when the scope type declares a parent."""
        scope = self.registry.get_scope(assignment.scope_type)
        if scope is None or scope.parent_scope is None:
            return assignment

        try:
            parent = await store.get_parent_scope(assignment.scope_type, assignment.scope_id)
        except Exception as e:
            logger.warning(
                f"Parent lookup failed for {assignment.scope_type}:{assignment.scope_id}, "
                f"assigning without parent: {e}"
            )
            return assignment

        if parent is None:
            return assignment
        return assignment.with_parent(parent.parent_scope_type, parent.parent_scope_id)

    async def _write_audit(self, store: RoleStore, entry: AuditEntry) -> None:
        """Append an audit entry in its own savepoint; failures are logged only."""
        try:
            async with store.transaction() as savepoint:
                await savepoint.insert_audit_entry(entry)
        except Exception as e:
            logger.error(
                f"Failed to write audit entry ({entry.action.value} {entry.role} for "
                f"{entry.target_user_id} in {entry.scope_type}:{entry.scope_id}): {e}"
            )

    @database_error_handler("load user roles")
    async def _load_user_roles(self, store: RoleStore, user_id: str) -> UserRoles:
        return UserRoles(user_id, await store.list_assignments(user_id))

    @database_error_handler("check role assignment")
    async def _exists(self, store: RoleStore, user_id: str, role: str, scope_type: str, scope_id: str) -> bool:
        return await store.exists(user_id, role, scope_type, scope_id)

    @database_error_handler("list role names")
    async def _list_role_names(
        self,
        store: RoleStore,
        user_id: str,
        scope_type: str,
        scope_id: str,
        include_wildcard: bool,
    ) -> List[str]:
        return await store.list_role_names(user_id, scope_type, scope_id, include_wildcard)

    @database_error_handler("insert role assignment")
    async def _insert_assignment(
        self,
        store: RoleStore,
        assignment: RoleAssignment,
        ignore_conflict: bool = False,
    ) -> int:
        try:
            return await store.insert_assignment(assignment, ignore_conflict=ignore_conflict)
        except Exception as e:
            if store.is_duplicate(e):
                raise RoleAlreadyAssignedError(
                    f"User already holds role '{assignment.role}'",
                    user_id=assignment.user_id,
                    role=assignment.role,
                    scope_type=assignment.scope_type,
                    scope_id=assignment.scope_id,
                ) from e
            raise

    @database_error_handler("delete role assignment")
    async def _delete_assignment(self, store: RoleStore, user_id: str, role: str, scope_type: str, scope_id: str) -> int:
        return await store.delete_assignment(user_id, role, scope_type, scope_id)
