"""Pytest configuration and fixtures for neo-roles tests."""

import itertools
from contextlib import asynccontextmanager
from typing import Dict, List, Optional, Sequence

import pytest

from neo_roles.core.value_objects import AuditContext
from neo_roles.features.roles.entities import (
    AuditEntry,
    AuditLogFilter,
    Registry,
    RegistryBuilder,
    RoleAssignment,
    ScopeHierarchy,
)
from neo_roles.features.roles.services import (
    AssignmentService,
    RetryPolicy,
    RoleService,
    TransactionMonitor,
)
from neo_roles.utils.datetime import utc_now


class DuplicateKeyError(Exception):
    """Stands in for a driver unique-violation error."""


class ForeignKeyError(Exception):
    """Stands in for a driver foreign-key violation."""


class InMemoryRoleStore:
    """RoleStore kept in lists, with transaction rollback and fault injection.

    ``transaction()`` snapshots state and restores it if the block raises, so
    nested transactions behave like savepoints. ``fail(method, error)`` makes
    the named method raise ``error`` on its next ``times`` calls (every call
    when ``times`` is None).
    """

    def __init__(self):
        self.assignments: List[RoleAssignment] = []
        self.hierarchy: List[ScopeHierarchy] = []
        self.audit_entries: List[AuditEntry] = []
        self.calls: List[str] = []
        self.transactions_opened = 0
        self._failures: Dict[str, list] = {}
        self._ids = itertools.count(1)

    # Fault injection

    def fail(self, method: str, error: BaseException, times: Optional[int] = None) -> None:
        self._failures[method] = [error, times]

    def duplicate_error(self) -> DuplicateKeyError:
        return DuplicateKeyError("duplicate key value violates unique constraint")

    def _enter(self, method: str) -> None:
        self.calls.append(method)
        failure = self._failures.get(method)
        if failure is None:
            return
        error, times = failure
        if times is not None:
            if times <= 0:
                return
            failure[1] = times - 1
        raise error

    def _next_id(self) -> str:
        return str(next(self._ids))

    # Transactions

    @asynccontextmanager
    async def transaction(self):
        self._enter("transaction")
        self.transactions_opened += 1
        snapshot = (list(self.assignments), list(self.hierarchy), list(self.audit_entries))
        try:
            yield self
        except BaseException:
            self.assignments, self.hierarchy, self.audit_entries = (
                snapshot[0], snapshot[1], snapshot[2]
            )
            raise

    # Role assignments

    def _find(self, user_id, role, scope_type, scope_id) -> Optional[RoleAssignment]:
        for a in self.assignments:
            if a.key() == (user_id, role, scope_type, scope_id):
                return a
        return None

    async def list_assignments(self, user_id: str) -> List[RoleAssignment]:
        self._enter("list_assignments")
        return [a for a in self.assignments if a.user_id == user_id]

    async def list_role_names(self, user_id, scope_type, scope_id, include_wildcard=True) -> List[str]:
        self._enter("list_role_names")
        scope_ids = {scope_id, "*"} if include_wildcard else {scope_id}
        return [
            a.role for a in self.assignments
            if a.user_id == user_id and a.scope_type == scope_type and a.scope_id in scope_ids
        ]

    async def exists(self, user_id, role, scope_type, scope_id) -> bool:
        self._enter("exists")
        return self._find(user_id, role, scope_type, scope_id) is not None

    async def count_roles(self, user_id, scope_type, scope_id) -> int:
        self._enter("count_roles")
        return sum(
            1 for a in self.assignments
            if a.user_id == user_id and a.scope_type == scope_type and a.scope_id in (scope_id, "*")
        )

    async def count_all(self) -> int:
        self._enter("count_all")
        return len(self.assignments)

    async def list_scope_members(self, scope_type, scope_id, role=None) -> List[RoleAssignment]:
        self._enter("list_scope_members")
        return [
            a for a in self.assignments
            if a.scope_type == scope_type and a.scope_id == scope_id and (role is None or a.role == role)
        ]

    def _build_row(self, assignment: RoleAssignment) -> RoleAssignment:
        now = utc_now()
        return RoleAssignment(
            id=self._next_id(),
            user_id=assignment.user_id,
            role=assignment.role,
            scope_type=assignment.scope_type,
            scope_id=assignment.scope_id,
            parent_scope_type=assignment.parent_scope_type,
            parent_scope_id=assignment.parent_scope_id,
            created_at=now,
            updated_at=now,
        )

    async def insert_assignment(self, assignment: RoleAssignment, ignore_conflict: bool = False) -> int:
        self._enter("insert_assignment")
        if self._find(*assignment.key()) is not None:
            if ignore_conflict:
                return 0
            raise self.duplicate_error()
        self.assignments.append(self._build_row(assignment))
        return 1

    async def insert_assignments(self, assignments: Sequence[RoleAssignment], batch_size: int) -> int:
        self._enter("insert_assignments")
        keys = [a.key() for a in assignments]
        if len(set(keys)) != len(keys) or any(self._find(*key) for key in keys):
            raise self.duplicate_error()
        self.assignments.extend(self._build_row(a) for a in assignments)
        return len(assignments)

    async def delete_assignment(self, user_id, role, scope_type, scope_id) -> int:
        self._enter("delete_assignment")
        row = self._find(user_id, role, scope_type, scope_id)
        if row is None:
            return 0
        self.assignments.remove(row)
        return 1

    # Scope hierarchy

    async def get_parent_scope(self, scope_type, scope_id) -> Optional[ScopeHierarchy]:
        self._enter("get_parent_scope")
        for h in self.hierarchy:
            if h.scope_type == scope_type and h.scope_id == scope_id:
                return h
        return None

    async def insert_scope_parent(self, hierarchy: ScopeHierarchy) -> int:
        self._enter("insert_scope_parent")
        for h in self.hierarchy:
            if (h.scope_type, h.scope_id) == (hierarchy.scope_type, hierarchy.scope_id):
                return 0
        self.hierarchy.append(hierarchy)
        return 1

    async def update_assignment_parents(self, scope_type, scope_id, parent_scope_type, parent_scope_id) -> int:
        self._enter("update_assignment_parents")
        updated = 0
        for index, a in enumerate(self.assignments):
            if a.scope_type == scope_type and a.scope_id == scope_id:
                self.assignments[index] = a.with_parent(parent_scope_type, parent_scope_id)
                updated += 1
        return updated

    async def list_child_scope_ids(self, user_id, child_scope_type, parent_scope_type, parent_scope_id, role=None) -> List[str]:
        self._enter("list_child_scope_ids")
        scope_ids: List[str] = []
        for a in self.assignments:
            if (
                a.user_id == user_id
                and a.scope_type == child_scope_type
                and a.parent_scope_type == parent_scope_type
                and a.parent_scope_id == parent_scope_id
                and (role is None or a.role == role)
                and a.scope_id not in scope_ids
            ):
                scope_ids.append(a.scope_id)
        return scope_ids

    # Audit log

    async def insert_audit_entry(self, entry: AuditEntry) -> None:
        self._enter("insert_audit_entry")
        self.audit_entries.append(entry)

    async def list_audit_entries(self, audit_filter: AuditLogFilter) -> List[AuditEntry]:
        self._enter("list_audit_entries")
        f = audit_filter
        entries = [
            e for e in self.audit_entries
            if (not f.actor_id or e.actor_id == f.actor_id)
            and (not f.target_user_id or e.target_user_id == f.target_user_id)
            and (not f.scope_type or e.scope_type == f.scope_type)
            and (not f.scope_id or e.scope_id == f.scope_id)
            and (not f.action or e.action == f.action)
            and (not f.role or e.role == f.role)
            and (not f.since or e.timestamp >= f.since)
            and (not f.until or e.timestamp <= f.until)
        ]
        entries.sort(key=lambda e: e.timestamp, reverse=True)
        return entries[f.offset:f.offset + f.limit]

    # Error classification

    def is_duplicate(self, error: BaseException) -> bool:
        return isinstance(error, DuplicateKeyError)

    def is_not_found(self, error: BaseException) -> bool:
        return isinstance(error, LookupError)

    def is_foreign_key(self, error: BaseException) -> bool:
        return isinstance(error, ForeignKeyError)

    def is_connection(self, error: BaseException) -> bool:
        return isinstance(error, ConnectionError)

    def is_retryable(self, error: BaseException) -> bool:
        return self.is_connection(error) or isinstance(error, TimeoutError)


@pytest.fixture
def registry() -> Registry:
    """Organization/project registry used across tests."""
    return (
        RegistryBuilder()
        .define_scope("organization")
            .role("owner").permissions("*").can_assign("*")
            .role("admin").permissions("members.*", "settings.*").can_assign("member")
            .role("member").permissions("projects.create")
        .define_scope("project").parent_scope("organization")
            .role("lead").permissions("files.*", "tasks.*").can_assign("editor", "viewer")
            .role("editor").permissions("files.write")
            .role("viewer").permissions("files.read")
        .build()
    )


@pytest.fixture
def store() -> InMemoryRoleStore:
    return InMemoryRoleStore()


@pytest.fixture
def monitor() -> TransactionMonitor:
    return TransactionMonitor()


@pytest.fixture
def assignment_service(store, registry, monitor) -> AssignmentService:
    return AssignmentService(
        store,
        registry,
        monitor=monitor,
        retry_policy=RetryPolicy(max_attempts=3, base_delay_seconds=0),
        batch_size=2,
    )


@pytest.fixture
def role_service(store, registry, assignment_service) -> RoleService:
    return RoleService(store, registry, assignment_service)


@pytest.fixture
def admin_context() -> AuditContext:
    return AuditContext(
        user_id="admin-1",
        ip_address="10.0.0.1",
        user_agent="pytest",
        request_id="req-1",
    )


@pytest.fixture
def seed_roles(store):
    """Insert (user, role, scope_type, scope_id) rows directly, bypassing the services."""
    def _seed(*rows):
        for user_id, role, scope_type, scope_id in rows:
            store.assignments.append(
                store._build_row(RoleAssignment(user_id=user_id, role=role, scope_type=scope_type, scope_id=scope_id))
            )
    return _seed


@pytest.fixture
def seeded_store(store, seed_roles) -> InMemoryRoleStore:
    """admin-1 is admin of org1 and lead of proj1; owner-1 owns every organization."""
    seed_roles(
        ("admin-1", "admin", "organization", "org1"),
        ("admin-1", "lead", "project", "proj1"),
        ("owner-1", "owner", "organization", "*"),
    )
    return store
