"""AsyncPG-based role store implementation.

Concrete implementation of the RoleStore protocol on PostgreSQL. The pooled
store runs each call on a pool connection; ``transaction()`` acquires one
connection and yields a store bound to it, whose own ``transaction()`` opens
a savepoint. Both share every query through ``self._executor``.

Driver errors propagate unchanged; services classify them with the
``is_*`` predicates and wrap them into DatabaseError.
"""

import json
import logging
from contextlib import asynccontextmanager
from types import MappingProxyType
from typing import Any, AsyncIterator, List, Optional, Sequence

import asyncpg

from ....config.constants import (
    NOT_FOUND_SQLSTATES,
    RETRYABLE_SQLSTATES,
    SQLState,
    AuditAction,
)
from ....config.settings import RoleSettings, get_settings
from ....core.exceptions import ConfigurationError
from ....utils.error_handling import log_database_operation
from ..entities import AuditEntry, AuditLogFilter, RoleAssignment, ScopeHierarchy

logger = logging.getLogger(__name__)


async def create_pool(settings: Optional[RoleSettings] = None) -> asyncpg.Pool:
    """Open a connection pool from settings."""
    settings = settings or get_settings()
    if not settings.dsn:
        raise ConfigurationError("NEO_ROLES_DATABASE_URL is not configured")

    pool = await asyncpg.create_pool(
        dsn=settings.dsn,
        min_size=settings.pool_min_size,
        max_size=settings.pool_max_size,
        command_timeout=settings.command_timeout_seconds,
    )
    logger.info(f"Created role store pool (min={settings.pool_min_size}, max={settings.pool_max_size})")
    return pool


def _rows_affected(status: str) -> int:
    """Parse the row count from a command status such as ``INSERT 0 1`` or ``DELETE 3``."""
    try:
        return int(status.split()[-1])
    except (AttributeError, IndexError, ValueError):
        return 0


def _sqlstate(error: BaseException) -> Optional[str]:
    return getattr(error, "sqlstate", None)


class AsyncPGRoleStore:
    """AsyncPG implementation of RoleStore over a connection pool."""

    def __init__(self, pool: asyncpg.Pool, settings: Optional[RoleSettings] = None):
        self.settings = settings or get_settings()
        self._pool = pool
        self._executor: Any = pool

        self._assignments_table = self.settings.assignments_table
        self._audit_table = self.settings.audit_log_table
        self._hierarchy_table = self.settings.scope_hierarchy_table

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator["AsyncPGRoleStore"]:
        """Acquire a connection and yield a store bound to its transaction."""
        async with self._pool.acquire() as connection:
            async with connection.transaction():
                yield AsyncPGTransactionStore(connection, self.settings)

    # Row mapping

    def _build_assignment_from_row(self, row: asyncpg.Record) -> RoleAssignment:
        return RoleAssignment(
            id=str(row['id']) if row['id'] is not None else None,
            user_id=row['user_id'],
            role=row['role'],
            scope_type=row['scope_type'],
            scope_id=row['scope_id'],
            parent_scope_type=row['parent_scope_type'],
            parent_scope_id=row['parent_scope_id'],
            created_at=row['created_at'],
            updated_at=row['updated_at'],
        )

    def _build_audit_entry_from_row(self, row: asyncpg.Record) -> AuditEntry:
        metadata = row['metadata']
        if isinstance(metadata, str):
            metadata = json.loads(metadata)
        return AuditEntry(
            id=str(row['id']) if row['id'] is not None else None,
            actor_id=row['actor_id'],
            action=AuditAction(row['action']),
            target_user_id=row['target_user_id'],
            role=row['role'],
            scope_type=row['scope_type'],
            scope_id=row['scope_id'],
            actor_roles=tuple(row['actor_roles'] or ()),
            previous_roles=tuple(row['previous_roles'] or ()),
            new_roles=tuple(row['new_roles'] or ()),
            ip_address=row['ip_address'],
            user_agent=row['user_agent'],
            request_id=row['request_id'],
            metadata=MappingProxyType(dict(metadata or {})),
            timestamp=row['timestamp'],
        )

    # Role assignments

    async def list_assignments(self, user_id: str) -> List[RoleAssignment]:
        query = f"""
            SELECT id, user_id, role, scope_type, scope_id,
                   parent_scope_type, parent_scope_id, created_at, updated_at
            FROM {self._assignments_table}
            WHERE user_id = $1
            ORDER BY created_at
        """
        rows = await self._executor.fetch(query, user_id)
        return [self._build_assignment_from_row(row) for row in rows]

    async def list_role_names(
        self,
        user_id: str,
        scope_type: str,
        scope_id: str,
        include_wildcard: bool = True
    ) -> List[str]:
        scope_clause = "(scope_id = $3 OR scope_id = '*')" if include_wildcard else "scope_id = $3"
        query = f"""
            SELECT role FROM {self._assignments_table}
            WHERE user_id = $1 AND scope_type = $2 AND {scope_clause}
            ORDER BY created_at
        """
        rows = await self._executor.fetch(query, user_id, scope_type, scope_id)
        return [row['role'] for row in rows]

    async def exists(self, user_id: str, role: str, scope_type: str, scope_id: str) -> bool:
        query = f"""
            SELECT EXISTS(
                SELECT 1 FROM {self._assignments_table}
                WHERE user_id = $1 AND role = $2 AND scope_type = $3 AND scope_id = $4
            )
        """
        return bool(await self._executor.fetchval(query, user_id, role, scope_type, scope_id))

    async def count_roles(self, user_id: str, scope_type: str, scope_id: str) -> int:
        query = f"""
            SELECT COUNT(*) FROM {self._assignments_table}
            WHERE user_id = $1 AND scope_type = $2 AND (scope_id = $3 OR scope_id = '*')
        """
        return int(await self._executor.fetchval(query, user_id, scope_type, scope_id) or 0)

    async def count_all(self) -> int:
        query = f"SELECT COUNT(*) FROM {self._assignments_table}"
        return int(await self._executor.fetchval(query) or 0)

    async def list_scope_members(
        self,
        scope_type: str,
        scope_id: str,
        role: Optional[str] = None
    ) -> List[RoleAssignment]:
        params: List[Any] = [scope_type, scope_id]
        role_clause = ""
        if role is not None:
            params.append(role)
            role_clause = " AND role = $3"

        query = f"""
            SELECT id, user_id, role, scope_type, scope_id,
                   parent_scope_type, parent_scope_id, created_at, updated_at
            FROM {self._assignments_table}
            WHERE scope_type = $1 AND scope_id = $2{role_clause}
            ORDER BY created_at
        """
        rows = await self._executor.fetch(query, *params)
        return [self._build_assignment_from_row(row) for row in rows]

    async def insert_assignment(self, assignment: RoleAssignment, ignore_conflict: bool = False) -> int:
        conflict_clause = (
            "ON CONFLICT (user_id, role, scope_type, scope_id) DO NOTHING" if ignore_conflict else ""
        )
        query = f"""
            INSERT INTO {self._assignments_table}
                (user_id, role, scope_type, scope_id, parent_scope_type, parent_scope_id)
            VALUES ($1, $2, $3, $4, $5, $6)
            {conflict_clause}
        """
        result = await self._executor.execute(
            query,
            assignment.user_id,
            assignment.role,
            assignment.scope_type,
            assignment.scope_id,
            assignment.parent_scope_type,
            assignment.parent_scope_id,
        )
        return _rows_affected(result)

    @log_database_operation("batch insert role assignments")
    async def insert_assignments(self, assignments: Sequence[RoleAssignment], batch_size: int) -> int:
        """Insert in chunks of ``batch_size`` inside one transaction (or savepoint)."""
        if not assignments:
            return 0
        if batch_size < 1:
            raise ValueError("batch_size must be at least 1")

        query = f"""
            INSERT INTO {self._assignments_table}
                (user_id, role, scope_type, scope_id, parent_scope_type, parent_scope_id)
            VALUES ($1, $2, $3, $4, $5, $6)
        """
        records = [
            (a.user_id, a.role, a.scope_type, a.scope_id, a.parent_scope_type, a.parent_scope_id)
            for a in assignments
        ]

        async with self.transaction() as tx:
            for start in range(0, len(records), batch_size):
                await tx._executor.executemany(query, records[start:start + batch_size])

        return len(records)

    async def delete_assignment(self, user_id: str, role: str, scope_type: str, scope_id: str) -> int:
        query = f"""
            DELETE FROM {self._assignments_table}
            WHERE user_id = $1 AND role = $2 AND scope_type = $3 AND scope_id = $4
        """
        result = await self._executor.execute(query, user_id, role, scope_type, scope_id)
        return _rows_affected(result)

    # Scope hierarchy

    async def get_parent_scope(self, scope_type: str, scope_id: str) -> Optional[ScopeHierarchy]:
        query = f"""
            SELECT id, scope_type, scope_id, parent_scope_type, parent_scope_id, created_at
            FROM {self._hierarchy_table}
            WHERE scope_type = $1 AND scope_id = $2
            LIMIT 1
        """
        row = await self._executor.fetchrow(query, scope_type, scope_id)
        if row is None:
            return None
        return ScopeHierarchy(
            id=str(row['id']) if row['id'] is not None else None,
            scope_type=row['scope_type'],
            scope_id=row['scope_id'],
            parent_scope_type=row['parent_scope_type'],
            parent_scope_id=row['parent_scope_id'],
            created_at=row['created_at'],
        )

    async def insert_scope_parent(self, hierarchy: ScopeHierarchy) -> int:
        query = f"""
            INSERT INTO {self._hierarchy_table}
                (scope_type, scope_id, parent_scope_type, parent_scope_id)
            VALUES ($1, $2, $3, $4)
            ON CONFLICT DO NOTHING
        """
        result = await self._executor.execute(
            query,
            hierarchy.scope_type,
            hierarchy.scope_id,
            hierarchy.parent_scope_type,
            hierarchy.parent_scope_id,
        )
        return _rows_affected(result)

    async def update_assignment_parents(
        self,
        scope_type: str,
        scope_id: str,
        parent_scope_type: str,
        parent_scope_id: str
    ) -> int:
        query = f"""
            UPDATE {self._assignments_table}
            SET parent_scope_type = $3, parent_scope_id = $4, updated_at = NOW()
            WHERE scope_type = $1 AND scope_id = $2
        """
        result = await self._executor.execute(query, scope_type, scope_id, parent_scope_type, parent_scope_id)
        return _rows_affected(result)

    async def list_child_scope_ids(
        self,
        user_id: str,
        child_scope_type: str,
        parent_scope_type: str,
        parent_scope_id: str,
        role: Optional[str] = None
    ) -> List[str]:
        params: List[Any] = [user_id, child_scope_type, parent_scope_type, parent_scope_id]
        role_clause = ""
        if role is not None:
            params.append(role)
            role_clause = " AND role = $5"

        query = f"""
            SELECT DISTINCT scope_id FROM {self._assignments_table}
            WHERE user_id = $1 AND scope_type = $2
              AND parent_scope_type = $3 AND parent_scope_id = $4{role_clause}
        """
        rows = await self._executor.fetch(query, *params)
        return [row['scope_id'] for row in rows]

    # Audit log

    async def insert_audit_entry(self, entry: AuditEntry) -> None:
        query = f"""
            INSERT INTO {self._audit_table}
                (actor_id, action, target_user_id, role, scope_type, scope_id,
                 actor_roles, previous_roles, new_roles,
                 ip_address, user_agent, request_id, metadata, timestamp)
            VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11, $12, $13, $14)
        """
        await self._executor.execute(
            query,
            entry.actor_id,
            entry.action.value,
            entry.target_user_id,
            entry.role,
            entry.scope_type,
            entry.scope_id,
            list(entry.actor_roles),
            list(entry.previous_roles),
            list(entry.new_roles),
            entry.ip_address,
            entry.user_agent,
            entry.request_id,
            json.dumps(dict(entry.metadata)),
            entry.timestamp,
        )

    async def list_audit_entries(self, audit_filter: AuditLogFilter) -> List[AuditEntry]:
        conditions: List[str] = []
        params: List[Any] = []

        def add(condition: str, value: Any) -> None:
            params.append(value)
            conditions.append(condition.format(f"${len(params)}"))

        if audit_filter.actor_id:
            add("actor_id = {}", audit_filter.actor_id)
        if audit_filter.target_user_id:
            add("target_user_id = {}", audit_filter.target_user_id)
        if audit_filter.scope_type:
            add("scope_type = {}", audit_filter.scope_type)
        if audit_filter.scope_id:
            add("scope_id = {}", audit_filter.scope_id)
        if audit_filter.action:
            add("action = {}", audit_filter.action.value)
        if audit_filter.role:
            add("role = {}", audit_filter.role)
        if audit_filter.since:
            add("timestamp >= {}", audit_filter.since)
        if audit_filter.until:
            add("timestamp <= {}", audit_filter.until)

        where_clause = f"WHERE {' AND '.join(conditions)}" if conditions else ""
        params.extend([audit_filter.limit, audit_filter.offset])

        query = f"""
            SELECT id, actor_id, action, target_user_id, role, scope_type, scope_id,
                   actor_roles, previous_roles, new_roles,
                   ip_address, user_agent, request_id, metadata, timestamp
            FROM {self._audit_table}
            {where_clause}
            ORDER BY timestamp DESC
            LIMIT ${len(params) - 1} OFFSET ${len(params)}
        """
        rows = await self._executor.fetch(query, *params)
        return [self._build_audit_entry_from_row(row) for row in rows]

    # Error classification

    def is_duplicate(self, error: BaseException) -> bool:
        return isinstance(error, asyncpg.UniqueViolationError) or _sqlstate(error) == SQLState.UNIQUE_VIOLATION

    def is_not_found(self, error: BaseException) -> bool:
        return _sqlstate(error) in NOT_FOUND_SQLSTATES

    def is_foreign_key(self, error: BaseException) -> bool:
        return (
            isinstance(error, asyncpg.ForeignKeyViolationError)
            or _sqlstate(error) == SQLState.FOREIGN_KEY_VIOLATION
        )

    def is_connection(self, error: BaseException) -> bool:
        if isinstance(error, (asyncpg.PostgresConnectionError, asyncpg.exceptions.ConnectionDoesNotExistError)):
            return True
        if isinstance(error, (ConnectionError, OSError)):
            return True
        sqlstate = _sqlstate(error)
        return bool(sqlstate) and sqlstate.startswith(SQLState.CONNECTION_EXCEPTION_CLASS)

    def is_retryable(self, error: BaseException) -> bool:
        return self.is_connection(error) or _sqlstate(error) in RETRYABLE_SQLSTATES


class AsyncPGTransactionStore(AsyncPGRoleStore):
    """RoleStore bound to one connection with an open transaction."""

    def __init__(self, connection: asyncpg.Connection, settings: Optional[RoleSettings] = None):
        super().__init__(pool=None, settings=settings)
        self.connection = connection
        self._executor = connection

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator["AsyncPGRoleStore"]:
        """Open a savepoint on the bound connection."""
        async with self.connection.transaction():
            yield self
