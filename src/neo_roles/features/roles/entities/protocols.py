"""Protocol interfaces for role storage.

Defines the contract the role services need from a relational store: role
assignment reads and writes, scope hierarchy, audit log, nested transactions
and driver error classification.
"""

from abc import abstractmethod
from typing import AsyncContextManager, List, Optional, Protocol, Sequence, runtime_checkable

from .assignment import RoleAssignment, ScopeHierarchy
from .audit import AuditEntry, AuditLogFilter


@runtime_checkable
class RoleStore(Protocol):
    """Protocol for role assignment persistence.

    ``transaction()`` yields a store bound to the open transaction. Calling
    ``transaction()`` on that bound store opens a savepoint, so code written
    against this protocol nests without knowing which variant it holds.
    Methods returning ``int`` report rows affected.
    """

    @abstractmethod
    def transaction(self) -> AsyncContextManager["RoleStore"]:
        """Open a transaction, or a savepoint when already inside one."""
        ...

    # Role assignments

    @abstractmethod
    async def list_assignments(self, user_id: str) -> List[RoleAssignment]:
        """Get every assignment held by a user."""
        ...

    @abstractmethod
    async def list_role_names(
        self,
        user_id: str,
        scope_type: str,
        scope_id: str,
        include_wildcard: bool = True
    ) -> List[str]:
        """Get role names held by a user in a scope."""
        ...

    @abstractmethod
    async def exists(self, user_id: str, role: str, scope_type: str, scope_id: str) -> bool:
        """Check if exactly this assignment row exists."""
        ...

    @abstractmethod
    async def count_roles(self, user_id: str, scope_type: str, scope_id: str) -> int:
        """Count a user's roles in a scope, including wildcard assignments."""
        ...

    @abstractmethod
    async def count_all(self) -> int:
        """Count every assignment row."""
        ...

    @abstractmethod
    async def list_scope_members(
        self,
        scope_type: str,
        scope_id: str,
        role: Optional[str] = None
    ) -> List[RoleAssignment]:
        """Get assignments in exactly this scope, optionally for one role."""
        ...

    @abstractmethod
    async def insert_assignment(self, assignment: RoleAssignment, ignore_conflict: bool = False) -> int:
        """Insert one assignment; with ignore_conflict a duplicate affects zero rows."""
        ...

    @abstractmethod
    async def insert_assignments(self, assignments: Sequence[RoleAssignment], batch_size: int) -> int:
        """Insert assignments in batches, all or nothing."""
        ...

    @abstractmethod
    async def delete_assignment(self, user_id: str, role: str, scope_type: str, scope_id: str) -> int:
        """Delete exactly one assignment row."""
        ...

    # Scope hierarchy

    @abstractmethod
    async def get_parent_scope(self, scope_type: str, scope_id: str) -> Optional[ScopeHierarchy]:
        """Get the parent link of a scope instance."""
        ...

    @abstractmethod
    async def insert_scope_parent(self, hierarchy: ScopeHierarchy) -> int:
        """Insert a parent link, ignoring duplicates."""
        ...

    @abstractmethod
    async def update_assignment_parents(
        self,
        scope_type: str,
        scope_id: str,
        parent_scope_type: str,
        parent_scope_id: str
    ) -> int:
        """Back-fill parent columns on existing assignments of a scope."""
        ...

    @abstractmethod
    async def list_child_scope_ids(
        self,
        user_id: str,
        child_scope_type: str,
        parent_scope_type: str,
        parent_scope_id: str,
        role: Optional[str] = None
    ) -> List[str]:
        """Get distinct child scope ids the user holds roles in under a parent."""
        ...

    # Audit log

    @abstractmethod
    async def insert_audit_entry(self, entry: AuditEntry) -> None:
        """Append an audit entry."""
        ...

    @abstractmethod
    async def list_audit_entries(self, audit_filter: AuditLogFilter) -> List[AuditEntry]:
        """Query audit entries, newest first."""
        ...

    # Error classification

    @abstractmethod
    def is_duplicate(self, error: BaseException) -> bool:
        ...

    @abstractmethod
    def is_not_found(self, error: BaseException) -> bool:
        ...

    @abstractmethod
    def is_foreign_key(self, error: BaseException) -> bool:
        ...

    @abstractmethod
    def is_connection(self, error: BaseException) -> bool:
        ...

    @abstractmethod
    def is_retryable(self, error: BaseException) -> bool:
        ...
