"""Role assignment entities.

Maps to the ``role_assignments`` and ``scope_hierarchy`` tables. An
assignment with scope id ``*`` applies to every instance of its scope type.
"""

from dataclasses import dataclass
from datetime import datetime
from types import MappingProxyType
from typing import Dict, FrozenSet, Iterable, List, Optional, Tuple

from ....config.constants import WILDCARD
from ....core.value_objects import Scope


@dataclass(frozen=True)
class RoleAssignment:
    """A user holding one role in one scope."""

    user_id: str
    role: str
    scope_type: str
    scope_id: str
    parent_scope_type: Optional[str] = None
    parent_scope_id: Optional[str] = None
    id: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def scope(self) -> Scope:
        return Scope(self.scope_type, self.scope_id)

    @property
    def is_wildcard(self) -> bool:
        return self.scope_id == WILDCARD

    def key(self) -> Tuple[str, str, str, str]:
        """Uniqueness key (user, role, scope type, scope id)."""
        return (self.user_id, self.role, self.scope_type, self.scope_id)

    def with_parent(self, parent_scope_type: str, parent_scope_id: str) -> "RoleAssignment":
        return RoleAssignment(
            user_id=self.user_id,
            role=self.role,
            scope_type=self.scope_type,
            scope_id=self.scope_id,
            parent_scope_type=parent_scope_type,
            parent_scope_id=parent_scope_id,
            id=self.id,
            created_at=self.created_at,
            updated_at=self.updated_at,
        )


@dataclass(frozen=True)
class RoleRevocation:
    """One row of a bulk revocation."""

    user_id: str
    role: str
    scope_type: str
    scope_id: str


@dataclass(frozen=True)
class ScopeHierarchy:
    """Parent link of a concrete scope instance."""

    scope_type: str
    scope_id: str
    parent_scope_type: str
    parent_scope_id: str
    id: Optional[str] = None
    created_at: Optional[datetime] = None

    @property
    def parent(self) -> Scope:
        return Scope(self.parent_scope_type, self.parent_scope_id)


class UserRoles:
    """All role assignments of one user, indexed by scope.

    Built per check from the store and never mutated afterwards.
    """

    def __init__(self, user_id: str, assignments: Iterable[RoleAssignment] = ()):
        self.user_id = user_id
        self._assignments: Tuple[RoleAssignment, ...] = tuple(assignments)

        by_scope: Dict[Tuple[str, str], List[str]] = {}
        for assignment in self._assignments:
            roles = by_scope.setdefault((assignment.scope_type, assignment.scope_id), [])
            if assignment.role not in roles:
                roles.append(assignment.role)

        self._by_scope = MappingProxyType(
            {key: tuple(roles) for key, roles in by_scope.items()}
        )

    def __len__(self) -> int:
        return len(self._assignments)

    def __repr__(self) -> str:
        return f"UserRoles(user_id={self.user_id!r}, assignments={len(self._assignments)})"

    @property
    def assignments(self) -> Tuple[RoleAssignment, ...]:
        return self._assignments

    @property
    def is_empty(self) -> bool:
        return not self._assignments

    def get_roles(self, scope_type: str, scope_id: str) -> List[str]:
        """Roles held in the scope, including wildcard assignments of its type.

        Querying the id ``*`` returns the roles held in any scope of the type.
        """
        if scope_id == WILDCARD:
            keys = [key for key in self._by_scope if key[0] == scope_type]
        else:
            keys = [(scope_type, scope_id), (scope_type, WILDCARD)]

        roles: List[str] = []
        for key in keys:
            for role in self._by_scope.get(key, ()):
                if role not in roles:
                    roles.append(role)
        return roles

    def get_exact_roles(self, scope_type: str, scope_id: str) -> List[str]:
        """Roles held in exactly this scope, ignoring wildcard assignments."""
        return list(self._by_scope.get((scope_type, scope_id), ()))

    def has_role(self, role: str, scope_type: str, scope_id: str) -> bool:
        return role in self.get_roles(scope_type, scope_id)

    def has_exact_role(self, role: str, scope_type: str, scope_id: str) -> bool:
        return role in self._by_scope.get((scope_type, scope_id), ())

    def get_scopes(self, scope_type: Optional[str] = None) -> List[Scope]:
        """Scopes the user holds any role in, optionally limited to one type."""
        return [
            Scope(stype, sid) for stype, sid in self._by_scope
            if scope_type is None or stype == scope_type
        ]

    def role_names(self) -> FrozenSet[str]:
        return frozenset(a.role for a in self._assignments)
