"""Scope and role registry.

The registry declares, per scope type, which roles exist, which permission
patterns each role grants and which roles a holder may assign to others. It
is assembled once at startup with :class:`RegistryBuilder` and is immutable
afterwards, so it can be shared freely between tasks and threads.

Example:

    registry = (
        RegistryBuilder()
        .define_scope("organization")
            .role("owner").permissions("*").can_assign("*")
            .role("admin").permissions("members.*", "settings.read").can_assign("member")
            .role("member").permissions("projects.read")
        .define_scope("project").parent_scope("organization")
            .role("lead").permissions("tasks.*").can_assign("contributor")
            .role("contributor").permissions("tasks.read", "tasks.update")
        .build()
    )
"""

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional, Tuple

from ....config.constants import WILDCARD
from ....core.exceptions import ConfigurationError, InvalidRoleError, InvalidScopeError
from .permission import DEFAULT_MATCHER


@dataclass(frozen=True)
class RoleDefinition:
    """A role within one scope type."""

    name: str
    scope_name: str
    permissions: Tuple[str, ...] = ()
    can_assign: Tuple[str, ...] = ()

    def can_assign_role(self, target_role: str) -> bool:
        return WILDCARD in self.can_assign or target_role in self.can_assign

    def grants(self, permission: str) -> bool:
        return DEFAULT_MATCHER.match_any(self.permissions, permission)


@dataclass(frozen=True)
class ScopeDefinition:
    """A scope type and the roles available in it."""

    name: str
    parent_scope: Optional[str] = None
    roles: Mapping[str, RoleDefinition] = field(
        default_factory=lambda: MappingProxyType({}), hash=False
    )

    def get_role(self, name: str) -> Optional[RoleDefinition]:
        return self.roles.get(name)

    def get_roles(self) -> List[str]:
        """Role names in declaration order."""
        return list(self.roles)

    def has_role(self, name: str) -> bool:
        return name in self.roles


class Registry:
    """Immutable set of scope definitions."""

    def __init__(self, scopes: Mapping[str, ScopeDefinition]):
        self._scopes = MappingProxyType(dict(scopes))

    def __contains__(self, scope_type: str) -> bool:
        return scope_type in self._scopes

    def __len__(self) -> int:
        return len(self._scopes)

    def __repr__(self) -> str:
        return f"Registry(scopes={list(self._scopes)})"

    def get_scope(self, scope_type: str) -> Optional[ScopeDefinition]:
        return self._scopes.get(scope_type)

    def get_scopes(self) -> List[str]:
        """Defined scope type names in declaration order."""
        return list(self._scopes)

    def validate_scope(self, scope_type: str) -> ScopeDefinition:
        """Return the scope definition or raise InvalidScopeError."""
        scope = self._scopes.get(scope_type)
        if scope is None:
            raise InvalidScopeError(
                f"Scope type '{scope_type}' is not defined",
                scope_type=scope_type,
            )
        return scope

    def validate_role(self, role: str, scope_type: str) -> RoleDefinition:
        """Return the role definition or raise InvalidScopeError / InvalidRoleError."""
        scope = self.validate_scope(scope_type)
        role_def = scope.get_role(role)
        if role_def is None:
            raise InvalidRoleError(
                f"Role '{role}' is not defined for scope '{scope_type}'",
                scope_type=scope_type,
                role=role,
            )
        return role_def

    def get_role(self, role: str, scope_type: str) -> Optional[RoleDefinition]:
        scope = self._scopes.get(scope_type)
        if scope is None:
            return None
        return scope.get_role(role)

    def get_permissions(self, role: str, scope_type: str) -> Tuple[str, ...]:
        """Permission patterns of a role; empty when the role is undefined."""
        role_def = self.get_role(role, scope_type)
        return role_def.permissions if role_def else ()

    def can_role_assign(self, assigner_role: str, target_role: str, scope_type: str) -> bool:
        role_def = self.get_role(assigner_role, scope_type)
        return role_def is not None and role_def.can_assign_role(target_role)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Registry":
        """Build a registry from plain configuration data.

        Expected shape::

            {
                "organization": {
                    "roles": {
                        "admin": {"permissions": ["members.*"], "can_assign": ["member"]},
                        "member": {"permissions": ["projects.read"]},
                    },
                },
                "project": {"parent": "organization", "roles": {...}},
            }
        """
        builder = RegistryBuilder()
        for scope_name, scope_data in data.items():
            scope_data = scope_data or {}
            scope_builder = builder.define_scope(scope_name)
            if scope_data.get("parent"):
                scope_builder.parent_scope(scope_data["parent"])
            for role_name, role_data in (scope_data.get("roles") or {}).items():
                role_data = role_data or {}
                (
                    scope_builder.role(role_name)
                    .permissions(*role_data.get("permissions", ()))
                    .can_assign(*role_data.get("can_assign", ()))
                )
        return builder.build()


class RegistryBuilder:
    """Fluent builder producing an immutable :class:`Registry`."""

    def __init__(self):
        self._scopes: List["ScopeBuilder"] = []

    def define_scope(self, name: str) -> "ScopeBuilder":
        scope = ScopeBuilder(self, name)
        self._scopes.append(scope)
        return scope

    def build(self) -> Registry:
        """Validate every declaration and freeze the result.

        Raises:
            ConfigurationError: Duplicate scope or role, unknown parent scope or
                an assignable role that is not defined in the same scope.
            InvalidPermissionError: A malformed permission pattern.
        """
        scopes: Dict[str, ScopeDefinition] = {}
        for scope_builder in self._scopes:
            if not scope_builder.name:
                raise ConfigurationError("Scope name cannot be empty")
            if scope_builder.name in scopes:
                raise ConfigurationError(
                    f"Scope '{scope_builder.name}' is defined more than once",
                    scope_type=scope_builder.name,
                )
            scopes[scope_builder.name] = scope_builder._freeze()

        for scope in scopes.values():
            if scope.parent_scope is not None and scope.parent_scope not in scopes:
                raise ConfigurationError(
                    f"Scope '{scope.name}' declares unknown parent scope '{scope.parent_scope}'",
                    scope_type=scope.name,
                )

        return Registry(scopes)


class ScopeBuilder:
    """Builder for one scope type."""

    def __init__(self, registry_builder: RegistryBuilder, name: str):
        self._registry_builder = registry_builder
        self.name = name
        self._parent_scope: Optional[str] = None
        self._roles: List["RoleBuilder"] = []

    def parent_scope(self, parent_name: str) -> "ScopeBuilder":
        """Declare the parent scope type used for hierarchy denormalization.

        A parent grants no access by itself; it only enables parent lookups
        and descendant queries.
        """
        self._parent_scope = parent_name
        return self

    def role(self, name: str) -> "RoleBuilder":
        role = RoleBuilder(self, name)
        self._roles.append(role)
        return role

    def define_scope(self, name: str) -> "ScopeBuilder":
        return self._registry_builder.define_scope(name)

    def build(self) -> Registry:
        return self._registry_builder.build()

    def _freeze(self) -> ScopeDefinition:
        roles: Dict[str, RoleDefinition] = {}
        for role_builder in self._roles:
            if not role_builder.name:
                raise ConfigurationError("Role name cannot be empty", scope_type=self.name)
            if role_builder.name in roles:
                raise ConfigurationError(
                    f"Role '{role_builder.name}' is defined more than once in scope '{self.name}'",
                    scope_type=self.name,
                    role=role_builder.name,
                )
            roles[role_builder.name] = role_builder._freeze()

        for role_def in roles.values():
            for assignable in role_def.can_assign:
                if assignable != WILDCARD and assignable not in roles:
                    raise ConfigurationError(
                        f"Role '{role_def.name}' can assign undefined role '{assignable}' in scope '{self.name}'",
                        scope_type=self.name,
                        role=role_def.name,
                    )

        return ScopeDefinition(
            name=self.name,
            parent_scope=self._parent_scope,
            roles=MappingProxyType(roles),
        )


class RoleBuilder:
    """Builder for one role; chains back to its scope and registry builders."""

    def __init__(self, scope_builder: ScopeBuilder, name: str):
        self._scope_builder = scope_builder
        self.name = name
        self._permissions: List[str] = []
        self._can_assign: List[str] = []

    def permissions(self, *patterns: str) -> "RoleBuilder":
        self._permissions.extend(patterns)
        return self

    def can_assign(self, *roles: str) -> "RoleBuilder":
        self._can_assign.extend(roles)
        return self

    def role(self, name: str) -> "RoleBuilder":
        return self._scope_builder.role(name)

    def define_scope(self, name: str) -> ScopeBuilder:
        return self._scope_builder.define_scope(name)

    def build(self) -> Registry:
        return self._scope_builder.build()

    def _freeze(self) -> RoleDefinition:
        for pattern in self._permissions:
            DEFAULT_MATCHER.validate(pattern)
        return RoleDefinition(
            name=self.name,
            scope_name=self._scope_builder.name,
            permissions=tuple(dict.fromkeys(self._permissions)),
            can_assign=tuple(dict.fromkeys(self._can_assign)),
        )
