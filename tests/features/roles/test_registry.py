"""Tests for registry construction and lookups."""

import pytest

from neo_roles.core.exceptions import (
    ConfigurationError,
    InvalidPermissionError,
    InvalidRoleError,
    InvalidScopeError,
    is_invalid_role,
    is_invalid_scope,
)
from neo_roles.features.roles.entities import Registry, RegistryBuilder, RoleDefinition


class TestRegistryBuilder:
    """Test fluent registry construction."""

    def test_builds_scopes_and_roles(self, registry):
        assert registry.get_scopes() == ["organization", "project"]
        assert registry.get_scope("organization").get_roles() == ["owner", "admin", "member"]
        assert registry.get_scope("project").parent_scope == "organization"
        assert registry.get_scope("organization").parent_scope is None

    def test_role_definition_contents(self, registry):
        admin = registry.get_role("admin", "organization")

        assert isinstance(admin, RoleDefinition)
        assert admin.scope_name == "organization"
        assert admin.permissions == ("members.*", "settings.*")
        assert admin.can_assign == ("member",)
        assert admin.grants("members.invite")
        assert not admin.grants("projects.create")

    def test_duplicate_permissions_collapse(self):
        registry = (
            RegistryBuilder()
            .define_scope("team").role("member").permissions("a.b", "a.b", "c.d")
            .build()
        )
        assert registry.get_permissions("member", "team") == ("a.b", "c.d")

    def test_duplicate_scope_rejected(self):
        builder = RegistryBuilder()
        builder.define_scope("team").role("member")
        builder.define_scope("team").role("owner")

        with pytest.raises(ConfigurationError):
            builder.build()

    def test_duplicate_role_rejected(self):
        with pytest.raises(ConfigurationError) as exc_info:
            RegistryBuilder().define_scope("team").role("member").role("member").build()

        assert exc_info.value.role == "member"
        assert exc_info.value.scope_type == "team"

    def test_unknown_assignable_role_rejected(self):
        with pytest.raises(ConfigurationError):
            RegistryBuilder().define_scope("team").role("lead").can_assign("ghost").build()

    def test_unknown_parent_rejected(self):
        with pytest.raises(ConfigurationError):
            RegistryBuilder().define_scope("project").parent_scope("organization").role("lead").build()

    def test_invalid_permission_rejected(self):
        with pytest.raises(InvalidPermissionError):
            RegistryBuilder().define_scope("team").role("member").permissions("files").build()

    def test_registry_is_read_only(self, registry):
        scope = registry.get_scope("organization")

        with pytest.raises(TypeError):
            scope.roles["intruder"] = RoleDefinition(name="intruder", scope_name="organization")
        with pytest.raises(AttributeError):
            scope.name = "renamed"


class TestRegistryValidation:
    """Test scope and role validation."""

    def test_validate_role_returns_definition(self, registry):
        assert registry.validate_role("member", "organization").name == "member"

    def test_validate_role_unknown_scope(self, registry):
        with pytest.raises(InvalidScopeError) as exc_info:
            registry.validate_role("member", "galaxy")

        assert is_invalid_scope(exc_info.value)
        assert exc_info.value.scope_type == "galaxy"

    def test_validate_role_unknown_role(self, registry):
        with pytest.raises(InvalidRoleError) as exc_info:
            registry.validate_role("emperor", "organization")

        assert is_invalid_role(exc_info.value)
        assert exc_info.value.details["role"] == "emperor"

    def test_validate_scope(self, registry):
        assert registry.validate_scope("project").name == "project"
        with pytest.raises(InvalidScopeError):
            registry.validate_scope("galaxy")

    def test_lookups_of_undefined_entries(self, registry):
        assert registry.get_scope("galaxy") is None
        assert registry.get_role("emperor", "organization") is None
        assert registry.get_role("admin", "galaxy") is None
        assert registry.get_permissions("emperor", "organization") == ()

    def test_can_role_assign(self, registry):
        assert registry.can_role_assign("admin", "member", "organization")
        assert not registry.can_role_assign("admin", "admin", "organization")
        assert registry.can_role_assign("owner", "admin", "organization")
        assert not registry.can_role_assign("member", "member", "organization")
        assert not registry.can_role_assign("ghost", "member", "organization")


class TestRegistryFromDict:
    """Test building a registry from configuration data."""

    def test_from_dict_matches_builder(self):
        registry = Registry.from_dict({
            "organization": {
                "roles": {
                    "admin": {"permissions": ["members.*"], "can_assign": ["member"]},
                    "member": {"permissions": ["projects.read"]},
                },
            },
            "project": {
                "parent": "organization",
                "roles": {"viewer": {"permissions": ["files.read"]}},
            },
        })

        assert "organization" in registry
        assert len(registry) == 2
        assert registry.get_scope("project").parent_scope == "organization"
        assert registry.can_role_assign("admin", "member", "organization")
        assert registry.get_permissions("viewer", "project") == ("files.read",)

    def test_from_dict_validates(self):
        with pytest.raises(ConfigurationError):
            Registry.from_dict({"project": {"parent": "organization", "roles": {}}})
