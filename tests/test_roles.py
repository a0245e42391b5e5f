"""Tests for roles, role permissions and principal-role assignment."""

import pytest

from packages.authz.errors import DuplicateRoleNameError, NotFoundError, UnknownUserError
from packages.authz.models import Action, ResourceType


@pytest.fixture
def catalog(engine):
    """Every (resource_type, action) pair for resource types 1..7."""
    return {
        (resource_type, action): engine.define_permission(resource_type, action)
        for resource_type in ResourceType
        for action in Action
    }


class TestRoles:
    """Test role lifecycle."""

    def test_create_and_list_roles(self, engine):
        editor = engine.create_role("editor")
        viewer = engine.create_role("viewer")

        assert [r.name for r in engine.list_roles()] == ["editor", "viewer"]
        assert engine.get_role_by_name("viewer") == viewer
        assert engine.get_role_by_name("missing") is None
        assert editor.id != viewer.id

    def test_duplicate_role_name_rejected(self, engine):
        engine.create_role("editor")

        with pytest.raises(DuplicateRoleNameError) as exc_info:
            engine.create_role("editor")

        assert exc_info.value.code == "duplicate_role_name"
        assert len(engine.list_roles()) == 1

    def test_blank_role_name_rejected(self, engine):
        with pytest.raises(ValueError):
            engine.create_role("   ")

    def test_delete_role_drops_assignments(self, engine, catalog):
        """Deleting a role removes what its holders were granted through it."""
        role = engine.create_role("editor")
        engine.grant_permission(role.id, catalog[(ResourceType.CONTACT, Action.SELECT)].id)
        engine.assign_role(42, role.id)

        engine.delete_role(role.id)

        assert engine.user_roles(42) == []
        assert engine.effective_permissions(42) == set()

    def test_delete_unknown_role_raises(self, engine):
        with pytest.raises(NotFoundError):
            engine.delete_role(12345)


class TestRolePermissions:
    """Test granting permissions to roles."""

    def test_grant_permission_is_idempotent(self, engine, catalog):
        role = engine.create_role("editor")
        permission = catalog[(ResourceType.CONTACT, Action.UPDATE)]

        assert engine.grant_permission(role.id, permission.id) is True
        assert engine.grant_permission(role.id, permission.id) is False
        assert engine.role_permissions(role.id) == [permission]

    def test_grant_unknown_permission_raises(self, engine):
        role = engine.create_role("editor")

        with pytest.raises(NotFoundError):
            engine.grant_permission(role.id, 12345)

    def test_grant_to_unknown_role_raises(self, engine, catalog):
        permission = catalog[(ResourceType.USER, Action.SELECT)]

        with pytest.raises(NotFoundError):
            engine.grant_permission(12345, permission.id)


class TestBulkRevoke:
    """Test revoking a role's permissions by resource type."""

    @pytest.fixture
    def admin(self, engine, catalog):
        role = engine.create_role("admin")
        for permission in catalog.values():
            engine.grant_permission(role.id, permission.id)
        return role

    def test_revoke_leaves_only_unfiltered_types(self, engine, admin):
        """Admin with types 1..7, revoke {2..7}: only type 1 remains."""
        removed = engine.revoke_permissions_for_resource_types(admin.id, range(2, 8))

        assert len(removed) == 24
        assert {p.resource_type for p in removed} == set(range(2, 8))
        remaining = engine.role_permissions(admin.id)
        assert len(remaining) == 4
        assert {p.resource_type for p in remaining} == {ResourceType.USER}

    def test_revoke_again_is_noop(self, engine, admin):
        engine.revoke_permissions_for_resource_types(admin.id, range(2, 8))

        assert engine.revoke_permissions_for_resource_types(admin.id, range(2, 8)) == []
        assert len(engine.role_permissions(admin.id)) == 4

    def test_revoke_does_not_touch_other_roles(self, engine, catalog, admin):
        support = engine.create_role("support")
        contact_select = catalog[(ResourceType.CONTACT, Action.SELECT)]
        engine.grant_permission(support.id, contact_select.id)

        engine.revoke_permissions_for_resource_types(admin.id, [ResourceType.CONTACT])

        assert engine.role_permissions(support.id) == [contact_select]
        assert ResourceType.CONTACT not in {
            p.resource_type for p in engine.role_permissions(admin.id)
        }

    def test_empty_filter_removes_nothing(self, engine, admin):
        assert engine.revoke_permissions_for_resource_types(admin.id, []) == []
        assert len(engine.role_permissions(admin.id)) == 28

    def test_unknown_role_raises(self, engine):
        with pytest.raises(NotFoundError):
            engine.revoke_permissions_for_resource_types(12345, [1])

    def test_revoke_denies_affected_checks(self, engine, admin):
        engine.assign_role(42, admin.id)
        assert engine.check(42, ResourceType.GROUP, Action.REMOVE).allowed

        engine.revoke_permissions_for_resource_types(admin.id, [ResourceType.GROUP])

        assert not engine.check(42, ResourceType.GROUP, Action.REMOVE).allowed
        assert engine.check(42, ResourceType.USER, Action.REMOVE).allowed


class TestAssignment:
    """Test principal-role assignment."""

    def test_assign_is_idempotent(self, engine):
        role = engine.create_role("editor")

        assert engine.assign_role(42, role.id) is True
        assert engine.assign_role(42, role.id) is False
        assert engine.user_roles(42) == [role]

    def test_revoke_role_is_idempotent(self, engine):
        role = engine.create_role("editor")
        engine.assign_role(42, role.id)

        assert engine.revoke_role(42, role.id) is True
        assert engine.revoke_role(42, role.id) is False
        assert engine.user_roles(42) == []

    def test_assign_to_unknown_user_raises(self, engine):
        role = engine.create_role("editor")

        with pytest.raises(UnknownUserError):
            engine.assign_role(999, role.id)

    def test_assign_unknown_role_raises(self, engine):
        with pytest.raises(NotFoundError):
            engine.assign_role(42, 12345)

    def test_effective_permissions_are_union_of_roles(self, engine, catalog):
        reader = engine.create_role("reader")
        writer = engine.create_role("writer")
        select = catalog[(ResourceType.CONTACT, Action.SELECT)]
        update = catalog[(ResourceType.CONTACT, Action.UPDATE)]
        engine.grant_permission(reader.id, select.id)
        engine.grant_permission(writer.id, select.id)
        engine.grant_permission(writer.id, update.id)

        engine.assign_role(42, reader.id)
        engine.assign_role(42, writer.id)

        assert engine.effective_permissions(42) == {select.id, update.id}
