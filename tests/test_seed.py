"""Tests for catalog and admin-role seeding."""

from packages.authz.models import Action, ResourceType
from packages.authz.seed import seed_admin_role, seed_catalog


class TestSeed:
    """Test seed_catalog and seed_admin_role."""

    def test_seed_catalog_defines_every_pair(self, engine):
        permissions = seed_catalog(engine)

        assert len(permissions) == len(ResourceType) * len(Action) == 28
        assert len(engine.list_permissions()) == 28

    def test_seeding_twice_changes_nothing(self, engine):
        first = seed_catalog(engine)
        admin = seed_admin_role(engine)

        second = seed_catalog(engine)
        again = seed_admin_role(engine)

        assert [p.id for p in second] == [p.id for p in first]
        assert again == admin
        assert len(engine.role_permissions(admin.id)) == 28

    def test_admin_can_be_narrowed(self, engine):
        """Narrowed admin keeps only the user-management permissions."""
        seed_catalog(engine)
        admin = seed_admin_role(engine)
        engine.assign_role(42, admin.id)

        engine.revoke_permissions_for_resource_types(admin.id, range(2, 8))

        assert len(engine.role_permissions(admin.id)) == 4
        assert engine.check(42, ResourceType.USER, Action.UPDATE).allowed
        assert not engine.check(42, ResourceType.APPLICATION, Action.SELECT).allowed

    def test_custom_admin_name(self, engine):
        seed_catalog(engine, resource_types=[ResourceType.USER])

        role = seed_admin_role(engine, name="superuser")

        assert role.name == "superuser"
        assert len(engine.role_permissions(role.id)) == 4
