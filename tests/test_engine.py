"""Tests for permission checks and the process-wide engine."""

import pytest

from packages.authz import engine as engine_module
from packages.authz.cache import PermissionCache
from packages.authz.config import Settings
from packages.authz.directory import Directory, StaticDirectory
from packages.authz.engine import AuthzEngine, get_authz_engine, init_authz_engine
from packages.authz.errors import (
    DuplicatePermissionError,
    NotFoundError,
    UnknownScopeError,
)
from packages.authz.models import Action, Decision, ResourceType
from packages.authz.storage import InMemoryAuthzStore


class TestPermissionCheck:
    """Test the permission check flow."""

    def test_undefined_permission_denies(self, engine):
        """Pairs missing from the catalog deny, even for admins."""
        decision = engine.check(42, ResourceType.CONTACT, Action.SELECT)

        assert decision.decision == Decision.DENY
        assert decision.permission_id is None
        assert "not defined" in decision.reason

    def test_default_deny_without_roles(self, engine):
        permission = engine.define_permission(ResourceType.CONTACT, Action.SELECT)

        decision = engine.check(42, ResourceType.CONTACT, Action.SELECT)

        assert not decision.allowed
        assert decision.permission_id == permission.id

    def test_assign_then_revoke_role_flips_decision(self, engine):
        """Role changes show up in the very next check."""
        permission = engine.define_permission(ResourceType.CONTACT, Action.SELECT)
        role = engine.create_role("support")
        engine.grant_permission(role.id, permission.id)

        engine.assign_role(42, role.id)
        assert engine.check_permission(42, ResourceType.CONTACT, Action.SELECT) == Decision.ALLOW

        engine.revoke_role(42, role.id)
        assert engine.check_permission(42, ResourceType.CONTACT, Action.SELECT) == Decision.DENY

    def test_plain_values_match_enum_members(self, engine):
        """Callers may pass raw ints and strings."""
        permission = engine.define_permission(ResourceType.PROFILE, Action.UPDATE)
        role = engine.create_role("owner")
        engine.grant_permission(role.id, permission.id)
        engine.assign_role(42, role.id)

        assert engine.check(42, 3, "update").allowed

    def test_other_actions_stay_denied(self, engine):
        select = engine.define_permission(ResourceType.CONTACT, Action.SELECT)
        engine.define_permission(ResourceType.CONTACT, Action.REMOVE)
        role = engine.create_role("reader")
        engine.grant_permission(role.id, select.id)
        engine.assign_role(42, role.id)

        assert not engine.check(42, ResourceType.CONTACT, Action.REMOVE).allowed
        assert not engine.check(43, ResourceType.CONTACT, Action.SELECT).allowed

    def test_empty_action_rejected(self, engine):
        with pytest.raises(ValueError):
            engine.check(42, ResourceType.CONTACT, "")


class TestCatalogAdministration:
    """Test permission definitions."""

    def test_duplicate_permission_rejected(self, engine):
        engine.define_permission(ResourceType.SCOPE, Action.CREATE)

        with pytest.raises(DuplicatePermissionError):
            engine.define_permission(5, "create")

    def test_delete_permission_removes_grants(self, engine):
        permission = engine.define_permission(ResourceType.SCOPE, Action.CREATE)
        role = engine.create_role("developer")
        engine.grant_permission(role.id, permission.id)

        engine.delete_permission(permission.id)

        assert engine.list_permissions() == []
        assert engine.role_permissions(role.id) == []

    def test_delete_unknown_permission_raises(self, engine):
        with pytest.raises(NotFoundError):
            engine.delete_permission(12345)


class TestCachedChecks:
    """Test checks with the effective-permission cache enabled."""

    @pytest.fixture
    def cached_engine(self, directory, clock):
        settings = Settings(_env_file=None, cache_enabled=True, cache_ttl_seconds=300)
        return AuthzEngine(InMemoryAuthzStore(), directory, settings=settings, clock=clock)

    def test_cache_built_from_settings(self, cached_engine):
        assert isinstance(cached_engine.cache, PermissionCache)
        assert cached_engine.cache.ttl_seconds == 300

    def test_zero_ttl_disables_cache(self, directory):
        settings = Settings(_env_file=None, cache_enabled=True, cache_ttl_seconds=0)
        engine = AuthzEngine(InMemoryAuthzStore(), directory, settings=settings)

        assert engine.cache is None

    def test_mutations_are_visible_immediately(self, cached_engine):
        permission = cached_engine.define_permission(ResourceType.USER, Action.SELECT)
        role = cached_engine.create_role("viewer")

        # Warm the cache with the empty set
        assert not cached_engine.check(42, ResourceType.USER, Action.SELECT).allowed

        cached_engine.grant_permission(role.id, permission.id)
        cached_engine.assign_role(42, role.id)
        assert cached_engine.check(42, ResourceType.USER, Action.SELECT).allowed

        cached_engine.revoke_permissions_for_resource_types(role.id, [ResourceType.USER])
        assert not cached_engine.check(42, ResourceType.USER, Action.SELECT).allowed

    def test_repeated_checks_hit_cache(self, cached_engine):
        cached_engine.define_permission(ResourceType.USER, Action.SELECT)

        cached_engine.check(42, ResourceType.USER, Action.SELECT)
        cached_engine.check(42, ResourceType.USER, Action.SELECT)

        stats = cached_engine.cache.stats()
        assert stats.total_hits == 1
        assert stats.total_misses == 1


class OddScopesDirectory(Directory):
    """Every user and client exists; only odd scope ids do."""

    def user_exists(self, user_id: int) -> bool:
        return True

    def client_exists(self, client_id: int) -> bool:
        return True

    def scope_exists(self, scope_id: int, client_id: int) -> bool:
        return scope_id % 2 == 1


class TestDirectory:
    """Test the directory collaborator."""

    def test_static_directory_is_a_directory(self, directory):
        assert isinstance(directory, Directory)
        assert isinstance(StaticDirectory(), Directory)

    def test_engine_uses_custom_directory(self, settings, clock):
        engine = AuthzEngine(
            InMemoryAuthzStore(), OddScopesDirectory(), settings=settings, clock=clock
        )

        assert engine.grant_authorization(1, 2, 3).is_active
        with pytest.raises(UnknownScopeError):
            engine.grant_authorization(1, 2, 4)


class TestProcessWideEngine:
    """Test init_authz_engine / get_authz_engine."""

    @pytest.fixture(autouse=True)
    def reset_engine(self, monkeypatch):
        monkeypatch.setattr(engine_module, "_authz_engine", None)

    def test_get_before_init_raises(self):
        with pytest.raises(RuntimeError):
            get_authz_engine()

    def test_init_with_explicit_store(self, directory, settings):
        store = InMemoryAuthzStore()

        engine = init_authz_engine(directory, settings=settings, store=store)

        assert get_authz_engine() is engine
        assert engine.store is store

    def test_init_defaults_to_sql_store(self, directory, tmp_path):
        settings = Settings(_env_file=None, database_url=f"sqlite:///{tmp_path / 'db' / 'authz.db'}")

        engine = init_authz_engine(directory, settings=settings)
        engine.store.create_schema()
        engine.define_permission(ResourceType.USER, Action.CREATE)

        assert (tmp_path / "db" / "authz.db").exists()
        assert len(get_authz_engine().list_permissions()) == 1
