"""Authorization engine.

Composes the permission catalog, role store and authorization ledger
behind the interface offered to resource servers and the front-end.
"""

import logging
from collections.abc import Callable, Iterable
from datetime import datetime
from enum import Enum

from packages.authz.cache import PermissionCache
from packages.authz.catalog import PermissionCatalog, normalize_key
from packages.authz.config import Settings, get_settings
from packages.authz.directory import Directory
from packages.authz.errors import UnknownClientError, UnknownScopeError, UnknownUserError
from packages.authz.ledger import AuthorizationLedger, utcnow
from packages.authz.models import (
    Authorization,
    AuthzDecision,
    Decision,
    Permission,
    Role,
)
from packages.authz.roles import RoleStore
from packages.authz.storage import AuthzStore, SqlAuthzStore, StoreTransaction

logger = logging.getLogger(__name__)


class AuthzEngine:
    """RBAC permission checks plus the consent ledger.

    Check flow:
    1. Resolve (resource_type, action) in the catalog; unknown pairs deny
    2. Union the permissions of every role the user holds
    3. Allow iff the resolved permission is in that set

    Usage:
        engine = AuthzEngine(store, directory)
        role = engine.create_role("editor")
        engine.assign_role(42, role.id)

        decision = engine.check(42, ResourceType.CONTACT, Action.SELECT)
        if decision.allowed:
            # Proceed
        else:
            # Reject with decision.reason
    """

    def __init__(
        self,
        store: AuthzStore,
        directory: Directory,
        settings: Settings | None = None,
        clock: Callable[[], datetime] = utcnow,
        cache: PermissionCache | None = None,
    ):
        """Initialize authorization engine.

        Args:
            store: Relational store holding all durable state
            directory: Collaborator answering user, client and scope existence
            settings: Engine settings (defaults from environment)
            clock: Source of ledger timestamps
            cache: Effective-permission cache; built from settings if omitted
        """
        settings = settings or get_settings()
        self.store = store
        self.directory = directory
        self.settings = settings

        self.catalog = PermissionCatalog(store)
        self.roles = RoleStore(store, retry_attempts=settings.grant_retry_attempts)
        self.ledger = AuthorizationLedger(
            store, clock=clock, retry_attempts=settings.grant_retry_attempts
        )

        if cache is None and settings.cache_enabled and settings.cache_ttl_seconds > 0:
            cache = PermissionCache(
                ttl_seconds=settings.cache_ttl_seconds,
                max_entries=settings.cache_max_entries,
            )
        self.cache = cache

        logger.info("AuthzEngine initialized (cache=%s)", "on" if cache else "off")

    # =========================================================================
    # Permission checks
    # =========================================================================

    def check(self, user_id: int, resource_type: int, action: str | Enum) -> AuthzDecision:
        """Check whether a user may perform an action on a resource type.

        Resolution and role lookup run in one transaction, so a check never
        mixes states from before and after a concurrent mutation.
        """
        resource_type, action = normalize_key(resource_type, action)

        with self.store.transaction() as tx:
            permission = self.catalog.find(resource_type, action, tx=tx)
            if permission is None:
                granted: set[int] | frozenset[int] = frozenset()
            else:
                granted = self._effective_permissions(user_id, tx)

        if permission is None:
            logger.info(
                "Access DENIED (unknown permission): user=%d resource_type=%d action=%s",
                user_id, resource_type, action,
            )
            return AuthzDecision(
                decision=Decision.DENY,
                user_id=user_id,
                resource_type=resource_type,
                action=action,
                reason="Permission is not defined in the catalog",
            )

        if permission.id in granted:
            logger.debug(
                "Access ALLOWED: user=%d permission=%d", user_id, permission.id
            )
            return AuthzDecision(
                decision=Decision.ALLOW,
                user_id=user_id,
                resource_type=resource_type,
                action=action,
                permission_id=permission.id,
                reason="Granted by role",
            )

        logger.info(
            "Access DENIED (default): user=%d permission=%d", user_id, permission.id
        )
        return AuthzDecision(
            decision=Decision.DENY,
            user_id=user_id,
            resource_type=resource_type,
            action=action,
            permission_id=permission.id,
            reason="No assigned role grants this permission",
        )

    def check_permission(
        self, user_id: int, resource_type: int, action: str | Enum
    ) -> Decision:
        """Allow or Deny, without the explanation."""
        return self.check(user_id, resource_type, action).decision

    def effective_permissions(self, user_id: int) -> set[int]:
        """Permission ids granted to a user through all held roles."""
        with self.store.transaction() as tx:
            return set(self._effective_permissions(user_id, tx))

    def _effective_permissions(
        self, user_id: int, tx: StoreTransaction
    ) -> set[int] | frozenset[int]:
        if self.cache is None:
            return self.roles.effective_permissions(user_id, tx=tx)

        cached = self.cache.get(user_id)
        if cached is not None:
            return cached

        generation = self.cache.generation
        loaded = self.roles.effective_permissions(user_id, tx=tx)
        self.cache.put(user_id, loaded, generation)
        return loaded

    def _invalidate(self, user_id: int | None = None) -> None:
        if self.cache is not None:
            self.cache.invalidate(user_id)

    # =========================================================================
    # Authorization ledger
    # =========================================================================

    def _validate_triple(self, user_id: int, client_id: int, scope_id: int) -> None:
        if not self.directory.user_exists(user_id):
            raise UnknownUserError(user_id)
        if not self.directory.client_exists(client_id):
            raise UnknownClientError(client_id)
        if not self.directory.scope_exists(scope_id, client_id):
            raise UnknownScopeError(scope_id, client_id)

    def grant_authorization(
        self, user_id: int, client_id: int, scope_id: int
    ) -> Authorization:
        """Record that a user grants a client one of its scopes.

        Raises:
            UnknownUserError / UnknownClientError / UnknownScopeError
            ConflictRetryExhaustedError: Transient; safe to retry
        """
        self._validate_triple(user_id, client_id, scope_id)
        return self.ledger.grant(user_id, client_id, scope_id)

    def revoke_authorization(
        self, user_id: int, client_id: int, scope_id: int
    ) -> Authorization:
        """Revoke a grant (soft delete).

        Raises:
            UnknownUserError / UnknownClientError / UnknownScopeError
            NotFoundError: If the triple was never granted
        """
        self._validate_triple(user_id, client_id, scope_id)
        return self.ledger.revoke(user_id, client_id, scope_id)

    def list_authorizations(self, user_id: int) -> list[Authorization]:
        """Active grants of a user, oldest first."""
        return self.ledger.list_active(user_id)

    def is_authorized(self, user_id: int, client_id: int, scope_id: int) -> bool:
        return self.ledger.is_authorized(user_id, client_id, scope_id)

    def purge_authorization(self, user_id: int, client_id: int, scope_id: int) -> bool:
        """Administrative hard delete of a ledger row."""
        return self.ledger.purge(user_id, client_id, scope_id)

    # =========================================================================
    # Administration
    # =========================================================================

    def define_permission(self, resource_type: int, action: str | Enum) -> Permission:
        return self.catalog.define(resource_type, action)

    def list_permissions(self) -> list[Permission]:
        return self.catalog.list_permissions()

    def delete_permission(self, permission_id: int) -> None:
        self.catalog.delete(permission_id)
        self._invalidate()

    def create_role(self, name: str) -> Role:
        return self.roles.create_role(name)

    def list_roles(self) -> list[Role]:
        return self.roles.list_roles()

    def get_role_by_name(self, name: str) -> Role | None:
        return self.roles.find_role(name)

    def delete_role(self, role_id: int) -> None:
        self.roles.delete_role(role_id)
        self._invalidate()

    def grant_permission(self, role_id: int, permission_id: int) -> bool:
        added = self.roles.grant_permission(role_id, permission_id)
        if added:
            self._invalidate()
        return added

    def role_permissions(self, role_id: int) -> list[Permission]:
        return self.roles.role_permissions(role_id)

    def revoke_permissions_for_resource_types(
        self, role_id: int, resource_types: Iterable[int]
    ) -> list[Permission]:
        """Bulk-revoke a role's permissions on a set of resource types."""
        removed = self.roles.revoke_permissions(role_id, resource_types)
        if removed:
            self._invalidate()
        return removed

    def assign_role(self, user_id: int, role_id: int) -> bool:
        """Assign a role to a known user (no-op if already held)."""
        if not self.directory.user_exists(user_id):
            raise UnknownUserError(user_id)
        assigned = self.roles.assign_role(user_id, role_id)
        if assigned:
            self._invalidate(user_id)
        return assigned

    def revoke_role(self, user_id: int, role_id: int) -> bool:
        revoked = self.roles.revoke_role(user_id, role_id)
        if revoked:
            self._invalidate(user_id)
        return revoked

    def user_roles(self, user_id: int) -> list[Role]:
        return self.roles.user_roles(user_id)


# Process-wide instance
_authz_engine: AuthzEngine | None = None


def init_authz_engine(
    directory: Directory,
    settings: Settings | None = None,
    store: AuthzStore | None = None,
) -> AuthzEngine:
    """Build the process-wide engine (SQL store from settings by default)."""
    global _authz_engine
    settings = settings or get_settings()
    if store is None:
        store = SqlAuthzStore.from_settings(settings)
    _authz_engine = AuthzEngine(store, directory, settings=settings)
    return _authz_engine


def get_authz_engine() -> AuthzEngine:
    """Get the process-wide engine."""
    if _authz_engine is None:
        raise RuntimeError("Authorization engine not initialized; call init_authz_engine()")
    return _authz_engine
