"""Role store and principal-role assignment.

Roles own permissions through role_permission rows; users hold roles
through user_role rows. Assignment, revocation and permission grants are
idempotent.
"""

import logging
from collections.abc import Iterable

from packages.authz.errors import DuplicateRoleNameError, NotFoundError
from packages.authz.models import Permission, Role
from packages.authz.storage import (
    AuthzStore,
    StoreTransaction,
    UniqueViolation,
    open_transaction,
    run_with_retry,
)

logger = logging.getLogger(__name__)


def _require_role(tx: StoreTransaction, role_id: int) -> Role:
    role = tx.get_role(role_id)
    if role is None:
        raise NotFoundError("role", role_id)
    return role


class RoleStore:
    """Roles, their permissions, and who holds them."""

    def __init__(self, store: AuthzStore, retry_attempts: int = 3):
        self.store = store
        self.retry_attempts = retry_attempts

    # =========================================================================
    # Roles
    # =========================================================================

    def create_role(self, name: str) -> Role:
        """Create a role.

        Raises:
            DuplicateRoleNameError: If the name is taken
        """
        name = name.strip()
        if not name:
            raise ValueError("Role name must not be empty")

        try:
            with self.store.transaction() as tx:
                if tx.find_role(name) is not None:
                    raise DuplicateRoleNameError(name)
                role = tx.insert_role(name)
        except UniqueViolation as exc:
            raise DuplicateRoleNameError(name) from exc

        logger.info("Created role %d: %s", role.id, name)
        return role

    def get_role(self, role_id: int) -> Role | None:
        with self.store.transaction() as tx:
            return tx.get_role(role_id)

    def find_role(self, name: str) -> Role | None:
        with self.store.transaction() as tx:
            return tx.find_role(name)

    def list_roles(self) -> list[Role]:
        with self.store.transaction() as tx:
            return tx.list_roles()

    def delete_role(self, role_id: int) -> None:
        """Delete a role together with its grants and assignments."""
        with self.store.transaction() as tx:
            if not tx.delete_role(role_id):
                raise NotFoundError("role", role_id)
        logger.info("Deleted role %d", role_id)

    # =========================================================================
    # Role permissions
    # =========================================================================

    def grant_permission(self, role_id: int, permission_id: int) -> bool:
        """Give a role a permission.

        Returns:
            True if the grant was added, False if the role already held it
        """
        def work(tx: StoreTransaction) -> bool:
            _require_role(tx, role_id)
            if tx.get_permission(permission_id) is None:
                raise NotFoundError("permission", permission_id)
            held = {p.id for p in tx.role_permissions(role_id)}
            if permission_id in held:
                return False
            tx.insert_role_permission(role_id, permission_id)
            return True

        added = run_with_retry(
            self.store, work, ("role_permission", role_id, permission_id), self.retry_attempts
        )
        if added:
            logger.info("Granted permission %d to role %d", permission_id, role_id)
        return added

    def role_permissions(self, role_id: int) -> list[Permission]:
        with self.store.transaction() as tx:
            _require_role(tx, role_id)
            return tx.role_permissions(role_id)

    def revoke_permissions(
        self, role_id: int, resource_types: Iterable[int]
    ) -> list[Permission]:
        """Strip a role of every permission on the given resource types.

        Computes the role's permissions whose resource type is in the filter
        against a locked snapshot and deletes exactly those join rows in one
        batch. Other resource types and other roles are untouched. Running
        it again with the same filter removes nothing.

        Returns:
            The permissions that were removed
        """
        wanted = {int(resource_type) for resource_type in resource_types}

        with self.store.transaction() as tx:
            _require_role(tx, role_id)
            if not wanted:
                return []
            held = tx.role_permissions(role_id, lock=True)
            doomed = [p for p in held if p.resource_type in wanted]
            removed = tx.delete_role_permissions(role_id, {p.id for p in doomed})

        if removed:
            logger.info(
                "Revoked %d permissions from role %d for resource types %s",
                removed, role_id, sorted(wanted),
            )
        else:
            logger.debug(
                "No permissions to revoke from role %d for resource types %s",
                role_id, sorted(wanted),
            )
        return doomed

    # =========================================================================
    # Principal-role assignment
    # =========================================================================

    def assign_role(self, user_id: int, role_id: int) -> bool:
        """Assign a role to a user.

        Returns:
            True if assigned, False if the user already held the role
        """
        def work(tx: StoreTransaction) -> bool:
            _require_role(tx, role_id)
            if role_id in tx.user_role_ids(user_id):
                return False
            tx.insert_user_role(user_id, role_id)
            return True

        assigned = run_with_retry(
            self.store, work, ("user_role", user_id, role_id), self.retry_attempts
        )
        if assigned:
            logger.info("Assigned role %d to user %d", role_id, user_id)
        else:
            logger.debug("User %d already holds role %d", user_id, role_id)
        return assigned

    def revoke_role(self, user_id: int, role_id: int) -> bool:
        """Revoke a role from a user.

        Returns:
            True if revoked, False if the user did not hold the role
        """
        with self.store.transaction() as tx:
            revoked = tx.delete_user_role(user_id, role_id)
        if revoked:
            logger.info("Revoked role %d from user %d", role_id, user_id)
        return revoked

    def user_roles(self, user_id: int) -> list[Role]:
        with self.store.transaction() as tx:
            roles = [tx.get_role(role_id) for role_id in tx.user_role_ids(user_id)]
        return [role for role in roles if role is not None]

    def effective_permissions(
        self, user_id: int, tx: StoreTransaction | None = None
    ) -> set[int]:
        """Union of permission ids over every role the user holds."""
        with open_transaction(self.store, tx) as t:
            return t.user_permission_ids(user_id)
