"""Permission catalog.

Maps (resource_type, action) pairs to permission ids. Read-mostly: new
definitions are administrative.
"""

import logging
from enum import Enum

from packages.authz.errors import DuplicatePermissionError, NotFoundError
from packages.authz.models import Permission
from packages.authz.storage import AuthzStore, StoreTransaction, UniqueViolation, open_transaction

logger = logging.getLogger(__name__)


def normalize_key(resource_type: int, action: str | Enum) -> tuple[int, str]:
    """Coerce enum members to the stored (int, str) representation."""
    if isinstance(action, Enum):
        action = action.value
    if not isinstance(action, str) or not action:
        raise ValueError(f"Invalid action: {action!r}")
    return int(resource_type), action


class PermissionCatalog:
    """Lookup and administration of permission definitions."""

    def __init__(self, store: AuthzStore):
        self.store = store

    def find(
        self,
        resource_type: int,
        action: str | Enum,
        tx: StoreTransaction | None = None,
    ) -> Permission | None:
        """Return the permission for the pair, or None if it is not defined."""
        resource_type, action = normalize_key(resource_type, action)
        with open_transaction(self.store, tx) as t:
            return t.find_permission(resource_type, action)

    def resolve(
        self,
        resource_type: int,
        action: str | Enum,
        tx: StoreTransaction | None = None,
    ) -> int | None:
        """Resolve a pair to its permission id, or None if not defined."""
        permission = self.find(resource_type, action, tx)
        return permission.id if permission else None

    def define(self, resource_type: int, action: str | Enum) -> Permission:
        """Add a permission definition.

        Raises:
            DuplicatePermissionError: If the pair is already defined
        """
        resource_type, action = normalize_key(resource_type, action)
        try:
            with self.store.transaction() as tx:
                if tx.find_permission(resource_type, action) is not None:
                    raise DuplicatePermissionError(resource_type, action)
                permission = tx.insert_permission(resource_type, action)
        except UniqueViolation as exc:
            raise DuplicatePermissionError(resource_type, action) from exc

        logger.info(
            "Defined permission %d: resource_type=%d action=%s",
            permission.id, resource_type, action,
        )
        return permission

    def list_permissions(self) -> list[Permission]:
        with self.store.transaction() as tx:
            return tx.list_permissions()

    def delete(self, permission_id: int) -> None:
        """Delete a definition and every role grant of it."""
        with self.store.transaction() as tx:
            if not tx.delete_permission(permission_id):
                raise NotFoundError("permission", permission_id)
        logger.info("Deleted permission %d", permission_id)
