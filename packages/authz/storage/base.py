"""Storage interface for the authorization engine.

The engine never talks to a database directly. It opens a transaction on an
``AuthzStore`` and works through the row operations of ``StoreTransaction``.
Leaving the ``with`` block normally commits; raising rolls back, so a failed
or abandoned call leaves no partial rows behind.

Implementations must:
- enforce the unique keys (role name, permission (resource_type, action),
  role_permission pair, user_role pair, authorization triple) and raise
  ``UniqueViolation`` on collision;
- remove join rows when a role or permission is deleted;
- serialize transactions that touch the same row.
"""

import logging
from abc import ABC, abstractmethod
from collections.abc import Callable, Collection, Iterator
from contextlib import AbstractContextManager, contextmanager
from datetime import datetime
from typing import TypeVar

from packages.authz.errors import ConflictRetryExhaustedError
from packages.authz.models import Authorization, Permission, Role

logger = logging.getLogger(__name__)

T = TypeVar("T")


class UniqueViolation(Exception):
    """Raised by a store when an insert collides with a unique key."""

    def __init__(self, constraint: str):
        self.constraint = constraint
        super().__init__(f"Unique constraint violated: {constraint}")


class StoreTransaction(ABC):
    """Row operations available inside one atomic transaction."""

    # Permissions

    @abstractmethod
    def get_permission(self, permission_id: int) -> Permission | None: ...

    @abstractmethod
    def find_permission(self, resource_type: int, action: str) -> Permission | None: ...

    @abstractmethod
    def insert_permission(self, resource_type: int, action: str) -> Permission: ...

    @abstractmethod
    def list_permissions(self) -> list[Permission]: ...

    @abstractmethod
    def delete_permission(self, permission_id: int) -> bool:
        """Delete a permission and every role_permission row referencing it."""

    # Roles

    @abstractmethod
    def get_role(self, role_id: int) -> Role | None: ...

    @abstractmethod
    def find_role(self, name: str) -> Role | None: ...

    @abstractmethod
    def insert_role(self, name: str) -> Role: ...

    @abstractmethod
    def list_roles(self) -> list[Role]: ...

    @abstractmethod
    def delete_role(self, role_id: int) -> bool:
        """Delete a role with its role_permission and user_role rows."""

    # Role permissions

    @abstractmethod
    def insert_role_permission(self, role_id: int, permission_id: int) -> None: ...

    @abstractmethod
    def role_permissions(self, role_id: int, lock: bool = False) -> list[Permission]:
        """Permissions currently held by a role, ordered by id."""

    @abstractmethod
    def delete_role_permissions(self, role_id: int, permission_ids: Collection[int]) -> int:
        """Delete the given join rows of one role in a single batch."""

    # User roles

    @abstractmethod
    def insert_user_role(self, user_id: int, role_id: int) -> None: ...

    @abstractmethod
    def delete_user_role(self, user_id: int, role_id: int) -> bool: ...

    @abstractmethod
    def user_role_ids(self, user_id: int) -> list[int]: ...

    @abstractmethod
    def user_permission_ids(self, user_id: int) -> set[int]:
        """Union of permission ids over every role assigned to the user."""

    # Authorizations

    @abstractmethod
    def find_authorization(
        self, user_id: int, client_id: int, scope_id: int, lock: bool = False
    ) -> Authorization | None: ...

    @abstractmethod
    def insert_authorization(
        self,
        user_id: int,
        client_id: int,
        scope_id: int,
        status: int,
        created_time: datetime,
    ) -> Authorization: ...

    @abstractmethod
    def update_authorization(
        self,
        authorization_id: int,
        status: int,
        updated_time: datetime | None,
        removed_time: datetime | None,
    ) -> Authorization: ...

    @abstractmethod
    def list_authorizations(
        self, user_id: int, status: int | None = None
    ) -> list[Authorization]:
        """Rows of a user ordered by (created_time, id)."""

    @abstractmethod
    def delete_authorization(self, authorization_id: int) -> bool: ...


class AuthzStore(ABC):
    """A relational store the engine can open transactions on."""

    @abstractmethod
    def transaction(self) -> AbstractContextManager[StoreTransaction]:
        """Open an atomic transaction."""


def run_with_retry(
    store: AuthzStore,
    work: Callable[[StoreTransaction], T],
    key: object,
    attempts: int,
) -> T:
    """Run ``work`` in a fresh transaction, retrying on unique collisions.

    A collision means a concurrent caller inserted the same key first; the
    next attempt sees the committed row and takes the update path.
    """
    for attempt in range(1, attempts + 1):
        try:
            with store.transaction() as tx:
                return work(tx)
        except UniqueViolation as exc:
            logger.warning(
                "Concurrent write on %s (attempt %d/%d): %s",
                key, attempt, attempts, exc.constraint,
            )
    raise ConflictRetryExhaustedError(key, attempts)


@contextmanager
def open_transaction(
    store: AuthzStore, tx: StoreTransaction | None = None
) -> Iterator[StoreTransaction]:
    """Join the caller's transaction, or open a new one."""
    if tx is not None:
        yield tx
        return
    with store.transaction() as own:
        yield own
