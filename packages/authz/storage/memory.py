"""In-memory store for development and tests.

The unique keys and join-row cleanup a relational schema would enforce
declaratively are kept here as explicit indexes. One lock serializes
transactions. Writes apply in place and record an undo step; a transaction
that raises replays its undo log in reverse, so nothing it did survives.

Every lookup goes through an index: cost depends on the rows a call
touches, not on the size of the tables.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Collection, Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from packages.authz.models import Authorization, Permission, Role
from packages.authz.storage.base import AuthzStore, StoreTransaction, UniqueViolation

logger = logging.getLogger(__name__)

_MISSING = object()


@dataclass
class _Tables:
    """Rows of every table plus the indexes over them."""

    permissions: dict[int, Permission] = field(default_factory=dict)
    permission_keys: dict[tuple[int, str], int] = field(default_factory=dict)

    roles: dict[int, Role] = field(default_factory=dict)
    role_names: dict[str, int] = field(default_factory=dict)

    # role_permissions join, indexed from both sides
    role_permissions: dict[int, set[int]] = field(default_factory=dict)
    permission_roles: dict[int, set[int]] = field(default_factory=dict)

    # user_roles join, indexed from both sides
    user_roles: dict[int, set[int]] = field(default_factory=dict)
    role_users: dict[int, set[int]] = field(default_factory=dict)

    authorizations: dict[int, Authorization] = field(default_factory=dict)
    authorization_keys: dict[tuple[int, int, int], int] = field(default_factory=dict)
    user_authorizations: dict[int, set[int]] = field(default_factory=dict)

    # Like database sequences, ids are not reused after a rollback
    sequences: dict[str, int] = field(default_factory=dict)

    def next_id(self, table: str) -> int:
        value = self.sequences.get(table, 0) + 1
        self.sequences[table] = value
        return value


class _MemoryTransaction(StoreTransaction):
    def __init__(self, tables: _Tables):
        self._t = tables
        self._undo: list[Callable[[], None]] = []

    def rollback(self) -> None:
        while self._undo:
            self._undo.pop()()

    # Undo-logged primitives

    def _put(self, mapping: dict, key: Any, value: Any) -> None:
        previous = mapping.get(key, _MISSING)
        mapping[key] = value
        if previous is _MISSING:
            self._undo.append(lambda: mapping.pop(key, None))
        else:
            self._undo.append(lambda: mapping.__setitem__(key, previous))

    def _remove(self, mapping: dict, key: Any) -> Any:
        previous = mapping.pop(key, _MISSING)
        if previous is _MISSING:
            return None
        self._undo.append(lambda: mapping.__setitem__(key, previous))
        return previous

    def _link(self, index: dict[int, set[int]], key: int, member: int) -> None:
        members = index.setdefault(key, set())
        members.add(member)
        self._undo.append(lambda: members.discard(member))

    def _unlink(self, index: dict[int, set[int]], key: int, member: int) -> None:
        members = index.get(key)
        if members is not None and member in members:
            members.discard(member)
            self._undo.append(lambda: members.add(member))

    # Permissions

    def get_permission(self, permission_id: int) -> Permission | None:
        return self._t.permissions.get(permission_id)

    def find_permission(self, resource_type: int, action: str) -> Permission | None:
        permission_id = self._t.permission_keys.get((resource_type, action))
        return None if permission_id is None else self._t.permissions[permission_id]

    def insert_permission(self, resource_type: int, action: str) -> Permission:
        key = (resource_type, action)
        if key in self._t.permission_keys:
            raise UniqueViolation("permissions_unique_key")
        permission = Permission(
            id=self._t.next_id("permissions"),
            resource_type=resource_type,
            action=action,
        )
        self._put(self._t.permissions, permission.id, permission)
        self._put(self._t.permission_keys, key, permission.id)
        return permission

    def list_permissions(self) -> list[Permission]:
        return [self._t.permissions[i] for i in sorted(self._t.permissions)]

    def delete_permission(self, permission_id: int) -> bool:
        permission = self._remove(self._t.permissions, permission_id)
        if permission is None:
            return False
        self._remove(self._t.permission_keys, permission.key)
        for role_id in list(self._t.permission_roles.get(permission_id, ())):
            self._unlink(self._t.role_permissions, role_id, permission_id)
            self._unlink(self._t.permission_roles, permission_id, role_id)
        return True

    # Roles

    def get_role(self, role_id: int) -> Role | None:
        return self._t.roles.get(role_id)

    def find_role(self, name: str) -> Role | None:
        role_id = self._t.role_names.get(name)
        return None if role_id is None else self._t.roles[role_id]

    def insert_role(self, name: str) -> Role:
        if name in self._t.role_names:
            raise UniqueViolation("roles_name_key")
        role = Role(id=self._t.next_id("roles"), name=name)
        self._put(self._t.roles, role.id, role)
        self._put(self._t.role_names, name, role.id)
        return role

    def list_roles(self) -> list[Role]:
        return [self._t.roles[i] for i in sorted(self._t.roles)]

    def delete_role(self, role_id: int) -> bool:
        role = self._remove(self._t.roles, role_id)
        if role is None:
            return False
        self._remove(self._t.role_names, role.name)
        for permission_id in list(self._t.role_permissions.get(role_id, ())):
            self._unlink(self._t.role_permissions, role_id, permission_id)
            self._unlink(self._t.permission_roles, permission_id, role_id)
        for user_id in list(self._t.role_users.get(role_id, ())):
            self._unlink(self._t.user_roles, user_id, role_id)
            self._unlink(self._t.role_users, role_id, user_id)
        return True

    # Role permissions

    def insert_role_permission(self, role_id: int, permission_id: int) -> None:
        if permission_id in self._t.role_permissions.get(role_id, ()):
            raise UniqueViolation("role_permissions_unique_key")
        self._link(self._t.role_permissions, role_id, permission_id)
        self._link(self._t.permission_roles, permission_id, role_id)

    def role_permissions(self, role_id: int, lock: bool = False) -> list[Permission]:
        return [
            self._t.permissions[permission_id]
            for permission_id in sorted(self._t.role_permissions.get(role_id, ()))
        ]

    def delete_role_permissions(self, role_id: int, permission_ids: Collection[int]) -> int:
        held = self._t.role_permissions.get(role_id, set())
        removed = 0
        for permission_id in set(permission_ids) & held:
            self._unlink(self._t.role_permissions, role_id, permission_id)
            self._unlink(self._t.permission_roles, permission_id, role_id)
            removed += 1
        return removed

    # User roles

    def insert_user_role(self, user_id: int, role_id: int) -> None:
        if role_id in self._t.user_roles.get(user_id, ()):
            raise UniqueViolation("user_roles_unique_key")
        self._link(self._t.user_roles, user_id, role_id)
        self._link(self._t.role_users, role_id, user_id)

    def delete_user_role(self, user_id: int, role_id: int) -> bool:
        if role_id not in self._t.user_roles.get(user_id, ()):
            return False
        self._unlink(self._t.user_roles, user_id, role_id)
        self._unlink(self._t.role_users, role_id, user_id)
        return True

    def user_role_ids(self, user_id: int) -> list[int]:
        return sorted(self._t.user_roles.get(user_id, ()))

    def user_permission_ids(self, user_id: int) -> set[int]:
        granted: set[int] = set()
        for role_id in self._t.user_roles.get(user_id, ()):
            granted |= self._t.role_permissions.get(role_id, set())
        return granted

    # Authorizations

    def find_authorization(
        self, user_id: int, client_id: int, scope_id: int, lock: bool = False
    ) -> Authorization | None:
        authorization_id = self._t.authorization_keys.get((user_id, client_id, scope_id))
        if authorization_id is None:
            return None
        return self._t.authorizations[authorization_id]

    def insert_authorization(
        self,
        user_id: int,
        client_id: int,
        scope_id: int,
        status: int,
        created_time: datetime,
    ) -> Authorization:
        key = (user_id, client_id, scope_id)
        if key in self._t.authorization_keys:
            raise UniqueViolation("authorizations_unique_key")
        authorization = Authorization(
            id=self._t.next_id("authorizations"),
            user_id=user_id,
            client_id=client_id,
            scope_id=scope_id,
            created_time=created_time,
            status=status,
        )
        self._put(self._t.authorizations, authorization.id, authorization)
        self._put(self._t.authorization_keys, key, authorization.id)
        self._link(self._t.user_authorizations, user_id, authorization.id)
        return authorization

    def update_authorization(
        self,
        authorization_id: int,
        status: int,
        updated_time: datetime | None,
        removed_time: datetime | None,
    ) -> Authorization:
        current = self._t.authorizations[authorization_id]
        updated = current.model_copy(
            update={
                "status": status,
                "updated_time": updated_time,
                "removed_time": removed_time,
            }
        )
        self._put(self._t.authorizations, authorization_id, updated)
        return updated

    def list_authorizations(
        self, user_id: int, status: int | None = None
    ) -> list[Authorization]:
        rows = [
            self._t.authorizations[authorization_id]
            for authorization_id in self._t.user_authorizations.get(user_id, ())
        ]
        if status is not None:
            rows = [a for a in rows if a.status == status]
        return sorted(rows, key=lambda a: (a.created_time, a.id))

    def delete_authorization(self, authorization_id: int) -> bool:
        authorization = self._remove(self._t.authorizations, authorization_id)
        if authorization is None:
            return False
        self._remove(self._t.authorization_keys, authorization.key)
        self._unlink(self._t.user_authorizations, authorization.user_id, authorization_id)
        return True


class InMemoryAuthzStore(AuthzStore):
    """Process-local store; state is lost when the process exits."""

    def __init__(self):
        self._tables = _Tables()
        self._lock = threading.Lock()
        logger.info("InMemoryAuthzStore initialized")

    @contextmanager
    def transaction(self) -> Iterator[StoreTransaction]:
        with self._lock:
            tx = _MemoryTransaction(self._tables)
            try:
                yield tx
            except BaseException:
                tx.rollback()
                raise
