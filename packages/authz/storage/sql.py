"""SQLAlchemy-backed store for production.

Each transaction runs on one connection from ``engine.begin()``: the block
commits on success and rolls back on any exception. Unique collisions
surface as ``UniqueViolation``; connection failures as
``StorageUnavailableError``.
"""

from __future__ import annotations

import logging
from collections.abc import Collection, Iterator
from contextlib import contextmanager
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from sqlalchemy import create_engine, delete, insert, make_url, select, update
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import IntegrityError, OperationalError

from packages.authz.config import Settings
from packages.authz.errors import StorageUnavailableError
from packages.authz.models import Authorization, Permission, Role
from packages.authz.storage.base import AuthzStore, StoreTransaction, UniqueViolation
from packages.authz.storage.schema import (
    authorizations,
    metadata,
    permissions,
    role_permissions,
    roles,
    user_roles,
)

logger = logging.getLogger(__name__)

_UNIQUE_SQLSTATE = "23505"


def _is_unique_violation(exc: IntegrityError) -> bool:
    """Tell unique-key collisions apart from other integrity errors."""
    orig = exc.orig
    sqlstate = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
    if sqlstate:
        return sqlstate == _UNIQUE_SQLSTATE
    # SQLite reports no SQLSTATE
    return "UNIQUE constraint failed" in str(orig)


def _utc(value: datetime | None) -> datetime | None:
    """Normalize stored timestamps to aware UTC (SQLite drops tzinfo)."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def _permission(row: Any) -> Permission:
    return Permission(id=row.id, resource_type=row.resource_type, action=row.action)


def _role(row: Any) -> Role:
    return Role(id=row.id, name=row.name)


def _authorization(row: Any) -> Authorization:
    return Authorization(
        id=row.id,
        user_id=row.user_id,
        client_id=row.client_id,
        scope_id=row.scope_id,
        created_time=_utc(row.created_time),
        updated_time=_utc(row.updated_time),
        removed_time=_utc(row.removed_time),
        status=row.status,
    )


class _SqlTransaction(StoreTransaction):
    def __init__(self, conn: Connection):
        self._conn = conn

    def _insert(self, table, constraint: str, **values: Any) -> int:
        try:
            result = self._conn.execute(insert(table).values(**values))
        except IntegrityError as exc:
            if _is_unique_violation(exc):
                raise UniqueViolation(constraint) from exc
            raise
        return result.inserted_primary_key[0]

    # Permissions

    def get_permission(self, permission_id: int) -> Permission | None:
        row = self._conn.execute(
            select(permissions).where(permissions.c.id == permission_id)
        ).first()
        return _permission(row) if row else None

    def find_permission(self, resource_type: int, action: str) -> Permission | None:
        row = self._conn.execute(
            select(permissions).where(
                permissions.c.resource_type == resource_type,
                permissions.c.action == action,
            )
        ).first()
        return _permission(row) if row else None

    def insert_permission(self, resource_type: int, action: str) -> Permission:
        permission_id = self._insert(
            permissions,
            "permissions_unique_key",
            resource_type=resource_type,
            action=action,
        )
        return Permission(id=permission_id, resource_type=resource_type, action=action)

    def list_permissions(self) -> list[Permission]:
        rows = self._conn.execute(select(permissions).order_by(permissions.c.id))
        return [_permission(row) for row in rows]

    def delete_permission(self, permission_id: int) -> bool:
        self._conn.execute(
            delete(role_permissions).where(role_permissions.c.permission_id == permission_id)
        )
        result = self._conn.execute(
            delete(permissions).where(permissions.c.id == permission_id)
        )
        return result.rowcount > 0

    # Roles

    def get_role(self, role_id: int) -> Role | None:
        row = self._conn.execute(select(roles).where(roles.c.id == role_id)).first()
        return _role(row) if row else None

    def find_role(self, name: str) -> Role | None:
        row = self._conn.execute(select(roles).where(roles.c.name == name)).first()
        return _role(row) if row else None

    def insert_role(self, name: str) -> Role:
        role_id = self._insert(roles, "roles_name_key", name=name)
        return Role(id=role_id, name=name)

    def list_roles(self) -> list[Role]:
        rows = self._conn.execute(select(roles).order_by(roles.c.id))
        return [_role(row) for row in rows]

    def delete_role(self, role_id: int) -> bool:
        self._conn.execute(
            delete(role_permissions).where(role_permissions.c.role_id == role_id)
        )
        self._conn.execute(delete(user_roles).where(user_roles.c.role_id == role_id))
        result = self._conn.execute(delete(roles).where(roles.c.id == role_id))
        return result.rowcount > 0

    # Role permissions

    def insert_role_permission(self, role_id: int, permission_id: int) -> None:
        self._insert(
            role_permissions,
            "role_permissions_unique_key",
            role_id=role_id,
            permission_id=permission_id,
        )

    def role_permissions(self, role_id: int, lock: bool = False) -> list[Permission]:
        stmt = (
            select(permissions)
            .select_from(
                permissions.join(
                    role_permissions,
                    role_permissions.c.permission_id == permissions.c.id,
                )
            )
            .where(role_permissions.c.role_id == role_id)
            .order_by(permissions.c.id)
        )
        if lock:
            stmt = stmt.with_for_update(of=role_permissions)
        return [_permission(row) for row in self._conn.execute(stmt)]

    def delete_role_permissions(self, role_id: int, permission_ids: Collection[int]) -> int:
        if not permission_ids:
            return 0
        result = self._conn.execute(
            delete(role_permissions).where(
                role_permissions.c.role_id == role_id,
                role_permissions.c.permission_id.in_(sorted(permission_ids)),
            )
        )
        return result.rowcount

    # User roles

    def insert_user_role(self, user_id: int, role_id: int) -> None:
        self._insert(
            user_roles,
            "user_roles_unique_key",
            user_id=user_id,
            role_id=role_id,
        )

    def delete_user_role(self, user_id: int, role_id: int) -> bool:
        result = self._conn.execute(
            delete(user_roles).where(
                user_roles.c.user_id == user_id,
                user_roles.c.role_id == role_id,
            )
        )
        return result.rowcount > 0

    def user_role_ids(self, user_id: int) -> list[int]:
        rows = self._conn.execute(
            select(user_roles.c.role_id)
            .where(user_roles.c.user_id == user_id)
            .order_by(user_roles.c.role_id)
        )
        return [row.role_id for row in rows]

    def user_permission_ids(self, user_id: int) -> set[int]:
        rows = self._conn.execute(
            select(role_permissions.c.permission_id)
            .select_from(
                role_permissions.join(
                    user_roles, user_roles.c.role_id == role_permissions.c.role_id
                )
            )
            .where(user_roles.c.user_id == user_id)
            .distinct()
        )
        return {row.permission_id for row in rows}

    # Authorizations

    def find_authorization(
        self, user_id: int, client_id: int, scope_id: int, lock: bool = False
    ) -> Authorization | None:
        stmt = select(authorizations).where(
            authorizations.c.user_id == user_id,
            authorizations.c.client_id == client_id,
            authorizations.c.scope_id == scope_id,
        )
        if lock:
            stmt = stmt.with_for_update()
        row = self._conn.execute(stmt).first()
        return _authorization(row) if row else None

    def insert_authorization(
        self,
        user_id: int,
        client_id: int,
        scope_id: int,
        status: int,
        created_time: datetime,
    ) -> Authorization:
        authorization_id = self._insert(
            authorizations,
            "authorizations_unique_key",
            user_id=user_id,
            client_id=client_id,
            scope_id=scope_id,
            status=int(status),
            created_time=created_time,
        )
        return Authorization(
            id=authorization_id,
            user_id=user_id,
            client_id=client_id,
            scope_id=scope_id,
            created_time=_utc(created_time),
            status=status,
        )

    def update_authorization(
        self,
        authorization_id: int,
        status: int,
        updated_time: datetime | None,
        removed_time: datetime | None,
    ) -> Authorization:
        self._conn.execute(
            update(authorizations)
            .where(authorizations.c.id == authorization_id)
            .values(
                status=int(status),
                updated_time=updated_time,
                removed_time=removed_time,
            )
        )
        row = self._conn.execute(
            select(authorizations).where(authorizations.c.id == authorization_id)
        ).one()
        return _authorization(row)

    def list_authorizations(
        self, user_id: int, status: int | None = None
    ) -> list[Authorization]:
        stmt = select(authorizations).where(authorizations.c.user_id == user_id)
        if status is not None:
            stmt = stmt.where(authorizations.c.status == int(status))
        stmt = stmt.order_by(authorizations.c.created_time, authorizations.c.id)
        return [_authorization(row) for row in self._conn.execute(stmt)]

    def delete_authorization(self, authorization_id: int) -> bool:
        result = self._conn.execute(
            delete(authorizations).where(authorizations.c.id == authorization_id)
        )
        return result.rowcount > 0


class SqlAuthzStore(AuthzStore):
    """Store backed by a relational database through SQLAlchemy Core.

    Usage:
        store = SqlAuthzStore(create_engine("postgresql+psycopg://..."), schema="sso")
        with store.transaction() as tx:
            tx.find_role("admin")
    """

    def __init__(self, engine: Engine, schema: str | None = None):
        if schema:
            engine = engine.execution_options(schema_translate_map={None: schema})
        self.engine = engine
        self.schema = schema
        logger.info(
            "SqlAuthzStore initialized (dialect=%s schema=%s)",
            engine.dialect.name, schema,
        )

    @classmethod
    def from_settings(cls, settings: Settings) -> "SqlAuthzStore":
        """Create a store from ``Settings.database_url``."""
        url = make_url(settings.database_url)
        if url.get_backend_name() == "sqlite" and url.database not in (None, "", ":memory:"):
            Path(url.database).parent.mkdir(parents=True, exist_ok=True)
        engine = create_engine(url, echo=settings.db_echo, pool_pre_ping=True)
        return cls(engine, schema=settings.db_schema)

    def create_schema(self) -> None:
        """Create missing tables (development and tests; production uses Alembic)."""
        metadata.create_all(self.engine)

    @contextmanager
    def transaction(self) -> Iterator[StoreTransaction]:
        try:
            with self.engine.begin() as conn:
                yield _SqlTransaction(conn)
        except IntegrityError as exc:
            # Deferred constraints can fire at commit time
            if _is_unique_violation(exc):
                raise UniqueViolation(str(exc.orig)) from exc
            raise
        except OperationalError as exc:
            logger.error("Storage unavailable: %s", exc.orig)
            raise StorageUnavailableError(str(exc.orig)) from exc
