"""Relational schema of the authorization store.

Column names and the five unique constraints match the tables already
deployed in the ``sso`` schema; stored data must stay readable. The schema
name itself is applied at runtime through SQLAlchemy's schema translation,
so the same metadata runs on SQLite in tests.

Users, applications and scopes live in tables owned by other services;
``user_id``, ``client_id`` and ``scope_id`` are validated through the
directory collaborators instead of foreign keys.
"""

from sqlalchemy import (
    BigInteger,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    MetaData,
    String,
    Table,
    UniqueConstraint,
    func,
    text,
)

metadata = MetaData()

# SQLite only autoincrements INTEGER PRIMARY KEY columns.
Id = BigInteger().with_variant(Integer(), "sqlite")

permissions = Table(
    "permissions",
    metadata,
    Column("id", Id, primary_key=True, autoincrement=True),
    Column("resource_type", Integer, nullable=False),
    Column("action", String(64), nullable=False),
    UniqueConstraint("resource_type", "action", name="permissions_unique_key"),
)

roles = Table(
    "roles",
    metadata,
    Column("id", Id, primary_key=True, autoincrement=True),
    Column("name", String(64), nullable=False),
    UniqueConstraint("name", name="roles_name_key"),
)

role_permissions = Table(
    "role_permissions",
    metadata,
    Column("id", Id, primary_key=True, autoincrement=True),
    Column(
        "role_id",
        Id,
        ForeignKey("roles.id", ondelete="CASCADE"),
        nullable=False,
    ),
    Column(
        "permission_id",
        Id,
        ForeignKey("permissions.id", ondelete="CASCADE"),
        nullable=False,
    ),
    UniqueConstraint("role_id", "permission_id", name="role_permissions_unique_key"),
)

user_roles = Table(
    "user_roles",
    metadata,
    Column("id", Id, primary_key=True, autoincrement=True),
    Column("user_id", BigInteger, nullable=False),
    Column(
        "role_id",
        Id,
        ForeignKey("roles.id", ondelete="CASCADE"),
        nullable=False,
    ),
    UniqueConstraint("user_id", "role_id", name="user_roles_unique_key"),
)

authorizations = Table(
    "authorizations",
    metadata,
    Column("id", Id, primary_key=True, autoincrement=True),
    Column("user_id", BigInteger, nullable=False),
    Column("client_id", BigInteger, nullable=False),
    Column("scope_id", BigInteger, nullable=False),
    Column(
        "created_time",
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    ),
    Column("updated_time", DateTime(timezone=True)),
    Column("removed_time", DateTime(timezone=True)),
    Column("status", Integer, nullable=False, server_default=text("0")),
    UniqueConstraint(
        "user_id", "client_id", "scope_id", name="authorizations_unique_key"
    ),
)

Index(
    "authorizations_user_status_idx",
    authorizations.c.user_id,
    authorizations.c.status,
    authorizations.c.created_time,
)
