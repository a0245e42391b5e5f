"""Create the RBAC and consent ledger tables.

Revision ID: 001_create_authz_tables
Revises:
Create Date: 2024-03-02
"""

from alembic import op
import sqlalchemy as sa

# Revision identifiers
revision = '001_create_authz_tables'
down_revision = None
branch_labels = None
depends_on = None

SCHEMA = 'sso'


def upgrade() -> None:
    """Create roles, permissions, their join tables and authorizations."""

    op.execute(f"CREATE SCHEMA IF NOT EXISTS {SCHEMA}")

    op.create_table(
        'permissions',
        sa.Column('id', sa.BigInteger(), primary_key=True, autoincrement=True),
        sa.Column('resource_type', sa.Integer(), nullable=False),
        sa.Column('action', sa.String(64), nullable=False),
        sa.UniqueConstraint('resource_type', 'action', name='permissions_unique_key'),
        schema=SCHEMA,
    )

    op.create_table(
        'roles',
        sa.Column('id', sa.BigInteger(), primary_key=True, autoincrement=True),
        sa.Column('name', sa.String(64), nullable=False),
        sa.UniqueConstraint('name', name='roles_name_key'),
        schema=SCHEMA,
    )

    op.create_table(
        'role_permissions',
        sa.Column('id', sa.BigInteger(), primary_key=True, autoincrement=True),
        sa.Column(
            'role_id', sa.BigInteger(),
            sa.ForeignKey(f'{SCHEMA}.roles.id', ondelete='CASCADE'),
            nullable=False,
        ),
        sa.Column(
            'permission_id', sa.BigInteger(),
            sa.ForeignKey(f'{SCHEMA}.permissions.id', ondelete='CASCADE'),
            nullable=False,
        ),
        sa.UniqueConstraint('role_id', 'permission_id', name='role_permissions_unique_key'),
        schema=SCHEMA,
    )

    op.create_table(
        'user_roles',
        sa.Column('id', sa.BigInteger(), primary_key=True, autoincrement=True),
        sa.Column('user_id', sa.BigInteger(), nullable=False),
        sa.Column(
            'role_id', sa.BigInteger(),
            sa.ForeignKey(f'{SCHEMA}.roles.id', ondelete='CASCADE'),
            nullable=False,
        ),
        sa.UniqueConstraint('user_id', 'role_id', name='user_roles_unique_key'),
        schema=SCHEMA,
    )

    # users, applications and scopes belong to other services; no FKs here
    op.create_table(
        'authorizations',
        sa.Column('id', sa.BigInteger(), primary_key=True, autoincrement=True),
        sa.Column('user_id', sa.BigInteger(), nullable=False),
        sa.Column('client_id', sa.BigInteger(), nullable=False),
        sa.Column('scope_id', sa.BigInteger(), nullable=False),
        sa.Column(
            'created_time', sa.DateTime(timezone=True),
            nullable=False, server_default=sa.func.now(),
        ),
        sa.Column('updated_time', sa.DateTime(timezone=True)),
        sa.Column('removed_time', sa.DateTime(timezone=True)),
        sa.Column('status', sa.Integer(), nullable=False, server_default=sa.text('0')),
        sa.UniqueConstraint(
            'user_id', 'client_id', 'scope_id', name='authorizations_unique_key'
        ),
        schema=SCHEMA,
    )

    op.create_index(
        'authorizations_user_status_idx', 'authorizations',
        ['user_id', 'status', 'created_time'], schema=SCHEMA,
    )


def downgrade() -> None:
    """Drop all authorization tables."""

    op.drop_index('authorizations_user_status_idx', table_name='authorizations', schema=SCHEMA)
    op.drop_table('authorizations', schema=SCHEMA)
    op.drop_table('user_roles', schema=SCHEMA)
    op.drop_table('role_permissions', schema=SCHEMA)
    op.drop_table('roles', schema=SCHEMA)
    op.drop_table('permissions', schema=SCHEMA)
