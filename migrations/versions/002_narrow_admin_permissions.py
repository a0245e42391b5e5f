"""Strip the admin role of permissions outside the user resource type.

Revision ID: 002_narrow_admin_permissions
Revises: 001_create_authz_tables
Create Date: 2024-03-09
"""

from alembic import op
import sqlalchemy as sa

# Revision identifiers
revision = '002_narrow_admin_permissions'
down_revision = '001_create_authz_tables'
branch_labels = None
depends_on = None

SCHEMA = 'sso'
ADMIN_ROLE = 'admin'

# contact, profile, application, scope, authorization, group
NARROWED_RESOURCE_TYPES = [2, 3, 4, 5, 6, 7]


def upgrade() -> None:
    """Delete admin's role_permission rows for the narrowed resource types."""

    op.get_bind().execute(
        sa.text(f"""
            DELETE FROM {SCHEMA}.role_permissions
            WHERE role_id IN (SELECT id FROM {SCHEMA}.roles WHERE name = :role)
              AND permission_id IN (
                  SELECT id FROM {SCHEMA}.permissions
                  WHERE resource_type IN :resource_types
              )
        """).bindparams(sa.bindparam('resource_types', expanding=True)),
        {'role': ADMIN_ROLE, 'resource_types': NARROWED_RESOURCE_TYPES},
    )


def downgrade() -> None:
    """Give admin back every permission on the narrowed resource types."""

    op.get_bind().execute(
        sa.text(f"""
            INSERT INTO {SCHEMA}.role_permissions (role_id, permission_id)
            SELECT r.id, p.id
            FROM {SCHEMA}.roles r
            CROSS JOIN {SCHEMA}.permissions p
            WHERE r.name = :role
              AND p.resource_type IN :resource_types
            ON CONFLICT ON CONSTRAINT role_permissions_unique_key DO NOTHING
        """).bindparams(sa.bindparam('resource_types', expanding=True)),
        {'role': ADMIN_ROLE, 'resource_types': NARROWED_RESOURCE_TYPES},
    )
