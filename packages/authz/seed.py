"""Catalog and admin-role bootstrap.

Both functions are idempotent: rerunning them only fills in what is
missing.
"""

import logging
from collections.abc import Iterable
from enum import Enum

from packages.authz.engine import AuthzEngine
from packages.authz.errors import DuplicatePermissionError, DuplicateRoleNameError
from packages.authz.models import Action, Permission, ResourceType, Role

logger = logging.getLogger(__name__)


def seed_catalog(
    engine: AuthzEngine,
    resource_types: Iterable[int] = tuple(ResourceType),
    actions: Iterable[str | Enum] = tuple(Action),
) -> list[Permission]:
    """Define every (resource_type, action) pair that is not yet defined.

    Returns:
        The permissions for all requested pairs, new and existing
    """
    actions = list(actions)
    seeded = []
    for resource_type in resource_types:
        for action in actions:
            permission = engine.catalog.find(resource_type, action)
            if permission is None:
                try:
                    permission = engine.define_permission(resource_type, action)
                except DuplicatePermissionError:
                    # Defined concurrently
                    permission = engine.catalog.find(resource_type, action)
            seeded.append(permission)

    logger.info("Catalog seeded with %d permissions", len(seeded))
    return seeded


def seed_admin_role(engine: AuthzEngine, name: str | None = None) -> Role:
    """Ensure the admin role exists and holds every catalog permission."""
    name = name or engine.settings.admin_role_name

    role = engine.roles.find_role(name)
    if role is None:
        try:
            role = engine.create_role(name)
        except DuplicateRoleNameError:
            role = engine.roles.find_role(name)

    added = 0
    for permission in engine.list_permissions():
        if engine.grant_permission(role.id, permission.id):
            added += 1

    logger.info("Admin role %r seeded (%d permissions added)", name, added)
    return role
