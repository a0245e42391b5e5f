#!/usr/bin/env python3
"""Seed the permission catalog and the admin role.

Usage:
    python scripts/seed_authz.py
    python scripts/seed_authz.py --create-schema --narrow-admin 2 3 4 5 6 7
"""

from __future__ import annotations

import argparse
import sys

from packages.authz.config import configure_logging, get_settings
from packages.authz.directory import StaticDirectory
from packages.authz.engine import AuthzEngine
from packages.authz.seed import seed_admin_role, seed_catalog
from packages.authz.storage import SqlAuthzStore


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        description="Seed the permission catalog and the admin role"
    )
    parser.add_argument(
        "--create-schema",
        action="store_true",
        help="Create missing tables first (development databases only)"
    )
    parser.add_argument(
        "--narrow-admin",
        type=int,
        nargs="+",
        metavar="RESOURCE_TYPE",
        help="Then revoke admin's permissions on these resource types"
    )
    args = parser.parse_args(argv)

    settings = get_settings()
    configure_logging(settings)

    store = SqlAuthzStore.from_settings(settings)
    if args.create_schema:
        store.create_schema()

    # Seeding never consults the user or client directory
    engine = AuthzEngine(store, StaticDirectory(), settings=settings)

    permissions = seed_catalog(engine)
    admin = seed_admin_role(engine)
    print(f"Catalog: {len(permissions)} permissions; admin role id: {admin.id}")

    if args.narrow_admin:
        removed = engine.revoke_permissions_for_resource_types(admin.id, args.narrow_admin)
        print(f"Revoked {len(removed)} admin permissions")

    return 0


if __name__ == "__main__":
    sys.exit(main())
