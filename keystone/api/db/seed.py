"""
KEYSTONE - Database Seeding
===========================

Creates the baseline permission catalog, the built-in roles and an
initial administrator. Safe to run repeatedly: existing rows are kept.

Usage:
    python -m keystone.api.db.seed --admin-email admin@example.com --admin-password 'S3curePass'
"""

import argparse
import asyncio
import logging
import sys
from dataclasses import dataclass
from typing import Dict, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from keystone.api.access.policy import PermissionAction, format_permission
from keystone.api.auth.passwords import hash_password
from keystone.api.db.models import Permission, Role, User
from keystone.api.db.repositories import (
    PermissionRepository,
    RoleRepository,
    UserRepository,
)
from keystone.api.db.session import Database

logger = logging.getLogger(__name__)


SEED_RESOURCES = ["users", "roles", "permissions", "audit-logs"]

# Role name -> (description, is_system, permission names or None for all)
SEED_ROLES: Dict[str, tuple] = {
    "admin": ("Full system access", True, None),
    "manager": (
        "Manage users and review audit logs",
        False,
        [
            "users:create",
            "users:read",
            "users:update",
            "audit-logs:read",
            "roles:read",
        ],
    ),
    "viewer": (
        "Read-only access",
        False,
        [format_permission(resource, "read") for resource in SEED_RESOURCES],
    ),
}


@dataclass
class SeedResult:
    """What a seeding run created."""
    permissions_created: int = 0
    roles_created: int = 0
    admin_created: bool = False


async def seed(
    db: AsyncSession,
    admin_email: str,
    admin_password: str,
    password_rounds: Optional[int] = None,
) -> SeedResult:
    """Insert missing catalog rows, roles and the admin user, then commit."""
    permission_repo = PermissionRepository(db)
    role_repo = RoleRepository(db)
    user_repo = UserRepository(db)
    result = SeedResult()

    catalog: Dict[str, Permission] = {}
    for resource in SEED_RESOURCES:
        for action in PermissionAction:
            name = format_permission(resource, action.value)
            permission = await permission_repo.get_by_name(name)
            if permission is None:
                permission = await permission_repo.add(
                    Permission(
                        name=name,
                        resource=resource,
                        action=action.value,
                        description=f"{action.value.capitalize()} {resource}",
                    )
                )
                result.permissions_created += 1
            catalog[name] = permission

    roles: Dict[str, Role] = {}
    for role_name, (description, is_system, names) in SEED_ROLES.items():
        role = await role_repo.get_by_name(role_name)
        if role is None:
            granted: List[Permission] = (
                list(catalog.values()) if names is None else [catalog[n] for n in names]
            )
            role = await role_repo.add(
                Role(
                    name=role_name,
                    description=description,
                    is_system=is_system,
                    permissions=granted,
                )
            )
            result.roles_created += 1
        roles[role_name] = role

    if not await user_repo.exists_by_email(admin_email):
        await user_repo.add(
            User(
                email=admin_email,
                password_hash=hash_password(admin_password, password_rounds),
                first_name="System",
                last_name="Administrator",
                role_id=roles["admin"].id,
                is_active=True,
            )
        )
        result.admin_created = True

    await db.commit()
    return result


def parse_args() -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="KEYSTONE - Seed permissions, roles and the admin user",
    )
    parser.add_argument(
        "--database-url",
        type=str,
        default=None,
        help="Database URL (default: DATABASE_URL setting)",
    )
    parser.add_argument(
        "--admin-email",
        type=str,
        default="admin@example.com",
        help="Email of the initial administrator",
    )
    parser.add_argument(
        "--admin-password",
        type=str,
        required=True,
        help="Password of the initial administrator",
    )
    parser.add_argument(
        "--create-tables",
        action="store_true",
        help="Create missing tables before seeding",
    )
    return parser.parse_args()


async def run(args: argparse.Namespace) -> SeedResult:
    database = Database(args.database_url)
    try:
        if args.create_tables:
            await database.create_all()
        async for session in database.session():
            result = await seed(session, args.admin_email, args.admin_password)
    finally:
        await database.dispose()
    return result


def main() -> int:
    """Main entry point."""
    from keystone.api.main import setup_logging

    setup_logging()
    args = parse_args()
    result = asyncio.run(run(args))
    logger.info(
        "Seed complete: %d permissions, %d roles created, admin %s",
        result.permissions_created,
        result.roles_created,
        "created" if result.admin_created else "already present",
    )
    return 0


if __name__ == "__main__":
    sys.exit(main())
