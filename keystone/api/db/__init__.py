"""Database module."""

from keystone.api.db.session import Database, get_db
from keystone.api.db.models import Base, User, Role, Permission, RefreshToken, AuditLog

__all__ = [
    "Database",
    "get_db",
    "Base",
    "User",
    "Role",
    "Permission",
    "RefreshToken",
    "AuditLog",
]
