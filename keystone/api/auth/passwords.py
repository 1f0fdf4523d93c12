"""
Password Hashing

bcrypt hashing and verification. Treated as a black box by the services:
hash_password(plain) -> opaque string, verify_password(plain, hash) -> bool.
"""

from typing import Optional

import bcrypt

from keystone.api.config import settings


def hash_password(password: str, rounds: Optional[int] = None) -> str:
    """Hash a plain-text password."""
    salt = bcrypt.gensalt(rounds=rounds or settings.BCRYPT_ROUNDS)
    return bcrypt.hashpw(password.encode(), salt).decode()


def verify_password(password: str, password_hash: str) -> bool:
    """Check a plain-text password against a stored hash."""
    try:
        return bcrypt.checkpw(password.encode(), password_hash.encode())
    except ValueError:
        # Malformed stored hash
        return False
