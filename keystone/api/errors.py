"""
KEYSTONE - Error Hierarchy
==========================

Structured error types shared by the policy, session and audit layers.

Error Categories:
    - BadRequestError: Referential or business-rule violation
    - UnauthorizedError: Missing, invalid, expired or revoked credential
    - ForbiddenError: Authenticated but lacking the required capability
    - NotFoundError: Referenced entity is absent
    - ConflictError: Uniqueness violation
    - InternalError: Store unreachable or unexpected fault

Only InternalError is an operational fault. Every other kind is an expected
outcome that the HTTP layer maps to a response without logging it as an error.
"""

from typing import Any, Dict, Optional


class KeystoneError(Exception):
    """
    Base exception for all KEYSTONE errors.

    Attributes:
        message: Human-readable error description
        code: Error code for programmatic handling
        details: Optional dict with additional context
    """

    status_code: int = 500
    default_code: str = "INTERNAL_ERROR"
    operational: bool = False

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code
        self.details = details or {}

    def __str__(self) -> str:
        return f"[{self.code}] {self.message}"

    def to_dict(self) -> Dict[str, Any]:
        """Render as the public error body."""
        error: Dict[str, Any] = {"code": self.code, "message": self.message}
        if self.details:
            error["details"] = self.details
        return {"success": False, "error": error}


class BadRequestError(KeystoneError):
    """Referential or business-rule violation."""

    status_code = 400
    default_code = "BAD_REQUEST"
    operational = True


class UnauthorizedError(KeystoneError):
    """Credential missing, invalid, expired or revoked."""

    status_code = 401
    default_code = "UNAUTHORIZED"
    operational = True


class ForbiddenError(KeystoneError):
    """Authenticated but not allowed, or a protected system role mutation."""

    status_code = 403
    default_code = "FORBIDDEN"
    operational = True


class NotFoundError(KeystoneError):
    """Referenced entity does not exist."""

    status_code = 404
    default_code = "NOT_FOUND"
    operational = True


class ConflictError(KeystoneError):
    """Uniqueness violation on a name or resource:action pair."""

    status_code = 409
    default_code = "CONFLICT"
    operational = True


class InternalError(KeystoneError):
    """Store unreachable or unexpected fault."""

    status_code = 500
    default_code = "INTERNAL_ERROR"
