"""
KEYSTONE - Access & Audit Module

Policy evaluation, the authorization gate and the audit engine.

Components:
- policy.py: Permission atoms, manage wildcard, PolicyEngine
- gate.py: Authorizer turning deny decisions into audited ForbiddenError
- audit.py: AuditEngine (append, list, aggregate, trail, export)

Usage:
    from keystone.api.access import PolicyEngine, AuditEngine, AuditAction
"""

from keystone.api.access.policy import (
    AuthContext,
    PermissionAction,
    PolicyEngine,
    format_permission,
    parse_permission,
    has_wildcard_or_exact,
    has_exact_name_only,
)

from keystone.api.access.audit import (
    SYSTEM_ACTOR_ID,
    AggregationRow,
    AuditAction,
    AuditEngine,
    AuditEvent,
    AuditFilter,
    AuditGroupBy,
    AuditPage,
)

from keystone.api.access.gate import Authorizer

__all__ = [
    # Policy
    "AuthContext",
    "PermissionAction",
    "PolicyEngine",
    "format_permission",
    "parse_permission",
    "has_wildcard_or_exact",
    "has_exact_name_only",
    "Authorizer",

    # Audit
    "SYSTEM_ACTOR_ID",
    "AggregationRow",
    "AuditAction",
    "AuditEngine",
    "AuditEvent",
    "AuditFilter",
    "AuditGroupBy",
    "AuditPage",
]
