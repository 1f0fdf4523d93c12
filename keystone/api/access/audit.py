"""
KEYSTONE - Audit Engine

Append-only trail of security-relevant events with filtering,
pagination and time-bucketed aggregation for compliance reporting.
Entries carry a SHA256 integrity hash so tampering is detectable.
"""

import hashlib
import json
import logging
import math
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Union

from keystone.api.access.policy import AuthContext
from keystone.api.config import settings
from keystone.api.db.models import AuditLog, new_id, utcnow
from keystone.api.db.repositories import AuditLogRepository
from keystone.api.errors import BadRequestError


logger = logging.getLogger(__name__)


# Actor recorded when no user can be resolved (e.g. login to an unknown email).
# Outside the uuid4 id space used for real users.
SYSTEM_ACTOR_ID = "00000000-0000-0000-0000-000000000000"


# ============================================================
# Audit Event Types
# ============================================================


class AuditAction(str, Enum):
    """Categories of auditable events."""

    CREATE = "CREATE"
    READ = "READ"
    UPDATE = "UPDATE"
    DELETE = "DELETE"
    LOGIN = "LOGIN"
    LOGOUT = "LOGOUT"
    LOGIN_FAILED = "LOGIN_FAILED"
    PASSWORD_CHANGE = "PASSWORD_CHANGE"
    PERMISSION_DENIED = "PERMISSION_DENIED"


class AuditGroupBy(str, Enum):
    """Aggregation dimensions."""

    ACTION = "action"
    RESOURCE = "resource"
    ACTOR = "actor"


# ============================================================
# Audit Structures
# ============================================================


@dataclass
class AuditEvent:
    """An event submitted for appending. The timestamp is never caller-set."""

    actor_id: str
    actor_email: str
    action: AuditAction
    resource: str
    resource_id: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None
    ip_address: str = "unknown"
    user_agent: str = "unknown"

    @classmethod
    def from_context(
        cls,
        context: AuthContext,
        action: AuditAction,
        resource: str,
        resource_id: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> "AuditEvent":
        """Build an event with the caller snapshot taken from an auth context."""
        return cls(
            actor_id=context.user_id,
            actor_email=context.email,
            action=action,
            resource=resource,
            resource_id=resource_id,
            metadata=metadata,
            ip_address=context.ip_address,
            user_agent=context.user_agent,
        )


@dataclass
class AuditFilter:
    """Optional, ANDed query criteria. Date bounds are inclusive."""

    actor_id: Optional[str] = None
    action: Optional[AuditAction] = None
    resource: Optional[str] = None
    resource_id: Optional[str] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None

    def as_kwargs(self) -> Dict[str, Any]:
        return {
            "actor_id": self.actor_id,
            "action": AuditAction(self.action).value if self.action else None,
            "resource": self.resource,
            "resource_id": self.resource_id,
            "start_date": self.start_date,
            "end_date": self.end_date,
        }


@dataclass
class AuditPage:
    """One page of a list query, most recent first."""

    entries: List[AuditLog]
    total: int
    page: int
    limit: int

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total / self.limit) if self.limit else 0


@dataclass
class AggregationRow:
    """Count of entries in one group within a time window."""

    group: str
    count: int
    first_occurrence: datetime
    last_occurrence: datetime


# ============================================================
# Integrity
# ============================================================


SENSITIVE_FIELDS = {
    "password", "password_hash", "current_password", "new_password",
    "secret", "token", "access_token", "refresh_token", "api_key",
    "private_key",
}


def _sanitize_for_audit(data: Any) -> Any:
    """Remove sensitive fields from data before logging."""
    if isinstance(data, dict):
        return {
            k: "[REDACTED]" if str(k).lower() in SENSITIVE_FIELDS else _sanitize_for_audit(v)
            for k, v in data.items()
        }
    elif isinstance(data, (list, tuple, set)):
        return [_sanitize_for_audit(item) for item in data]
    elif isinstance(data, Enum):
        return data.value
    else:
        return data


def _json_safe(data: Dict[str, Any]) -> Dict[str, Any]:
    """Round-trip through JSON so stored metadata equals what was hashed."""
    return json.loads(json.dumps(data, default=str))


def _canonical_timestamp(value: datetime) -> str:
    # Some stores hand back naive UTC; normalise both forms to one string
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value.strftime("%Y-%m-%dT%H:%M:%S.%f")


def compute_entry_hash(entry: AuditLog) -> str:
    """Compute SHA256 over the immutable fields of an entry."""
    content = json.dumps(
        {
            "id": entry.id,
            "actor_id": entry.actor_id,
            "actor_email": entry.actor_email,
            "action": entry.action,
            "resource": entry.resource,
            "resource_id": entry.resource_id,
            "metadata": entry.event_metadata,
            "ip_address": entry.ip_address,
            "user_agent": entry.user_agent,
            "timestamp": _canonical_timestamp(entry.timestamp),
        },
        sort_keys=True,
        default=str,
    )
    return hashlib.sha256(content.encode()).hexdigest()


def audit_entry_to_dict(entry: AuditLog) -> Dict[str, Any]:
    """Convert to dictionary for export."""
    return {
        "id": entry.id,
        "actor_id": entry.actor_id,
        "actor_email": entry.actor_email,
        "action": entry.action,
        "resource": entry.resource,
        "resource_id": entry.resource_id,
        "metadata": entry.event_metadata,
        "ip_address": entry.ip_address,
        "user_agent": entry.user_agent,
        "timestamp": _canonical_timestamp(entry.timestamp) + "Z",
        "integrity_hash": entry.integrity_hash,
    }


# ============================================================
# Audit Engine
# ============================================================


class AuditEngine:
    """
    Central audit service.

    The only writer of audit entries. Store faults are surfaced to the
    caller, never swallowed.
    """

    def __init__(
        self,
        repository: AuditLogRepository,
        clock: Callable[[], datetime] = utcnow,
        max_page_size: Optional[int] = None,
        actor_group_limit: Optional[int] = None,
    ):
        self.repository = repository
        self._clock = clock
        self.max_page_size = max_page_size or settings.AUDIT_PAGE_SIZE_MAX
        self.actor_group_limit = actor_group_limit or settings.AUDIT_ACTOR_GROUP_LIMIT

    async def append(self, event: AuditEvent) -> AuditLog:
        """Write one entry, stamping the server-side timestamp."""
        entry = AuditLog(
            id=new_id(),
            actor_id=event.actor_id,
            actor_email=event.actor_email,
            action=AuditAction(event.action).value,
            resource=event.resource,
            resource_id=event.resource_id,
            event_metadata=_json_safe(_sanitize_for_audit(event.metadata or {})),
            ip_address=event.ip_address,
            user_agent=event.user_agent,
            timestamp=self._clock(),
        )
        entry.integrity_hash = compute_entry_hash(entry)

        await self.repository.add(entry)

        logger.info(
            "AUDIT",
            extra={
                "audit_event": audit_entry_to_dict(entry),
                "event_hash": entry.integrity_hash,
            },
        )
        return entry

    async def list(
        self,
        criteria: Optional[AuditFilter] = None,
        page: int = 1,
        limit: Optional[int] = None,
    ) -> AuditPage:
        """Filtered entries, most recent first, 1-indexed pages."""
        if limit is None:
            limit = settings.AUDIT_PAGE_SIZE_DEFAULT
        if page < 1:
            raise BadRequestError("page must be >= 1")
        if limit < 1:
            raise BadRequestError("limit must be >= 1")
        limit = min(limit, self.max_page_size)

        criteria = criteria or AuditFilter()
        entries, total = await self.repository.find(
            offset=(page - 1) * limit,
            limit=limit,
            **criteria.as_kwargs(),
        )
        return AuditPage(entries=entries, total=total, page=page, limit=limit)

    async def aggregate(
        self,
        group_by: Union[AuditGroupBy, str],
        start_date: datetime,
        end_date: datetime,
    ) -> List[AggregationRow]:
        """Counts per group within [start_date, end_date], largest first."""
        try:
            group = AuditGroupBy(group_by)
        except ValueError:
            raise BadRequestError(f"Unsupported groupBy: {group_by}")
        if start_date > end_date:
            raise BadRequestError("start_date must not be after end_date")

        # Actor cardinality is unbounded; action and resource are small domains
        limit = self.actor_group_limit if group is AuditGroupBy.ACTOR else None

        rows = await self.repository.aggregate(group.value, start_date, end_date, limit=limit)
        return [
            AggregationRow(
                group=group_value,
                count=count,
                first_occurrence=first,
                last_occurrence=last,
            )
            for group_value, count, first, last in rows
        ]

    async def trail(self, resource: str, resource_id: str) -> List[AuditLog]:
        """History of one resource instance, oldest first."""
        return await self.repository.trail(resource, resource_id)

    async def export(
        self,
        start_date: datetime,
        end_date: datetime,
        include_hash: bool = True,
    ) -> str:
        """Export audit events for compliance."""
        if start_date > end_date:
            raise BadRequestError("start_date must not be after end_date")

        entries = await self.repository.in_range(start_date, end_date)
        export_data: Dict[str, Any] = {
            "export_timestamp": self._clock().isoformat(),
            "period_start": start_date.isoformat(),
            "period_end": end_date.isoformat(),
            "event_count": len(entries),
            "events": [audit_entry_to_dict(e) for e in entries],
        }
        if include_hash:
            content = json.dumps(export_data, sort_keys=True, default=str)
            export_data["integrity_hash"] = hashlib.sha256(content.encode()).hexdigest()

        return json.dumps(export_data, indent=2, default=str)

    @staticmethod
    def verify_integrity(entry: AuditLog) -> bool:
        """True if the stored hash still matches the entry's content."""
        return entry.integrity_hash == compute_entry_hash(entry)
