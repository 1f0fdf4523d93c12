"""
Audit Log Schemas

Pydantic models for audit log queries.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class AuditLogResponse(BaseModel):
    """One audit entry."""

    id: str
    actor_id: str
    actor_email: str
    action: str
    resource: str
    resource_id: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict, validation_alias="event_metadata")
    ip_address: str
    user_agent: str
    timestamp: datetime
    integrity_hash: Optional[str] = None

    class Config:
        from_attributes = True
        populate_by_name = True


class AuditLogListResponse(BaseModel):
    """Paginated audit entries, most recent first."""

    logs: List[AuditLogResponse]
    total: int
    page: int
    limit: int
    total_pages: int


class AggregationItem(BaseModel):
    """Entry count for one group."""

    group: str
    count: int
    first_occurrence: datetime
    last_occurrence: datetime

    class Config:
        from_attributes = True


class AggregationResponse(BaseModel):
    """Grouped counts within a time window."""

    group_by: str
    start_date: datetime
    end_date: datetime
    results: List[AggregationItem]


class AuditTrailResponse(BaseModel):
    """History of one resource instance, oldest first."""

    resource: str
    resource_id: str
    entries: List[AuditLogResponse]
