"""
Audit Log Routes

Read-only API over the audit log. There is no endpoint that updates or
deletes entries.
"""

from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends, Query, Response

from keystone.api.access.audit import AuditAction, AuditEngine, AuditFilter, AuditGroupBy
from keystone.api.access.policy import AuthContext
from keystone.api.audit_logs.schemas import (
    AggregationItem,
    AggregationResponse,
    AuditLogListResponse,
    AuditLogResponse,
    AuditTrailResponse,
)
from keystone.api.dependencies import get_audit_engine, require_permission


router = APIRouter()


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Naive query datetimes are taken as UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


@router.get("", response_model=AuditLogListResponse, summary="Query audit logs")
async def list_audit_logs(
    page: int = Query(1, ge=1),
    limit: Optional[int] = Query(None, ge=1),
    actor_id: Optional[str] = None,
    action: Optional[AuditAction] = None,
    resource: Optional[str] = None,
    resource_id: Optional[str] = None,
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    context: AuthContext = Depends(require_permission("audit-logs", "read")),
    audit: AuditEngine = Depends(get_audit_engine),
) -> AuditLogListResponse:
    """Filters are ANDed; limit defaults to AUDIT_PAGE_SIZE_DEFAULT and is capped server-side."""
    result = await audit.list(
        AuditFilter(
            actor_id=actor_id,
            action=action,
            resource=resource,
            resource_id=resource_id,
            start_date=_as_utc(start_date),
            end_date=_as_utc(end_date),
        ),
        page=page,
        limit=limit,
    )
    return AuditLogListResponse(
        logs=[AuditLogResponse.model_validate(e) for e in result.entries],
        total=result.total,
        page=result.page,
        limit=result.limit,
        total_pages=result.total_pages,
    )


@router.get("/stats", response_model=AggregationResponse, summary="Aggregate audit logs")
async def audit_stats(
    start_date: datetime,
    end_date: datetime,
    group_by: AuditGroupBy = Query(AuditGroupBy.ACTION),
    context: AuthContext = Depends(require_permission("audit-logs", "read")),
    audit: AuditEngine = Depends(get_audit_engine),
) -> AggregationResponse:
    start, end = _as_utc(start_date), _as_utc(end_date)
    rows = await audit.aggregate(group_by, start, end)
    return AggregationResponse(
        group_by=group_by.value,
        start_date=start,
        end_date=end,
        results=[AggregationItem.model_validate(row) for row in rows],
    )


@router.get("/export", summary="Export audit logs")
async def export_audit_logs(
    start_date: datetime,
    end_date: datetime,
    include_hash: bool = True,
    context: AuthContext = Depends(require_permission("audit-logs", "read")),
    audit: AuditEngine = Depends(get_audit_engine),
) -> Response:
    """JSON document of every entry in the window, oldest first."""
    body = await audit.export(_as_utc(start_date), _as_utc(end_date), include_hash)
    return Response(content=body, media_type="application/json")


@router.get(
    "/trail/{resource}/{resource_id}",
    response_model=AuditTrailResponse,
    summary="Resource audit trail",
)
async def audit_trail(
    resource: str,
    resource_id: str,
    context: AuthContext = Depends(require_permission("audit-logs", "read")),
    audit: AuditEngine = Depends(get_audit_engine),
) -> AuditTrailResponse:
    entries = await audit.trail(resource, resource_id)
    return AuditTrailResponse(
        resource=resource,
        resource_id=resource_id,
        entries=[AuditLogResponse.model_validate(e) for e in entries],
    )
