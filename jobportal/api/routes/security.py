"""Audit reporting routes."""
from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from ...core.roles import Capability
from ...core.security import require_capability
from ...database import get_db
from ...models.user import User
from ...schemas.common import PaginatedResponse
from ...schemas.security import (
    AuditEventResponse,
    SecurityEventsResponse,
    SecurityStats,
    SecurityStatsResponse,
    SuspiciousEventsResponse,
)
from ...services import audit

router = APIRouter(prefix="/security", tags=["Security"])

audit_viewer = require_capability(Capability.VIEW_AUDIT_LOG)


@router.get("/events", response_model=SecurityEventsResponse)
async def list_security_events(
    page: int = Query(1, ge=1, description="Page number"),
    limit: int = Query(50, ge=1, le=200, description="Page size"),
    current_user: User = Depends(audit_viewer),
    db: AsyncSession = Depends(get_db)
):
    """Newest-first audit events with headline totals."""
    events, total, stats = await audit.list_events(db, page, limit)
    return SecurityEventsResponse(
        events=PaginatedResponse[AuditEventResponse].create(
            items=[AuditEventResponse.model_validate(event) for event in events],
            total=total,
            page=page,
            size=limit,
        ),
        stats=SecurityStats(**stats),
    )


@router.get("/stats", response_model=SecurityStatsResponse)
async def security_stats(
    current_user: User = Depends(audit_viewer),
    db: AsyncSession = Depends(get_db)
):
    """Event counts per action."""
    return SecurityStatsResponse(stats=await audit.stats_by_action(db))


@router.get("/suspicious", response_model=SuspiciousEventsResponse)
async def suspicious_events(
    current_user: User = Depends(audit_viewer),
    db: AsyncSession = Depends(get_db)
):
    """The 20 most recent suspicious requests and failed logins."""
    events = await audit.recent_suspicious(db)
    return SuspiciousEventsResponse(
        events=[AuditEventResponse.model_validate(event) for event in events]
    )
