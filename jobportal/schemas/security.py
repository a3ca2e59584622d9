"""Audit reporting schemas."""
import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import Field

from .common import BaseSchema, Envelope, PaginatedResponse


class AuditEventResponse(BaseSchema):
    id: uuid.UUID
    user_id: str
    action: str
    details: Dict[str, Any] = Field(default_factory=dict)
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    created_at: datetime


class SecurityStats(BaseSchema):
    total_events: int = 0
    suspicious_events: int = 0
    failed_logins: int = 0
    successful_logins: int = 0


class SecurityEventsResponse(Envelope):
    events: PaginatedResponse[AuditEventResponse]
    stats: SecurityStats


class SecurityStatsResponse(Envelope):
    stats: Dict[str, int]


class SuspiciousEventsResponse(Envelope):
    events: List[AuditEventResponse]
