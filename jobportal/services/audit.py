"""Audit trail: append-only writes and the reporting queries behind /security."""
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Tuple

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.logging import SecurityLogger, get_logger
from ..models.audit import AuditLog

logger = get_logger("security.audit")

SYSTEM_USER = "SYSTEM"


class AuditAction(str, Enum):
    """Identity lifecycle events worth keeping."""

    USER_REGISTRATION = "USER_REGISTRATION"
    VERIFICATION_CODE_RESENT = "VERIFICATION_CODE_RESENT"
    EMAIL_VERIFICATION = "EMAIL_VERIFICATION"
    LOGIN_SUCCESS = "LOGIN_SUCCESS"
    LOGIN_FAILED = "LOGIN_FAILED"
    ACCOUNT_LOCKED = "ACCOUNT_LOCKED"
    LOGOUT = "LOGOUT"
    PASSWORD_RESET_REQUESTED = "PASSWORD_RESET_REQUESTED"
    PASSWORD_RESET_COMPLETED = "PASSWORD_RESET_COMPLETED"
    PASSWORD_CHANGED = "PASSWORD_CHANGED"
    PROFILE_UPDATED = "PROFILE_UPDATED"
    MFA_SETUP_INITIATED = "MFA_SETUP_INITIATED"
    MFA_ENABLED = "MFA_ENABLED"
    MFA_DISABLED = "MFA_DISABLED"
    MFA_CHALLENGE_ISSUED = "MFA_CHALLENGE_ISSUED"
    MFA_VERIFICATION_SUCCESS = "MFA_VERIFICATION_SUCCESS"
    MFA_VERIFICATION_FAILED = "MFA_VERIFICATION_FAILED"
    MFA_BACKUP_VERIFICATION_SUCCESS = "MFA_BACKUP_VERIFICATION_SUCCESS"
    MFA_BACKUP_VERIFICATION_FAILED = "MFA_BACKUP_VERIFICATION_FAILED"
    MFA_BACKUP_CODES_REGENERATED = "MFA_BACKUP_CODES_REGENERATED"
    SUSPICIOUS_REQUEST = "SUSPICIOUS_REQUEST"


SUSPICIOUS_ACTIONS = (AuditAction.SUSPICIOUS_REQUEST.value, AuditAction.LOGIN_FAILED.value)


@dataclass
class RequestContext:
    """Where a call came from, as far as the audit trail cares."""

    ip_address: Optional[str] = None
    user_agent: Optional[str] = None


class AuditSink:
    """Writes audit rows and mirrors them to the ``security.audit`` log stream."""

    def __init__(self, session_factory: Optional[Callable[[], AsyncSession]] = None):
        self.session_factory = session_factory

    async def record(
        self,
        db: AsyncSession,
        user_id: Any,
        action: AuditAction,
        details: Optional[Dict[str, Any]] = None,
        context: Optional[RequestContext] = None,
    ) -> AuditLog:
        """Add an entry to the caller's transaction."""
        context = context or RequestContext()
        entry = AuditLog(
            user_id=str(user_id),
            action=AuditAction(action).value,
            details=details or {},
            ip_address=context.ip_address,
            user_agent=context.user_agent,
        )
        db.add(entry)
        SecurityLogger.log_audit_event(
            user_id=entry.user_id,
            action=entry.action,
            details=entry.details,
            ip_address=entry.ip_address,
            user_agent=entry.user_agent,
        )
        return entry

    async def record_system(
        self,
        action: AuditAction,
        details: Optional[Dict[str, Any]] = None,
        context: Optional[RequestContext] = None,
        user_id: str = SYSTEM_USER,
    ) -> None:
        """Write an entry in a transaction of its own.

        Used outside request handlers, where no session is open.
        """
        if self.session_factory is None:
            logger.warning("audit_sink_without_session_factory", action=AuditAction(action).value)
            return
        async with self.session_factory() as session:
            await self.record(session, user_id, action, details, context)
            await session.commit()


async def list_events(
    db: AsyncSession, page: int = 1, limit: int = 50
) -> Tuple[List[AuditLog], int, Dict[str, int]]:
    """Newest-first page of events, the total count and headline totals."""
    offset = (page - 1) * limit
    result = await db.execute(
        select(AuditLog)
        .order_by(AuditLog.created_at.desc())
        .offset(offset)
        .limit(limit)
    )
    events = list(result.scalars().all())

    counts = await stats_by_action(db)
    total = sum(counts.values())
    stats = {
        "total_events": total,
        "suspicious_events": counts.get(AuditAction.SUSPICIOUS_REQUEST.value, 0),
        "failed_logins": counts.get(AuditAction.LOGIN_FAILED.value, 0),
        "successful_logins": counts.get(AuditAction.LOGIN_SUCCESS.value, 0),
    }
    return events, total, stats


async def stats_by_action(db: AsyncSession) -> Dict[str, int]:
    result = await db.execute(
        select(AuditLog.action, func.count(AuditLog.id)).group_by(AuditLog.action)
    )
    return {action: count for action, count in result.all()}


async def recent_suspicious(db: AsyncSession, limit: int = 20) -> List[AuditLog]:
    result = await db.execute(
        select(AuditLog)
        .where(AuditLog.action.in_(SUSPICIOUS_ACTIONS))
        .order_by(AuditLog.created_at.desc())
        .limit(limit)
    )
    return list(result.scalars().all())
