"""User model."""
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import JSON, Boolean, DateTime, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from ..core.roles import Role
from .base import Base


class User(Base):
    """Job portal account: identity plus credential state."""

    __tablename__ = "users"

    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(50), nullable=False)
    role: Mapped[str] = mapped_column(String(20), default=Role.JOBSEEKER.value, nullable=False)
    company: Mapped[Optional[str]] = mapped_column(String(100))

    # Credentials
    hashed_password: Mapped[str] = mapped_column(String(255), nullable=False)
    # Most recent first, entries are {"hash": ..., "created_at": iso8601}
    password_history: Mapped[List[Dict[str, Any]]] = mapped_column(
        JSON, default=list, nullable=False
    )
    password_changed_at: Mapped[Optional[datetime]] = mapped_column(DateTime)

    # Verification
    is_verified: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    verified_at: Mapped[Optional[datetime]] = mapped_column(DateTime)

    # Lockout
    failed_login_attempts: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    lock_until: Mapped[Optional[datetime]] = mapped_column(DateTime)
    last_login: Mapped[Optional[datetime]] = mapped_column(DateTime)

    # MFA
    mfa_enabled: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    mfa_setup_pending: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    mfa_secret: Mapped[Optional[str]] = mapped_column(String(64))
    mfa_backup_codes: Mapped[List[str]] = mapped_column(JSON, default=list, nullable=False)

    def is_locked(self, now: datetime) -> bool:
        return self.lock_until is not None and self.lock_until > now

    def __repr__(self) -> str:
        return f"<User(email={self.email}, role={self.role})>"
