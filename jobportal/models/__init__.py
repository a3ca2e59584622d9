"""Database models module."""
from .base import Base
from .user import User
from .session import UserSession
from .audit import AuditLog

__all__ = [
    "Base",
    "User",
    "UserSession",
    "AuditLog",
]
