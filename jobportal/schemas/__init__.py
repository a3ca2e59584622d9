"""Pydantic schemas module."""
from .auth import (
    RegisterRequest,
    LoginRequest,
    TokenResponse,
    UserResponse,
)
from .mfa import (
    MfaSetupResponse,
    MfaStatusResponse,
)
from .security import (
    AuditEventResponse,
    SecurityEventsResponse,
)
from .common import (
    PaginatedResponse,
    ErrorResponse,
    HealthResponse,
    SuccessResponse,
)

__all__ = [
    # Auth
    "RegisterRequest",
    "LoginRequest",
    "TokenResponse",
    "UserResponse",
    # MFA
    "MfaSetupResponse",
    "MfaStatusResponse",
    # Security
    "AuditEventResponse",
    "SecurityEventsResponse",
    # Common
    "PaginatedResponse",
    "ErrorResponse",
    "HealthResponse",
    "SuccessResponse",
]
