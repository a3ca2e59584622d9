"""Authentication schemas."""
import uuid
from datetime import datetime
from typing import Dict, List, Optional

from pydantic import EmailStr, Field, field_validator

from ..core.roles import Role
from .common import BaseSchema, Envelope


def _clean_name(value: Optional[str]) -> Optional[str]:
    if value is None:
        return value
    value = value.strip()
    if len(value) < 2:
        raise ValueError("Name must be between 2 and 50 characters")
    return value


class UserResponse(BaseSchema):
    """Public view of an account; never carries credential material."""

    id: uuid.UUID = Field(..., description="User ID")
    email: EmailStr = Field(..., description="User email address")
    name: str = Field(..., description="Display name")
    role: Role = Field(..., description="User role")
    company: Optional[str] = Field(None, description="Employer company")
    is_verified: bool = Field(..., description="Email verification status")
    mfa_enabled: bool = Field(False, description="Whether MFA is enabled")
    last_login: Optional[datetime] = Field(None, description="Last login time")
    created_at: datetime = Field(..., description="Account creation time")


class RegisterRequest(BaseSchema):
    """Registration request schema."""

    email: EmailStr = Field(..., description="User email address")
    name: str = Field(..., min_length=2, max_length=50, description="Display name")
    password: str = Field(..., description="User password")
    role: Role = Field(default=Role.JOBSEEKER, description="User role")
    company: Optional[str] = Field(None, max_length=100, description="Employer company")
    captcha_token: Optional[str] = Field(None, description="reCAPTCHA token")

    @field_validator("name")
    @classmethod
    def strip_name(cls, value: str) -> str:
        return _clean_name(value)


class RegisterResponse(Envelope):
    user: UserResponse
    requires_verification: bool = True


class VerifyEmailRequest(BaseSchema):
    email: EmailStr = Field(..., description="User email")
    code: str = Field(..., min_length=1, max_length=16, description="Emailed verification code")


class EmailRequest(BaseSchema):
    """Request carrying only an email address."""

    email: EmailStr = Field(..., description="User email")


class LoginRequest(BaseSchema):
    """Login request schema."""

    email: EmailStr = Field(..., description="User email")
    password: str = Field(..., min_length=1, description="User password")
    captcha_token: Optional[str] = Field(None, description="reCAPTCHA token")


class PasswordExpiryResponse(BaseSchema):
    is_expired: bool
    days_until_expiry: int
    should_warn: bool


class TokenResponse(Envelope):
    """Session token issued after verification or login."""

    token: Optional[str] = Field(None, description="JWT access token")
    token_type: str = Field(default="bearer", description="Token type")
    expires_in: Optional[int] = Field(None, description="Token expiration in seconds")
    mfa_required: bool = Field(False, description="Whether a second factor is needed")
    challenge_token: Optional[str] = Field(None, description="MFA challenge token")
    user: UserResponse = Field(..., description="User information")
    password_expiry: Optional[PasswordExpiryResponse] = None


class MfaLoginRequest(BaseSchema):
    challenge_token: str = Field(..., min_length=1, description="Challenge from /auth/login")
    code: Optional[str] = Field(None, description="Authenticator code")
    backup_code: Optional[str] = Field(None, description="Single-use backup code")


class ResetTokenRequest(BaseSchema):
    token: str = Field(..., min_length=1, description="Reset token")


class ResetTokenResponse(Envelope):
    valid: bool = True
    email: Optional[EmailStr] = None


class PasswordResetConfirm(BaseSchema):
    """Password reset confirmation schema."""

    token: str = Field(..., min_length=1, description="Reset token")
    new_password: str = Field(..., description="New password")


class PasswordChangeRequest(BaseSchema):
    """Password change request schema."""

    current_password: str = Field(..., min_length=1, description="Current password")
    new_password: str = Field(..., description="New password")


class ProfileUpdateRequest(BaseSchema):
    name: Optional[str] = Field(None, min_length=2, max_length=50)
    company: Optional[str] = Field(None, max_length=100)

    @field_validator("name")
    @classmethod
    def strip_name(cls, value: Optional[str]) -> Optional[str]:
        return _clean_name(value)


class ProfileResponse(Envelope):
    user: UserResponse


class PasswordStrengthRequest(BaseSchema):
    password: str = Field(..., description="Candidate password")
    email: Optional[str] = Field(None, description="Email the password must not contain")


class PasswordStrengthResponse(Envelope):
    score: int
    strength: str
    checks: Dict[str, bool]
    contains_email: bool
    is_valid: bool
    messages: List[str] = Field(default_factory=list)


class CsrfTokenResponse(Envelope):
    csrf_token: str
