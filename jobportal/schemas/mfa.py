"""Multi-factor authentication schemas."""
from typing import List

from pydantic import EmailStr, Field

from .common import BaseSchema, Envelope


class MfaSetupResponse(Envelope):
    secret: str = Field(..., description="Base32 secret for manual entry")
    qr_code: str = Field(..., description="Base64 PNG QR code")
    otpauth_url: str = Field(..., description="Provisioning URI")
    backup_codes: List[str] = Field(..., description="Single-use backup codes")


class MfaCodeRequest(BaseSchema):
    code: str = Field(..., min_length=6, max_length=6, description="Authenticator code")


class MfaVerifyRequest(BaseSchema):
    email: EmailStr
    code: str = Field(..., min_length=6, max_length=6, description="Authenticator code")


class MfaBackupVerifyRequest(BaseSchema):
    email: EmailStr
    backup_code: str = Field(..., min_length=1, max_length=32)


class MfaBackupVerifyResponse(Envelope):
    backup_codes_remaining: int


class MfaStatusResponse(Envelope):
    mfa_enabled: bool
    setup_pending: bool = False
    backup_codes_remaining: int = 0


class BackupCodesResponse(Envelope):
    backup_codes: List[str]
