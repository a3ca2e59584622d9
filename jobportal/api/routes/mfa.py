"""Multi-factor authentication routes."""
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from ...core.security import (
    get_current_user,
    get_orchestrator,
    get_request_context,
    require_active_session,
)
from ...database import get_db
from ...models.user import User
from ...schemas.common import SuccessResponse
from ...schemas.mfa import (
    BackupCodesResponse,
    MfaBackupVerifyRequest,
    MfaBackupVerifyResponse,
    MfaCodeRequest,
    MfaSetupResponse,
    MfaStatusResponse,
    MfaVerifyRequest,
)
from ...services.audit import RequestContext
from ...services.auth import AuthOrchestrator

router = APIRouter(prefix="/mfa", tags=["Multi-factor authentication"])


@router.post("/setup", response_model=MfaSetupResponse)
async def setup_mfa(
    current_user: User = Depends(require_active_session),
    db: AsyncSession = Depends(get_db),
    orchestrator: AuthOrchestrator = Depends(get_orchestrator),
    context: RequestContext = Depends(get_request_context),
):
    """Generate a secret, QR code and backup codes; MFA stays off until confirmed."""
    setup = await orchestrator.setup_mfa(db, context, current_user.id)
    return MfaSetupResponse(
        message="MFA setup initiated",
        secret=setup.secret,
        qr_code=setup.qr_code,
        otpauth_url=setup.otpauth_url,
        backup_codes=setup.backup_codes,
    )


@router.post("/verify-setup", response_model=BackupCodesResponse)
async def verify_setup(
    payload: MfaCodeRequest,
    current_user: User = Depends(require_active_session),
    db: AsyncSession = Depends(get_db),
    orchestrator: AuthOrchestrator = Depends(get_orchestrator),
    context: RequestContext = Depends(get_request_context),
):
    backup_codes = await orchestrator.confirm_mfa_setup(db, context, current_user.id, payload.code)
    return BackupCodesResponse(message="MFA enabled successfully", backup_codes=backup_codes)


@router.post("/disable", response_model=SuccessResponse)
async def disable_mfa(
    payload: MfaCodeRequest,
    current_user: User = Depends(require_active_session),
    db: AsyncSession = Depends(get_db),
    orchestrator: AuthOrchestrator = Depends(get_orchestrator),
    context: RequestContext = Depends(get_request_context),
):
    await orchestrator.disable_mfa(db, context, current_user.id, payload.code)
    return SuccessResponse(message="MFA disabled successfully")


@router.post("/verify", response_model=SuccessResponse)
async def verify_mfa(
    payload: MfaVerifyRequest,
    db: AsyncSession = Depends(get_db),
    orchestrator: AuthOrchestrator = Depends(get_orchestrator),
    context: RequestContext = Depends(get_request_context),
):
    await orchestrator.verify_mfa(db, context, payload.email, payload.code)
    return SuccessResponse(message="MFA verification successful")


@router.post("/verify-backup", response_model=MfaBackupVerifyResponse)
async def verify_backup_code(
    payload: MfaBackupVerifyRequest,
    db: AsyncSession = Depends(get_db),
    orchestrator: AuthOrchestrator = Depends(get_orchestrator),
    context: RequestContext = Depends(get_request_context),
):
    remaining = await orchestrator.verify_backup_code(db, context, payload.email, payload.backup_code)
    return MfaBackupVerifyResponse(
        message="Backup code verification successful", backup_codes_remaining=remaining
    )


@router.get("/status", response_model=MfaStatusResponse)
async def mfa_status(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    orchestrator: AuthOrchestrator = Depends(get_orchestrator),
):
    status = await orchestrator.mfa_status(db, current_user.id)
    return MfaStatusResponse(**status)


@router.post("/regenerate-backup-codes", response_model=BackupCodesResponse)
async def regenerate_backup_codes(
    current_user: User = Depends(require_active_session),
    db: AsyncSession = Depends(get_db),
    orchestrator: AuthOrchestrator = Depends(get_orchestrator),
    context: RequestContext = Depends(get_request_context),
):
    backup_codes = await orchestrator.regenerate_backup_codes(db, context, current_user.id)
    return BackupCodesResponse(
        message="Backup codes regenerated successfully", backup_codes=backup_codes
    )
