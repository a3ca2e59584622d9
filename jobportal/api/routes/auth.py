"""Authentication routes."""
from fastapi import APIRouter, Depends, Request, Response
from sqlalchemy.ext.asyncio import AsyncSession

from ...core.passwords import check_password_strength
from ...core.security import (
    get_current_user,
    get_orchestrator,
    get_request_context,
    require_active_session,
)
from ...database import get_db
from ...models.user import User
from ...schemas.auth import (
    CsrfTokenResponse,
    EmailRequest,
    LoginRequest,
    MfaLoginRequest,
    PasswordChangeRequest,
    PasswordResetConfirm,
    PasswordStrengthRequest,
    PasswordStrengthResponse,
    ProfileResponse,
    ProfileUpdateRequest,
    RegisterRequest,
    RegisterResponse,
    ResetTokenRequest,
    ResetTokenResponse,
    TokenResponse,
    UserResponse,
    VerifyEmailRequest,
)
from ...schemas.common import SuccessResponse
from ...services.audit import RequestContext
from ...services.auth import AuthOrchestrator, LoginOutcome

router = APIRouter(prefix="/auth", tags=["Authentication"])

FORGOT_PASSWORD_MESSAGE = (
    "If an account with that email exists, a password reset link has been sent."
)


def get_captcha(request: Request):
    return request.app.state.captcha


def token_response(outcome: LoginOutcome, message: str) -> TokenResponse:
    session = outcome.session
    return TokenResponse(
        message=message,
        token=session.token if session else None,
        expires_in=session.expires_in if session else None,
        mfa_required=outcome.mfa_required,
        challenge_token=outcome.challenge_token,
        user=UserResponse.model_validate(outcome.user),
        password_expiry=(
            outcome.password_expiry.to_dict() if outcome.password_expiry else None
        ),
    )


@router.post("/register", response_model=RegisterResponse, status_code=201)
async def register_user(
    payload: RegisterRequest,
    db: AsyncSession = Depends(get_db),
    orchestrator: AuthOrchestrator = Depends(get_orchestrator),
    context: RequestContext = Depends(get_request_context),
    captcha=Depends(get_captcha),
):
    """Register a new account and email a verification code."""
    await captcha.require_signup(payload.captcha_token, context.ip_address)

    user = await orchestrator.register(
        db,
        context,
        email=payload.email,
        name=payload.name,
        password=payload.password,
        role=payload.role,
        company=payload.company,
    )
    return RegisterResponse(
        message="Registration successful. Please check your email for the verification code.",
        user=UserResponse.model_validate(user),
    )


@router.post("/verify-email", response_model=TokenResponse)
async def verify_email(
    payload: VerifyEmailRequest,
    db: AsyncSession = Depends(get_db),
    orchestrator: AuthOrchestrator = Depends(get_orchestrator),
    context: RequestContext = Depends(get_request_context),
):
    """Confirm the emailed code and start a session."""
    outcome = await orchestrator.verify_email(db, context, payload.email, payload.code)
    return token_response(outcome, "Email verified successfully")


@router.post("/resend-verification", response_model=SuccessResponse)
async def resend_verification(
    payload: EmailRequest,
    db: AsyncSession = Depends(get_db),
    orchestrator: AuthOrchestrator = Depends(get_orchestrator),
    context: RequestContext = Depends(get_request_context),
):
    await orchestrator.resend_verification(db, context, payload.email)
    return SuccessResponse(message="Verification code sent. Please check your email.")


@router.post("/login", response_model=TokenResponse)
async def login_user(
    payload: LoginRequest,
    db: AsyncSession = Depends(get_db),
    orchestrator: AuthOrchestrator = Depends(get_orchestrator),
    context: RequestContext = Depends(get_request_context),
    captcha=Depends(get_captcha),
):
    """Login user and return a session token, or an MFA challenge."""
    await captcha.require_login(payload.captcha_token, context.ip_address)

    outcome = await orchestrator.login(db, context, payload.email, payload.password)
    if outcome.mfa_required:
        return token_response(outcome, "MFA verification required")
    return token_response(outcome, "Login successful")


@router.post("/login/mfa", response_model=TokenResponse)
async def login_with_mfa(
    payload: MfaLoginRequest,
    db: AsyncSession = Depends(get_db),
    orchestrator: AuthOrchestrator = Depends(get_orchestrator),
    context: RequestContext = Depends(get_request_context),
):
    """Exchange an MFA challenge plus a code for a session token."""
    outcome = await orchestrator.complete_mfa_login(
        db,
        context,
        payload.challenge_token,
        code=payload.code,
        backup_code=payload.backup_code,
    )
    return token_response(outcome, "Login successful")


@router.post("/forgot-password", response_model=SuccessResponse)
async def forgot_password(
    payload: EmailRequest,
    db: AsyncSession = Depends(get_db),
    orchestrator: AuthOrchestrator = Depends(get_orchestrator),
    context: RequestContext = Depends(get_request_context),
):
    await orchestrator.forgot_password(db, context, payload.email)
    return SuccessResponse(message=FORGOT_PASSWORD_MESSAGE)


@router.post("/validate-reset-token", response_model=ResetTokenResponse)
async def validate_reset_token(
    payload: ResetTokenRequest,
    orchestrator: AuthOrchestrator = Depends(get_orchestrator),
):
    grant = await orchestrator.validate_reset_token(payload.token)
    return ResetTokenResponse(message="Reset token is valid", email=grant.email)


@router.post("/reset-password", response_model=SuccessResponse)
async def reset_password(
    payload: PasswordResetConfirm,
    db: AsyncSession = Depends(get_db),
    orchestrator: AuthOrchestrator = Depends(get_orchestrator),
    context: RequestContext = Depends(get_request_context),
):
    await orchestrator.reset_password(db, context, payload.token, payload.new_password)
    return SuccessResponse(
        message="Password reset successfully. Please log in with your new password."
    )


@router.post("/change-password", response_model=SuccessResponse)
async def change_password(
    payload: PasswordChangeRequest,
    current_user: User = Depends(require_active_session),
    db: AsyncSession = Depends(get_db),
    orchestrator: AuthOrchestrator = Depends(get_orchestrator),
    context: RequestContext = Depends(get_request_context),
):
    """Change user password."""
    await orchestrator.change_password(
        db, context, current_user.id, payload.current_password, payload.new_password
    )
    return SuccessResponse(message="Password changed successfully")


@router.post("/logout", response_model=SuccessResponse)
async def logout_user(
    request: Request,
    response: Response,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    orchestrator: AuthOrchestrator = Depends(get_orchestrator),
    context: RequestContext = Depends(get_request_context),
):
    """Revoke the current session; the client discards its token."""
    await orchestrator.logout(
        db, context, current_user.id, getattr(request.state, "session_id", None)
    )
    response.delete_cookie(request.app.state.settings.security.token_cookie_name)
    return SuccessResponse(message="Logged out successfully")


@router.get("/profile", response_model=ProfileResponse)
async def get_profile(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    orchestrator: AuthOrchestrator = Depends(get_orchestrator),
):
    user = await orchestrator.get_profile(db, current_user.id)
    return ProfileResponse(user=UserResponse.model_validate(user))


@router.put("/profile", response_model=ProfileResponse)
async def update_profile(
    payload: ProfileUpdateRequest,
    current_user: User = Depends(require_active_session),
    db: AsyncSession = Depends(get_db),
    orchestrator: AuthOrchestrator = Depends(get_orchestrator),
    context: RequestContext = Depends(get_request_context),
):
    user = await orchestrator.update_profile(
        db, context, current_user.id, name=payload.name, company=payload.company
    )
    return ProfileResponse(
        message="Profile updated successfully", user=UserResponse.model_validate(user)
    )


@router.post("/password-strength", response_model=PasswordStrengthResponse)
async def password_strength(payload: PasswordStrengthRequest):
    """Score a candidate password without storing anything."""
    return PasswordStrengthResponse(**check_password_strength(payload.password, payload.email).to_dict())


@router.get("/csrf-token", response_model=CsrfTokenResponse)
async def csrf_token(
    request: Request,
    response: Response,
    context: RequestContext = Depends(get_request_context),
):
    """Issue a single-use token for the ``X-CSRF-Token`` header."""
    token = await request.app.state.csrf_store.issue(context.ip_address)
    response.headers["X-CSRF-Token"] = token
    return CsrfTokenResponse(csrf_token=token)
