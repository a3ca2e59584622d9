"""Authentication orchestrator.

Drives the account lifecycle: registration with an emailed code,
verification, login with lockout and an optional second factor, password
reset and change, logout and profile maintenance. State that must survive a
failed call (failure counters, audit rows) is committed before the domain
error is raised, so the request-level rollback cannot undo it.
"""
import functools
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from ..config import settings
from ..config.settings import AuthSettings
from ..core import mfa
from ..core.auth import PasswordHasher, TokenIssuer
from ..core.exceptions import (
    AccountLockedError,
    AlreadyVerifiedError,
    BaseAPIException,
    DeliveryError,
    DuplicateAccountError,
    InternalError,
    InvalidCodeError,
    InvalidCredentialsError,
    InvalidTokenError,
    NotFoundError,
    UnverifiedError,
    ValidationError,
)
from ..core.logging import SecurityLogger, get_logger
from ..core.passwords import PasswordExpiry, check_password_expiry, check_password_strength
from ..core.roles import Role
from ..models.session import UserSession
from ..models.user import User
from .audit import SYSTEM_USER, AuditAction, AuditSink, RequestContext
from .codes import MfaChallengeStore, OneTimeCodeStore, ResetGrant, ResetTokenStore
from .email import EmailService


def normalize_email(email: str) -> str:
    return (email or "").strip().lower()


def translate_errors(message: str):
    """Let domain errors through; log anything else and hide it behind InternalError."""

    def decorator(func):
        @functools.wraps(func)
        async def wrapper(self, *args, **kwargs):
            try:
                return await func(self, *args, **kwargs)
            except BaseAPIException:
                raise
            except Exception as exc:
                self.logger.error(
                    "orchestrator_failure",
                    operation=func.__name__,
                    error=str(exc),
                    exc_info=True,
                )
                raise InternalError(message) from exc

        return wrapper

    return decorator


@dataclass
class SessionGrant:
    """A freshly issued session token."""

    token: str
    session_id: str
    expires_at: datetime
    expires_in: int


@dataclass
class LoginOutcome:
    """Result of a password login or of completing the second factor."""

    user: User
    session: Optional[SessionGrant] = None
    mfa_required: bool = False
    challenge_token: Optional[str] = None
    password_expiry: Optional[PasswordExpiry] = None


@dataclass
class MfaSetup:
    secret: str
    otpauth_url: str
    qr_code: str
    backup_codes: List[str] = field(default_factory=list)


class AuthOrchestrator:
    """Account lifecycle operations over the credential store and the code stores."""

    def __init__(
        self,
        *,
        code_store: OneTimeCodeStore,
        reset_store: ResetTokenStore,
        challenge_store: MfaChallengeStore,
        email_service: EmailService,
        audit: AuditSink,
        hasher: Optional[PasswordHasher] = None,
        token_issuer: Optional[TokenIssuer] = None,
        auth_settings: Optional[AuthSettings] = None,
        clock: Callable[[], datetime] = datetime.utcnow,
        logger=None,
    ):
        self.auth_settings = auth_settings or settings.auth
        self.codes = code_store
        self.resets = reset_store
        self.challenges = challenge_store
        self.email = email_service
        self.audit = audit
        self.hasher = hasher or PasswordHasher(self.auth_settings.bcrypt_rounds)
        self.tokens = token_issuer or TokenIssuer(self.auth_settings)
        self.clock = clock
        self.logger = logger or get_logger("auth.orchestrator")

    # Lookups

    async def get_user_by_email(self, db: AsyncSession, email: str) -> Optional[User]:
        result = await db.execute(select(User).where(User.email == normalize_email(email)))
        return result.scalar_one_or_none()

    async def get_user_by_id(self, db: AsyncSession, user_id: Any) -> Optional[User]:
        if not isinstance(user_id, uuid.UUID):
            try:
                user_id = uuid.UUID(str(user_id))
            except ValueError:
                return None
        return await db.get(User, user_id)

    async def _require_user(self, db: AsyncSession, user_id: Any) -> User:
        user = await self.get_user_by_id(db, user_id)
        if user is None:
            raise NotFoundError("User not found")
        return user

    async def get_active_session(
        self, db: AsyncSession, user_id: Any, session_id: Optional[str]
    ) -> Optional[UserSession]:
        """Session record for ``session_id`` if it belongs to the user and is live."""
        if not session_id:
            return None
        result = await db.execute(
            select(UserSession).where(UserSession.session_id == session_id)
        )
        record = result.scalar_one_or_none()
        if record is None or str(record.user_id) != str(user_id):
            return None
        if not record.is_active(self.clock()):
            return None
        return record

    # Helpers

    async def _open_session(
        self, db: AsyncSession, user: User, context: RequestContext
    ) -> SessionGrant:
        issued = self.tokens.create_access_token(
            user_id=str(user.id), email=user.email, role=user.role, now=self.clock()
        )
        db.add(UserSession(
            session_id=issued.session_id,
            user_id=user.id,
            expires_at=issued.expires_at,
            ip_address=context.ip_address,
            user_agent=context.user_agent,
        ))
        return SessionGrant(
            token=issued.token,
            session_id=issued.session_id,
            expires_at=issued.expires_at,
            expires_in=issued.expires_in,
        )

    def _password_expiry(self, user: User, now: datetime) -> PasswordExpiry:
        return check_password_expiry(
            user.password_changed_at or user.created_at or now,
            now,
            expiry_days=self.auth_settings.password_expiry_days,
            warning_days=self.auth_settings.password_warning_days,
        )

    def _check_new_password(self, user: User, password: str) -> None:
        strength = check_password_strength(password, user.email)
        if not strength.is_valid:
            raise ValidationError(
                "Password does not meet requirements",
                details={"password_strength": strength.to_dict()},
                errors=strength.field_errors(),
            )
        previous = [entry["hash"] for entry in user.password_history or []]
        if not previous:
            previous = [user.hashed_password]
        for hashed in previous:
            if self.hasher.verify_password(password, hashed):
                raise ValidationError(
                    "Password was used recently. Please choose a different password.",
                    errors=[{
                        "field": "new_password",
                        "message": (
                            "Cannot reuse any of your last "
                            f"{self.auth_settings.password_history_count} passwords"
                        ),
                    }],
                )

    def _set_password(self, user: User, password: str, now: datetime) -> None:
        hashed = self.hasher.hash_password(password)
        history = [{"hash": hashed, "created_at": now.isoformat()}]
        history.extend(user.password_history or [])
        # Reassign so the JSON column is flagged dirty.
        user.password_history = history[: self.auth_settings.password_history_count]
        user.hashed_password = hashed
        user.password_changed_at = now
        user.failed_login_attempts = 0
        user.lock_until = None

    async def _undo_registration(self, db: AsyncSession, user: User) -> None:
        try:
            await self.codes.discard(user.email)
        except Exception as exc:
            # An orphaned code expires with its TTL
            self.logger.warning("verification_code_discard_failed", error=str(exc))
        await db.delete(user)
        await db.commit()

    # Registration and verification

    @translate_errors("Registration failed")
    async def register(
        self,
        db: AsyncSession,
        context: RequestContext,
        email: str,
        name: str,
        password: str,
        role: Role = Role.JOBSEEKER,
        company: Optional[str] = None,
    ) -> User:
        email = normalize_email(email)
        strength = check_password_strength(password, email)
        if not strength.is_valid:
            raise ValidationError(
                "Password does not meet requirements",
                details={"password_strength": strength.to_dict()},
                errors=strength.field_errors(),
            )

        if await self.get_user_by_email(db, email) is not None:
            raise DuplicateAccountError("User already exists with this email")

        now = self.clock()
        hashed = self.hasher.hash_password(password)
        user = User(
            email=email,
            name=name.strip(),
            role=Role(role).value,
            company=company,
            hashed_password=hashed,
            password_history=[{"hash": hashed, "created_at": now.isoformat()}],
            password_changed_at=now,
            is_verified=False,
            failed_login_attempts=0,
            mfa_enabled=False,
            mfa_setup_pending=False,
            mfa_backup_codes=[],
        )
        db.add(user)
        try:
            await db.flush()
        except IntegrityError:
            await db.rollback()
            raise DuplicateAccountError("User already exists with this email")
        await db.commit()

        try:
            code = await self.codes.issue(email)
            delivered = await self.email.send_verification_code(
                email, code.code, user.name, expires_minutes=self.auth_settings.otp_expire_minutes
            )
            reason = "delivery_failed"
        except Exception as exc:
            self.logger.error("verification_delivery_error", error=str(exc), exc_info=True)
            delivered = False
            reason = type(exc).__name__
        if not delivered:
            await self._undo_registration(db, user)
            self.logger.warning("registration_rolled_back", reason=reason)
            raise DeliveryError("Failed to send verification email. Please try again.")

        await self.audit.record(
            db, user.id, AuditAction.USER_REGISTRATION,
            {"email": email, "role": user.role}, context,
        )
        await db.commit()
        self.logger.info("user_registered", user_id=str(user.id), role=user.role)
        return user

    @translate_errors("Failed to resend verification code")
    async def resend_verification(
        self, db: AsyncSession, context: RequestContext, email: str
    ) -> None:
        email = normalize_email(email)
        user = await self.get_user_by_email(db, email)
        if user is None:
            raise NotFoundError("User not found")
        if user.is_verified:
            raise AlreadyVerifiedError()

        code = await self.codes.issue(email)
        delivered = await self.email.send_verification_code(
            email, code.code, user.name, expires_minutes=self.auth_settings.otp_expire_minutes
        )
        if not delivered:
            await self.codes.discard(email)
            raise DeliveryError("Failed to send verification email. Please try again.")

        await self.audit.record(
            db, user.id, AuditAction.VERIFICATION_CODE_RESENT, {"email": email}, context
        )
        await db.commit()

    @translate_errors("Email verification failed")
    async def verify_email(
        self, db: AsyncSession, context: RequestContext, email: str, code: str
    ) -> LoginOutcome:
        email = normalize_email(email)
        user = await self.get_user_by_email(db, email)
        if user is None:
            raise NotFoundError("User not found")
        if user.is_verified:
            raise AlreadyVerifiedError()

        if not await self.codes.verify(email, code):
            raise InvalidCodeError("Invalid or expired verification code")

        now = self.clock()
        user.is_verified = True
        user.verified_at = now
        grant = await self._open_session(db, user, context)
        await self.audit.record(
            db, user.id, AuditAction.EMAIL_VERIFICATION, {"email": email}, context
        )
        await db.commit()
        return LoginOutcome(user=user, session=grant, password_expiry=self._password_expiry(user, now))

    # Login

    @translate_errors("Login failed")
    async def login(
        self, db: AsyncSession, context: RequestContext, email: str, password: str
    ) -> LoginOutcome:
        email = normalize_email(email)
        user = await self.get_user_by_email(db, email)
        if user is None:
            SecurityLogger.log_login_attempt(
                email, False, context.ip_address, context.user_agent, "unknown_email"
            )
            await self.audit.record(
                db, SYSTEM_USER, AuditAction.LOGIN_FAILED,
                {"email": email, "reason": "unknown_email"}, context,
            )
            await db.commit()
            raise InvalidCredentialsError("Invalid email or password")

        now = self.clock()
        if user.is_locked(now):
            SecurityLogger.log_login_attempt(
                email, False, context.ip_address, context.user_agent, "account_locked"
            )
            remaining = max(int((user.lock_until - now).total_seconds() // 60) + 1, 1)
            raise AccountLockedError(
                f"Account is temporarily locked. Try again in {remaining} minutes.",
                details={"lock_until": user.lock_until.isoformat()},
            )
        if user.lock_until is not None:
            user.lock_until = None
            user.failed_login_attempts = 0

        if not self.hasher.verify_password(password, user.hashed_password):
            user.failed_login_attempts = (user.failed_login_attempts or 0) + 1
            attempts = user.failed_login_attempts
            SecurityLogger.log_login_attempt(
                email, False, context.ip_address, context.user_agent, "invalid_password"
            )
            await self.audit.record(
                db, user.id, AuditAction.LOGIN_FAILED,
                {"email": email, "reason": "invalid_password", "attempts": attempts}, context,
            )
            if attempts >= self.auth_settings.max_login_attempts:
                user.lock_until = now + timedelta(minutes=self.auth_settings.lockout_minutes)
                await self.audit.record(
                    db, user.id, AuditAction.ACCOUNT_LOCKED,
                    {"email": email, "attempts": attempts,
                     "lock_until": user.lock_until.isoformat()},
                    context,
                )
                await db.commit()
                raise AccountLockedError(
                    "Account locked due to too many failed attempts. "
                    f"Try again in {self.auth_settings.lockout_minutes} minutes.",
                    details={"lock_until": user.lock_until.isoformat()},
                )
            await db.commit()
            raise InvalidCredentialsError("Invalid email or password")

        if not user.is_verified:
            await db.commit()
            raise UnverifiedError(details={"email": email, "requires_verification": True})

        user.failed_login_attempts = 0
        user.lock_until = None
        user.last_login = now
        expiry = self._password_expiry(user, now)

        if user.mfa_enabled:
            challenge = await self.challenges.issue(str(user.id))
            await self.audit.record(
                db, user.id, AuditAction.MFA_CHALLENGE_ISSUED, {"email": email}, context
            )
            await db.commit()
            return LoginOutcome(
                user=user, mfa_required=True, challenge_token=challenge, password_expiry=expiry
            )

        grant = await self._open_session(db, user, context)
        SecurityLogger.log_login_attempt(email, True, context.ip_address, context.user_agent)
        await self.audit.record(db, user.id, AuditAction.LOGIN_SUCCESS, {"email": email}, context)
        await db.commit()
        return LoginOutcome(user=user, session=grant, password_expiry=expiry)

    @translate_errors("MFA login failed")
    async def complete_mfa_login(
        self,
        db: AsyncSession,
        context: RequestContext,
        challenge_token: str,
        code: Optional[str] = None,
        backup_code: Optional[str] = None,
    ) -> LoginOutcome:
        if not code and not backup_code:
            raise ValidationError(
                "Verification code or backup code is required",
                errors=[{"field": "code", "message": "Verification code or backup code is required"}],
            )
        user_id = await self.challenges.lookup(challenge_token)
        user = await self.get_user_by_id(db, user_id) if user_id else None
        if user is None or not user.mfa_enabled:
            raise InvalidTokenError("Invalid or expired MFA challenge")

        if code:
            verified = mfa.verify_totp(user.mfa_secret, code, self.auth_settings.mfa_valid_window)
            success_action = AuditAction.MFA_VERIFICATION_SUCCESS
            failure_action = AuditAction.MFA_VERIFICATION_FAILED
        else:
            matched = mfa.match_backup_code(backup_code, user.mfa_backup_codes)
            verified = matched is not None
            if verified:
                user.mfa_backup_codes = [c for c in user.mfa_backup_codes if c != matched]
            success_action = AuditAction.MFA_BACKUP_VERIFICATION_SUCCESS
            failure_action = AuditAction.MFA_BACKUP_VERIFICATION_FAILED

        if not verified:
            await self.audit.record(db, user.id, failure_action, {"email": user.email}, context)
            await db.commit()
            raise InvalidCodeError("Invalid verification code")

        await self.challenges.consume(challenge_token)
        now = self.clock()
        user.last_login = now
        grant = await self._open_session(db, user, context)
        SecurityLogger.log_login_attempt(user.email, True, context.ip_address, context.user_agent)
        await self.audit.record(db, user.id, success_action, {"email": user.email}, context)
        await self.audit.record(
            db, user.id, AuditAction.LOGIN_SUCCESS, {"email": user.email, "mfa": True}, context
        )
        await db.commit()
        return LoginOutcome(user=user, session=grant, password_expiry=self._password_expiry(user, now))

    # Password reset and change

    @translate_errors("Failed to process password reset request")
    async def forgot_password(
        self, db: AsyncSession, context: RequestContext, email: str
    ) -> None:
        """Send a reset link when the account exists; callers answer identically either way."""
        email = normalize_email(email)
        user = await self.get_user_by_email(db, email)
        if user is None:
            self.logger.info("password_reset_unknown_email")
            return

        grant = await self.resets.issue(str(user.id), email)
        delivered = await self.email.send_password_reset(
            email,
            grant.token,
            user.name,
            expires_minutes=self.auth_settings.reset_token_expire_minutes,
        )
        if not delivered:
            await self.resets.consume(grant.token)
            raise DeliveryError("Failed to send password reset email. Please try again.")

        await self.audit.record(
            db, user.id, AuditAction.PASSWORD_RESET_REQUESTED, {"email": email}, context
        )
        await db.commit()

    @translate_errors("Failed to validate reset token")
    async def validate_reset_token(self, token: str) -> ResetGrant:
        grant = await self.resets.lookup(token)
        if grant is None:
            raise InvalidTokenError("Invalid or expired reset token")
        return grant

    @translate_errors("Failed to reset password")
    async def reset_password(
        self, db: AsyncSession, context: RequestContext, token: str, new_password: str
    ) -> None:
        grant = await self.resets.lookup(token)
        if grant is None:
            raise InvalidTokenError("Invalid or expired reset token")
        user = await self._require_user(db, grant.user_id)

        self._check_new_password(user, new_password)
        self._set_password(user, new_password, self.clock())
        await self.audit.record(
            db, user.id, AuditAction.PASSWORD_RESET_COMPLETED, {"email": user.email}, context
        )
        await db.commit()
        await self.resets.consume(token)

    @translate_errors("Failed to change password")
    async def change_password(
        self,
        db: AsyncSession,
        context: RequestContext,
        user_id: Any,
        current_password: str,
        new_password: str,
    ) -> None:
        user = await self._require_user(db, user_id)
        if not self.hasher.verify_password(current_password, user.hashed_password):
            raise InvalidCredentialsError("Current password is incorrect")
        if current_password == new_password:
            raise ValidationError(
                "New password must be different from current password",
                errors=[{
                    "field": "new_password",
                    "message": "New password must be different from current password",
                }],
            )

        self._check_new_password(user, new_password)
        self._set_password(user, new_password, self.clock())
        await self.audit.record(
            db, user.id, AuditAction.PASSWORD_CHANGED, {"email": user.email}, context
        )
        await db.commit()

    # Session and profile

    @translate_errors("Logout failed")
    async def logout(
        self, db: AsyncSession, context: RequestContext, user_id: Any, session_id: Optional[str]
    ) -> None:
        record = await self.get_active_session(db, user_id, session_id)
        if record is not None:
            record.revoked_at = self.clock()
        await self.audit.record(db, user_id, AuditAction.LOGOUT, {}, context)
        await db.commit()

    @translate_errors("Failed to load profile")
    async def get_profile(self, db: AsyncSession, user_id: Any) -> User:
        return await self._require_user(db, user_id)

    @translate_errors("Failed to update profile")
    async def update_profile(
        self,
        db: AsyncSession,
        context: RequestContext,
        user_id: Any,
        name: Optional[str] = None,
        company: Optional[str] = None,
    ) -> User:
        if name is not None:
            name = name.strip()
            if not 2 <= len(name) <= 50:
                raise ValidationError(
                    "Name must be between 2 and 50 characters",
                    errors=[{"field": "name", "message": "Name must be between 2 and 50 characters"}],
                )
        user = await self._require_user(db, user_id)
        changed: Dict[str, Any] = {}
        if name is not None and name != user.name:
            user.name = name
            changed["name"] = user.name
        if company is not None and company != user.company:
            user.company = company
            changed["company"] = company
        if changed:
            await self.audit.record(
                db, user.id, AuditAction.PROFILE_UPDATED, {"fields": sorted(changed)}, context
            )
            await db.commit()
        return user

    # Multi-factor authentication

    @translate_errors("MFA setup failed")
    async def setup_mfa(self, db: AsyncSession, context: RequestContext, user_id: Any) -> MfaSetup:
        user = await self._require_user(db, user_id)
        if user.mfa_enabled:
            raise ValidationError("MFA is already enabled for this account")

        secret = mfa.generate_totp_secret()
        uri = mfa.get_totp_uri(secret, user.email, self.auth_settings.mfa_issuer)
        backup_codes = mfa.generate_backup_codes(
            self.auth_settings.mfa_backup_codes_count,
            self.auth_settings.mfa_backup_code_length,
        )
        user.mfa_secret = secret
        user.mfa_backup_codes = backup_codes
        user.mfa_setup_pending = True
        await self.audit.record(db, user.id, AuditAction.MFA_SETUP_INITIATED, {}, context)
        await db.commit()
        return MfaSetup(
            secret=secret,
            otpauth_url=uri,
            qr_code=mfa.generate_qr_code_base64(uri),
            backup_codes=list(backup_codes),
        )

    @translate_errors("MFA verification failed")
    async def confirm_mfa_setup(
        self, db: AsyncSession, context: RequestContext, user_id: Any, code: str
    ) -> List[str]:
        user = await self._require_user(db, user_id)
        if not user.mfa_setup_pending or not user.mfa_secret:
            raise ValidationError("MFA setup not initiated")
        if not mfa.verify_totp(user.mfa_secret, code, self.auth_settings.mfa_valid_window):
            raise InvalidCodeError("Invalid MFA token")

        user.mfa_enabled = True
        user.mfa_setup_pending = False
        await self.audit.record(db, user.id, AuditAction.MFA_ENABLED, {}, context)
        await db.commit()
        return list(user.mfa_backup_codes)

    @translate_errors("MFA disable failed")
    async def disable_mfa(
        self, db: AsyncSession, context: RequestContext, user_id: Any, code: str
    ) -> None:
        user = await self._require_user(db, user_id)
        if not user.mfa_enabled:
            raise ValidationError("MFA is not enabled for this account")
        if not mfa.verify_totp(user.mfa_secret, code, self.auth_settings.mfa_valid_window):
            raise InvalidCodeError("Invalid MFA token")

        user.mfa_enabled = False
        user.mfa_setup_pending = False
        user.mfa_secret = None
        user.mfa_backup_codes = []
        await self.audit.record(db, user.id, AuditAction.MFA_DISABLED, {}, context)
        await db.commit()

    async def _mfa_user_by_email(self, db: AsyncSession, email: str) -> User:
        user = await self.get_user_by_email(db, email)
        if user is None:
            raise NotFoundError("User not found")
        if not user.mfa_enabled:
            raise ValidationError("MFA is not enabled for this account")
        return user

    @translate_errors("MFA verification failed")
    async def verify_mfa(
        self, db: AsyncSession, context: RequestContext, email: str, code: str
    ) -> User:
        user = await self._mfa_user_by_email(db, email)
        if not mfa.verify_totp(user.mfa_secret, code, self.auth_settings.mfa_valid_window):
            await self.audit.record(
                db, user.id, AuditAction.MFA_VERIFICATION_FAILED, {"email": user.email}, context
            )
            await db.commit()
            raise InvalidCodeError("Invalid MFA token")

        await self.audit.record(
            db, user.id, AuditAction.MFA_VERIFICATION_SUCCESS, {"email": user.email}, context
        )
        await db.commit()
        return user

    @translate_errors("Backup code verification failed")
    async def verify_backup_code(
        self, db: AsyncSession, context: RequestContext, email: str, backup_code: str
    ) -> int:
        """Consume one backup code; returns how many remain."""
        user = await self._mfa_user_by_email(db, email)
        if not user.mfa_backup_codes:
            raise ValidationError("MFA backup codes not available")

        matched = mfa.match_backup_code(backup_code, user.mfa_backup_codes)
        if matched is None:
            await self.audit.record(
                db, user.id, AuditAction.MFA_BACKUP_VERIFICATION_FAILED,
                {"email": user.email}, context,
            )
            await db.commit()
            raise InvalidCodeError("Invalid backup code")

        user.mfa_backup_codes = [c for c in user.mfa_backup_codes if c != matched]
        await self.audit.record(
            db, user.id, AuditAction.MFA_BACKUP_VERIFICATION_SUCCESS,
            {"email": user.email}, context,
        )
        await db.commit()
        return len(user.mfa_backup_codes)

    @translate_errors("Failed to get MFA status")
    async def mfa_status(self, db: AsyncSession, user_id: Any) -> Dict[str, Any]:
        user = await self._require_user(db, user_id)
        return {
            "mfa_enabled": bool(user.mfa_enabled),
            "setup_pending": bool(user.mfa_setup_pending),
            "backup_codes_remaining": len(user.mfa_backup_codes or []) if user.mfa_enabled else 0,
        }

    @translate_errors("Failed to regenerate backup codes")
    async def regenerate_backup_codes(
        self, db: AsyncSession, context: RequestContext, user_id: Any
    ) -> List[str]:
        user = await self._require_user(db, user_id)
        if not user.mfa_enabled:
            raise ValidationError("MFA is not enabled for this account")

        codes = mfa.generate_backup_codes(
            self.auth_settings.mfa_backup_codes_count,
            self.auth_settings.mfa_backup_code_length,
        )
        user.mfa_backup_codes = codes
        await self.audit.record(db, user.id, AuditAction.MFA_BACKUP_CODES_REGENERATED, {}, context)
        await db.commit()
        return list(codes)
