"""Services module."""
from .audit import AuditAction, AuditSink, RequestContext
from .auth import AuthOrchestrator, LoginOutcome, MfaSetup, SessionGrant
from .captcha import CaptchaService
from .codes import CsrfTokenStore, MfaChallengeStore, OneTimeCodeStore, ResetTokenStore
from .email import EmailService
from .rate_limit import FixedWindowRateLimiter, RateLimitResult

__all__ = [
    "AuditAction",
    "AuditSink",
    "RequestContext",
    "AuthOrchestrator",
    "LoginOutcome",
    "MfaSetup",
    "SessionGrant",
    "CaptchaService",
    "CsrfTokenStore",
    "MfaChallengeStore",
    "OneTimeCodeStore",
    "ResetTokenStore",
    "EmailService",
    "FixedWindowRateLimiter",
    "RateLimitResult",
]
