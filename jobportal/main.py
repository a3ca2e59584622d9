"""Main FastAPI application."""
from contextlib import asynccontextmanager
from datetime import datetime, timedelta
from typing import Callable, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.ext.asyncio import AsyncSession

from .config import settings
from .config.settings import Settings
from .core.auth import PasswordHasher, TokenIssuer
from .core.exceptions import BaseAPIException, ValidationError
from .core.logging import configure_logging
from .database import close_db, get_session_factory, init_db
from .api.middleware import (
    CSRFMiddleware,
    ErrorHandlingMiddleware,
    RateLimitingMiddleware,
    RequestLoggingMiddleware,
    SecurityHeadersMiddleware,
    SuspiciousRequestMiddleware,
    error_response,
)
from .api.routes import auth, mfa, security
from .schemas.common import HealthResponse
from .services.audit import AuditSink
from .services.auth import AuthOrchestrator
from .services.captcha import CaptchaService
from .services.codes import CsrfTokenStore, MfaChallengeStore, OneTimeCodeStore, ResetTokenStore
from .services.email import EmailService
from .services.rate_limit import FixedWindowRateLimiter
from .storage import KeyValueStore, create_kv_store


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events."""
    # Startup
    configure_logging(app.state.settings.monitoring.log_level)
    await init_db()
    yield
    # Shutdown
    await app.state.kv_store.close()
    await close_db()


def _open_session() -> AsyncSession:
    return get_session_factory()()


def _field_errors(exc: RequestValidationError) -> list:
    errors = []
    for error in exc.errors():
        location = [str(part) for part in error.get("loc", ()) if part != "body"]
        errors.append({
            "field": ".".join(location) or "body",
            "message": error.get("msg", "Invalid value"),
        })
    return errors


def create_app(
    app_settings: Optional[Settings] = None,
    *,
    session_factory: Optional[Callable[[], AsyncSession]] = None,
    kv_store: Optional[KeyValueStore] = None,
    email_service: Optional[EmailService] = None,
    captcha_service: Optional[CaptchaService] = None,
    clock: Callable[[], datetime] = datetime.utcnow,
) -> FastAPI:
    """Create and configure FastAPI application.

    Collaborators default to ones built from ``app_settings``; tests pass
    their own database session factory, store, mail sender and clock.
    """
    app_settings = app_settings or settings
    auth_settings = app_settings.auth

    app = FastAPI(
        title=app_settings.api.title,
        description=app_settings.api.description,
        version=app_settings.api.version,
        lifespan=lifespan
    )

    kv_store = kv_store or create_kv_store(app_settings)
    audit_sink = AuditSink(session_factory or _open_session)
    token_issuer = TokenIssuer(auth_settings)
    orchestrator = AuthOrchestrator(
        code_store=OneTimeCodeStore(
            kv_store,
            ttl=timedelta(minutes=auth_settings.otp_expire_minutes),
            length=auth_settings.otp_length,
            max_attempts=auth_settings.otp_max_attempts,
            clock=clock,
        ),
        reset_store=ResetTokenStore(
            kv_store,
            ttl=timedelta(minutes=auth_settings.reset_token_expire_minutes),
            clock=clock,
        ),
        challenge_store=MfaChallengeStore(
            kv_store,
            ttl=timedelta(minutes=auth_settings.mfa_challenge_expire_minutes),
            clock=clock,
        ),
        email_service=email_service or EmailService(app_settings.email),
        audit=audit_sink,
        hasher=PasswordHasher(auth_settings.bcrypt_rounds),
        token_issuer=token_issuer,
        auth_settings=auth_settings,
        clock=clock,
    )
    csrf_store = CsrfTokenStore(
        kv_store,
        ttl=timedelta(minutes=app_settings.security.csrf_token_expire_minutes),
        clock=clock,
    )

    app.state.settings = app_settings
    app.state.session_factory = session_factory
    app.state.kv_store = kv_store
    app.state.audit = audit_sink
    app.state.orchestrator = orchestrator
    app.state.captcha = captcha_service or CaptchaService(app_settings.captcha)
    app.state.csrf_store = csrf_store

    # Add middleware; the last one added runs first
    app.add_middleware(CSRFMiddleware, csrf_store=csrf_store, enabled=app_settings.security.csrf_enabled)
    app.add_middleware(
        RateLimitingMiddleware,
        auth_limiter=FixedWindowRateLimiter(
            kv_store, "auth",
            app_settings.rate_limit.auth_max_requests,
            app_settings.rate_limit.window_seconds,
        ),
        api_limiter=FixedWindowRateLimiter(
            kv_store, "api",
            app_settings.rate_limit.api_max_requests,
            app_settings.rate_limit.window_seconds,
        ),
        token_issuer=token_issuer,
        enabled=app_settings.rate_limit.enabled,
    )
    app.add_middleware(
        SuspiciousRequestMiddleware,
        audit_sink=audit_sink,
        enabled=app_settings.security.suspicious_request_detection,
    )
    app.add_middleware(ErrorHandlingMiddleware, debug=app_settings.debug)
    app.add_middleware(RequestLoggingMiddleware, slow_request_ms=app_settings.security.slow_request_ms)
    app.add_middleware(SecurityHeadersMiddleware)

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=app_settings.api.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-CSRF-Token", "X-Request-ID"],
    )

    @app.exception_handler(BaseAPIException)
    async def api_exception_handler(request: Request, exc: BaseAPIException):
        return error_response(exc)

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        return error_response(ValidationError(errors=_field_errors(exc)))

    # Include routers
    app.include_router(auth.router, prefix="/api/v1")
    app.include_router(mfa.router, prefix="/api/v1")
    app.include_router(security.router, prefix="/api/v1")

    # Root endpoint
    @app.get("/")
    async def root():
        return {
            "success": True,
            "message": "Job Portal API",
            "version": app_settings.api.version,
            "status": "healthy"
        }

    # Health check endpoint
    @app.get("/health", response_model=HealthResponse)
    async def health():
        return HealthResponse(status="healthy", version=app_settings.api.version)

    return app


# Create app instance
app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "jobportal.main:app",
        host=settings.api.host,
        port=settings.api.port,
        reload=settings.api.reload,
        workers=settings.api.workers if not settings.api.reload else 1,
    )
