"""API middleware for logging, rate limiting, CSRF, attack detection and error handling."""
import re
import time
import uuid
from typing import Callable, Dict, Iterable, Optional
from urllib.parse import unquote

from fastapi import Request, Response
from fastapi.responses import JSONResponse
from fastapi.security import HTTPAuthorizationCredentials
from starlette.middleware.base import BaseHTTPMiddleware

from ..core.auth import TokenIssuer
from ..core.exceptions import BaseAPIException, CSRFError, RateLimitExceeded
from ..core.logging import RequestLogger, SecurityLogger, get_logger
from ..core.security import extract_token
from ..schemas.common import ErrorResponse
from ..services.audit import AuditAction, AuditSink, RequestContext
from ..services.codes import CsrfTokenStore
from ..services.rate_limit import FixedWindowRateLimiter

logger = get_logger("api.middleware")

API_PREFIX = "/api/v1"

# Endpoints that guess or spend credentials; they get the stricter limit.
AUTH_RATE_LIMITED_PATHS = frozenset(
    API_PREFIX + path
    for path in (
        "/auth/register",
        "/auth/login",
        "/auth/login/mfa",
        "/auth/verify-email",
        "/auth/resend-verification",
        "/auth/forgot-password",
        "/auth/reset-password",
        "/auth/change-password",
        "/mfa/verify",
        "/mfa/verify-backup",
    )
)

# These carry a reCAPTCHA token instead.
CSRF_EXEMPT_PATHS = frozenset(
    API_PREFIX + path for path in ("/auth/login", "/auth/login/mfa", "/auth/register")
)
SAFE_METHODS = frozenset({"GET", "HEAD", "OPTIONS"})

SUSPICIOUS_PATTERNS = (
    re.compile(r"\.\./"),
    re.compile(r"<script", re.IGNORECASE),
    re.compile(r"union\s+select", re.IGNORECASE),
    re.compile(r"eval\s*\(", re.IGNORECASE),
    re.compile(r"document\.cookie", re.IGNORECASE),
    re.compile(r"javascript:", re.IGNORECASE),
)

CONTENT_SECURITY_POLICY = "; ".join([
    "default-src 'self'",
    "style-src 'self' 'unsafe-inline'",
    "script-src 'self' 'unsafe-inline'",
    "img-src 'self' data: https:",
    "connect-src 'self'",
    "font-src 'self'",
    "object-src 'none'",
    "media-src 'self'",
    "frame-src 'none'",
])


def error_response(
    exc: BaseAPIException, headers: Optional[Dict[str, str]] = None
) -> JSONResponse:
    """Render a domain error as the ``success: false`` envelope."""
    body = ErrorResponse(
        message=exc.message,
        error_code=exc.error_code,
        errors=exc.errors,
        details=exc.details or None,
    )
    return JSONResponse(
        status_code=exc.status_code,
        content=body.model_dump(mode="json", exclude_none=True),
        headers=headers,
    )


def client_ip(request: Request) -> str:
    return request.client.host if request.client else "unknown"


def looks_suspicious(*values: str) -> bool:
    return any(pattern.search(value) for value in values if value for pattern in SUSPICIOUS_PATTERNS)


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Middleware for logging requests and responses."""

    def __init__(self, app, slow_request_ms: float = 5000):
        super().__init__(app)
        self.slow_request_ms = slow_request_ms

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        # Generate request ID
        request_id = str(uuid.uuid4())
        request.state.request_id = request_id

        # Log request
        start_time = time.time()
        RequestLogger.log_request(
            method=request.method,
            path=str(request.url.path),
            request_id=request_id,
            extra_data={
                "client_ip": client_ip(request),
                "user_agent": request.headers.get("user-agent")
            }
        )

        # Process request
        response = await call_next(request)

        # Calculate response time
        response_time_ms = (time.time() - start_time) * 1000

        # Set by the authentication dependency, if the route had one
        user = getattr(request.state, "user", None)

        # Log response
        RequestLogger.log_response(
            method=request.method,
            path=str(request.url.path),
            status_code=response.status_code,
            response_time_ms=response_time_ms,
            user_id=str(user.id) if user is not None else None,
            request_id=request_id,
            slow_threshold_ms=self.slow_request_ms,
        )

        # Add request ID to response headers
        response.headers["X-Request-ID"] = request_id

        return response


class ErrorHandlingMiddleware(BaseHTTPMiddleware):
    """Middleware for handling exceptions and returning appropriate responses."""

    def __init__(self, app, debug: bool = False):
        super().__init__(app)
        self.debug = debug

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        try:
            return await call_next(request)

        except BaseAPIException as e:
            return error_response(e)

        except Exception as e:
            logger.error(
                "unhandled_exception",
                path=request.url.path,
                method=request.method,
                error=str(e),
                exc_info=True,
            )
            body = ErrorResponse(
                message="Internal server error",
                error_code="INTERNAL_ERROR",
                details={"message": str(e)} if self.debug else None,
            )
            return JSONResponse(
                status_code=500,
                content=body.model_dump(mode="json", exclude_none=True),
            )


class SuspiciousRequestMiddleware(BaseHTTPMiddleware):
    """Audit requests whose URL or body match known attack patterns.

    Matching requests are recorded and then served as usual.
    """

    def __init__(self, app, audit_sink: AuditSink, enabled: bool = True):
        super().__init__(app)
        self.audit_sink = audit_sink
        self.enabled = enabled

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        if not self.enabled:
            return await call_next(request)

        url = unquote(str(request.url))
        body = ""
        if request.method not in SAFE_METHODS:
            body = (await request.body()).decode("utf-8", errors="replace")

        if looks_suspicious(url, body):
            request_id = getattr(request.state, "request_id", None)
            SecurityLogger.log_suspicious_request(
                request_id=request_id,
                method=request.method,
                path=request.url.path,
                ip_address=client_ip(request),
                user_agent=request.headers.get("user-agent"),
            )
            await self.audit_sink.record_system(
                AuditAction.SUSPICIOUS_REQUEST,
                {
                    "request_id": request_id,
                    "method": request.method,
                    "url": url,
                    "body": body[:500],
                },
                RequestContext(client_ip(request), request.headers.get("user-agent")),
            )

        return await call_next(request)


class RateLimitingMiddleware(BaseHTTPMiddleware):
    """Fixed-window rate limiting per client address and, when known, per user."""

    def __init__(
        self,
        app,
        auth_limiter: FixedWindowRateLimiter,
        api_limiter: FixedWindowRateLimiter,
        token_issuer: TokenIssuer,
        enabled: bool = True,
        auth_paths: Iterable[str] = AUTH_RATE_LIMITED_PATHS,
    ):
        super().__init__(app)
        self.auth_limiter = auth_limiter
        self.api_limiter = api_limiter
        self.token_issuer = token_issuer
        self.enabled = enabled
        self.auth_paths = frozenset(auth_paths)

    def _user_id(self, request: Request) -> Optional[str]:
        scheme, _, credentials = request.headers.get("authorization", "").partition(" ")
        bearer = None
        if scheme.lower() == "bearer" and credentials:
            bearer = HTTPAuthorizationCredentials(scheme=scheme, credentials=credentials)
        token = extract_token(request, bearer)
        payload = self.token_issuer.verify_token(token) if token else None
        return payload.get("sub") if payload else None

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        path = request.url.path
        if not self.enabled or not path.startswith("/api/") or request.method == "OPTIONS":
            return await call_next(request)

        if path in self.auth_paths:
            limiter, limit_type = self.auth_limiter, "auth"
        else:
            limiter, limit_type = self.api_limiter, "api"

        identity = client_ip(request)
        user_id = self._user_id(request)
        if user_id:
            identity = f"{identity}:{user_id}"

        try:
            result = await limiter.hit(identity)
        except Exception as e:
            logger.error("rate_limit_store_unavailable", error=str(e), limit_type=limit_type)
            return error_response(BaseAPIException(
                "Service temporarily unavailable. Please try again later.",
                status_code=503,
                error_code="RATE_LIMIT_UNAVAILABLE",
            ))

        if not result.allowed:
            SecurityLogger.log_rate_limit_exceeded(
                ip_address=client_ip(request),
                path=path,
                limit_type=limit_type
            )
            return error_response(
                RateLimitExceeded("Too many requests from this IP, please try again later."),
                headers={
                    "Retry-After": str(result.reset_after),
                    "X-RateLimit-Limit": str(result.limit),
                    "X-RateLimit-Remaining": "0",
                },
            )

        response = await call_next(request)
        response.headers["X-RateLimit-Limit"] = str(result.limit)
        response.headers["X-RateLimit-Remaining"] = str(result.remaining)
        return response


class CSRFMiddleware(BaseHTTPMiddleware):
    """Require a single-use ``X-CSRF-Token`` on state-changing API calls."""

    def __init__(
        self,
        app,
        csrf_store: CsrfTokenStore,
        enabled: bool = True,
        exempt_paths: Iterable[str] = CSRF_EXEMPT_PATHS,
    ):
        super().__init__(app)
        self.csrf_store = csrf_store
        self.enabled = enabled
        self.exempt_paths = frozenset(exempt_paths)

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        path = request.url.path
        if (
            not self.enabled
            or request.method in SAFE_METHODS
            or not path.startswith("/api/")
            or path in self.exempt_paths
        ):
            return await call_next(request)

        token = request.headers.get("x-csrf-token")
        if not await self.csrf_store.consume(token):
            SecurityLogger.log_unauthorized_access(
                path=path,
                method=request.method,
                ip_address=client_ip(request),
                user_agent=request.headers.get("user-agent"),
                reason="csrf_token_invalid",
            )
            return error_response(CSRFError())

        return await call_next(request)


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Add security headers to responses."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        response = await call_next(request)

        # Add security headers
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["X-XSS-Protection"] = "1; mode=block"
        response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        response.headers["Content-Security-Policy"] = CONTENT_SECURITY_POLICY

        return response
