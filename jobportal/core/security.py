"""Request authentication dependencies."""
from typing import Optional

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from ..config import settings
from ..database import get_db
from ..models.user import User
from .auth import TokenIssuer
from .exceptions import AuthenticationError, AuthorizationError
from .logging import SecurityLogger
from .roles import Capability, has_capability
from ..services.audit import RequestContext

# Security scheme; missing credentials are reported by get_current_user
security = HTTPBearer(auto_error=False)


def get_orchestrator(request: Request):
    return request.app.state.orchestrator


def get_request_context(request: Request) -> RequestContext:
    return RequestContext(
        ip_address=request.client.host if request.client else None,
        user_agent=request.headers.get("user-agent"),
    )


def extract_token(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = None,
) -> Optional[str]:
    """Bearer header first, then the session cookie, then ``?token=`` on GET only."""
    if credentials is not None and credentials.credentials:
        return credentials.credentials

    app_settings = getattr(request.app.state, "settings", settings)
    cookie_name = app_settings.security.token_cookie_name
    token = request.cookies.get(cookie_name)
    if token:
        return token

    if request.method == "GET":
        return request.query_params.get("token") or None
    return None


def _token_issuer(request: Request) -> TokenIssuer:
    orchestrator = getattr(request.app.state, "orchestrator", None)
    if orchestrator is not None:
        return orchestrator.tokens
    return TokenIssuer()


async def get_current_user(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: AsyncSession = Depends(get_db)
) -> User:
    """Get current authenticated user."""
    token = extract_token(request, credentials)
    if not token:
        SecurityLogger.log_unauthorized_access(
            path=request.url.path,
            method=request.method,
            ip_address=request.client.host if request.client else None,
            user_agent=request.headers.get("user-agent"),
            reason="missing_token",
        )
        raise AuthenticationError("Access denied. No token provided.")

    payload = _token_issuer(request).verify_token(token)
    if payload is None:
        SecurityLogger.log_unauthorized_access(
            path=request.url.path,
            method=request.method,
            ip_address=request.client.host if request.client else None,
            user_agent=request.headers.get("user-agent"),
            reason="invalid_token",
        )
        raise AuthenticationError("Invalid or expired token")

    user = await get_orchestrator(request).get_user_by_id(db, payload["sub"])
    if user is None:
        raise AuthenticationError("User not found")

    request.state.user = user
    request.state.session_id = payload.get("sid")
    return user


async def require_active_session(
    request: Request,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
) -> User:
    """Like get_current_user, but the token's session must not be revoked or expired."""
    session = await get_orchestrator(request).get_active_session(
        db, current_user.id, getattr(request.state, "session_id", None)
    )
    if session is None:
        raise AuthenticationError("Session expired or revoked")
    return current_user


def require_capability(capability: Capability):
    """Dependency to require a capability granted by the user's role."""
    async def check_capability(
        request: Request,
        current_user: User = Depends(get_current_user)
    ) -> User:
        if not has_capability(current_user.role, capability):
            SecurityLogger.log_unauthorized_access(
                path=request.url.path,
                method=request.method,
                ip_address=request.client.host if request.client else None,
                user_agent=request.headers.get("user-agent"),
                reason=f"missing_capability:{capability.value}",
            )
            raise AuthorizationError("Access denied. Insufficient permissions.")
        return current_user

    return check_capability
