"""Password hashing and session token primitives."""
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Dict, Optional

import bcrypt
from jose import JWTError, jwt

from ..config import settings
from ..config.settings import AuthSettings

# bcrypt only looks at the first 72 bytes and newer releases reject longer input.
_BCRYPT_MAX_BYTES = 72


class PasswordHasher:
    """bcrypt hashing with a configurable cost factor."""

    def __init__(self, rounds: int = None):
        self.rounds = rounds or settings.auth.bcrypt_rounds

    def hash_password(self, password: str) -> str:
        """Hash password using bcrypt."""
        salt = bcrypt.gensalt(rounds=self.rounds)
        return bcrypt.hashpw(password.encode('utf-8'), salt).decode('utf-8')

    def verify_password(self, plain_password: str, hashed_password: str) -> bool:
        """Verify password against hash."""
        if not plain_password or not hashed_password:
            return False
        encoded = plain_password.encode('utf-8')
        if len(encoded) > _BCRYPT_MAX_BYTES:
            return False
        try:
            return bcrypt.checkpw(encoded, hashed_password.encode('utf-8'))
        except ValueError:
            return False


@dataclass
class IssuedToken:
    """A signed session token and the session it is bound to."""

    token: str
    session_id: str
    expires_at: datetime
    expires_in: int


class TokenIssuer:
    """Signs and verifies session tokens."""

    def __init__(self, auth_settings: AuthSettings = None):
        auth_settings = auth_settings or settings.auth
        self.secret_key = auth_settings.secret_key
        self.algorithm = auth_settings.algorithm
        self.access_token_expire_minutes = auth_settings.access_token_expire_minutes

    def create_access_token(
        self,
        user_id: str,
        email: str,
        role: str,
        session_id: Optional[str] = None,
        now: Optional[datetime] = None,
        expires_delta: Optional[timedelta] = None
    ) -> IssuedToken:
        """Create JWT access token bound to a fresh session id."""
        issued_at = now or datetime.utcnow()
        expires_delta = expires_delta or timedelta(minutes=self.access_token_expire_minutes)
        expire = issued_at + expires_delta
        session_id = session_id or generate_session_id()

        to_encode = {
            "sub": str(user_id),
            "email": email,
            "role": role,
            "sid": session_id,
            "type": "access",
            "iat": issued_at,
            "exp": expire,
        }
        token = jwt.encode(to_encode, self.secret_key, algorithm=self.algorithm)
        return IssuedToken(
            token=token,
            session_id=session_id,
            expires_at=expire,
            expires_in=int(expires_delta.total_seconds()),
        )

    def verify_token(self, token: str) -> Optional[Dict[str, Any]]:
        """Verify and decode JWT token."""
        if not token:
            return None
        try:
            payload = jwt.decode(
                token, self.secret_key, algorithms=[self.algorithm]
            )
        except JWTError:
            return None
        if payload.get("type") != "access" or not payload.get("sub"):
            return None
        return payload


def generate_otp(length: int = 6) -> str:
    """Numeric one-time code without a leading zero."""
    low = 10 ** (length - 1)
    return str(low + secrets.randbelow(9 * low))


def generate_session_id() -> str:
    return secrets.token_hex(32)


def generate_reset_token() -> str:
    return secrets.token_hex(32)
