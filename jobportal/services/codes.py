"""One-time artifacts: email codes, reset tokens, MFA challenges, CSRF tokens.

Every artifact is written to a :class:`KeyValueStore` with a TTL and also
carries its own ``expires_at`` so validity is judged by the caller's clock.
Writes for the same key are last-writer-wins.
"""
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Optional

from ..core.auth import generate_otp, generate_reset_token
from ..storage.kv import KeyValueStore

Clock = Callable[[], datetime]


def _encode_time(value: datetime) -> str:
    return value.isoformat()


def _decode_time(value: str) -> datetime:
    return datetime.fromisoformat(value)


class _ExpiringStore:
    namespace = ""

    def __init__(self, store: KeyValueStore, ttl: timedelta, clock: Clock = datetime.utcnow):
        self.store = store
        self.ttl = ttl
        self.clock = clock

    def _key(self, identifier: str) -> str:
        return f"{self.namespace}:{identifier}"

    @property
    def ttl_seconds(self) -> int:
        return int(self.ttl.total_seconds())

    def _expired(self, payload: dict) -> bool:
        return self.clock() >= _decode_time(payload["expires_at"])


@dataclass
class OneTimeCode:
    code: str
    expires_at: datetime
    attempts: int = 0


class OneTimeCodeStore(_ExpiringStore):
    """Numeric verification codes keyed by email."""

    namespace = "otp"

    def __init__(
        self,
        store: KeyValueStore,
        ttl: timedelta = timedelta(minutes=10),
        length: int = 6,
        max_attempts: Optional[int] = 5,
        clock: Clock = datetime.utcnow,
    ):
        super().__init__(store, ttl, clock)
        self.length = length
        self.max_attempts = max_attempts

    async def issue(self, email: str) -> OneTimeCode:
        """Create a code for ``email``, superseding any previous one."""
        entry = OneTimeCode(
            code=generate_otp(self.length),
            expires_at=self.clock() + self.ttl,
        )
        await self.store.set(
            self._key(email),
            {"code": entry.code, "expires_at": _encode_time(entry.expires_at), "attempts": 0},
            self.ttl_seconds,
        )
        return entry

    async def peek(self, email: str) -> Optional[OneTimeCode]:
        payload = await self.store.get(self._key(email))
        if payload is None:
            return None
        return OneTimeCode(
            code=payload["code"],
            expires_at=_decode_time(payload["expires_at"]),
            attempts=payload.get("attempts", 0),
        )

    async def verify(self, email: str, submitted: str) -> bool:
        """Consume the code on an exact match.

        A mismatch bumps the attempt counter; once ``max_attempts`` mismatches
        have been recorded the code is discarded.
        """
        key = self._key(email)
        payload = await self.store.get(key)
        if payload is None:
            return False
        if self._expired(payload):
            await self.store.delete(key)
            return False

        if secrets.compare_digest(str(payload["code"]), str(submitted or "")):
            await self.store.delete(key)
            return True

        attempts = payload.get("attempts", 0) + 1
        if self.max_attempts is not None and attempts >= self.max_attempts:
            await self.store.delete(key)
        else:
            payload["attempts"] = attempts
            remaining = _decode_time(payload["expires_at"]) - self.clock()
            await self.store.set(key, payload, max(int(remaining.total_seconds()), 1))
        return False

    async def discard(self, email: str) -> None:
        await self.store.delete(self._key(email))


@dataclass
class ResetGrant:
    token: str
    user_id: str
    email: str
    expires_at: datetime


class ResetTokenStore(_ExpiringStore):
    """Single-use password reset tokens keyed by the token itself."""

    namespace = "reset"

    def __init__(
        self,
        store: KeyValueStore,
        ttl: timedelta = timedelta(hours=1),
        clock: Clock = datetime.utcnow,
    ):
        super().__init__(store, ttl, clock)

    async def issue(self, user_id: str, email: str) -> ResetGrant:
        grant = ResetGrant(
            token=generate_reset_token(),
            user_id=str(user_id),
            email=email,
            expires_at=self.clock() + self.ttl,
        )
        await self.store.set(
            self._key(grant.token),
            {
                "user_id": grant.user_id,
                "email": grant.email,
                "expires_at": _encode_time(grant.expires_at),
            },
            self.ttl_seconds,
        )
        return grant

    async def lookup(self, token: str) -> Optional[ResetGrant]:
        """Existence and expiry check; never mutates."""
        if not token:
            return None
        payload = await self.store.get(self._key(token))
        if payload is None or self._expired(payload):
            return None
        return ResetGrant(
            token=token,
            user_id=payload["user_id"],
            email=payload["email"],
            expires_at=_decode_time(payload["expires_at"]),
        )

    async def consume(self, token: str) -> None:
        await self.store.delete(self._key(token))


class MfaChallengeStore(_ExpiringStore):
    """Short-lived tokens bridging a password check and a second factor."""

    namespace = "mfa_challenge"

    def __init__(
        self,
        store: KeyValueStore,
        ttl: timedelta = timedelta(minutes=5),
        clock: Clock = datetime.utcnow,
    ):
        super().__init__(store, ttl, clock)

    async def issue(self, user_id: str) -> str:
        token = secrets.token_urlsafe(32)
        await self.store.set(
            self._key(token),
            {"user_id": str(user_id), "expires_at": _encode_time(self.clock() + self.ttl)},
            self.ttl_seconds,
        )
        return token

    async def lookup(self, token: str) -> Optional[str]:
        if not token:
            return None
        payload = await self.store.get(self._key(token))
        if payload is None or self._expired(payload):
            return None
        return payload["user_id"]

    async def consume(self, token: str) -> None:
        await self.store.delete(self._key(token))


class CsrfTokenStore(_ExpiringStore):
    """Single-use CSRF tokens."""

    namespace = "csrf"

    def __init__(
        self,
        store: KeyValueStore,
        ttl: timedelta = timedelta(hours=1),
        clock: Clock = datetime.utcnow,
    ):
        super().__init__(store, ttl, clock)

    async def issue(self, ip_address: Optional[str] = None) -> str:
        token = secrets.token_hex(32)
        await self.store.set(
            self._key(token),
            {"ip": ip_address, "expires_at": _encode_time(self.clock() + self.ttl)},
            self.ttl_seconds,
        )
        return token

    async def consume(self, token: Optional[str]) -> bool:
        if not token:
            return False
        payload = await self.store.pop(self._key(token))
        return payload is not None and not self._expired(payload)
