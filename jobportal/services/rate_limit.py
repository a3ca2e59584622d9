"""Fixed-window request counting over a key-value store."""
from dataclasses import dataclass

from ..storage.kv import KeyValueStore


@dataclass
class RateLimitResult:
    allowed: bool
    limit: int
    remaining: int
    reset_after: int


class FixedWindowRateLimiter:
    """Allow ``max_requests`` per ``window_seconds`` for each identity.

    The window opens on the first request for an identity and is not sliding;
    there is no back-off curve. Store errors propagate so the caller can
    reject the request.
    """

    def __init__(
        self,
        store: KeyValueStore,
        name: str,
        max_requests: int,
        window_seconds: int = 15 * 60,
    ):
        self.store = store
        self.name = name
        self.max_requests = max_requests
        self.window_seconds = window_seconds

    async def hit(self, identity: str) -> RateLimitResult:
        count, reset_after = await self.store.incr(
            f"ratelimit:{self.name}:{identity}", self.window_seconds
        )
        return RateLimitResult(
            allowed=count <= self.max_requests,
            limit=self.max_requests,
            remaining=max(self.max_requests - count, 0),
            reset_after=reset_after,
        )
