"""Per-tenant and per-messaging-user request limits over a sliding window."""

from __future__ import annotations

import math
import time
from collections import deque

from fastapi import Depends, HTTPException, Request, status

from rag_responder.api.auth import verify_token
from rag_responder.observability.logger import get_logger

logger = get_logger("rate_limiter")

WINDOW_SECONDS = 60.0


class SlidingWindowRateLimiter:
    """In-memory sliding window limiter for one scope ("tenant" or "messaging").

    A key's timestamps are dropped once they leave the window, and a key with
    none left is forgotten. Keys that never come back are swept at most once
    per window, so one-off callers do not accumulate.
    """

    def __init__(self, scope: str, window_seconds: float = WINDOW_SECONDS) -> None:
        self.scope = scope
        self.window_seconds = window_seconds
        self._hits: dict[str, deque[float]] = {}
        self._last_sweep = time.monotonic()

    def __len__(self) -> int:
        return len(self._hits)

    def check(self, key: str, max_requests: int, window_seconds: float | None = None) -> bool:
        """Record a request for ``key``. False when it is over the limit."""
        window = self.window_seconds if window_seconds is None else window_seconds
        now = time.monotonic()
        cutoff = now - window
        if now - self._last_sweep >= window:
            self._sweep(cutoff)
            self._last_sweep = now

        hits = self._prune(key, cutoff)
        if len(hits or ()) >= max_requests:
            return False

        self._hits.setdefault(key, deque()).append(now)
        return True

    def retry_after(self, key: str, window_seconds: float | None = None) -> int:
        """Whole seconds until ``key`` frees a slot."""
        window = self.window_seconds if window_seconds is None else window_seconds
        hits = self._hits.get(key)
        if not hits:
            return 0
        return max(1, math.ceil(hits[0] + window - time.monotonic()))

    def _prune(self, key: str, cutoff: float) -> deque[float] | None:
        hits = self._hits.get(key)
        if hits is None:
            return None
        while hits and hits[0] <= cutoff:
            hits.popleft()
        if not hits:
            del self._hits[key]
            return None
        return hits

    def _sweep(self, cutoff: float) -> None:
        for key in list(self._hits):
            self._prune(key, cutoff)


tenant_rate_limiter = SlidingWindowRateLimiter("tenant")
messaging_rate_limiter = SlidingWindowRateLimiter("messaging")


def messaging_user_key(bot_id: str, user_id: str) -> str:
    return f"{bot_id}:{user_id}"


async def rate_limit(
    request: Request,
    token_payload: dict = Depends(verify_token),
) -> dict:
    """FastAPI dependency: enforce rate limiting per authenticated tenant.

    Chains verify_token internally. Returns the token payload for downstream use.
    """
    settings = request.app.state.settings
    tenant_id = token_payload.get("sub", "anonymous")

    if not tenant_rate_limiter.check(tenant_id, settings.rate_limit_requests_per_minute):
        logger.warning("rate_limited", scope=tenant_rate_limiter.scope, tenant_id=tenant_id)
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail="Rate limit exceeded. Try again later.",
            headers={"Retry-After": str(tenant_rate_limiter.retry_after(tenant_id) or 60)},
        )

    return token_payload
