import time
from collections import deque
from typing import Callable, Deque, Dict, Optional

from fastapi import Request
from jose import JWTError

from errors import RateLimited


class RateLimiter:
    """Sliding-window request counter keyed by client address and user.

    Keys whose newest request has left the window are swept out once per
    window, so the table only holds clients seen recently.
    """

    def __init__(self, max_requests: int = 100, window_seconds: float = 15 * 60,
                 clock: Callable[[], float] = time.monotonic):
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self.clock = clock
        self._hits: Dict[str, Deque[float]] = {}
        self._last_sweep = clock()

    def __len__(self) -> int:
        return len(self._hits)

    def hit(self, key: str) -> bool:
        """Record a request for ``key``; False when the window is already full."""
        now = self.clock()
        window_start = now - self.window_seconds
        if now - self._last_sweep >= self.window_seconds:
            self._sweep(window_start)
            self._last_sweep = now
        hits = self._hits.setdefault(key, deque())
        while hits and hits[0] <= window_start:
            hits.popleft()
        if len(hits) >= self.max_requests:
            return False
        hits.append(now)
        return True

    def _sweep(self, window_start: float) -> None:
        stale = [key for key, hits in self._hits.items() if not hits or hits[-1] <= window_start]
        for key in stale:
            del self._hits[key]

    def reset(self, key: Optional[str] = None) -> None:
        if key is None:
            self._hits.clear()
        else:
            self._hits.pop(key, None)


def client_key(request: Request) -> str:
    host = request.client.host if request.client else "unknown"
    user_id = "anonymous"
    authorization = request.headers.get("authorization", "")
    if authorization.lower().startswith("bearer "):
        try:
            user_id = str(request.app.state.security.decode_token(authorization.split()[-1], "access"))
        except JWTError:
            pass
    return f"{host}:{user_id}"


async def rate_limit(request: Request) -> None:
    limiter: RateLimiter = request.app.state.rate_limiter
    if not limiter.hit(client_key(request)):
        raise RateLimited(
            f"Rate limit exceeded. Max {limiter.max_requests} requests per {int(limiter.window_seconds)}s"
        )
